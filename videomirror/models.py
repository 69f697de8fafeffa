"""Remote wire shapes, local records, and the mappings between them."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TokenResponse(BaseModel):
    """Body returned by the client-credentials exchange."""

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(min_length=1)
    token_type: str = "Bearer"
    expires_in: int = Field(ge=0)


class RaceCustomFields(BaseModel):
    """Custom fields attached to every catalog entry by the publisher."""

    model_config = ConfigDict(extra="ignore")

    numero_corsa: str
    data: str
    ippodromo: str
    tipologia: str | None = None
    cavalli: str | None = None
    fantini: str | None = None
    primo: str | None = None
    secondo: str | None = None
    terzo: str | None = None


class RemoteVideo(BaseModel):
    """Catalog video summary, also the shape served by the read API."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    name: str
    thumbnail: str = ""
    custom_fields: RaceCustomFields
    video_views: int = Field(default=0, ge=0)

    @field_validator("thumbnail", mode="before")
    @classmethod
    def _missing_thumbnail(cls, value: str | None) -> str:
        return value or ""


class CatalogPage(BaseModel):
    """One page of the remote catalog plus the declared total."""

    model_config = ConfigDict(extra="ignore")

    count: int = Field(ge=0)
    videos: list[RemoteVideo] = Field(default_factory=list)


# The read API answers with the same envelope the remote player feed uses.
PlayerResponse = CatalogPage


class AnalyticsItem(BaseModel):
    """Aggregated views for one video; the platform sometimes sends a null id."""

    model_config = ConfigDict(extra="ignore")

    video: str | None = None
    video_view: int = Field(default=0, ge=0)


class AnalyticsResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    item_count: int = Field(ge=0)
    items: list[AnalyticsItem] = Field(default_factory=list)


@dataclass(frozen=True, slots=True)
class Credential:
    """Bearer token with its issuance time and validity window."""

    access_token: str
    token_type: str
    issued_at: datetime
    expires_in: int

    @property
    def expires_at(self) -> datetime:
        return self.issued_at + timedelta(seconds=self.expires_in)

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at

    def authorization_header(self) -> str:
        return f"Bearer {self.access_token}"

    @classmethod
    def from_token_response(cls, response: TokenResponse, issued_at: datetime | None = None) -> "Credential":
        return cls(
            access_token=response.access_token,
            token_type=response.token_type,
            issued_at=issued_at or datetime.now(timezone.utc),
            expires_in=response.expires_in,
        )

    def __repr__(self) -> str:
        return f"Credential(token_type={self.token_type!r}, expires_at={self.expires_at.isoformat()!r})"


@dataclass(frozen=True, slots=True)
class VideoRecord:
    """One mirrored video as stored in the ``videos`` table."""

    bc_video_id: str
    name: str
    thumbnail: str
    numero_corsa: str
    data: str
    ippodromo: str
    tipologia: str | None = None
    cavalli: str | None = None
    fantini: str | None = None
    primo: str | None = None
    secondo: str | None = None
    terzo: str | None = None
    video_views: int = 0


@dataclass(frozen=True, slots=True)
class ViewUpdate:
    video_id: str
    views: int


@dataclass(slots=True)
class SyncOutcome:
    """Counters describing a single catalog sync pass."""

    pages_fetched: int = 0
    discovered: int = 0
    inserted: int = 0
    cursor: str | None = None
    cursor_found: bool = False
    new_ids: list[str] = field(default_factory=list)


def record_from_remote(video: RemoteVideo) -> VideoRecord:
    """Build a fresh record from a catalog entry; views always start at zero."""
    fields = video.custom_fields
    return VideoRecord(
        bc_video_id=video.id,
        name=video.name,
        thumbnail=video.thumbnail,
        numero_corsa=fields.numero_corsa,
        data=fields.data,
        ippodromo=fields.ippodromo,
        tipologia=fields.tipologia,
        cavalli=fields.cavalli,
        fantini=fields.fantini,
        primo=fields.primo,
        secondo=fields.secondo,
        terzo=fields.terzo,
        video_views=0,
    )


def record_to_remote(record: VideoRecord) -> RemoteVideo:
    """Render a stored record in the catalog shape served by the read API."""
    return RemoteVideo(
        id=record.bc_video_id,
        name=record.name,
        thumbnail=record.thumbnail,
        custom_fields=RaceCustomFields(
            numero_corsa=record.numero_corsa,
            data=record.data,
            ippodromo=record.ippodromo,
            tipologia=record.tipologia,
            cavalli=record.cavalli,
            fantini=record.fantini,
            primo=record.primo,
            secondo=record.secondo,
            terzo=record.terzo,
        ),
        video_views=record.video_views,
    )


def view_updates(response: AnalyticsResponse) -> list[ViewUpdate]:
    """Turn an analytics payload into targeted updates, dropping null ids."""
    return [
        ViewUpdate(video_id=item.video, views=item.video_view)
        for item in response.items
        if item.video
    ]


__all__ = [
    "AnalyticsItem",
    "AnalyticsResponse",
    "CatalogPage",
    "Credential",
    "PlayerResponse",
    "RaceCustomFields",
    "RemoteVideo",
    "SyncOutcome",
    "TokenResponse",
    "VideoRecord",
    "ViewUpdate",
    "record_from_remote",
    "record_to_remote",
    "view_updates",
]
