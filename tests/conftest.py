from __future__ import annotations

from datetime import datetime, timezone
from typing import Sequence

import pytest

from videomirror.config import AppConfig
from videomirror.credentials import CredentialManager
from videomirror.db import DatabaseManager
from videomirror.errors import SyncError
from videomirror.models import (
    AnalyticsItem,
    AnalyticsResponse,
    CatalogPage,
    Credential,
    RemoteVideo,
    record_from_remote,
)

ISSUED_AT = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_credential(token: str = "token-1", expires_in: int = 300) -> Credential:
    return Credential(access_token=token, token_type="Bearer", issued_at=ISSUED_AT, expires_in=expires_in)


def remote_video_payload(video_id: str, **overrides) -> dict:
    payload = {
        "id": video_id,
        "name": f"PR. {video_id}",
        "thumbnail": f"https://cdn.example.com/{video_id}.jpg",
        "custom_fields": {
            "numero_corsa": "02",
            "data": "2022/03/20",
            "ippodromo": "FIRENZE",
            "tipologia": "TROTTO",
            "cavalli": "CLELIA DEI DALTRI,CICLONE TAV",
        },
    }
    payload.update(overrides)
    return payload


def make_video(video_id: str, **overrides) -> RemoteVideo:
    return RemoteVideo.model_validate(remote_video_payload(video_id, **overrides))


class FakeTokenSource:
    """Hands out scripted credentials or failures, one per exchange."""

    def __init__(self, *outcomes: Credential | Exception) -> None:
        self.outcomes = list(outcomes)
        self.calls = 0

    def exchange(self) -> Credential:
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeCatalogSource:
    """Serves a fixed newest-first feed split into pages, recording offsets."""

    def __init__(self, ids: Sequence[str], page_size: int = 25, fail_at_offset: int | None = None) -> None:
        self.ids = list(ids)
        self.page_size = page_size
        self.fail_at_offset = fail_at_offset
        self.offsets: list[int] = []
        self.tokens: list[str] = []

    def fetch_page(self, credential: Credential, offset: int = 0) -> CatalogPage:
        self.offsets.append(offset)
        self.tokens.append(credential.access_token)
        if self.fail_at_offset is not None and offset == self.fail_at_offset:
            raise SyncError(f"boom at offset {offset}")
        chunk = self.ids[offset : offset + self.page_size]
        return CatalogPage(count=len(self.ids), videos=[make_video(video_id) for video_id in chunk])

    @property
    def pages_fetched(self) -> list[int]:
        return [offset // self.page_size + 1 for offset in self.offsets]


class FakeAnalyticsSource:
    def __init__(self, items: Sequence[tuple[str | None, int]] | Exception) -> None:
        self.items = items
        self.scoped_calls: list[list[str]] = []
        self.bulk_calls = 0

    def _response(self) -> AnalyticsResponse:
        if isinstance(self.items, Exception):
            raise self.items
        items = [AnalyticsItem(video=video, video_view=views) for video, views in self.items]
        return AnalyticsResponse(item_count=len(items), items=items)

    def fetch_all_views(self, credential: Credential) -> AnalyticsResponse:
        self.bulk_calls += 1
        return self._response()

    def fetch_views(self, credential: Credential, video_ids: Sequence[str]) -> AnalyticsResponse:
        self.scoped_calls.append(list(video_ids))
        return self._response()


@pytest.fixture
def db(tmp_path):
    manager = DatabaseManager(tmp_path / "mirror.db")
    yield manager
    manager.close()


@pytest.fixture
def seed(db):
    def _seed(*video_ids: str) -> None:
        db.save_videos([record_from_remote(make_video(video_id)) for video_id in video_ids])

    return _seed


@pytest.fixture
def credentials():
    manager = CredentialManager(FakeTokenSource(make_credential()))
    manager.refresh()
    return manager


@pytest.fixture
def config(tmp_path):
    return AppConfig(
        database_path=tmp_path / "mirror.db",
        log_path=tmp_path / "logs" / "mirror.log",
        client_id="client-id",
        client_secret="client-secret",
        account_id="1234567890001",
        oauth_url="https://oauth.example.com/v4/access_token",
        catalog_url="https://catalog.example.com/accounts/{account_id}/videos",
        analytics_url="https://analytics.example.com/v1/data",
    )
