"""HTTP adapters for the remote video platform: token, catalog, and analytics."""

from __future__ import annotations

import logging
from typing import Any, Sequence, TypeVar

import httpx
from pydantic import BaseModel, ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .config import AppConfig, secret_value
from .errors import AuthError, SyncError
from .models import AnalyticsResponse, CatalogPage, Credential, TokenResponse

logger = logging.getLogger(__name__)

USER_AGENT = "videomirror/1.0"
CATALOG_SORT = "-created_at"

ModelT = TypeVar("ModelT", bound=BaseModel)

_transport_retry = retry(
    retry=retry_if_exception_type(httpx.TransportError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=2, max=30),
    reraise=True,
)


def build_http_client(config: AppConfig, transport: httpx.BaseTransport | None = None) -> httpx.Client:
    """Shared httpx client; tests inject a MockTransport."""
    return httpx.Client(
        timeout=httpx.Timeout(config.http_timeout_seconds),
        headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
        transport=transport,
    )


def _decode(response: httpx.Response, model: type[ModelT], what: str) -> ModelT:
    try:
        return model.model_validate(response.json())
    except (ValueError, ValidationError) as exc:
        raise SyncError(f"Malformed {what} response: {exc}") from exc


def _ensure_ok(response: httpx.Response, what: str, error: type[Exception]) -> None:
    if response.status_code != httpx.codes.OK:
        raise error(f"{what} returned HTTP {response.status_code}: {response.text[:200]}")


class TokenClient:
    """Client-credentials exchange; re-exchange is the only renewal path."""

    def __init__(self, config: AppConfig, http: httpx.Client) -> None:
        self.url = config.oauth_url
        self.client_id = config.client_id
        self.client_secret = secret_value(config.client_secret)
        self.http = http

    @_transport_retry
    def _post(self) -> httpx.Response:
        return self.http.post(
            self.url,
            auth=(self.client_id or "", self.client_secret or ""),
            data={"grant_type": "client_credentials"},
        )

    def exchange(self) -> Credential:
        if not (self.client_id and self.client_secret):
            raise AuthError("CLIENT_ID and CLIENT_SECRET are required for the token exchange")
        try:
            response = self._post()
        except httpx.HTTPError as exc:
            raise AuthError(f"Token request failed: {exc}") from exc
        _ensure_ok(response, "Token endpoint", AuthError)
        try:
            body = TokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise AuthError(f"Malformed token response: {exc}") from exc
        return Credential.from_token_response(body)


class CatalogClient:
    """Fetches one page of the catalog, newest first. Stateless."""

    def __init__(self, config: AppConfig, http: httpx.Client) -> None:
        self.url = config.catalog_endpoint
        self.page_size = config.page_size
        self.policy_key = secret_value(config.policy_key)
        self.http = http

    def _headers(self, credential: Credential) -> dict[str, str]:
        headers = {"Authorization": credential.authorization_header()}
        if self.policy_key:
            headers["BCOV-Policy"] = self.policy_key
        return headers

    @_transport_retry
    def _get(self, params: dict[str, Any], headers: dict[str, str]) -> httpx.Response:
        return self.http.get(self.url, params=params, headers=headers)

    def fetch_page(self, credential: Credential, offset: int = 0) -> CatalogPage:
        params = {"sort": CATALOG_SORT, "limit": self.page_size, "offset": offset}
        logger.debug("Fetching catalog page offset=%d limit=%d", offset, self.page_size)
        try:
            response = self._get(params, self._headers(credential))
        except httpx.HTTPError as exc:
            raise SyncError(f"Catalog request failed at offset {offset}: {exc}") from exc
        _ensure_ok(response, "Catalog endpoint", SyncError)
        return _decode(response, CatalogPage, "catalog")


class AnalyticsClient:
    """Aggregated view counts, either for every video or for a list of ids."""

    def __init__(self, config: AppConfig, http: httpx.Client) -> None:
        self.url = config.analytics_url
        self.account_id = config.account_id
        self.http = http

    def _base_params(self) -> dict[str, Any]:
        return {
            "accounts": self.account_id or "",
            "dimensions": "video",
            "fields": "video,video_view",
        }

    @_transport_retry
    def _get(self, params: dict[str, Any], credential: Credential) -> httpx.Response:
        return self.http.get(
            self.url,
            params=params,
            headers={"Authorization": credential.authorization_header()},
        )

    def _fetch(self, credential: Credential, params: dict[str, Any]) -> AnalyticsResponse:
        try:
            response = self._get(params, credential)
        except httpx.HTTPError as exc:
            raise SyncError(f"Analytics request failed: {exc}") from exc
        _ensure_ok(response, "Analytics endpoint", SyncError)
        return _decode(response, AnalyticsResponse, "analytics")

    def fetch_all_views(self, credential: Credential) -> AnalyticsResponse:
        return self._fetch(credential, {**self._base_params(), "limit": "all"})

    def fetch_views(self, credential: Credential, video_ids: Sequence[str]) -> AnalyticsResponse:
        ids = [video_id for video_id in video_ids if video_id]
        if not ids:
            return AnalyticsResponse(item_count=0, items=[])
        params = {**self._base_params(), "where": f"video=={','.join(ids)}", "limit": len(ids)}
        logger.info("Fetching scoped views for %d video(s)", len(ids))
        return self._fetch(credential, params)


__all__ = [
    "AnalyticsClient",
    "CatalogClient",
    "TokenClient",
    "build_http_client",
]
