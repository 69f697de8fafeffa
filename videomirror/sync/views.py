"""Bulk view-count reconciliation against the analytics feed."""

from __future__ import annotations

import logging
from typing import Protocol, Sequence

from ..errors import PersistenceError
from ..models import AnalyticsResponse, Credential, view_updates

logger = logging.getLogger(__name__)


class AnalyticsSource(Protocol):
    def fetch_all_views(self, credential: Credential) -> AnalyticsResponse: ...

    def fetch_views(self, credential: Credential, video_ids: Sequence[str]) -> AnalyticsResponse: ...


class ViewStore(Protocol):
    def update_video_views(self, video_id: str, views: int) -> bool: ...


class ViewReconciliationEngine:
    """Best-effort: a bad row is logged and skipped, the rest still update."""

    def __init__(self, source: AnalyticsSource) -> None:
        self.source = source

    def reconcile_once(
        self,
        store: ViewStore,
        credential: Credential,
        video_ids: Sequence[str] | None = None,
    ) -> int:
        """Refresh view counts and return the number of rows updated."""
        if video_ids:
            response = self.source.fetch_views(credential, video_ids)
        else:
            response = self.source.fetch_all_views(credential)

        updates = view_updates(response)
        dropped = len(response.items) - len(updates)
        if dropped:
            logger.debug("Dropped %d analytics entries without a video id", dropped)

        updated = unknown = failed = 0
        for update in updates:
            try:
                matched = store.update_video_views(update.video_id, update.views)
            except PersistenceError as exc:
                failed += 1
                logger.error(
                    "Error updating views for video %s: %s", update.video_id, exc, extra={"video_id": update.video_id}
                )
                continue
            if matched:
                updated += 1
                logger.debug("Updated views for video %s -> %d", update.video_id, update.views)
            else:
                unknown += 1

        logger.info(
            "View reconciliation done: updated=%d not_synced=%d failed=%d dropped=%d",
            updated,
            unknown,
            failed,
            dropped,
            extra={"updated": updated},
        )
        return updated


__all__ = ["AnalyticsSource", "ViewReconciliationEngine", "ViewStore"]
