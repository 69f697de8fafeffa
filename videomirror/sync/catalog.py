"""Incremental catalog sync: walk the newest-first feed until the cursor."""

from __future__ import annotations

import logging
import math
from typing import Protocol, Sequence

from ..credentials import CredentialManager
from ..models import CatalogPage, Credential, SyncOutcome, VideoRecord, record_from_remote

logger = logging.getLogger(__name__)


class CatalogSource(Protocol):
    page_size: int

    def fetch_page(self, credential: Credential, offset: int = 0) -> CatalogPage: ...


class CatalogStore(Protocol):
    def get_latest_video_id(self) -> str | None: ...

    def save_videos(self, records: Sequence[VideoRecord]) -> int: ...


class CatalogSyncEngine:
    """Discovers videos newer than the stored cursor and inserts them.

    The feed is sorted by creation time, newest first, so everything after the
    cursor is already known. Pages are fetched strictly in order and nothing is
    written until the walk completes; a failed fetch leaves the store untouched.
    """

    def __init__(self, source: CatalogSource, credentials: CredentialManager) -> None:
        self.source = source
        self.credentials = credentials

    def sync_once(self, store: CatalogStore) -> int:
        """Run one pass and return the number of newly inserted videos."""
        return self.run_pass(store).inserted

    def run_pass(self, store: CatalogStore) -> SyncOutcome:
        latest_id = store.get_latest_video_id()
        if latest_id is None:
            logger.info("No cursor stored; importing the whole catalog.")
        else:
            logger.info("Syncing catalog since cursor %s", latest_id)

        pending, outcome = self.discover(latest_id)
        if not pending:
            logger.info(
                "No new videos (pages fetched=%d).",
                outcome.pages_fetched,
                extra={"cursor": latest_id, "pages_fetched": outcome.pages_fetched, "inserted": 0},
            )
            return outcome

        logger.debug("Saving %d new videos", len(pending))
        outcome.inserted = store.save_videos(pending)
        logger.info(
            "Saved %d new videos (discovered=%d, pages fetched=%d, cursor found=%s)",
            outcome.inserted,
            outcome.discovered,
            outcome.pages_fetched,
            outcome.cursor_found,
            extra={"cursor": latest_id, "pages_fetched": outcome.pages_fetched, "inserted": outcome.inserted},
        )
        return outcome

    def discover(self, latest_id: str | None) -> tuple[list[VideoRecord], SyncOutcome]:
        """Collect records newer than ``latest_id`` in feed order."""
        page_size = self.source.page_size
        outcome = SyncOutcome(cursor=latest_id)
        pending: list[VideoRecord] = []

        page = self._fetch(0, outcome)
        total_pages = math.ceil(page.count / page_size) if page.count else 0
        page_number = 1

        while True:
            for video in page.videos:
                if latest_id is not None and video.id == latest_id:
                    outcome.cursor_found = True
                    break
                pending.append(record_from_remote(video))
                outcome.new_ids.append(video.id)

            if outcome.cursor_found or page_number >= total_pages or not page.videos:
                break
            page_number += 1
            page = self._fetch((page_number - 1) * page_size, outcome)

        if latest_id is not None and not outcome.cursor_found:
            logger.warning(
                "Cursor %s not found in %d page(s); existing rows will be skipped on insert.",
                latest_id,
                outcome.pages_fetched,
            )
        outcome.discovered = len(pending)
        return pending, outcome

    def _fetch(self, offset: int, outcome: SyncOutcome) -> CatalogPage:
        page = self.source.fetch_page(self.credentials.current(), offset)
        outcome.pages_fetched += 1
        return page


__all__ = ["CatalogSource", "CatalogStore", "CatalogSyncEngine"]
