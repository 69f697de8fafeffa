"""Periodic tasks; each owns exactly the shared handles it needs."""

from __future__ import annotations

import logging
from typing import Protocol

from .credentials import CredentialManager
from .db import DatabaseManager
from .sync.catalog import CatalogSyncEngine
from .sync.views import ViewReconciliationEngine

logger = logging.getLogger(__name__)


class Task(Protocol):
    """A unit of periodic work. ``tick`` runs one full pass to completion."""

    def tick(self) -> object: ...


class CredentialRefreshTask:
    def __init__(self, credentials: CredentialManager) -> None:
        self.credentials = credentials

    def tick(self) -> None:
        logger.info("Time expired, getting new token")
        self.credentials.refresh()


class CatalogSyncTask:
    def __init__(self, engine: CatalogSyncEngine, store: DatabaseManager) -> None:
        self.engine = engine
        self.store = store

    def tick(self) -> int:
        logger.info("Checking new videos")
        return self.engine.sync_once(self.store)


class ViewReconcileTask:
    def __init__(
        self,
        engine: ViewReconciliationEngine,
        store: DatabaseManager,
        credentials: CredentialManager,
    ) -> None:
        self.engine = engine
        self.store = store
        self.credentials = credentials

    def tick(self) -> int:
        return self.engine.reconcile_once(self.store, self.credentials.current())


__all__ = ["CatalogSyncTask", "CredentialRefreshTask", "Task", "ViewReconcileTask"]
