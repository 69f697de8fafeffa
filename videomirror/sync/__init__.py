"""Background synchronization engines for the catalog and its view counts."""

from .catalog import CatalogSyncEngine
from .views import ViewReconciliationEngine

__all__ = ["CatalogSyncEngine", "ViewReconciliationEngine"]
