"""Error taxonomy shared by the remote clients, the sync engines, and the store."""

from __future__ import annotations


class MirrorError(RuntimeError):
    """Base class for every failure raised by the mirror."""


class AuthError(MirrorError):
    """Raised when the client-credentials exchange fails or returns garbage."""


class SyncError(MirrorError):
    """Raised when a remote fetch fails or its response cannot be decoded."""


class PersistenceError(MirrorError):
    """Raised when a store operation fails."""


__all__ = ["MirrorError", "AuthError", "SyncError", "PersistenceError"]
