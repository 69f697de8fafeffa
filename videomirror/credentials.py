"""Lock-guarded holder for the shared bearer credential."""

from __future__ import annotations

import logging
import threading
from typing import Protocol

from .errors import AuthError
from .models import Credential

logger = logging.getLogger(__name__)


class TokenSource(Protocol):
    def exchange(self) -> Credential: ...


class CredentialManager:
    """Single-value cell: whole-value reads, whole-value replacement.

    A failed refresh leaves the previous credential in place; stale-but-present
    beats absent for the consumers. Only ``bootstrap`` treats failure as fatal.
    """

    def __init__(self, source: TokenSource) -> None:
        self._source = source
        self._lock = threading.Lock()
        self._credential: Credential | None = None
        self._refresh_lock = threading.Lock()

    @property
    def has_credential(self) -> bool:
        with self._lock:
            return self._credential is not None

    def current(self) -> Credential:
        """Latest credential; raises AuthError if no exchange ever succeeded."""
        with self._lock:
            credential = self._credential
        if credential is None:
            raise AuthError("No credential has been obtained yet")
        return credential

    def replace(self, credential: Credential) -> None:
        with self._lock:
            self._credential = credential

    def refresh(self) -> Credential:
        """Exchange client credentials and swap the held value on success."""
        # Serialises concurrent refreshes; readers only ever take ``_lock``.
        with self._refresh_lock:
            try:
                credential = self._source.exchange()
            except AuthError:
                with self._lock:
                    held = self._credential
                logger.error(
                    "Credential refresh failed; keeping previous credential (present=%s)",
                    held is not None,
                )
                if held is not None and held.is_expired():
                    logger.warning(
                        "Held credential expired at %s; remote calls will be rejected until a refresh succeeds",
                        held.expires_at.isoformat(),
                    )
                raise
            self.replace(credential)
        logger.info("Credential refreshed, expires at %s", credential.expires_at.isoformat())
        return credential

    def bootstrap(self) -> Credential:
        """First exchange at startup. Failure here is fatal for the process."""
        try:
            return self.refresh()
        except AuthError as exc:
            logger.critical("Initial credential exchange failed: %s", exc)
            raise


__all__ = ["CredentialManager", "TokenSource"]
