from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone

import pytest

from conftest import FakeTokenSource, make_credential
from videomirror.credentials import CredentialManager
from videomirror.errors import AuthError
from videomirror.models import Credential


def test_current_before_any_exchange_raises():
    manager = CredentialManager(FakeTokenSource())

    assert manager.has_credential is False
    with pytest.raises(AuthError):
        manager.current()


def test_refresh_replaces_the_whole_value():
    first, second = make_credential("a"), make_credential("b")
    manager = CredentialManager(FakeTokenSource(first, second))

    assert manager.refresh() is first
    assert manager.current() is first
    assert manager.refresh() is second
    assert manager.current() is second


def test_failed_refresh_keeps_previous_credential():
    first = make_credential("a")
    manager = CredentialManager(FakeTokenSource(first, AuthError("401 from token endpoint")))
    manager.bootstrap()

    with pytest.raises(AuthError):
        manager.refresh()

    assert manager.current() is first


def test_failed_refresh_warns_when_held_credential_has_expired(caplog):
    manager = CredentialManager(FakeTokenSource(make_credential("stale", expires_in=300), AuthError("timeout")))
    manager.bootstrap()

    with caplog.at_level(logging.WARNING, logger="videomirror.credentials"), pytest.raises(AuthError):
        manager.refresh()

    assert any("expired" in record.getMessage() for record in caplog.records if record.levelno == logging.WARNING)


def test_failed_refresh_with_live_credential_does_not_warn_about_expiry(caplog):
    live = Credential(access_token="live", token_type="Bearer", issued_at=datetime.now(timezone.utc), expires_in=300)
    manager = CredentialManager(FakeTokenSource(live, AuthError("timeout")))
    manager.bootstrap()

    with caplog.at_level(logging.WARNING, logger="videomirror.credentials"), pytest.raises(AuthError):
        manager.refresh()

    assert not [record for record in caplog.records if record.levelno == logging.WARNING]


def test_bootstrap_failure_is_fatal():
    source = FakeTokenSource(AuthError("connection refused"))
    manager = CredentialManager(source)

    with pytest.raises(AuthError):
        manager.bootstrap()

    assert source.calls == 1
    assert manager.has_credential is False


def test_readers_never_observe_a_torn_value():
    tokens = [make_credential(f"token-{index}", expires_in=index) for index in range(200)]
    manager = CredentialManager(FakeTokenSource(*tokens))
    manager.refresh()
    seen: list[tuple[str, int]] = []
    stop = threading.Event()

    def reader() -> None:
        while not stop.is_set():
            credential = manager.current()
            seen.append((credential.access_token, credential.expires_in))

    threads = [threading.Thread(target=reader) for _ in range(4)]
    for thread in threads:
        thread.start()
    for _ in range(199):
        manager.refresh()
    stop.set()
    for thread in threads:
        thread.join()

    assert seen
    assert all(token == f"token-{expires}" for token, expires in seen)
    assert manager.current().access_token == "token-199"


def test_credential_expiry_helpers():
    credential = make_credential(expires_in=300)

    assert credential.is_expired(credential.issued_at) is False
    assert credential.is_expired(credential.expires_at) is True
    assert credential.authorization_header() == "Bearer token-1"
    assert "token-1" not in repr(credential)
