from __future__ import annotations

import pytest

from videomirror.config import AppConfig, ConfigError, load_config, secret_value


def test_legacy_env_aliases(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'videos.db'}")
    monkeypatch.setenv("CLIENT_ID", "id")
    monkeypatch.setenv("CLIENT_SECRET", " secret ")
    monkeypatch.setenv("ACCOUNT_ID", "42")
    monkeypatch.setenv("THREAD_GET_ACCESS_TOKEN_DELAY_IN_S", "200")
    monkeypatch.setenv("THREAD_SYNC_VIDEO_DELAY_IN_S", "60")
    monkeypatch.setenv("THREAD_SYNC_VIEWS_DELAY_IN_S", "900")
    monkeypatch.setenv("APP_LOG_PATH", str(tmp_path / "logs" / "mirror.log"))

    config = load_config()

    assert config.database_path == tmp_path / "videos.db"
    assert config.token_interval_seconds == 200
    assert config.catalog_interval_seconds == 60
    assert config.views_interval_seconds == 900
    assert config.catalog_endpoint.endswith("/accounts/42/videos")
    assert secret_value(config.client_secret) == "secret"
    assert config.has_client_credentials
    assert (tmp_path / "logs").is_dir()


def test_defaults(config):
    assert config.page_size == 25
    assert config.api_port == 4000
    assert config.environment == "development"


def test_invalid_interval_is_rejected(tmp_path, monkeypatch):
    monkeypatch.setenv("ACCOUNT_ID", "42")
    monkeypatch.setenv("APP_DATABASE_PATH", str(tmp_path / "mirror.db"))
    monkeypatch.setenv("APP_LOG_PATH", str(tmp_path / "mirror.log"))
    monkeypatch.setenv("THREAD_SYNC_VIDEO_DELAY_IN_S", "0")

    with pytest.raises(ConfigError):
        load_config()


def test_catalog_url_needs_account_id(tmp_path):
    with pytest.raises(ConfigError):
        AppConfig(database_path=tmp_path / "mirror.db", account_id=None)


def test_secret_value_handles_blank_and_none():
    assert secret_value(None) is None
    assert secret_value("   ") is None
