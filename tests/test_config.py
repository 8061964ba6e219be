from __future__ import annotations

from pathlib import Path

import pytest

from dining_votes.config import ServerConfig, read_secret


def test_defaults_without_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for key in ("PORT", "REDIS_URL", "FRONTEND_ORIGINS", "MEILI_ADMIN_KEY", "ENABLE_SEARCH_SYNC"):
        monkeypatch.delenv(key, raising=False)
    config = ServerConfig.load(secrets_dir=tmp_path)
    assert config.port == 1111
    assert config.redis_url == "redis://localhost:6379/0"
    assert config.meili_key is None
    assert config.enable_search_sync is True
    assert config.frontend_origins == ("http://localhost:5173",)


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("BANK_SOURCE", "/srv/bank.bin")
    monkeypatch.setenv("RELOAD_INTERVAL_SECONDS", "30")
    monkeypatch.setenv("ENABLE_SEARCH_SYNC", "off")
    monkeypatch.setenv("FRONTEND_ORIGINS", "https://a.test, https://b.test,")
    config = ServerConfig.load(secrets_dir=tmp_path)
    assert config.port == 8080
    assert config.bank_source == "/srv/bank.bin"
    assert config.reload_interval_seconds == 30.0
    assert config.enable_search_sync is False
    assert config.frontend_origins == ("https://a.test", "https://b.test")


def test_invalid_number_is_rejected(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("PORT", "eleven")
    with pytest.raises(ValueError):
        ServerConfig.load(secrets_dir=tmp_path)


def test_secret_file_wins_over_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("MEILI_ADMIN_KEY", "from-env")
    assert read_secret("MEILI_ADMIN_KEY", tmp_path) == "from-env"
    (tmp_path / "MEILI_ADMIN_KEY").write_text("from-file\n")
    assert read_secret("MEILI_ADMIN_KEY", tmp_path) == "from-file"
