from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from .counter_store import DEFAULT_HASH_KEY
from .remote import REMOTE_BANK_URL
from .search import DEFAULT_INDEX

logger = logging.getLogger(__name__)

SECRETS_DIR = Path("/run/secrets")


def _env(key: str, default: str) -> str:
    value = os.getenv(key)
    if value is None:
        logger.info("%s not set, using default: %s", key, default)
        return default
    return value


def _env_int(key: str, default: int) -> int:
    raw = _env(key, str(default))
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid {key} value: {raw!r}") from exc


def _env_float(key: str, default: float) -> float:
    raw = _env(key, str(default))
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid {key} value: {raw!r}") from exc


def _env_bool(key: str, default: bool = False) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def read_secret(name: str, secrets_dir: Path = SECRETS_DIR) -> Optional[str]:
    """Read a docker secret, falling back to an environment variable of the same name."""
    path = secrets_dir / name
    try:
        return path.read_text(encoding="utf-8").strip()
    except OSError as exc:
        logger.warning("Failed to read %s from %s: %s", name, path, exc)
    return os.getenv(name)


@dataclass
class ServerConfig:
    port: int = 1111
    bank_source: str = REMOTE_BANK_URL
    redis_url: str = "redis://localhost:6379/0"
    redis_timeout_seconds: float = 0.1
    votes_hash_key: str = DEFAULT_HASH_KEY
    meili_url: str = "http://localhost:7700"
    meili_index: str = DEFAULT_INDEX
    meili_key: Optional[str] = None
    enable_search_sync: bool = True
    reload_interval_seconds: float = 300
    search_sync_interval_seconds: float = 60
    http_timeout_seconds: float = 10
    frontend_origins: Sequence[str] = ("http://localhost:5173",)

    @classmethod
    def load(cls, secrets_dir: Path = SECRETS_DIR) -> "ServerConfig":
        origins = _env("FRONTEND_ORIGINS", ",".join(cls.frontend_origins))
        return cls(
            port=_env_int("PORT", cls.port),
            bank_source=_env("BANK_SOURCE", cls.bank_source),
            redis_url=_env("REDIS_URL", cls.redis_url),
            redis_timeout_seconds=_env_float("REDIS_TIMEOUT_SECONDS", cls.redis_timeout_seconds),
            votes_hash_key=_env("VOTES_HASH_KEY", cls.votes_hash_key),
            meili_url=_env("MEILI_URL", cls.meili_url),
            meili_index=_env("MEILI_INDEX", cls.meili_index),
            meili_key=read_secret("MEILI_ADMIN_KEY", secrets_dir),
            enable_search_sync=_env_bool("ENABLE_SEARCH_SYNC", True),
            reload_interval_seconds=_env_float("RELOAD_INTERVAL_SECONDS", cls.reload_interval_seconds),
            search_sync_interval_seconds=_env_float(
                "SEARCH_SYNC_INTERVAL_SECONDS", cls.search_sync_interval_seconds
            ),
            http_timeout_seconds=_env_float("HTTP_TIMEOUT_SECONDS", cls.http_timeout_seconds),
            frontend_origins=tuple(origin.strip() for origin in origins.split(",") if origin.strip()),
        )
