"""Runtime configuration sourced from the environment."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional, Set

logger = logging.getLogger(__name__)

AUTH_STRATEGIES = {"local", "proxy"}

_DEFAULT_CORS_ORIGINS = [
    "http://localhost",
    "http://localhost:3000",
    "http://localhost:9080",
]


def _normalize_bool(value: Optional[str], default: bool = False) -> bool:
    """Return normalized boolean from environment-style value."""
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"", "0", "false", "no", "off"}:
        return False
    if normalized in {"1", "true", "yes", "on"}:
        return True
    return default


def _normalize_list_env(var_name: str) -> List[str]:
    raw = os.getenv(var_name, "")
    values = []
    for entry in raw.split(","):
        cleaned = entry.strip().strip('"').strip("'")
        if cleaned:
            values.append(cleaned)
    return values


def _int_env(var_name: str, default: int) -> int:
    raw = os.getenv(var_name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid integer for %s=%r; using default %s", var_name, raw, default)
        return default


@dataclass(frozen=True)
class ServerConfig:
    auth_strategy: str = "local"
    token_ttl_minutes: int = 60 * 24
    admin_username: Optional[str] = None
    admin_password: Optional[str] = None
    admin_usernames: Set[str] = field(default_factory=set)
    default_org_id: str = "default"
    default_org_name: str = "Default Organization"
    webhook_timeout: float = 10.0
    cors_origins: List[str] = field(default_factory=lambda: list(_DEFAULT_CORS_ORIGINS))
    allow_guest_writes: bool = False

    @classmethod
    def from_env(cls) -> "ServerConfig":
        strategy = (os.getenv("MBEE_AUTH_STRATEGY") or "local").strip().lower()
        if strategy not in AUTH_STRATEGIES:
            logger.warning("Unknown MBEE_AUTH_STRATEGY '%s'; falling back to 'local'.", strategy)
            strategy = "local"

        timeout_raw = os.getenv("MBEE_WEBHOOK_TIMEOUT")
        try:
            timeout = float(timeout_raw) if timeout_raw else 10.0
        except ValueError:
            logger.warning("Invalid MBEE_WEBHOOK_TIMEOUT=%r; using 10s", timeout_raw)
            timeout = 10.0

        return cls(
            auth_strategy=strategy,
            token_ttl_minutes=_int_env("MBEE_TOKEN_TTL_MINUTES", 60 * 24),
            admin_username=(os.getenv("MBEE_ADMIN_USERNAME") or None),
            admin_password=(os.getenv("MBEE_ADMIN_PASSWORD") or None),
            admin_usernames={u.lower() for u in _normalize_list_env("MBEE_ADMIN_USERNAMES")},
            default_org_id=os.getenv("MBEE_DEFAULT_ORG_ID", "default"),
            default_org_name=os.getenv("MBEE_DEFAULT_ORG_NAME", "Default Organization"),
            webhook_timeout=timeout,
            cors_origins=_normalize_list_env("MBEE_CORS_ORIGINS") or list(_DEFAULT_CORS_ORIGINS),
            allow_guest_writes=_normalize_bool(os.getenv("MBEE_ALLOW_GUEST_WRITES"), default=False),
        )


@lru_cache(maxsize=None)
def get_config() -> ServerConfig:
    """Return the cached server configuration."""
    return ServerConfig.from_env()


def refresh_config_cache() -> None:
    """Invalidate cached configuration (useful for tests)."""
    get_config.cache_clear()
