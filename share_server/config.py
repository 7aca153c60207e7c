"""
Application configuration. Loads from environment variables once at startup.
Secrets and sensitive config must never be hardcoded or logged.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import timedelta
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

ENV_PREFIX = "EDS_SHARE_"

# Env keys whose values are always masked in startup logs
_ALWAYS_MASKED = {"EDS_SHARE_PASSWORD", "EDS_SHARE_DB_PASSWORD", "EDS_SHARE_DB_DSN"}
_SECRET_HINTS = ("PASSWORD", "PASSWD", "SECRET", "TOKEN", "API_KEY", "PRIVATE", "CERT", "DSN", "KEY")

# Non-secret frontend settings passed through to /runtime-config.js
BROWSER_OIDC_KEYS = (
    "VITE_OIDC_SCOPE",
    "VITE_OIDC_SILENT_REDIRECT_URI",
    "VITE_OIDC_USE_REFRESH_TOKEN",
    "VITE_OIDC_RENEW_SKEW_SECONDS",
)


class ConfigError(ValueError):
    """Raised when the environment describes an unusable configuration."""


@lru_cache(maxsize=1)
def get_settings() -> "Settings":
    """Return cached settings instance."""
    return Settings.from_env()


def _env_str(key: str, default: str = "") -> str:
    value = os.getenv(key)
    return value if value else default


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if not value:
        return default
    lowered = value.strip().lower()
    if lowered in ("1", "t", "true", "yes", "on"):
        return True
    if lowered in ("0", "f", "false", "no", "off"):
        return False
    return default


def _env_list(key: str) -> tuple[str, ...]:
    raw = os.getenv(key, "").strip()
    return tuple(p.strip() for p in raw.split(",") if p.strip())


def _load_env_files() -> None:
    """Load optional dotenv files. Never overrides variables already set."""
    single = os.getenv(f"{ENV_PREFIX}ENV_FILE", "").strip()
    if single:
        load_dotenv(single, override=False)
        return
    for name in (".env", ".env.local", "../.env", "../.env.local"):
        if Path(name).is_file():
            load_dotenv(name, override=False)


def build_database_url(driver: str, sqlite_path: str, postgres_dsn: str) -> str:
    """Translate the driver/path/DSN triple into a SQLAlchemy URL."""
    driver = (driver or "sqlite").strip().lower()
    if driver in ("postgresql", "pg"):
        driver = "postgres"
    if driver == "sqlite":
        if not sqlite_path.strip():
            raise ConfigError("EDS_SHARE_DB is required when EDS_SHARE_DB_DRIVER=sqlite")
        return f"sqlite:///{sqlite_path.strip()}"
    if driver == "postgres":
        if not postgres_dsn.strip():
            raise ConfigError("EDS_SHARE_DB_DSN is required when EDS_SHARE_DB_DRIVER=postgres")
        return normalize_postgres_url(postgres_dsn.strip())
    raise ConfigError(f"unsupported db driver: {driver!r} (use sqlite or postgres)")


def normalize_postgres_url(url: str) -> str:
    """Ensure the psycopg3 driver is used for generic postgres URLs."""
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+psycopg://" + url[len(prefix) :]
    return url


def parse_audiences(raw: str, fallback: str) -> tuple[str, ...]:
    """Comma-separated audience list; falls back to the client id when empty."""
    parts = tuple(p.strip() for p in raw.split(",") if p.strip())
    if not parts:
        return (fallback,) if fallback else ()
    return parts


@dataclass(frozen=True)
class Settings:
    """Immutable application settings. Built once, then passed explicitly."""

    app_name: str = "EDS Share Server"
    debug: bool = False

    # Database
    database_url: str = "sqlite:///./data/shares.db"
    db_connect_timeout: int = 10  # seconds
    db_auto_create: bool = True

    # Sessions (legacy password mode)
    cookie_name: str = "eds_session"
    cookie_secure: bool = False
    session_ttl: timedelta = timedelta(hours=168)
    api_password: str = "ChangeMe123!"

    # HTTP
    max_body_bytes: int = 8 << 20
    allowed_origin: str = ""

    # OIDC; both issuer and client id must be set to enable bearer mode
    oidc_issuer_url: str = ""
    oidc_client_id: str = ""
    oidc_audiences: tuple[str, ...] = ()
    oidc_http_timeout: float = 5.0
    oidc_leeway_seconds: int = 60
    jwks_refresh_debounce_seconds: int = 30

    # Versioning: keep newest N versions per share (<= 0 disables pruning)
    share_versions_max: int = 50

    # Teams
    invite_ttl: timedelta = timedelta(hours=168)

    # Subjects promoted to admin whenever they authenticate
    admin_subs: tuple[str, ...] = field(default_factory=tuple)

    # Browser-side OIDC options echoed by /runtime-config.js (VITE_OIDC_*)
    browser_oidc_options: tuple[tuple[str, str], ...] = ()

    # Accepted diagram blob tags
    schema_prefixes: tuple[str, ...] = ("EDS", "TXT")

    @property
    def oidc_enabled(self) -> bool:
        return bool(self.oidc_issuer_url.strip() and self.oidc_client_id.strip())

    @classmethod
    def from_env(cls) -> "Settings":
        """Read EDS_SHARE_* variables. Malformed numbers/booleans fall back to defaults."""
        _load_env_files()
        p = ENV_PREFIX

        database_url = os.getenv(f"{p}DATABASE_URL", "").strip()
        if database_url:
            database_url = normalize_postgres_url(database_url)
        else:
            database_url = build_database_url(
                _env_str(f"{p}DB_DRIVER", "sqlite"),
                _env_str(f"{p}DB", "./data/shares.db"),
                _env_str(f"{p}DB_DSN", ""),
            )

        issuer = _env_str(f"{p}OIDC_ISSUER_URL").strip().rstrip("/")
        client_id = _env_str(f"{p}OIDC_CLIENT_ID").strip()
        if bool(issuer) != bool(client_id):
            raise ConfigError(
                "EDS_SHARE_OIDC_ISSUER_URL and EDS_SHARE_OIDC_CLIENT_ID must be set together"
            )

        return cls(
            debug=_env_bool(f"{p}DEBUG", False),
            database_url=database_url,
            db_connect_timeout=_env_int(f"{p}DB_CONNECT_TIMEOUT", 10),
            db_auto_create=_env_bool(f"{p}DB_AUTO_CREATE", True),
            cookie_name=_env_str(f"{p}COOKIE", "eds_session"),
            cookie_secure=_env_bool(f"{p}COOKIE_SECURE", False),
            session_ttl=timedelta(hours=_env_int(f"{p}SESSION_TTL_HOURS", 168)),
            api_password=_env_str(f"{p}PASSWORD", "ChangeMe123!"),
            max_body_bytes=_env_int(f"{p}MAX_BODY_BYTES", 8 << 20),
            allowed_origin=_env_str(f"{p}ALLOWED_ORIGIN", ""),
            oidc_issuer_url=issuer,
            oidc_client_id=client_id,
            oidc_audiences=parse_audiences(_env_str(f"{p}OIDC_AUDIENCE"), client_id),
            share_versions_max=_env_int(f"{p}SHARE_VERSIONS_MAX", 50),
            invite_ttl=timedelta(hours=_env_int(f"{p}INVITE_TTL_HOURS", 168)),
            admin_subs=_env_list(f"{p}ADMIN_SUBS"),
            browser_oidc_options=tuple((key, os.getenv(key, "")) for key in BROWSER_OIDC_KEYS),
        )


def mask_env_value(key: str, value: str) -> str:
    """Mask anything that looks like a secret. Prefers hiding too much."""
    upper = key.strip().upper()
    if upper in _ALWAYS_MASKED:
        return "****"
    if any(hint in upper for hint in _SECRET_HINTS):
        return "****"
    return value


def log_app_environment(prefix: str = ENV_PREFIX) -> None:
    """Log every prefixed env var at startup, with secrets masked."""
    values = {k: v for k, v in os.environ.items() if k.startswith(prefix)}
    if not values:
        logger.info("%s* env: (none set)", prefix)
        return
    logger.info("%s* env:", prefix)
    for key in sorted(values):
        logger.info("  %s=%r", key, mask_env_value(key, values[key]))
