"""Registry backend configuration.

Loads settings from two YAML files:
  * registry.settings.yaml  — non-secret configuration
  * registry.secrets.yaml   — secrets (never committed)

The ``SESSION_SECRET`` and ``DATABASE_URL`` environment variables, when
set, win over the secrets file.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("registry.settings.yaml")
SECRETS_FILE  = Path("registry.secrets.yaml")

DEFAULT_SESSION_SECRET = "change-me-in-production"


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


def _resolve_path(value: str, base_dir: Path) -> str:
    path = Path(value)
    if path.is_absolute():
        return str(path)
    return str(base_dir / path)


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


class SessionSecrets(BaseModel):
    secret_key: str = DEFAULT_SESSION_SECRET


class DatabaseSecrets(BaseModel):
    # Session store shared with the GraphQL server, as a SQLAlchemy URL
    url: Optional[str] = None


class Secrets(BaseModel):
    session:  SessionSecrets  = Field(default_factory=SessionSecrets)
    database: DatabaseSecrets = Field(default_factory=DatabaseSecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str  = "0.0.0.0"
    port:            int  = 3000
    environment:     Literal["development", "production"] = "development"
    allowed_origins: List[str] = Field(default_factory=lambda: [
        "http://127.0.0.1:3000",
        "http://localhost:3000",
        "http://localhost:8080",
    ])


class SessionSettings(BaseModel):
    """Session shared with the GraphQL server.

    ``store`` reads the server-side session table through the signed
    ``s:<sid>.<sig>`` cookie; ``cookie`` uses a self-contained signed
    session cookie instead.
    """
    backend:         Literal["store", "cookie"] = "store"
    cookie_name:     str = "sessionId"
    max_age_seconds: int = 12 * 60 * 60
    user_key:        str = "userId"


class StorageSettings(BaseModel):
    public_root:    str = "./public"
    image_dir:      str = "img"
    document_dir:   str = "document"
    naming:         Literal["timestamp", "token"] = "timestamp"
    chunk_size:     int = 1024 * 1024
    ledger_enabled: bool = True
    ledger_path:    str = "uploads.duckdb"

    @field_validator("image_dir", "document_dir")
    @classmethod
    def _single_segment(cls, value: str) -> str:
        if not value or "/" in value or "\\" in value or value in (".", ".."):
            raise ValueError(f"bucket directory must be a single path segment: {value!r}")
        return value


class UploadSettings(BaseModel):
    # Unauthenticated uploads are answered like a request without a file.
    silent_auth_denial:  bool = True
    max_file_size_bytes: Optional[int] = 20 * 1024 * 1024


class LoggingSettings(BaseModel):
    level: str = "info"


class AppConfig(BaseModel):
    server:  ServerSettings  = Field(default_factory=ServerSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    uploads: UploadSettings  = Field(default_factory=UploadSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    secrets: Secrets         = Field(default_factory=Secrets)

    @property
    def is_production(self) -> bool:
        return self.server.environment == "production"


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_config(
    settings_path: Optional[Path] = None,
    secrets_path: Optional[Path] = None,
) -> AppConfig:
    """Load and merge settings + secrets into a single *AppConfig* object.

    Relative storage paths are resolved against the directory holding the
    settings file, so the config behaves the same regardless of the
    process's working directory.
    """
    settings_path = Path(settings_path) if settings_path else SETTINGS_FILE
    if secrets_path is None:
        secrets_path = settings_path.parent / SECRETS_FILE.name
    settings_data = _load_yaml(settings_path)
    secrets_data  = _load_yaml(Path(secrets_path))

    # Merge: secrets live under the "secrets" key in AppConfig
    settings_data["secrets"] = secrets_data

    config = AppConfig(**settings_data)

    env_secret = os.environ.get("SESSION_SECRET")
    if env_secret:
        config.secrets.session.secret_key = env_secret

    env_db_url = os.environ.get("DATABASE_URL")
    if env_db_url:
        config.secrets.database.url = env_db_url

    base_dir = settings_path.resolve().parent
    config.storage.public_root = _resolve_path(config.storage.public_root, base_dir)
    config.storage.ledger_path = _resolve_path(config.storage.ledger_path, base_dir)

    if config.secrets.session.secret_key == DEFAULT_SESSION_SECRET:
        logger.warning("Using the default session secret; set SESSION_SECRET in production")

    logger.info(
        "Config loaded (server=%s:%s, environment=%s, public_root=%s, naming=%s)",
        config.server.host,
        config.server.port,
        config.server.environment,
        config.storage.public_root,
        config.storage.naming,
    )
    return config


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Return the process-wide config, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: Optional[AppConfig]) -> None:
    """Replace the process-wide config (``None`` forces a reload)."""
    global _config
    _config = config
