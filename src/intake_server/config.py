"""Server configuration — reads settings from environment variables.

All settings have sensible defaults for local development.  In production
the values are typically overridden via env vars or a ``.env`` file.
"""

import os
from dataclasses import dataclass, field

# Upper bound on open workflows per user; read at import time so the
# manager can reference it without settings.
MAX_WORKFLOWS_PER_USER = int(os.getenv("MAX_WORKFLOWS_PER_USER", "10"))


@dataclass(frozen=True)
class ServerSettings:
    """Immutable server configuration read from environment at startup."""

    # Network
    host: str = "0.0.0.0"
    port: int = 8080

    # CORS: comma-separated origins, or "*" for wide-open dev mode
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    # Form definitions directory (None → FormSchemaStore default, forms/ at repo root)
    forms_dir: str | None = None

    # Logging
    log_level: str = "INFO"

    # Open workflows untouched for this long are evicted.  0 disables eviction.
    workflow_idle_minutes: int = 30

    # Trusted proxy secret: when set, every request that carries
    # X-User-ID must also carry X-Proxy-Secret matching this value.
    trusted_proxy_secret: str | None = None

    # Hosted persistence backend.  When unset, records go to the local
    # database through DatabaseGateway.
    persistence_base_url: str | None = None
    persistence_api_key: str | None = None


def load_settings() -> ServerSettings:
    """Build settings from ``SERVER_*`` and related environment variables."""
    raw_origins = os.getenv("SERVER_CORS_ORIGINS", "*")
    origins = [o.strip() for o in raw_origins.split(",") if o.strip()]

    return ServerSettings(
        host=os.getenv("SERVER_HOST", "0.0.0.0"),
        port=int(os.getenv("SERVER_PORT", "8080")),
        cors_origins=origins,
        forms_dir=os.getenv("SERVER_FORMS_DIR") or None,
        log_level=os.getenv("SERVER_LOG_LEVEL", "INFO").upper(),
        workflow_idle_minutes=int(os.getenv("WORKFLOW_IDLE_MINUTES", "30")),
        trusted_proxy_secret=os.getenv("TRUSTED_PROXY_SECRET") or None,
        persistence_base_url=os.getenv("PERSISTENCE_BASE_URL") or None,
        persistence_api_key=os.getenv("PERSISTENCE_API_KEY") or None,
    )
