"""Where the intake database lives and how the pool to it is sized.

``DATABASE_URL`` wins when set; otherwise the URL is assembled from the
``PG_HOST`` / ``PG_PORT`` / ``PG_USER`` / ``PG_PASSWORD`` / ``PG_DATABASE``
parts that the clinic's compose files export.  Any of the usual scheme
spellings (``postgres://``, ``postgresql://``, ``postgresql+asyncpg://``,
``postgresql+psycopg2://``) is accepted and rewritten for the consumer:
Alembic migrations run on psycopg2, the server runs on asyncpg.

Pool sizing for the server engine comes from ``INTAKE_DB_POOL_SIZE``,
``INTAKE_DB_MAX_OVERFLOW``, ``INTAKE_DB_POOL_RECYCLE`` (seconds) and
``INTAKE_DB_ECHO``.
"""

import os
from typing import Any

_SCHEMES = ("postgresql+asyncpg://", "postgresql+psycopg2://", "postgresql://", "postgres://")


def _url_from_env() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    host = os.getenv("PG_HOST", "localhost")
    port = os.getenv("PG_PORT", "5432")
    user = os.getenv("PG_USER", "intake")
    password = os.getenv("PG_PASSWORD", "intake")
    database = os.getenv("PG_DATABASE", "intake")
    return f"postgresql://{user}:{password}@{host}:{port}/{database}"


def _with_driver(url: str, scheme: str) -> str:
    for known in _SCHEMES:
        if url.startswith(known):
            return scheme + url[len(known):]
    return url


def get_sync_url() -> str:
    """psycopg2 URL for Alembic."""
    return _with_driver(_url_from_env(), "postgresql://")


def get_async_url() -> str:
    """asyncpg URL for the server engine."""
    return _with_driver(_url_from_env(), "postgresql+asyncpg://")


def pool_options() -> dict[str, Any]:
    """Keyword arguments for ``create_async_engine``."""
    return {
        "pool_size": int(os.getenv("INTAKE_DB_POOL_SIZE", "5")),
        "max_overflow": int(os.getenv("INTAKE_DB_MAX_OVERFLOW", "5")),
        # Clinic sites sit behind NAT gateways that drop idle connections.
        "pool_recycle": int(os.getenv("INTAKE_DB_POOL_RECYCLE", "1800")),
        "pool_pre_ping": True,
        "echo": os.getenv("INTAKE_DB_ECHO", "").lower() in ("1", "true", "yes"),
    }
