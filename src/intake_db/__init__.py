"""intake_db — PostgreSQL persistence layer for intake submissions.

This package provides the ORM models, async engine factory, repository and
the database-backed ``PersistenceGateway`` consumed by the FastAPI server.
"""

from intake_db.engine import dispose_engine, get_engine, get_session_factory
from intake_db.gateway import DatabaseGateway
from intake_db.repository import IntakeRepository

__all__ = [
    "DatabaseGateway",
    "IntakeRepository",
    "dispose_engine",
    "get_engine",
    "get_session_factory",
]
