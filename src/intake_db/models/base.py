"""Declarative base for the encounter, people and document tables."""

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

# Matches the index names written by the initial migration.
NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)
