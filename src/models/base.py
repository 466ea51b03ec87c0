"""
SQLAlchemy 2.0 DeclarativeBase for SceneStack.

Constraint and index names follow a fixed convention so Alembic migrations
can reference them by name on both Postgres and SQLite.
"""

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class for all SceneStack database models."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)
