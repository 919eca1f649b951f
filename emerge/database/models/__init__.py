"""
Database Models Package

SQLAlchemy ORM models, grouped by domain. Models are schema only: Mapped[]
columns, explicit constraints, a version column on mutable rows, JSONB for
nested documents on PostgreSQL.

Importing this package registers every table on `Base.metadata`.
"""

from emerge.core.database.base import Base

from .progression import ProcessedActivityRow, UserProgressionRow

__all__ = [
    "Base",
    "ProcessedActivityRow",
    "UserProgressionRow",
]
