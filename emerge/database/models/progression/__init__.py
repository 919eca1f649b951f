"""
Progression ORM models.

Exports:
- ProcessedActivityRow
- UserProgressionRow
"""

from .processed_activity import ProcessedActivityRow
from .user_progression import UserProgressionRow

__all__ = [
    "ProcessedActivityRow",
    "UserProgressionRow",
]
