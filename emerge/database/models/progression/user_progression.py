"""
UserProgressionRow: one progression record per user.
Schema only; domain rules live in emerge.domain.models.progression.
"""

from __future__ import annotations

from typing import Any, Dict, List

from sqlalchemy import JSON, BigInteger, CheckConstraint, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from emerge.core.database.base import Base, TimestampMixin

JsonType = JSON().with_variant(JSONB(), "postgresql")


class UserProgressionRow(Base, TimestampMixin):
    """
    Progression record plus the derived world state.
    `version` is bumped on every committed write.
    """

    __tablename__ = "user_progression"
    __table_args__ = (
        CheckConstraint("total_xp >= 0", name="total_xp_non_negative"),
        CheckConstraint("level >= 1", name="level_positive"),
        CheckConstraint("streak >= 0", name="streak_non_negative"),
    )

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        doc="Write counter used for conflict detection",
    )

    total_xp: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    attribute_xp: Mapped[Dict[str, int]] = mapped_column(
        JsonType, nullable=False, default=dict
    )

    recent_event_ids: Mapped[List[str]] = mapped_column(
        JsonType, nullable=False, default=list
    )

    world_state: Mapped[Dict[str, Any]] = mapped_column(
        JsonType, nullable=False, default=dict
    )
