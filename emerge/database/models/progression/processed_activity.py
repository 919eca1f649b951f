"""
ProcessedActivityRow: marker for every applied activity event.
Schema only. Written in the same transaction as the progression row.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from emerge.core.database.base import Base, utcnow


class ProcessedActivityRow(Base):
    __tablename__ = "processed_activity_events"

    user_id: Mapped[str] = mapped_column(
        String(128),
        ForeignKey("user_progression.user_id", ondelete="CASCADE"),
        primary_key=True,
    )
    event_id: Mapped[str] = mapped_column(String(128), primary_key=True)

    activity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    xp_earned: Mapped[int] = mapped_column(Integer, nullable=False)
    applied_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
