"""
Emerge Shared Module

Purpose
-------
Domain-level foundations used by every engine module:
- Domain exceptions
- BaseService (logging, config access, event emission)
- Pure progression formulas

Usage
-----
    from emerge.modules.shared import (
        BaseService,
        MalformedEventError,
        compute_xp_gain,
        level_from_xp,
    )
"""

from __future__ import annotations

from .base_service import BaseService
from .exceptions import (
    EmergeDomainException,
    MalformedEventError,
    ProgressionApplyError,
    ValidationError,
)
from .formulas import (
    DEFAULT_XP_TABLE,
    XpTable,
    compute_xp_gain,
    level_from_xp,
    round_half_away_from_zero,
    streak_bonus,
    xp_for_level,
    xp_to_next_level,
)

__all__ = [
    "BaseService",
    "EmergeDomainException",
    "MalformedEventError",
    "ProgressionApplyError",
    "ValidationError",
    "DEFAULT_XP_TABLE",
    "XpTable",
    "compute_xp_gain",
    "level_from_xp",
    "round_half_away_from_zero",
    "streak_bonus",
    "xp_for_level",
    "xp_to_next_level",
]
