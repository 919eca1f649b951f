"""
Core infrastructure layer.

Re-exports the infrastructure primitives services depend on:
configuration, database, cache, events, logging and the infrastructure
exception hierarchy. No logic lives here.
"""

from __future__ import annotations

from emerge.core.config import Config, ConfigManager
from emerge.core.exceptions import (
    CacheError,
    ConfigurationError,
    DatabaseError,
    EmergeError,
    EmergeInfrastructureException,
    ErrorSeverity,
    TransactionConflictError,
)
from emerge.core.logging import get_logger, setup_logging

__all__ = [
    "Config",
    "ConfigManager",
    "CacheError",
    "ConfigurationError",
    "DatabaseError",
    "EmergeError",
    "EmergeInfrastructureException",
    "ErrorSeverity",
    "TransactionConflictError",
    "get_logger",
    "setup_logging",
]
