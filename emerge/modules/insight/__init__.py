"""
Insight module.

Exports:
- Insight
- InsightService
"""

from .service import Insight, InsightService

__all__ = ["Insight", "InsightService"]
