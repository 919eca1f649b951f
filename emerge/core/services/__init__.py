"""Service wiring."""

from emerge.core.services.container import ServiceContainer

__all__ = ["ServiceContainer"]
