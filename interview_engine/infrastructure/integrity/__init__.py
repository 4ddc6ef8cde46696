"""Proctoring: focus, visibility and full-screen monitoring."""

from .monitor import ExclusiveDisplay, IntegrityMonitor

__all__ = ["ExclusiveDisplay", "IntegrityMonitor"]
