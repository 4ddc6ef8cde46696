"""Utility modules for logging and retry helpers."""

from .logging import setup_logging
from .resilience import backoff_delays, resilient_call

__all__ = ["setup_logging", "backoff_delays", "resilient_call"]
