"""
interview_engine: proctored adaptive interview session engine.

Runs timed interview sessions: spoken answers auto-submitted on silence,
coding answers executed in a remote sandbox, AI scoring, and focus/full-screen
proctoring that pauses the session on violations.
"""

__version__ = "1.0.0"

# Main entry points
from .interview.controller import SessionController
from .interview.models import SessionConfig, SessionResult
from .config import EnginePolicy, SkippedScorePolicy, get_config

__all__ = ["SessionController", "SessionConfig", "SessionResult", "EnginePolicy",
           "SkippedScorePolicy", "get_config"]
