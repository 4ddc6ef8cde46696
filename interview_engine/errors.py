"""
Error types raised by the interview engine.
"""


class InterviewEngineError(Exception):
    """Base class for all engine errors."""


class ValidationError(InterviewEngineError):
    """Raised when a caller action is rejected before any state changes."""


class InvalidTransition(ValidationError):
    """Raised when an action is not legal in the current stage."""

    def __init__(self, stage, action, reason: str = ""):
        self.stage = stage
        self.action = action
        message = f"Cannot apply {getattr(action, 'value', action)} in stage {getattr(stage, 'value', stage)}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class UnsupportedLanguageError(ValidationError):
    """Raised when code is submitted in a language the sandbox cannot run."""


class PersistenceError(InterviewEngineError):
    """Raised when the session store fails to read or write."""


class MediaUnavailableError(InterviewEngineError):
    """Raised when the microphone cannot be opened (permission or device)."""


class SandboxUnavailableError(InterviewEngineError):
    """Raised when the remote sandbox cannot be used for a run."""


class CaptureError(InterviewEngineError):
    """Raised when transcription keeps failing after all restarts."""
