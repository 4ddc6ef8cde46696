"""Interview session components.

This module contains the business logic for running a proctored interview
session: the state machine, the session controller, scoring and the oracle.
"""

# Core controller class
from .controller import SessionController

# State machine
from .state import Stage, Action, SessionState, transition

# Data models
from .models import (
    Question, QuestionType, AnswerKind, TestCase, ExecutionResult, ExecutionReport,
    ReviewQuestion, ReviewQuestionType, ReviewResponse, Response,
    Violation, ViolationType, IntegrityMetrics, SessionConfig,
    InterviewSession, SessionResult
)

# Oracle and question bank
from .oracle import ResponseOracle
from .question_source import QuestionSource
from .scoring import overall_score, integrity_score

# Service classes
from .services import AnswerCaptureService, SessionWorkspace

# Event system
from .events import (
    InterviewEventBus, EventLogger, SessionMetrics, EventType, InterviewEvent,
    SessionStartedEvent, StageChangedEvent, QuestionStartedEvent,
    TranscriptUpdatedEvent, AutoSubmitTriggeredEvent, ResponseSavedEvent,
    QuestionSkippedEvent, CodeExecutedEvent, ReviewQuestionAskedEvent,
    ViolationDetectedEvent, SessionPausedEvent, SessionResumedEvent,
    CaptureDegradedEvent, SessionCompletedEvent, ErrorOccurredEvent
)

__all__ = [
    # Controller
    "SessionController",

    # State machine
    "Stage", "Action", "SessionState", "transition",

    # Data models
    "Question", "QuestionType", "AnswerKind", "TestCase", "ExecutionResult",
    "ExecutionReport", "ReviewQuestion", "ReviewQuestionType", "ReviewResponse",
    "Response", "Violation", "ViolationType", "IntegrityMetrics", "SessionConfig",
    "InterviewSession", "SessionResult",

    # Oracle, questions, scoring
    "ResponseOracle", "QuestionSource", "overall_score", "integrity_score",

    # Services
    "AnswerCaptureService", "SessionWorkspace",

    # Events
    "InterviewEventBus", "EventLogger", "SessionMetrics", "EventType", "InterviewEvent",
    "SessionStartedEvent", "StageChangedEvent", "QuestionStartedEvent",
    "TranscriptUpdatedEvent", "AutoSubmitTriggeredEvent", "ResponseSavedEvent",
    "QuestionSkippedEvent", "CodeExecutedEvent", "ReviewQuestionAskedEvent",
    "ViolationDetectedEvent", "SessionPausedEvent", "SessionResumedEvent",
    "CaptureDegradedEvent", "SessionCompletedEvent", "ErrorOccurredEvent",
]
