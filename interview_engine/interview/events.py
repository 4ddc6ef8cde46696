"""
Event-driven architecture for the interview engine.

The controller emits one typed event per observable occurrence; UI layers,
loggers and metrics subscribe to the bus instead of polling the controller.
"""
import logging
from abc import ABC
from typing import Dict, Any, List, Callable, Optional
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger("events")


class EventType(str, Enum):
    """Types of session events."""
    SESSION_STARTED = "session_started"
    STAGE_CHANGED = "stage_changed"
    QUESTION_STARTED = "question_started"
    TRANSCRIPT_UPDATED = "transcript_updated"
    AUTO_SUBMIT_TRIGGERED = "auto_submit_triggered"
    RESPONSE_SAVED = "response_saved"
    QUESTION_SKIPPED = "question_skipped"
    CODE_EXECUTED = "code_executed"
    REVIEW_QUESTION_ASKED = "review_question_asked"
    VIOLATION_DETECTED = "violation_detected"
    SESSION_PAUSED = "session_paused"
    SESSION_RESUMED = "session_resumed"
    CAPTURE_DEGRADED = "capture_degraded"
    SESSION_COMPLETED = "session_completed"
    ERROR_OCCURRED = "error_occurred"


@dataclass
class InterviewEvent(ABC):
    """Base class for all session events."""
    event_type: EventType
    session_id: str
    timestamp: float
    data: Dict[str, Any]


@dataclass
class SessionStartedEvent(InterviewEvent):
    """Event fired when the first question is about to be asked."""
    def __init__(self, session_id: str, timestamp: float, total_questions: int, time_remaining: int):
        super().__init__(
            event_type=EventType.SESSION_STARTED,
            session_id=session_id,
            timestamp=timestamp,
            data={"total_questions": total_questions, "time_remaining": time_remaining}
        )


@dataclass
class StageChangedEvent(InterviewEvent):
    """Event fired on every stage transition."""
    def __init__(self, session_id: str, timestamp: float, previous: str, current: str, paused: bool):
        super().__init__(
            event_type=EventType.STAGE_CHANGED,
            session_id=session_id,
            timestamp=timestamp,
            data={"previous": previous, "current": current, "paused": paused}
        )


@dataclass
class QuestionStartedEvent(InterviewEvent):
    """Event fired when a question is presented."""
    def __init__(self, session_id: str, timestamp: float, question_index: int,
                 question_id: str, question_text: str, requires_coding: bool):
        super().__init__(
            event_type=EventType.QUESTION_STARTED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "question_index": question_index,
                "question_id": question_id,
                "question_text": question_text,
                "requires_coding": requires_coding
            }
        )


@dataclass
class TranscriptUpdatedEvent(InterviewEvent):
    """Event fired as the live transcript grows."""
    def __init__(self, session_id: str, timestamp: float, transcript: str, is_final: bool):
        super().__init__(
            event_type=EventType.TRANSCRIPT_UPDATED,
            session_id=session_id,
            timestamp=timestamp,
            data={"transcript": transcript, "is_final": is_final}
        )


@dataclass
class AutoSubmitTriggeredEvent(InterviewEvent):
    """Event fired when continuous silence submits the answer."""
    def __init__(self, session_id: str, timestamp: float, question_index: int, silence_seconds: float):
        super().__init__(
            event_type=EventType.AUTO_SUBMIT_TRIGGERED,
            session_id=session_id,
            timestamp=timestamp,
            data={"question_index": question_index, "silence_seconds": silence_seconds}
        )


@dataclass
class ResponseSavedEvent(InterviewEvent):
    """Event fired after a response is persisted."""
    def __init__(self, session_id: str, timestamp: float, question_index: int,
                 response_id: Optional[str], score: int, answer_type: str, auto_submitted: bool):
        super().__init__(
            event_type=EventType.RESPONSE_SAVED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "question_index": question_index,
                "response_id": response_id,
                "score": score,
                "answer_type": answer_type,
                "auto_submitted": auto_submitted
            }
        )


@dataclass
class QuestionSkippedEvent(InterviewEvent):
    """Event fired when a question is skipped."""
    def __init__(self, session_id: str, timestamp: float, question_index: int, question_id: str):
        super().__init__(
            event_type=EventType.QUESTION_SKIPPED,
            session_id=session_id,
            timestamp=timestamp,
            data={"question_index": question_index, "question_id": question_id}
        )


@dataclass
class CodeExecutedEvent(InterviewEvent):
    """Event fired after code runs against the test cases."""
    def __init__(self, session_id: str, timestamp: float, language: str, passed: bool,
                 passed_count: int, total_count: int, used_stand_in: bool):
        super().__init__(
            event_type=EventType.CODE_EXECUTED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "language": language,
                "passed": passed,
                "passed_count": passed_count,
                "total_count": total_count,
                "used_stand_in": used_stand_in
            }
        )


@dataclass
class ReviewQuestionAskedEvent(InterviewEvent):
    """Event fired when a code-review follow-up is asked."""
    def __init__(self, session_id: str, timestamp: float, review_index: int,
                 review_total: int, question_text: str):
        super().__init__(
            event_type=EventType.REVIEW_QUESTION_ASKED,
            session_id=session_id,
            timestamp=timestamp,
            data={"review_index": review_index, "review_total": review_total, "question_text": question_text}
        )


@dataclass
class ViolationDetectedEvent(InterviewEvent):
    """Event fired when the candidate leaves or returns to the proctored view."""
    def __init__(self, session_id: str, timestamp: float, violation_type: str,
                 duration: Optional[float], total_violations: int):
        super().__init__(
            event_type=EventType.VIOLATION_DETECTED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "violation_type": violation_type,
                "duration": duration,
                "total_violations": total_violations
            }
        )


@dataclass
class SessionPausedEvent(InterviewEvent):
    """Event fired when the session is paused."""
    def __init__(self, session_id: str, timestamp: float, reason: str, stage: str):
        super().__init__(
            event_type=EventType.SESSION_PAUSED,
            session_id=session_id,
            timestamp=timestamp,
            data={"reason": reason, "stage": stage}
        )


@dataclass
class SessionResumedEvent(InterviewEvent):
    """Event fired when the session resumes."""
    def __init__(self, session_id: str, timestamp: float, stage: str):
        super().__init__(
            event_type=EventType.SESSION_RESUMED,
            session_id=session_id,
            timestamp=timestamp,
            data={"stage": stage}
        )


@dataclass
class CaptureDegradedEvent(InterviewEvent):
    """Event fired once when speech capture or recording is unavailable."""
    def __init__(self, session_id: str, timestamp: float, reason: str):
        super().__init__(
            event_type=EventType.CAPTURE_DEGRADED,
            session_id=session_id,
            timestamp=timestamp,
            data={"reason": reason}
        )


@dataclass
class SessionCompletedEvent(InterviewEvent):
    """Event fired when the session completes."""
    def __init__(self, session_id: str, timestamp: float, reason: str, overall_score: int,
                 integrity_score: int, answered: int, skipped: int):
        super().__init__(
            event_type=EventType.SESSION_COMPLETED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "reason": reason,
                "overall_score": overall_score,
                "integrity_score": integrity_score,
                "answered": answered,
                "skipped": skipped
            }
        )


@dataclass
class ErrorOccurredEvent(InterviewEvent):
    """Event fired when an error occurs."""
    def __init__(self, session_id: str, timestamp: float, error_type: str,
                 error_message: str, component: str):
        super().__init__(
            event_type=EventType.ERROR_OCCURRED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "error_type": error_type,
                "error_message": error_message,
                "component": component
            }
        )


EventHandler = Callable[[InterviewEvent], None]


class InterviewEventBus:
    """Event bus for session communication."""

    def __init__(self):
        self._handlers: Dict[EventType, List[EventHandler]] = {}
        self._global_handlers: List[EventHandler] = []

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """
        Subscribe to specific event type.

        Args:
            event_type: Type of event to listen for
            handler: Function to call when event occurs
        """
        self._handlers.setdefault(event_type, []).append(handler)
        logger.debug(f"Subscribed handler to {event_type}")

    def subscribe_all(self, handler: EventHandler) -> None:
        """Subscribe to all events."""
        self._global_handlers.append(handler)
        logger.debug("Subscribed global handler")

    def unsubscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """Unsubscribe from specific event type."""
        if event_type in self._handlers:
            try:
                self._handlers[event_type].remove(handler)
                logger.debug(f"Unsubscribed handler from {event_type}")
            except ValueError:
                logger.warning(f"Handler not found for {event_type}")

    def emit(self, event: InterviewEvent) -> None:
        """
        Emit an event to all subscribers. A failing handler never
        interrupts the emitter.

        Args:
            event: Event to emit
        """
        logger.debug(f"Emitting event: {event.event_type} for session {event.session_id}")

        for handler in list(self._handlers.get(event.event_type, [])):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in event handler for {event.event_type}: {e}")

        for handler in list(self._global_handlers):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in global event handler: {e}")

    def clear_handlers(self) -> None:
        """Clear all event handlers."""
        self._handlers.clear()
        self._global_handlers.clear()
        logger.debug("Cleared all event handlers")


class EventLogger:
    """Logs all events for debugging and analysis."""

    def __init__(self, log_level: int = logging.INFO):
        self.logger = logging.getLogger("event_logger")
        self.logger.setLevel(log_level)

    def handle_event(self, event: InterviewEvent) -> None:
        """Log event details."""
        self.logger.info(f"Event: {event.event_type.value} | Session: {event.session_id} | Data: {event.data}")


class SessionMetrics:
    """Collects counters from session events."""

    _COUNTERS = {
        EventType.SESSION_STARTED: "sessions_started",
        EventType.SESSION_COMPLETED: "sessions_completed",
        EventType.RESPONSE_SAVED: "responses_saved",
        EventType.QUESTION_SKIPPED: "questions_skipped",
        EventType.AUTO_SUBMIT_TRIGGERED: "auto_submits",
        EventType.CODE_EXECUTED: "code_runs",
        EventType.SESSION_PAUSED: "pauses",
        EventType.CAPTURE_DEGRADED: "capture_degradations",
        EventType.ERROR_OCCURRED: "errors_occurred",
    }

    def __init__(self):
        self.reset()

    def handle_event(self, event: InterviewEvent) -> None:
        """Update metrics based on event."""
        name = self._COUNTERS.get(event.event_type)
        if name:
            self._counts[name] += 1
        if event.event_type == EventType.VIOLATION_DETECTED and event.data.get("duration") is None:
            self._counts["violations"] += 1

    def get_metrics(self) -> Dict[str, int]:
        """Get current metrics snapshot."""
        return dict(self._counts)

    def reset(self) -> None:
        """Reset all metrics to zero."""
        self._counts: Dict[str, int] = {name: 0 for name in self._COUNTERS.values()}
        self._counts["violations"] = 0
