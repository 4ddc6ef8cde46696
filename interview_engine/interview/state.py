"""
Pure session state machine.

The controller owns all I/O; this module only decides which stage comes next.
`transition()` never mutates its input and raises InvalidTransition for any
action that is not legal in the current stage.
"""
from dataclasses import dataclass, replace
from enum import Enum

from ..errors import InvalidTransition


class Stage(str, Enum):
    LOADING = "loading"
    READY = "ready"
    QUESTION = "question"
    LISTENING = "listening"
    CODING = "coding"
    EXECUTING = "executing"
    CODE_REVIEW = "code_review"
    PROCESSING = "processing"
    COMPLETED = "completed"


class Action(str, Enum):
    INITIALIZED = "initialized"
    START = "start"
    ROUTE = "route"
    RUN = "run"
    EXECUTION_FINISHED = "execution_finished"
    SUBMIT = "submit"
    AUTO_SUBMIT = "auto_submit"
    SKIP = "skip"
    RECORD = "record"
    REVIEW_ANSWERED = "review_answered"
    SKIP_REVIEW = "skip_review"
    PAUSE = "pause"
    RESUME = "resume"
    TICK = "tick"
    END = "end"


# Stages in which the countdown runs
TIME_CONSUMING = frozenset({Stage.LISTENING, Stage.CODING, Stage.EXECUTING, Stage.CODE_REVIEW})

# Results of work already in flight are accepted while paused
ALLOWED_WHILE_PAUSED = frozenset({
    Action.EXECUTION_FINISHED, Action.RECORD, Action.REVIEW_ANSWERED,
    Action.PAUSE, Action.RESUME, Action.TICK, Action.END,
})


@dataclass(frozen=True)
class SessionState:
    """Snapshot of the controller's progress through a session."""
    stage: Stage = Stage.LOADING
    paused: bool = False
    time_remaining: int = 0
    question_index: int = 0
    total_questions: int = 0
    answered: int = 0
    skipped: int = 0
    execution_count: int = 0
    review_index: int = 0
    review_total: int = 0
    skip_pending: bool = False

    @property
    def is_completed(self) -> bool:
        return self.stage == Stage.COMPLETED

    @property
    def is_time_consuming(self) -> bool:
        return self.stage in TIME_CONSUMING

    @property
    def is_last_question(self) -> bool:
        return self.question_index + 1 >= self.total_questions


def _require(state: SessionState, action: Action, *stages: Stage) -> None:
    if state.stage not in stages:
        raise InvalidTransition(state.stage, action)


def _advance(state: SessionState) -> SessionState:
    """Move on to the next question, or complete after the last one."""
    cleared = replace(state, execution_count=0, review_index=0, review_total=0, skip_pending=False)
    if state.is_last_question:
        return replace(cleared, stage=Stage.COMPLETED)
    return replace(cleared, stage=Stage.QUESTION, question_index=state.question_index + 1)


def transition(state: SessionState, action: Action, **payload) -> SessionState:
    """
    Apply one action to a session state.

    Args:
        state: Current state
        action: Action to apply
        **payload: Action data
            INITIALIZED: total_questions, time_remaining, and for a restored
                session question_index, answered, skipped
            ROUTE: requires_coding
            EXECUTION_FINISHED: succeeded (default True)
            RECORD: skipped (default False), review_count (default 0)

    Returns:
        The next state (the same object for no-op actions)

    Raises:
        InvalidTransition: If the action is not legal right now
    """
    if state.is_completed:
        # Completion is terminal; repeated END and late timer ticks are no-ops
        if action in (Action.END, Action.TICK, Action.PAUSE, Action.RESUME):
            return state
        raise InvalidTransition(state.stage, action, "session already completed")

    if state.paused and action not in ALLOWED_WHILE_PAUSED:
        raise InvalidTransition(state.stage, action, "session is paused")

    if action == Action.INITIALIZED:
        _require(state, action, Stage.LOADING)
        total = int(payload.get("total_questions", 0))
        if total <= 0:
            raise InvalidTransition(state.stage, action, "no questions available")
        index = int(payload.get("question_index", 0))
        if not 0 <= index <= total:
            raise InvalidTransition(state.stage, action, "question index out of range")
        return replace(state, stage=Stage.READY, total_questions=total,
                       time_remaining=int(payload.get("time_remaining", 0)),
                       question_index=index,
                       answered=int(payload.get("answered", 0)),
                       skipped=int(payload.get("skipped", 0)))

    if action == Action.START:
        _require(state, action, Stage.READY)
        if state.question_index >= state.total_questions:
            # Restored after the last answer was stored
            return replace(state, stage=Stage.COMPLETED)
        return replace(state, stage=Stage.QUESTION)

    if action == Action.ROUTE:
        _require(state, action, Stage.QUESTION)
        stage = Stage.CODING if payload.get("requires_coding") else Stage.LISTENING
        return replace(state, stage=stage, execution_count=0)

    if action == Action.RUN:
        _require(state, action, Stage.CODING)
        return replace(state, stage=Stage.EXECUTING)

    if action == Action.EXECUTION_FINISHED:
        _require(state, action, Stage.EXECUTING)
        count = state.execution_count + (1 if payload.get("succeeded", True) else 0)
        return replace(state, stage=Stage.CODING, execution_count=count)

    if action == Action.SUBMIT:
        _require(state, action, Stage.LISTENING, Stage.CODING)
        if state.stage == Stage.CODING and state.execution_count == 0:
            raise InvalidTransition(state.stage, action, "run the code at least once before submitting")
        return replace(state, stage=Stage.PROCESSING)

    if action == Action.AUTO_SUBMIT:
        _require(state, action, Stage.LISTENING)
        return replace(state, stage=Stage.PROCESSING)

    if action == Action.SKIP:
        _require(state, action, Stage.QUESTION, Stage.LISTENING, Stage.CODING, Stage.PROCESSING)
        return replace(state, stage=Stage.PROCESSING, skip_pending=True)

    if action == Action.RECORD:
        _require(state, action, Stage.PROCESSING)
        if payload.get("skipped", False):
            counted = replace(state, skipped=state.skipped + 1)
        else:
            counted = replace(state, answered=state.answered + 1)
        review_count = int(payload.get("review_count", 0))
        if review_count > 0:
            return replace(counted, stage=Stage.CODE_REVIEW, review_index=0,
                           review_total=review_count, skip_pending=False)
        return _advance(counted)

    if action == Action.REVIEW_ANSWERED:
        _require(state, action, Stage.CODE_REVIEW)
        index = state.review_index + 1
        if index >= state.review_total:
            return _advance(state)
        return replace(state, review_index=index)

    if action == Action.SKIP_REVIEW:
        _require(state, action, Stage.CODE_REVIEW)
        return _advance(state)

    if action == Action.PAUSE:
        if state.paused or state.stage == Stage.LOADING:
            return state
        return replace(state, paused=True)

    if action == Action.RESUME:
        if not state.paused:
            return state
        return replace(state, paused=False)

    if action == Action.TICK:
        if state.paused or not state.is_time_consuming or state.time_remaining <= 0:
            return state
        return replace(state, time_remaining=state.time_remaining - 1)

    if action == Action.END:
        return replace(state, stage=Stage.COMPLETED, paused=False)

    raise InvalidTransition(state.stage, action, "unknown action")
