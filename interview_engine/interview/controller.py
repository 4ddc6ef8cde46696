"""
Session controller: composes the state machine with capture, execution,
scoring, persistence and proctoring for one interview session.
"""
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from .events import (
    InterviewEventBus, EventLogger, SessionMetrics, InterviewEvent,
    SessionStartedEvent, StageChangedEvent, QuestionStartedEvent,
    TranscriptUpdatedEvent, AutoSubmitTriggeredEvent, ResponseSavedEvent,
    QuestionSkippedEvent, CodeExecutedEvent, ReviewQuestionAskedEvent,
    ViolationDetectedEvent, SessionPausedEvent, SessionResumedEvent,
    CaptureDegradedEvent, SessionCompletedEvent, ErrorOccurredEvent,
)
from .models import (
    AnswerKind, ExecutionReport, InterviewSession, Question, Response,
    ReviewQuestion, ReviewResponse, SessionConfig, SessionResult, TestCase,
    Violation, ViolationType,
)
from .oracle import ResponseOracle
from .question_source import QuestionSource, question_from_dict
from .scoring import overall_score, integrity_score
from .services import AnswerCaptureService, SessionWorkspace
from .state import Action, SessionState, Stage, transition
from ..config import EnginePolicy, WORKDIR
from ..errors import InvalidTransition, MediaUnavailableError, PersistenceError, ValidationError
from ..infrastructure.audio.processing import SharedMediaStream, SilenceDetector, SilenceWatchdog, WavRecorder
from ..infrastructure.audio.speech import (
    SpeechCapture, NullSpeechCapture, VoiceSynthesis, ConsoleVoiceSynthesis
)
from ..infrastructure.data import SessionStore
from ..infrastructure.execution import CodeExecutionEngine, language_id
from ..infrastructure.integrity import ExclusiveDisplay, IntegrityMonitor
from ..utils import resilient_call

logger = logging.getLogger("session_controller")

NO_ANSWER_TEXT = "No answer provided"


class SessionController:
    """
    Drives one interview session from loading to completion.

    All capabilities are injected and scoped to this session. The pure state
    machine in `state.py` decides what is legal; this class performs the I/O
    around each transition and publishes events on `event_bus`.
    """

    def __init__(self,
                 store: SessionStore,
                 oracle: Optional[ResponseOracle] = None,
                 question_source: Optional[QuestionSource] = None,
                 engine: Optional[CodeExecutionEngine] = None,
                 capture: Optional[SpeechCapture] = None,
                 synthesis: Optional[VoiceSynthesis] = None,
                 display: Optional[ExclusiveDisplay] = None,
                 stream: Optional[SharedMediaStream] = None,
                 detector: Optional[SilenceDetector] = None,
                 event_bus: Optional[InterviewEventBus] = None,
                 policy: Optional[EnginePolicy] = None,
                 workdir: str = WORKDIR,
                 record_answers: bool = True,
                 clock: Callable[[], float] = time.time,
                 sleep: Optional[Callable[[float], Awaitable[None]]] = None):
        """
        Args:
            store: Session persistence
            oracle: Scoring/generation oracle (defaults only when omitted)
            question_source: Question bank
            engine: Code execution engine (local stand-in when omitted)
            capture: Speech-to-text capability
            synthesis: Speech output capability
            display: Exclusive (full-screen) mode adapter
            stream: Shared media stream; a stream without a source degrades
                the session to text answers
            detector: Silence detector
            event_bus: Event bus; a private one is created when omitted
            policy: Engine knobs (thresholds, intervals, retries)
            workdir: Root directory for session recordings
            record_answers: Write spoken answers to WAV files
            clock: Wall-clock source
            sleep: Backoff sleep override for persistence retries
        """
        self.store = store
        self.policy = policy or EnginePolicy()
        self.oracle = oracle or ResponseOracle()
        self.question_source = question_source or QuestionSource()
        self.engine = engine or CodeExecutionEngine()
        self.capture = capture or NullSpeechCapture()
        self.synthesis = synthesis or ConsoleVoiceSynthesis()
        self.stream = stream or SharedMediaStream()
        self.detector = detector or SilenceDetector(sample_rate=self.stream.sample_rate)
        self.workspace = SessionWorkspace(workdir)
        self.record_answers = record_answers
        self.clock = clock
        self.sleep = sleep

        # Event system
        self.event_bus = event_bus or InterviewEventBus()
        self.event_logger = EventLogger()
        self.metrics = SessionMetrics()
        self.event_bus.subscribe_all(self.event_logger.handle_event)
        self.event_bus.subscribe_all(self.metrics.handle_event)

        self.watchdog = SilenceWatchdog(self.policy.auto_submit_seconds, on_trigger=self._on_silence_threshold)
        self.monitor = IntegrityMonitor(
            display=display,
            clock=clock,
            on_attention_lost=self._on_attention_lost,
            on_violation=self._on_violation,
        )
        self.answers: Optional[AnswerCaptureService] = None

        self.state = SessionState()
        self.session: Optional[InterviewSession] = None
        self.result: Optional[SessionResult] = None
        self.media_available = False

        # Per-question working state
        self._transcript = ""
        self._recording_path: Optional[str] = None
        self._question_started_at = 0.0
        self._announced_question: Optional[int] = None
        self._announced_review: Optional[int] = None
        self._speaking = False
        self._busy = False
        self._pending: Optional[Response] = None
        self._test_cases: Optional[List[TestCase]] = None
        self._last_run: Optional[tuple] = None
        self._review_questions: List[ReviewQuestion] = []
        self._review_target: Optional[Response] = None
        self._saved_executions: Set[str] = set()
        self._code_draft = ""
        self._language: Optional[str] = None
        self._restored_draft: Optional[Dict[str, Any]] = None
        self._restored = False

        self._timers: List[asyncio.Task] = []
        self._tasks: Set[asyncio.Task] = set()
        self._finalizing = False
        self._finished = asyncio.Event()

    # -- accessors -----------------------------------------------------------

    @property
    def session_id(self) -> str:
        return self.session.id if self.session else ""

    @property
    def current_question(self) -> Optional[Question]:
        if not self.session or self.state.stage in (Stage.LOADING, Stage.READY):
            return None
        if self.state.question_index >= len(self.session.questions):
            return None
        return self.session.questions[self.state.question_index]

    @property
    def current_review_question(self) -> Optional[ReviewQuestion]:
        if self.state.stage != Stage.CODE_REVIEW:
            return None
        return self._review_questions[self.state.review_index]

    @property
    def time_remaining(self) -> int:
        return self.state.time_remaining

    @property
    def transcript(self) -> str:
        return self._transcript

    @property
    def code_draft(self) -> str:
        return self._code_draft

    @property
    def language(self) -> Optional[str]:
        return self._language

    def update_code_draft(self, code: str, language: Optional[str] = None) -> None:
        """Remember the editor contents so snapshots can restore them."""
        self._code_draft = code
        if language:
            self._language = language

    # -- plumbing ------------------------------------------------------------

    def _emit(self, event: InterviewEvent) -> None:
        self.event_bus.emit(event)

    def _apply(self, action: Action, **payload) -> SessionState:
        previous = self.state
        self.state = transition(previous, action, **payload)
        if self.state.stage != previous.stage:
            logger.info(f"Stage {previous.stage.value} -> {self.state.stage.value} ({action.value})")
            self._emit(StageChangedEvent(
                self.session_id, self.clock(), previous.stage.value,
                self.state.stage.value, self.state.paused
            ))
        return self.state

    async def _persist(self, fn, *args, label: str, **kwargs):
        return await resilient_call(
            fn, *args,
            attempts=self.policy.persistence_attempts,
            retry_on=(PersistenceError,),
            sleep=self.sleep,
            label=label,
            **kwargs
        )

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Background session task failed: {error!r}")
            self._emit(ErrorOccurredEvent(
                self.session_id, self.clock(), type(error).__name__, str(error), "session_controller"
            ))

    async def drain(self) -> None:
        """Wait until every background task (auto-submit, timeout completion) has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _speak(self, text: str) -> None:
        self._speaking = True
        try:
            await self.synthesis.speak(text, self._on_speaking_change)
        except Exception as e:
            logger.error(f"Voice synthesis failed: {e}")
        finally:
            self._speaking = False

    def _on_speaking_change(self, speaking: bool) -> None:
        logger.debug(f"Synthesis {'started' if speaking else 'finished'}")

    # -- lifecycle -----------------------------------------------------------

    async def initialize(self, config: SessionConfig) -> InterviewSession:
        """
        Create the session record, select questions and acquire the media stream.

        Raises:
            InvalidTransition: If the session was already initialized
            ValidationError: If no questions could be selected
            PersistenceError: If the session record could not be created
        """
        if self.state.stage != Stage.LOADING:
            raise InvalidTransition(self.state.stage, Action.INITIALIZED, "session already initialized")
        questions = self.question_source.select_questions(config, config.question_count)
        if not questions:
            raise ValidationError("No questions available for this session")

        session_id = await self._persist(self.store.create_session, config.to_record(), label="store.create_session")
        self.session = InterviewSession(id=session_id, config=config, questions=questions)
        self._prepare_capture()

        self._apply(Action.INITIALIZED, total_questions=len(questions),
                    time_remaining=int(config.duration_minutes * 60))
        logger.info(f"Session {session_id} ready with {len(questions)} questions")
        return self.session

    async def restore(self, snapshot: Dict[str, Any]) -> InterviewSession:
        """
        Rebuild an unfinished session from a snapshot; call start() to continue.

        The session resumes at the first question without a stored response,
        with the saved time remaining and, for that question, the saved
        transcript and code draft.

        Raises:
            InvalidTransition: If this controller already has a session
            ValidationError: If the session is missing or already completed
            PersistenceError: If the stored session could not be read
        """
        if self.state.stage != Stage.LOADING:
            raise InvalidTransition(self.state.stage, Action.INITIALIZED, "session already initialized")
        session_id = snapshot["session_id"]
        record = await self._persist(self.store.get_session, session_id, label="store.get_session")
        if record is None or record.get("status") != "in_progress":
            raise ValidationError(f"Session {session_id} cannot be recovered")

        questions = [question_from_dict(q) for q in snapshot["questions"]]
        if not questions:
            raise ValidationError("Snapshot has no questions")
        by_id = {q.id: q for q in questions}
        stored = await self._persist(self.store.get_session_responses, session_id,
                                     label="store.get_session_responses")
        responses = [Response.from_record(r, by_id[r["question_id"]]) for r in stored if r["question_id"] in by_id]

        config = SessionConfig(**snapshot["config"])
        self.session = InterviewSession(id=session_id, config=config, questions=questions, responses=responses)
        self.session.started_at = float(snapshot.get("started_at") or self.clock())
        self._prepare_capture()

        # Stored responses are authoritative; the snapshot may predate the last save
        index = min(max(int(snapshot.get("question_index", 0)), len(responses)), len(questions))
        if index == int(snapshot.get("question_index", 0)):
            self._restored_draft = {
                "question_index": index,
                "transcript": snapshot.get("transcript") or "",
                "code_draft": snapshot.get("code_draft") or "",
                "language": snapshot.get("language"),
            }
        self._restored = True
        self._apply(Action.INITIALIZED, total_questions=len(questions),
                    time_remaining=int(snapshot.get("time_remaining", config.duration_minutes * 60)),
                    question_index=index,
                    answered=sum(1 for r in responses if not r.was_skipped),
                    skipped=sum(1 for r in responses if r.was_skipped))
        logger.info(f"Session {session_id} restored at question {index + 1}/{len(questions)} "
                    f"with {self.state.time_remaining}s left")
        return self.session

    def _prepare_capture(self) -> None:
        session_dir = self.workspace.create(self.session.id)
        self._open_media()
        recorder = None
        if self.record_answers and self.media_available:
            recorder = WavRecorder(session_dir, sr_capture=self.stream.sample_rate)
        self.answers = AnswerCaptureService(
            self.stream, self.detector, self.watchdog, self.capture, recorder,
            push_silence=self.policy.silence_poll_interval is None,
        )

    def _open_media(self) -> None:
        try:
            self.stream.open()
            self.media_available = True
        except MediaUnavailableError as e:
            self.media_available = False
            logger.warning(f"Media unavailable, continuing without recording: {e}")
            self._emit(CaptureDegradedEvent(self.session_id, self.clock(), str(e)))

    async def start(self) -> None:
        """Enter exclusive mode, start the timers and ask the first question."""
        self._apply(Action.START)
        if not self._restored:
            self.session.started_at = self.clock()
        self._emit(SessionStartedEvent(
            self.session_id, self.clock(), self.state.total_questions, self.state.time_remaining
        ))
        if self.state.is_completed:
            # Every question was already answered before the restore
            await self._finalize("all_questions_answered", raise_errors=False)
            return
        self.monitor.request_exclusive_mode()
        self._start_timers()
        await self._begin_question()

    def _start_timers(self) -> None:
        if self.policy.countdown_interval is not None:
            self._timers.append(self._spawn_timer(self._countdown_loop(self.policy.countdown_interval)))
        if self.policy.silence_poll_interval is not None:
            self._timers.append(self._spawn_timer(self._silence_loop(self.policy.silence_poll_interval)))
        if self.policy.snapshot_interval is not None:
            self._timers.append(self._spawn_timer(self._snapshot_loop(self.policy.snapshot_interval)))

    def _spawn_timer(self, coro) -> asyncio.Task:
        return asyncio.get_running_loop().create_task(coro)

    def _cancel_timers(self) -> None:
        for timer in self._timers:
            timer.cancel()
        self._timers.clear()

    async def _countdown_loop(self, interval: float) -> None:
        while not self.state.is_completed:
            await asyncio.sleep(interval)
            self.tick_countdown()

    async def _silence_loop(self, interval: float) -> None:
        while not self.state.is_completed:
            await asyncio.sleep(interval)
            self.poll_silence()

    async def _snapshot_loop(self, interval: float) -> None:
        while not self.state.is_completed:
            await asyncio.sleep(interval)
            await self.save_snapshot()

    def snapshot(self) -> Dict[str, Any]:
        """Everything needed to continue this session after a crash."""
        session = self.session
        return {
            "session_id": session.id,
            "user_id": session.config.user_id,
            "config": session.config.to_record(),
            "questions": [q.to_record() for q in session.questions],
            "started_at": session.started_at,
            "stage": self.state.stage.value,
            "question_index": self.state.question_index,
            "total_questions": self.state.total_questions,
            "time_remaining": self.state.time_remaining,
            "questions_answered": self.state.answered,
            "questions_skipped": self.state.skipped,
            "transcript": self._transcript,
            "code_draft": self._code_draft,
            "language": self._language,
        }

    async def save_snapshot(self) -> bool:
        """
        Persist the current snapshot. Failures are reported, not raised.

        Returns:
            True if the snapshot was saved
        """
        if self.session is None or self.state.stage in (Stage.LOADING, Stage.COMPLETED):
            return False
        try:
            await self._persist(self.store.save_session_state, self.session.id, self.snapshot(),
                                label="store.save_session_state")
        except PersistenceError as e:
            logger.error(f"Could not save session snapshot: {e}")
            self._emit(ErrorOccurredEvent(self.session_id, self.clock(), "PersistenceError", str(e), "session_store"))
            return False
        return True

    def tick_countdown(self) -> int:
        """
        One countdown step. Reaching zero in a time-consuming stage completes
        the session.

        Returns:
            Seconds remaining
        """
        if self.state.is_completed:
            return self.state.time_remaining
        self.state = transition(self.state, Action.TICK)
        if (self.state.time_remaining <= 0 and self.state.is_time_consuming
                and not self.state.paused and not self._finalizing):
            logger.info("Time is up; completing session")
            self._spawn(self._finalize("time_expired", raise_errors=False))
        return self.state.time_remaining

    def poll_silence(self) -> bool:
        """Feed the watchdog; returns True if this poll fired auto-submit."""
        if self.state.stage != Stage.LISTENING or self.state.paused:
            return False
        return self.watchdog.observe(self.detector.silence_seconds)

    # -- questions -----------------------------------------------------------

    async def _begin_question(self) -> None:
        question = self.current_question
        index = self.state.question_index
        self._announced_question = index
        self._announced_review = None
        self._question_started_at = self.clock()
        self._transcript = ""
        self._recording_path = None
        self._test_cases = None
        self._last_run = None
        self._code_draft = ""
        self._language = question.default_language
        draft, self._restored_draft = self._restored_draft, None
        if draft and draft["question_index"] == index:
            self._transcript = draft["transcript"]
            self._code_draft = draft["code_draft"]
            self._language = draft["language"] or self._language
        self._emit(QuestionStartedEvent(
            self.session_id, self.clock(), index, question.id, question.text, question.requires_coding
        ))
        logger.info(f"Question {index + 1}/{self.state.total_questions}: {question.text}")
        await self._speak(question.text)

        if self.state.paused or self.state.is_completed:
            return
        if self.state.stage == Stage.QUESTION and self.state.question_index == index:
            self._route()
        else:
            # Skipped or answered while the question was being spoken
            await self._continue_after_speech()

    async def _continue_after_speech(self) -> None:
        if self.state.paused or self.state.is_completed or self._speaking:
            return
        stage = self.state.stage
        if stage == Stage.QUESTION and self._announced_question != self.state.question_index:
            await self._begin_question()
        elif stage == Stage.CODE_REVIEW and self._announced_review != self.state.review_index:
            await self._ask_review_question()

    def _route(self) -> None:
        question = self.current_question
        self._apply(Action.ROUTE, requires_coding=question.requires_coding)
        if self.state.stage == Stage.LISTENING:
            self.answers.begin(self.state.question_index, self._on_transcript_update, self._on_capture_error)

    def _on_transcript_update(self, transcript: str) -> None:
        self._transcript = transcript
        self._emit(TranscriptUpdatedEvent(self.session_id, self.clock(), transcript, False))

    def _on_capture_error(self, reason: str) -> None:
        logger.warning(f"Speech capture degraded: {reason}")
        self._emit(CaptureDegradedEvent(self.session_id, self.clock(), reason))

    def _on_silence_threshold(self, silence_seconds: float) -> None:
        self._spawn(self._auto_submit(silence_seconds))

    def _elapsed(self) -> float:
        return round(max(0.0, self.clock() - self._question_started_at), 3)

    async def _finish_listening(self) -> str:
        captured = await self.answers.finish()
        if captured.transcript:
            self._transcript = captured.transcript
            self._emit(TranscriptUpdatedEvent(self.session_id, self.clock(), captured.transcript, True))
        self._recording_path = captured.recording_path
        return self._transcript.strip()

    async def submit_answer(self, text: Optional[str] = None) -> Response:
        """
        Submit the answer to a spoken/text question.

        Args:
            text: Typed answer; None submits the live transcript

        Raises:
            ValidationError: Empty answer, wrong stage, or session paused
            PersistenceError: The response could not be saved
        """
        if self.state.stage == Stage.CODING:
            raise ValidationError("Coding answers are submitted with submit_code()")
        transition(self.state, Action.SUBMIT)
        typed = text.strip() if text is not None else None
        if typed is not None and not typed:
            raise ValidationError("Answer is empty")
        if typed is None and not self._transcript.strip():
            raise ValidationError("Answer is empty")

        self.watchdog.disarm()
        self._apply(Action.SUBMIT)
        question = self.current_question
        order = self.state.question_index + 1
        duration = self._elapsed()
        self._busy = True
        try:
            transcript = await self._finish_listening()
            answer = typed if typed is not None else transcript
            evaluation = await self.oracle.evaluate_answer(question, answer)
        finally:
            self._busy = False

        response = Response(
            question=question,
            order=order,
            kind=AnswerKind.TEXT if typed is not None else AnswerKind.VOICE,
            text=answer,
            transcript=transcript or None,
            score=evaluation.score,
            feedback=evaluation.feedback,
            strengths=list(evaluation.strengths),
            improvements=list(evaluation.improvements),
            duration_seconds=duration,
            silence_duration=self.detector.silence_seconds,
            recording_path=self._recording_path,
        )
        return await self._record(response)

    async def _auto_submit(self, silence_seconds: float) -> None:
        if self.state.stage != Stage.LISTENING or self.state.paused:
            logger.info("Auto-submit ignored; question no longer listening")
            return
        self._apply(Action.AUTO_SUBMIT)
        question = self.current_question
        order = self.state.question_index + 1
        duration = self._elapsed()
        self._emit(AutoSubmitTriggeredEvent(self.session_id, self.clock(), self.state.question_index, silence_seconds))

        self._busy = True
        try:
            transcript = await self._finish_listening()
            if transcript:
                evaluation = await self.oracle.evaluate_answer(question, transcript)
                score, feedback = evaluation.score, evaluation.feedback
                strengths, improvements = list(evaluation.strengths), list(evaluation.improvements)
            else:
                score, feedback, strengths, improvements = 0, "No answer was given before the silence limit.", [], []
        finally:
            self._busy = False

        response = Response(
            question=question,
            order=order,
            kind=AnswerKind.VOICE,
            text=transcript or NO_ANSWER_TEXT,
            transcript=transcript or None,
            score=score,
            feedback=feedback,
            strengths=strengths,
            improvements=improvements,
            duration_seconds=duration,
            silence_duration=silence_seconds,
            auto_submitted=True,
            recording_path=self._recording_path,
        )
        try:
            await self._record(response)
        except PersistenceError as e:
            logger.error(f"Auto-submitted answer could not be saved: {e}")
            self._emit(ErrorOccurredEvent(self.session_id, self.clock(), "PersistenceError", str(e), "session_store"))

    async def skip_question(self) -> Optional[Response]:
        """
        Skip the current question (or the remaining code-review follow-ups).

        Returns:
            The saved zero-score response, or None when skipping follow-ups

        Raises:
            ValidationError: Not skippable right now
            PersistenceError: The skip could not be saved
        """
        if self.state.stage == Stage.CODE_REVIEW:
            self._apply(Action.SKIP_REVIEW)
            self._review_questions = []
            logger.info("Remaining code-review questions skipped")
            await self._after_record()
            return None

        transition(self.state, Action.SKIP)
        if self._busy:
            raise ValidationError("The answer is still being processed")

        if self._pending is not None and self._pending.id is not None:
            # Already stored; finish recording it instead of adding a second response
            return await self.retry_processing()

        self.watchdog.disarm()
        was_listening = self.state.stage == Stage.LISTENING
        self._apply(Action.SKIP)
        question = self.current_question
        if was_listening:
            await self._finish_listening()
        self._review_questions = []

        response = Response(
            question=question,
            order=self.state.question_index + 1,
            kind=AnswerKind.CODE if question.requires_coding else AnswerKind.TEXT,
            score=0,
            feedback="Question skipped",
            duration_seconds=self._elapsed(),
            was_skipped=True,
        )
        return await self._record(response)

    # -- coding --------------------------------------------------------------

    async def _ensure_test_cases(self, question: Question, language: str) -> List[TestCase]:
        if self._test_cases is None:
            self._test_cases = await self.oracle.generate_test_cases(
                question, language, self.policy.test_case_count
            )
        return self._test_cases

    async def run_code(self, code: str, language: str) -> ExecutionReport:
        """
        Run code against the question's generated test cases.

        Raises:
            ValidationError: Empty code, unsupported language, wrong stage or paused
        """
        transition(self.state, Action.RUN)
        if not code or not code.strip():
            raise ValidationError("Code is empty")
        language_id(language)

        self._apply(Action.RUN)
        question = self.current_question
        try:
            test_cases = await self._ensure_test_cases(question, language)
            report = await self.engine.execute(code, language, test_cases)
        except Exception:
            if self.state.stage == Stage.EXECUTING:
                self._apply(Action.EXECUTION_FINISHED, succeeded=False)
            raise

        if self.state.stage == Stage.EXECUTING:
            self._apply(Action.EXECUTION_FINISHED, succeeded=True)
        self._last_run = (code, language, report)
        self._emit(CodeExecutedEvent(
            self.session_id, self.clock(), language, report.passed,
            report.passed_count, len(report.results), report.used_stand_in
        ))
        return report

    async def submit_code(self, code: str, language: str) -> Response:
        """
        Submit a coding answer. Requires at least one completed run.

        Raises:
            ValidationError: No runs yet, empty code, unsupported language
            PersistenceError: The response could not be saved
        """
        if self.state.stage == Stage.LISTENING:
            raise ValidationError("Spoken answers are submitted with submit_answer()")
        transition(self.state, Action.SUBMIT)
        if not code or not code.strip():
            raise ValidationError("Code is empty")
        language_id(language)

        self._apply(Action.SUBMIT)
        question = self.current_question
        order = self.state.question_index + 1
        duration = self._elapsed()
        self._busy = True
        try:
            if self._last_run and self._last_run[0] == code and self._last_run[1] == language:
                report = self._last_run[2]
            else:
                test_cases = await self._ensure_test_cases(question, language)
                report = await self.engine.execute(code, language, test_cases)
            quality = await self.oracle.analyze_code(question, code, language, report)
            reviews = []
            if self.policy.enable_code_review:
                reviews = await self.oracle.generate_review_questions(
                    question, code, language, self.policy.max_review_questions
                )
        finally:
            self._busy = False

        self._review_questions = reviews
        response = Response(
            question=question,
            order=order,
            kind=AnswerKind.CODE,
            text=code,
            code=code,
            language=language,
            score=quality.score,
            feedback=(f"Correctness: {quality.correctness}\n"
                      f"Complexity: {quality.complexity}\n"
                      f"Code quality: {quality.codeQuality}"),
            strengths=list(quality.bestPractices),
            improvements=list(quality.improvements),
            duration_seconds=duration,
            execution=report,
        )
        return await self._record(response)

    # -- code review ---------------------------------------------------------

    async def _ask_review_question(self) -> None:
        index = self.state.review_index
        review_question = self._review_questions[index]
        self._announced_review = index
        self._emit(ReviewQuestionAskedEvent(
            self.session_id, self.clock(), index, self.state.review_total, review_question.text
        ))
        await self._speak(review_question.text)
        await self._continue_after_speech()

    async def submit_review_answer(self, text: str) -> ReviewResponse:
        """
        Answer the current code-review follow-up question.

        Raises:
            ValidationError: Empty explanation, wrong stage or paused
            PersistenceError: The explanation could not be saved
        """
        transition(self.state, Action.REVIEW_ANSWERED)
        if self.state.paused:
            raise ValidationError("Session is paused")
        if not text or not text.strip():
            raise ValidationError("Explanation is empty")

        target = self._review_target
        review_question = self._review_questions[self.state.review_index]
        review = await self.oracle.evaluate_explanation(review_question, target.code or "", text.strip())
        await self._persist(
            self.store.save_review_response, target.id, self.session_id,
            review_question.to_record(), review.to_record(), label="store.save_review_response"
        )
        target.review_responses.append(review)
        if self.state.is_completed:
            return review
        self._apply(Action.REVIEW_ANSWERED)
        await self._after_record()
        return review

    # -- recording -----------------------------------------------------------

    async def _record(self, response: Response) -> Response:
        """
        Persist a response and advance. On PersistenceError the stage stays at
        processing and the response is kept for retry_processing().
        """
        self._pending = response
        session_id = self.session.id
        question = response.question

        if response.id is None:
            saved = await self._persist(
                self.store.save_response, session_id, question.id, response.order,
                response.to_record(), label="store.save_response"
            )
            response.id = saved.get("id")
        if response.execution is not None and response.id not in self._saved_executions:
            await self._persist(
                self.store.save_execution_result, response.id, session_id,
                response.execution.to_record(), response.code or "", response.language or "",
                label="store.save_execution_result"
            )
            self._saved_executions.add(response.id)

        answered = self.state.answered + (0 if response.was_skipped else 1)
        skipped = self.state.skipped + (1 if response.was_skipped else 0)
        await self._persist(
            self.store.update_session_progress, session_id, answered, skipped,
            label="store.update_session_progress"
        )

        self._pending = None
        self.session.responses.append(response)
        if self.state.is_completed:
            # Ended while this answer was in flight; keep it without advancing
            return response

        index = self.state.question_index
        review_count = 0
        if response.kind == AnswerKind.CODE and not response.was_skipped:
            review_count = len(self._review_questions)
            self._review_target = response
        self._apply(Action.RECORD, skipped=response.was_skipped, review_count=review_count)

        if response.was_skipped:
            self._emit(QuestionSkippedEvent(self.session_id, self.clock(), index, question.id))
        else:
            self._emit(ResponseSavedEvent(
                self.session_id, self.clock(), index, response.id,
                response.score, response.kind.value, response.auto_submitted
            ))
        await self._after_record()
        return response

    async def retry_processing(self) -> Response:
        """
        Retry saving the answer whose persistence failed.

        Raises:
            ValidationError: Nothing is waiting to be saved
            PersistenceError: The save failed again
        """
        if self.state.stage != Stage.PROCESSING or self._pending is None:
            raise ValidationError("No answer is waiting to be saved")
        if self._busy:
            raise ValidationError("The answer is still being processed")
        return await self._record(self._pending)

    async def _after_record(self) -> None:
        stage = self.state.stage
        if stage == Stage.COMPLETED:
            await self._finalize("all_questions_answered", raise_errors=False)
        elif self.state.paused or self._speaking:
            # Continued by resume()
            return
        elif stage == Stage.CODE_REVIEW:
            await self._ask_review_question()
        elif stage == Stage.QUESTION:
            await self._begin_question()

    # -- proctoring ----------------------------------------------------------

    def _on_attention_lost(self, violation_type: ViolationType) -> None:
        self._emit(ViolationDetectedEvent(
            self.session_id, self.clock(), violation_type.value, None, self.monitor.metrics.total_violations
        ))
        self.pause(reason=violation_type.value)

    def _on_violation(self, violation: Violation) -> None:
        self._emit(ViolationDetectedEvent(
            self.session_id, self.clock(), violation.type.value, violation.duration,
            self.monitor.metrics.total_violations
        ))

    def pause(self, reason: str = "manual") -> None:
        """Freeze the countdown, silence measurement, capture and synthesis."""
        if self.state.is_completed or self.state.stage == Stage.LOADING or self.state.paused:
            return
        self._apply(Action.PAUSE)
        if self.answers is not None:
            self.answers.pause()
        self.synthesis.pause()
        logger.info(f"Session paused in {self.state.stage.value} ({reason})")
        self._emit(SessionPausedEvent(self.session_id, self.clock(), reason, self.state.stage.value))

    async def resume(self) -> None:
        """Re-enter exclusive mode and continue exactly where the session paused."""
        if not self.state.paused or self.state.is_completed:
            return
        self.monitor.request_exclusive_mode()
        self._apply(Action.RESUME)
        if self.answers is not None:
            self.answers.resume()
        self.synthesis.resume()
        logger.info(f"Session resumed in {self.state.stage.value}")
        self._emit(SessionResumedEvent(self.session_id, self.clock(), self.state.stage.value))

        if self._speaking:
            return
        stage = self.state.stage
        if stage == Stage.QUESTION:
            if self._announced_question == self.state.question_index:
                self._route()
            else:
                await self._begin_question()
        elif stage == Stage.CODE_REVIEW and self._announced_review != self.state.review_index:
            await self._ask_review_question()

    # -- completion ----------------------------------------------------------

    async def end_interview(self) -> Optional[SessionResult]:
        """
        End the session now. Safe to call more than once.

        Raises:
            PersistenceError: The completion record could not be saved
        """
        return await self._finalize("ended_by_user", raise_errors=True)

    async def wait_completed(self) -> Optional[SessionResult]:
        """Block until the session has been completed by any path."""
        await self._finished.wait()
        return self.result

    async def _finalize(self, reason: str, raise_errors: bool) -> Optional[SessionResult]:
        if self._finalizing:
            await self._finished.wait()
            return self.result
        self._finalizing = True
        try:
            return await self._complete(reason, raise_errors)
        finally:
            self._finished.set()

    async def _complete(self, reason: str, raise_errors: bool) -> Optional[SessionResult]:
        self._apply(Action.END)
        self._cancel_timers()
        self.watchdog.disarm()
        if self.answers is not None:
            await self.answers.finish()
        self.synthesis.stop()
        self.stream.release()
        metrics = self.monitor.close()
        self.monitor.exit_exclusive_mode()

        if self.session is None:
            logger.info("Session ended before it was created")
            return None

        session = self.session
        session.completed_at = self.clock()
        session.overall_score = overall_score(session.responses, self.policy.skipped_score_policy)
        session.integrity_score = integrity_score(metrics)
        duration = max(0.0, session.completed_at - session.started_at)

        self.result = SessionResult(
            session_id=session.id,
            overall_score=session.overall_score,
            integrity_score=session.integrity_score,
            questions_answered=self.state.answered,
            questions_skipped=self.state.skipped,
            total_questions=self.state.total_questions,
            duration_seconds=duration,
            reason=reason,
            metrics=metrics,
            responses=list(session.responses),
        )
        logger.info(f"Session {session.id} completed ({reason}): overall {session.overall_score}, "
                    f"integrity {session.integrity_score}")

        try:
            await self._persist(
                self.store.complete_session, session.id, int(round(duration)), metrics.to_record(),
                overall_score=session.overall_score, integrity_score=session.integrity_score,
                label="store.complete_session"
            )
        except PersistenceError as e:
            logger.error(f"Could not save session completion: {e}")
            self._emit(ErrorOccurredEvent(session.id, self.clock(), "PersistenceError", str(e), "session_store"))
            if raise_errors:
                raise
        finally:
            self._emit(SessionCompletedEvent(
                session.id, self.clock(), reason, session.overall_score,
                session.integrity_score, self.state.answered, self.state.skipped
            ))

        try:
            await self._persist(self.store.clear_session_state, session.id, label="store.clear_session_state")
        except PersistenceError as e:
            # Completed sessions are never offered for recovery
            logger.warning(f"Could not clear session snapshot: {e}")
        return self.result
