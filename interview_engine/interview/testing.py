"""
Testing infrastructure with mock capabilities for the interview engine.
"""
import asyncio
import uuid
import tempfile
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from .controller import SessionController
from .models import Question, QuestionType, SessionConfig
from .oracle import ResponseOracle
from .question_source import QuestionSource
from ..config import EnginePolicy, SAMPLE_RATE_CAPTURE, FRAME_MS, SNAPSHOT_MAX_AGE_HOURS
from ..errors import MediaUnavailableError, PersistenceError, SandboxUnavailableError
from ..infrastructure.audio.processing import SharedMediaStream
from ..infrastructure.audio.speech import CAPTURE_UNAVAILABLE
from ..infrastructure.execution import CodeExecutionEngine, SandboxRun


# -- audio -------------------------------------------------------------------

def tone_frame(amplitude: float = 0.3,
               ms: int = FRAME_MS,
               sample_rate: int = SAMPLE_RATE_CAPTURE,
               freq_hz: float = 220.0) -> np.ndarray:
    """A sine frame loud enough to count as speech."""
    n = int(sample_rate * ms / 1000)
    t = np.arange(n, dtype=np.float32) / sample_rate
    return (amplitude * np.sin(2 * np.pi * freq_hz * t)).astype(np.float32)


def silence_frame(level: float = 0.0,
                  ms: int = FRAME_MS,
                  sample_rate: int = SAMPLE_RATE_CAPTURE) -> np.ndarray:
    """A flat frame (constant offset `level`)."""
    n = int(sample_rate * ms / 1000)
    return np.full(n, level, dtype=np.float32)


def push_frames(stream: SharedMediaStream, frame: np.ndarray, count: int) -> None:
    for _ in range(count):
        stream.push(frame)


class MockAudioSource:
    """Audio source the test pushes frames through by hand."""

    def __init__(self, available: bool = True):
        self.available = available
        self.push: Optional[Callable[[np.ndarray], None]] = None
        self.opened = 0
        self.closed = 0

    def open(self, push: Callable[[np.ndarray], None]) -> None:
        if not self.available:
            raise MediaUnavailableError("Microphone permission denied")
        self.push = push
        self.opened += 1

    def close(self) -> None:
        self.closed += 1


class MockSpeechCapture:
    """Speech capture whose transcript is driven by the test."""

    def __init__(self, supported: bool = True):
        self.supported = supported
        self.active = False
        self.paused = False
        self.transcript = ""
        self.started = 0
        self.stopped = 0
        self._on_update = None
        self._on_final = None
        self._on_error = None

    def is_supported(self) -> bool:
        return self.supported

    def start(self, on_update, on_final, on_error) -> None:
        self._on_update, self._on_final, self._on_error = on_update, on_final, on_error
        self.transcript = ""
        self.active = True
        self.paused = False
        self.started += 1

    def say(self, text: str) -> None:
        """Simulate recognized speech."""
        if not self.active or self.paused:
            return
        self.transcript = f"{self.transcript} {text}".strip()
        if self._on_update:
            self._on_update(self.transcript)

    def fail(self) -> None:
        """Simulate exhausted recognition retries."""
        if self._on_error:
            self._on_error(CAPTURE_UNAVAILABLE)

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False

    async def stop(self) -> None:
        if not self.active:
            return
        self.active = False
        self.stopped += 1
        if self._on_final:
            self._on_final(self.transcript)


class MockVoiceSynthesis:
    """Records what would have been spoken; `delay` keeps each utterance in flight."""

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.spoken_messages: List[str] = []
        self.paused = 0
        self.resumed = 0
        self.stopped = 0

    def is_supported(self) -> bool:
        return True

    async def speak(self, text: str, on_speaking_change=None) -> None:
        if on_speaking_change:
            on_speaking_change(True)
        self.spoken_messages.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if on_speaking_change:
            on_speaking_change(False)

    def pause(self) -> None:
        self.paused += 1

    def resume(self) -> None:
        self.resumed += 1

    def stop(self) -> None:
        self.stopped += 1


class MockExclusiveDisplay:
    """Full-screen adapter that counts requests."""

    def __init__(self, refuse: bool = False):
        self.refuse = refuse
        self.entered = 0
        self.exited = 0

    def enter(self) -> None:
        if self.refuse:
            raise RuntimeError("Full-screen request denied")
        self.entered += 1

    def exit(self) -> None:
        self.exited += 1


# -- oracle / sandbox --------------------------------------------------------

class MockLLMClient:
    """Mock LLM client for testing."""

    def __init__(self, mock_responses: Optional[List[str]] = None, fail: bool = False):
        self.mock_responses = list(mock_responses or [])
        self.current_response_idx = 0
        self.fail = fail
        self.request_history = []

    def generate_content(self, prompt: str, temperature: float = 0.0, **kwargs) -> str:
        """Return the next canned response."""
        self.request_history.append({
            "prompt": prompt,
            "temperature": temperature,
            "kwargs": kwargs
        })
        if self.fail:
            raise RuntimeError("Vertex REST error 503: unavailable")

        if self.current_response_idx < len(self.mock_responses):
            response = self.mock_responses[self.current_response_idx]
            self.current_response_idx += 1
            return response
        # Unparseable on purpose: callers fall back to defaults
        return "I am not able to answer in JSON right now."


class MockSandboxClient:
    """Sandbox that answers from a stdin -> stdout table."""

    def __init__(self,
                 outputs: Optional[Dict[str, str]] = None,
                 unavailable: bool = False,
                 stderr: str = "",
                 time_seconds: float = 0.01):
        self.outputs = outputs or {}
        self.unavailable = unavailable
        self.stderr = stderr
        self.time_seconds = time_seconds
        self.calls: List[Dict[str, Any]] = []

    def run(self, source_code: str, language_id: int, stdin: str) -> SandboxRun:
        self.calls.append({"source_code": source_code, "language_id": language_id, "stdin": stdin})
        if self.unavailable:
            raise SandboxUnavailableError("Sandbox returned HTTP 503")
        return SandboxRun(
            stdout=self.outputs.get(stdin, ""),
            stderr=self.stderr,
            compile_output="",
            time_seconds=self.time_seconds,
        )


# -- persistence -------------------------------------------------------------

class InMemorySessionStore:
    """Session store kept in dictionaries, with failure injection."""

    def __init__(self):
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self._failures: Dict[str, int] = defaultdict(int)

    def fail_next(self, operation: str, times: int = 1) -> None:
        """Make the next `times` calls of `operation` raise PersistenceError."""
        self._failures[operation] += times

    def calls_to(self, operation: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == operation]

    def _call(self, operation: str, *args) -> None:
        self.calls.append((operation,) + args)
        if self._failures[operation] > 0:
            self._failures[operation] -= 1
            raise PersistenceError(f"{operation} failed")

    def _session(self, session_id: str) -> Dict[str, Any]:
        if session_id not in self.sessions:
            raise PersistenceError(f"Session not found: {session_id}")
        return self.sessions[session_id]

    def _response(self, session_id: str, response_id: str) -> Dict[str, Any]:
        for response in self._session(session_id)["responses"]:
            if response["id"] == response_id:
                return response
        raise PersistenceError(f"Response not found: {response_id}")

    async def create_session(self, config: Dict[str, Any]) -> str:
        self._call("create_session", config)
        session_id = str(uuid.uuid4())
        self.sessions[session_id] = {
            "id": session_id, **config, "status": "in_progress",
            "questions_answered": 0, "questions_skipped": 0, "responses": [],
        }
        return session_id

    async def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        self._call("get_session", session_id)
        return self.sessions.get(session_id)

    async def update_session_progress(self, session_id: str, answered: int, skipped: int) -> None:
        self._call("update_session_progress", session_id, answered, skipped)
        record = self._session(session_id)
        record["questions_answered"] = answered
        record["questions_skipped"] = skipped

    async def save_response(self, session_id: str, question_id: str, order: int,
                            fields: Dict[str, Any]) -> Dict[str, Any]:
        self._call("save_response", session_id, question_id, order, fields)
        response = {
            "id": str(uuid.uuid4()), "session_id": session_id, "question_id": question_id,
            "question_order": order, **fields, "execution_results": [], "review_responses": [],
        }
        self._session(session_id)["responses"].append(response)
        return dict(response)

    async def save_execution_result(self, response_id: str, session_id: str,
                                    report: Dict[str, Any], code: str, language: str) -> None:
        self._call("save_execution_result", response_id, session_id, report, code, language)
        self._response(session_id, response_id)["execution_results"].append(
            {"code": code, "language": language, **report}
        )

    async def save_review_response(self, response_id: str, session_id: str,
                                   review: Dict[str, Any], fields: Dict[str, Any]) -> None:
        self._call("save_review_response", response_id, session_id, review, fields)
        self._response(session_id, response_id)["review_responses"].append(
            {"review_question": review, **fields}
        )

    async def complete_session(self, session_id: str, duration_seconds: int,
                               integrity_metrics: Dict[str, Any],
                               overall_score: Optional[int] = None,
                               integrity_score: Optional[int] = None) -> None:
        self._call("complete_session", session_id, duration_seconds, integrity_metrics,
                   overall_score, integrity_score)
        record = self._session(session_id)
        record.update(integrity_metrics)
        record.update(status="completed", duration_seconds=duration_seconds,
                      overall_score=overall_score, integrity_score=integrity_score)

    async def get_session_responses(self, session_id: str) -> List[Dict[str, Any]]:
        self._call("get_session_responses", session_id)
        record = self.sessions.get(session_id)
        if record is None:
            return []
        return sorted(record["responses"], key=lambda r: r["question_order"])

    async def save_session_state(self, session_id: str, state: Dict[str, Any]) -> None:
        self._call("save_session_state", session_id, state)
        self._session(session_id)["snapshot"] = {**state, "last_saved": datetime.now().isoformat()}

    async def load_session_state(self, session_id: str) -> Optional[Dict[str, Any]]:
        self._call("load_session_state", session_id)
        record = self.sessions.get(session_id)
        return record.get("snapshot") if record else None

    async def clear_session_state(self, session_id: str) -> None:
        self._call("clear_session_state", session_id)
        self._session(session_id).pop("snapshot", None)

    async def find_recoverable_session(self, user_id: Optional[str],
                                       max_age_hours: float = SNAPSHOT_MAX_AGE_HOURS) -> Optional[Dict[str, Any]]:
        self._call("find_recoverable_session", user_id)
        cutoff = (datetime.now() - timedelta(hours=max_age_hours)).isoformat()
        candidates = [
            r["snapshot"] for r in self.sessions.values()
            if r.get("status") == "in_progress" and r.get("snapshot")
            and r.get("user_id") == user_id and r["snapshot"]["last_saved"] >= cutoff
        ]
        return max(candidates, key=lambda s: s["last_saved"], default=None)


class FailingSessionStore(InMemorySessionStore):
    """Store whose listed operations always fail."""

    def __init__(self, failing_operations: List[str]):
        super().__init__()
        self.failing_operations = set(failing_operations)

    def _call(self, operation: str, *args) -> None:
        self.calls.append((operation,) + args)
        if operation in self.failing_operations:
            raise PersistenceError(f"{operation} failed")


# -- fixtures ----------------------------------------------------------------

class StaticQuestionSource(QuestionSource):
    """Returns the bank in its given order, without the type mix."""

    def select_questions(self, config: SessionConfig, count: Optional[int] = None) -> List[Question]:
        count = count if count is not None else config.question_count
        return list(self.bank[:count])


def create_test_questions() -> List[Question]:
    """Two spoken questions followed by one coding question."""
    return [
        Question(
            id="q-intro",
            question_type=QuestionType.INTRODUCTION,
            text="Tell me about yourself.",
            expected_answer_points=["Background", "Motivation"],
        ),
        Question(
            id="q-behavioral",
            question_type=QuestionType.BEHAVIORAL,
            text="Describe a time you disagreed with a teammate.",
            expected_answer_points=["Situation", "Action", "Result"],
        ),
        Question(
            id="q-coding",
            question_type=QuestionType.CODING,
            text="Write a function that reverses a string.",
            requires_coding=True,
            programming_languages=["Python", "JavaScript"],
            default_language="Python",
        ),
    ]


async def _no_sleep(_delay: float) -> None:
    return None


def create_mock_session_setup(workdir: Optional[str] = None,
                              questions: Optional[List[Question]] = None,
                              llm_responses: Optional[List[str]] = None,
                              sandbox: Optional[MockSandboxClient] = None,
                              store: Optional[InMemorySessionStore] = None,
                              policy: Optional[EnginePolicy] = None,
                              media_available: bool = True) -> Dict[str, Any]:
    """
    Build a headless controller wired to mocks.

    Timers are host-driven (no background intervals) so tests advance the
    countdown and silence poll explicitly.
    """
    workdir = workdir or tempfile.mkdtemp()
    if policy is None:
        policy = EnginePolicy(countdown_interval=None, silence_poll_interval=None,
                              snapshot_interval=None, enable_code_review=False)
    source = MockAudioSource(available=media_available)
    stream = SharedMediaStream(source)
    capture = MockSpeechCapture()
    synthesis = MockVoiceSynthesis()
    display = MockExclusiveDisplay()
    llm_client = MockLLMClient(llm_responses)
    store = store or InMemorySessionStore()
    questions = questions if questions is not None else create_test_questions()

    controller = SessionController(
        store=store,
        oracle=ResponseOracle(llm_client, attempts=1, sleep=_no_sleep),
        question_source=StaticQuestionSource(questions),
        engine=CodeExecutionEngine(sandbox, attempts=1, sleep=_no_sleep),
        capture=capture,
        synthesis=synthesis,
        display=display,
        stream=stream,
        policy=policy,
        workdir=workdir,
        record_answers=False,
        sleep=_no_sleep,
    )
    return {
        "controller": controller,
        "store": store,
        "source": source,
        "stream": stream,
        "capture": capture,
        "synthesis": synthesis,
        "display": display,
        "llm_client": llm_client,
        "sandbox": sandbox,
        "workdir": workdir,
        "config": SessionConfig(question_count=len(questions), duration_minutes=30),
    }


def cleanup_test_files(temp_dir: str) -> None:
    """Clean up test files and directories."""
    import shutil
    try:
        shutil.rmtree(temp_dir)
    except OSError:
        pass  # Directory may not exist or be deletable
