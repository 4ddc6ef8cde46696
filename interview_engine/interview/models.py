"""
Data models for the interview engine.
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, List, Any


class QuestionType(str, Enum):
    INTRODUCTION = "introduction"
    BEHAVIORAL = "behavioral"
    TECHNICAL = "technical"
    CODING = "coding"


class AnswerKind(str, Enum):
    TEXT = "text"
    CODE = "code"
    VOICE = "voice"


class ViolationType(str, Enum):
    TAB_SWITCH = "tab-switch"
    WINDOW_BLUR = "window-blur"
    FULLSCREEN_EXIT = "fullscreen-exit"


class ReviewQuestionType(str, Enum):
    COMPLEXITY = "complexity"
    LOGIC = "logic"
    EDGE_CASES = "edge_cases"
    OPTIMIZATION = "optimization"


@dataclass(frozen=True)
class Question:
    """A single interview question."""
    id: str
    question_type: QuestionType
    text: str
    category: str = "general"
    difficulty: str = "medium"
    requires_coding: bool = False
    programming_languages: List[str] = field(default_factory=list)
    default_language: Optional[str] = None
    test_case_template: Optional[str] = None
    expected_answer_points: List[str] = field(default_factory=list)
    company: Optional[str] = None
    role: Optional[str] = None
    domain: Optional[str] = None

    def __hash__(self):
        return hash(self.id)

    def to_record(self) -> Dict[str, Any]:
        """Bank-style record; `question_from_dict` reads it back."""
        return {
            "id": self.id,
            "question_type": self.question_type.value,
            "question_text": self.text,
            "category": self.category,
            "difficulty": self.difficulty,
            "requires_coding": self.requires_coding,
            "programming_languages": list(self.programming_languages),
            "default_language": self.default_language,
            "test_case_template": self.test_case_template,
            "expected_answer_points": list(self.expected_answer_points),
            "company": self.company,
            "role": self.role,
            "domain": self.domain,
        }


@dataclass(frozen=True)
class TestCase:
    """One input/expected-output pair for a coding question."""
    __test__ = False

    input: str
    expected_output: str
    description: str = ""

    @property
    def key(self):
        """Identity used to match execution results back to their case."""
        return (self.input, self.expected_output)


@dataclass
class ExecutionResult:
    """Outcome of running code against one test case."""
    test_case: TestCase
    actual_output: str
    passed: bool
    execution_time_ms: float = 0.0
    error: Optional[str] = None


@dataclass
class ExecutionReport:
    """Aggregate outcome of one code run."""
    passed: bool
    results: List[ExecutionResult] = field(default_factory=list)
    total_time_ms: float = 0.0
    used_stand_in: bool = False
    output: str = ""

    @property
    def passed_count(self) -> int:
        return sum(1 for r in self.results if r.passed)

    def result_for(self, test_case: TestCase) -> Optional[ExecutionResult]:
        for result in self.results:
            if result.test_case.key == test_case.key:
                return result
        return None

    def to_record(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "passed_count": self.passed_count,
            "total_count": len(self.results),
            "total_time_ms": self.total_time_ms,
            "used_stand_in": self.used_stand_in,
            "output": self.output,
            "results": [
                {
                    "input": r.test_case.input,
                    "expected_output": r.test_case.expected_output,
                    "actual_output": r.actual_output,
                    "passed": r.passed,
                    "execution_time_ms": r.execution_time_ms,
                    "error": r.error,
                }
                for r in self.results
            ],
        }


@dataclass(frozen=True)
class ReviewQuestion:
    """Follow-up question about a submitted solution."""
    id: str
    question_type: ReviewQuestionType
    text: str
    code_reference: Optional[str] = None
    expected_concepts: List[str] = field(default_factory=list)

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.question_type.value,
            "question": self.text,
            "code_reference": self.code_reference,
            "expected_concepts": list(self.expected_concepts),
        }


@dataclass
class ReviewResponse:
    """Candidate's explanation for one review question."""
    question: ReviewQuestion
    answer: str
    understanding_score: int
    feedback: str = ""
    concepts_covered: List[str] = field(default_factory=list)
    concepts_missed: List[str] = field(default_factory=list)

    def to_record(self) -> Dict[str, Any]:
        return {
            "answer": self.answer,
            "understanding_score": self.understanding_score,
            "feedback": self.feedback,
            "concepts_covered": list(self.concepts_covered),
            "concepts_missed": list(self.concepts_missed),
        }


@dataclass
class Response:
    """The saved answer for one question. Created exactly once per question."""
    question: Question
    order: int
    kind: AnswerKind
    text: str = ""
    code: Optional[str] = None
    language: Optional[str] = None
    transcript: Optional[str] = None
    score: int = 0
    feedback: str = ""
    strengths: List[str] = field(default_factory=list)
    improvements: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0
    silence_duration: float = 0.0
    auto_submitted: bool = False
    was_skipped: bool = False
    recording_path: Optional[str] = None
    execution: Optional[ExecutionReport] = None
    review_responses: List[ReviewResponse] = field(default_factory=list)
    id: Optional[str] = None

    def to_record(self) -> Dict[str, Any]:
        """Fields handed to the session store."""
        return {
            "answer_type": self.kind.value,
            "answer_text": self.text,
            "code": self.code,
            "language": self.language,
            "transcript": self.transcript,
            "score": self.score,
            "feedback": self.feedback,
            "strengths": list(self.strengths),
            "improvements": list(self.improvements),
            "duration_seconds": self.duration_seconds,
            "silence_duration": self.silence_duration,
            "auto_submitted": self.auto_submitted,
            "was_skipped": self.was_skipped,
            "recording_path": self.recording_path,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any], question: Question) -> "Response":
        """Rebuild a stored response (without its execution and review details)."""
        return cls(
            question=question,
            order=int(record.get("question_order", 0)),
            kind=AnswerKind(record.get("answer_type", AnswerKind.TEXT.value)),
            text=record.get("answer_text") or "",
            code=record.get("code"),
            language=record.get("language"),
            transcript=record.get("transcript"),
            score=int(record.get("score") or 0),
            feedback=record.get("feedback") or "",
            strengths=list(record.get("strengths") or []),
            improvements=list(record.get("improvements") or []),
            duration_seconds=float(record.get("duration_seconds") or 0.0),
            silence_duration=float(record.get("silence_duration") or 0.0),
            auto_submitted=bool(record.get("auto_submitted", False)),
            was_skipped=bool(record.get("was_skipped", False)),
            recording_path=record.get("recording_path"),
            id=record.get("id"),
        )


@dataclass(frozen=True)
class Violation:
    """One completed absence from the proctored view."""
    type: ViolationType
    timestamp: float
    duration: float = 0.0


@dataclass
class IntegrityMetrics:
    """Running integrity counters for a session."""
    tab_switches: int = 0
    window_blurs: int = 0
    fullscreen_exits: int = 0
    total_violations: int = 0
    time_away_seconds: float = 0.0
    violations: List[Violation] = field(default_factory=list)

    def to_record(self) -> Dict[str, Any]:
        return {
            "tab_switches_count": self.tab_switches,
            "window_blur_count": self.window_blurs,
            "fullscreen_exits_count": self.fullscreen_exits,
            "total_violations": self.total_violations,
            "total_violation_time": round(self.time_away_seconds, 3),
            "violations_log": [
                {"type": v.type.value, "timestamp": v.timestamp, "duration": v.duration}
                for v in self.violations
            ],
        }


@dataclass
class SessionConfig:
    """What the candidate asked for when creating the session."""
    session_type: str = "general"
    category: Optional[str] = None
    company: Optional[str] = None
    target_role: Optional[str] = None
    domain: Optional[str] = None
    duration_minutes: int = 30
    user_id: Optional[str] = None
    question_count: int = 5

    def to_record(self) -> Dict[str, Any]:
        return {
            "session_type": self.session_type,
            "category": self.category,
            "company": self.company,
            "target_role": self.target_role,
            "domain": self.domain,
            "duration_minutes": self.duration_minutes,
            "user_id": self.user_id,
            "question_count": self.question_count,
        }


@dataclass
class InterviewSession:
    """The live session record owned by the controller."""
    id: str
    config: SessionConfig
    questions: List[Question] = field(default_factory=list)
    responses: List[Response] = field(default_factory=list)
    started_at: float = field(default_factory=time.time)
    overall_score: Optional[int] = None
    integrity_score: Optional[int] = None
    completed_at: Optional[float] = None


@dataclass
class SessionResult:
    """Final interview results."""
    session_id: str
    overall_score: int
    integrity_score: int
    questions_answered: int
    questions_skipped: int
    total_questions: int
    duration_seconds: float
    reason: str
    metrics: IntegrityMetrics
    responses: List[Response] = field(default_factory=list)
