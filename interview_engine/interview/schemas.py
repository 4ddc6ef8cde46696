"""
Structured schemas for oracle (LLM) replies.

The oracle answers in free text; the first {...} block is extracted, parsed as
JSON and validated against one of these models. Callers always get a valid
object back: anything unparseable becomes the documented default.
"""
import json
import logging
import math
import re
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from ..config import DEFAULT_ANSWER_SCORE, DEFAULT_CODE_QUALITY_SCORE, DEFAULT_EXPLANATION_SCORE

logger = logging.getLogger("oracle")

_JSON_BLOCK = re.compile(r"\{.*\}", re.DOTALL)

T = TypeVar("T", bound=BaseModel)


def _clamp_score(value: Any) -> int:
    # Validators must raise ValueError for pydantic to report a ValidationError
    try:
        score = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"score is not a number: {value!r}")
    if not math.isfinite(score):
        raise ValueError(f"score is not finite: {value!r}")
    return max(0, min(100, int(round(score))))


class AnswerEvaluation(BaseModel):
    """Score and feedback for a text or voice answer."""
    score: int = DEFAULT_ANSWER_SCORE
    feedback: str = "Unable to evaluate answer automatically."
    strengths: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)

    @field_validator("score", mode="before")
    @classmethod
    def clamp_score(cls, v):
        return _clamp_score(v)


class GeneratedTestCase(BaseModel):
    input: str
    expectedOutput: str
    description: str = ""

    @field_validator("input", "expectedOutput", mode="before")
    @classmethod
    def stringify(cls, v):
        return v if isinstance(v, str) else json.dumps(v)


class GeneratedTestCases(BaseModel):
    testCases: List[GeneratedTestCase]


class CodeQualityReview(BaseModel):
    """Code-quality analysis used as the score of a code answer."""
    correctness: str = "Unable to analyze"
    complexity: str = "N/A"
    codeQuality: str = "N/A"
    bestPractices: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)
    score: int = DEFAULT_CODE_QUALITY_SCORE

    @field_validator("score", mode="before")
    @classmethod
    def clamp_score(cls, v):
        return _clamp_score(v)


class GeneratedReviewQuestion(BaseModel):
    type: str = "logic"
    question: str
    codeReference: Optional[str] = None
    expectedConcepts: List[str] = Field(default_factory=list)


class ReviewQuestionSet(BaseModel):
    questions: List[GeneratedReviewQuestion]


class ExplanationEvaluation(BaseModel):
    """Understanding score for a code-review explanation."""
    understandingScore: int = Field(DEFAULT_EXPLANATION_SCORE,
                                    validation_alias=AliasChoices("understandingScore", "score"))
    feedback: str = "Unable to evaluate explanation automatically."
    conceptsCovered: List[str] = Field(default_factory=list)
    conceptsMissed: List[str] = Field(default_factory=list)

    @field_validator("understandingScore", mode="before")
    @classmethod
    def clamp_score(cls, v):
        return _clamp_score(v)


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """
    Extract the first {...} block from free text and parse it.

    Returns:
        The parsed object, or None if no valid JSON object is found
    """
    if not text:
        return None
    match = _JSON_BLOCK.search(text)
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        logger.warning(f"Oracle reply contained invalid JSON: {e}")
        return None
    return data if isinstance(data, dict) else None


def parse_oracle_json(text: str, model: Type[T], default: T) -> T:
    """
    Parse an oracle reply into `model`, falling back to `default`.

    Args:
        text: Raw oracle reply
        model: Pydantic model to validate against
        default: Object returned when the reply is unusable

    Returns:
        A validated model instance
    """
    data = extract_json_object(text)
    if data is None:
        logger.warning(f"No JSON object in oracle reply; using default {model.__name__}")
        return default
    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Oracle reply failed {model.__name__} validation: {e}")
        return default
