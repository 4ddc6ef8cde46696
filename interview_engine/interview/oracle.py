"""
Response/quality oracle: scoring answers, generating test cases and
code-review follow-ups through an LLM.

Every method returns a usable result. Transport failures are retried, and
anything still failing (or unparseable) becomes the documented default.
"""
import logging
from typing import Awaitable, Callable, List, Optional

from .models import (
    Question, TestCase, ExecutionReport, ReviewQuestion, ReviewQuestionType, ReviewResponse
)
from .prompts import InterviewPrompts
from .schemas import (
    AnswerEvaluation, GeneratedTestCases, CodeQualityReview,
    ReviewQuestionSet, ExplanationEvaluation, parse_oracle_json
)
from ..config import ORACLE_ATTEMPTS, MAX_OUTPUT_TOKENS
from ..utils import resilient_call

logger = logging.getLogger("oracle")


DEFAULT_TEST_CASES = [
    TestCase("test input 1", "expected output 1", "Basic functionality test"),
    TestCase("test input 2", "expected output 2", "Edge case test"),
]

DEFAULT_REVIEW_QUESTIONS = [
    ReviewQuestion(
        id="review-1",
        question_type=ReviewQuestionType.COMPLEXITY,
        text="What is the time complexity of your solution? Can you explain how you determined this?",
        expected_concepts=["Time complexity", "Big O notation", "Algorithm analysis"],
    ),
    ReviewQuestion(
        id="review-2",
        question_type=ReviewQuestionType.LOGIC,
        text="Walk me through your approach. Why did you choose this particular method to solve the problem?",
        expected_concepts=["Problem-solving approach", "Algorithm choice", "Trade-offs"],
    ),
    ReviewQuestion(
        id="review-3",
        question_type=ReviewQuestionType.EDGE_CASES,
        text="What edge cases did you consider? Are there any scenarios where your code might fail?",
        expected_concepts=["Edge cases", "Input validation", "Error handling"],
    ),
]


def default_test_cases(count: int) -> List[TestCase]:
    """Canned test cases used when generation fails."""
    cases = list(DEFAULT_TEST_CASES[:count])
    for i in range(len(cases), count):
        cases.append(TestCase(f"test input {i + 1}", f"expected output {i + 1}", "Additional test"))
    return cases


class ResponseOracle:
    """Async facade over a text-completion client."""

    def __init__(self,
                 llm_client=None,
                 attempts: int = ORACLE_ATTEMPTS,
                 sleep: Optional[Callable[[float], Awaitable[None]]] = None,
                 max_output_tokens: int = MAX_OUTPUT_TOKENS):
        """
        Args:
            llm_client: Object with a blocking generate_content(prompt, ...) -> str,
                e.g. VertexRestClient. None disables the oracle (defaults only).
            attempts: Tries per oracle call
            sleep: Backoff sleep override (tests)
            max_output_tokens: Completion length limit
        """
        self.llm_client = llm_client
        self.attempts = attempts
        self.sleep = sleep
        self.max_output_tokens = max_output_tokens

    @property
    def enabled(self) -> bool:
        return self.llm_client is not None

    async def _complete(self, prompt: str, label: str) -> str:
        """Run one prompt; returns "" on failure so callers fall back to defaults."""
        if not self.enabled:
            return ""
        try:
            text = await resilient_call(
                self.llm_client.generate_content, prompt,
                temperature=0.0, max_output_tokens=self.max_output_tokens,
                attempts=self.attempts, sleep=self.sleep, label=f"oracle.{label}"
            )
        except Exception as e:
            logger.error(f"Oracle {label} failed: {e}")
            return ""
        logger.debug(f"Raw oracle output for {label}: {text!r}")
        return text or ""

    async def evaluate_answer(self, question: Question, answer: str) -> AnswerEvaluation:
        """Score a text or voice answer (default score 50)."""
        prompt = InterviewPrompts.evaluate_answer(
            question.text, question.question_type.value, answer, question.expected_answer_points
        )
        text = await self._complete(prompt, "evaluate_answer")
        return parse_oracle_json(text, AnswerEvaluation, AnswerEvaluation())

    async def generate_test_cases(self, question: Question, language: str, count: int) -> List[TestCase]:
        """
        Generate exactly `count` test cases for a coding question.

        Returns:
            Generated cases, or the canned set if generation fails or comes
            back short
        """
        prompt = InterviewPrompts.generate_test_cases(
            question.text, language, count, question.test_case_template
        )
        text = await self._complete(prompt, "generate_test_cases")
        parsed = parse_oracle_json(text, GeneratedTestCases, GeneratedTestCases(testCases=[]))

        cases = []
        for generated in parsed.testCases:
            case = TestCase(generated.input, generated.expectedOutput, generated.description)
            if case.key not in {c.key for c in cases}:
                cases.append(case)
        if len(cases) < count:
            logger.warning(f"Oracle produced {len(cases)}/{count} usable test cases; using defaults")
            return default_test_cases(count)
        return cases[:count]

    async def analyze_code(self, question: Question, code: str, language: str,
                           report: Optional[ExecutionReport]) -> CodeQualityReview:
        """Code-quality analysis of a submitted solution (default score 50)."""
        passed = report.passed_count if report else 0
        total = len(report.results) if report else 0
        prompt = InterviewPrompts.analyze_code_quality(question.text, code, language, passed, total)
        text = await self._complete(prompt, "analyze_code")
        return parse_oracle_json(text, CodeQualityReview, CodeQualityReview())

    async def generate_review_questions(self, question: Question, code: str, language: str,
                                        max_questions: int) -> List[ReviewQuestion]:
        """Follow-up questions about the candidate's own code."""
        if max_questions <= 0:
            return []
        prompt = InterviewPrompts.generate_review_questions(question.text, code, language, max_questions)
        text = await self._complete(prompt, "generate_review_questions")
        parsed = parse_oracle_json(text, ReviewQuestionSet, ReviewQuestionSet(questions=[]))

        questions = []
        for i, generated in enumerate(parsed.questions[:max_questions]):
            try:
                question_type = ReviewQuestionType(generated.type)
            except ValueError:
                question_type = ReviewQuestionType.LOGIC
            questions.append(ReviewQuestion(
                id=f"{question.id}-review-{i + 1}",
                question_type=question_type,
                text=generated.question,
                code_reference=generated.codeReference,
                expected_concepts=list(generated.expectedConcepts),
            ))
        if not questions:
            return list(DEFAULT_REVIEW_QUESTIONS[:max_questions])
        return questions

    async def evaluate_explanation(self, review_question: ReviewQuestion, code: str,
                                   explanation: str) -> ReviewResponse:
        """Score a code-review explanation (default 60, all concepts missed)."""
        default = ExplanationEvaluation(conceptsMissed=list(review_question.expected_concepts))
        prompt = InterviewPrompts.evaluate_explanation(
            review_question.text, review_question.expected_concepts, code, explanation
        )
        text = await self._complete(prompt, "evaluate_explanation")
        evaluation = parse_oracle_json(text, ExplanationEvaluation, default)
        return ReviewResponse(
            question=review_question,
            answer=explanation,
            understanding_score=evaluation.understandingScore,
            feedback=evaluation.feedback,
            concepts_covered=list(evaluation.conceptsCovered),
            concepts_missed=list(evaluation.conceptsMissed),
        )
