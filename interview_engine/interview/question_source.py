"""
Question selection for a session.
"""
import json
import logging
import random
from typing import Any, Dict, List, Optional, Sequence

from .models import Question, QuestionType, SessionConfig

logger = logging.getLogger("question_source")

CODING_LANGUAGES = ["Python", "JavaScript", "Java", "C++"]

DEFAULT_QUESTIONS = [
    Question(
        id="default-1",
        question_type=QuestionType.INTRODUCTION,
        text=("Please introduce yourself. Tell me about your background, current role, "
              "and what you're looking for in your next opportunity."),
        category="Behavioral",
        difficulty="Easy",
        expected_answer_points=["Professional background", "Current role and responsibilities",
                                "Career goals", "Relevant skills"],
    ),
    Question(
        id="default-2",
        question_type=QuestionType.BEHAVIORAL,
        text=("Tell me about a challenging project you worked on. What was your role, "
              "what obstacles did you face, and how did you overcome them?"),
        category="Behavioral",
        difficulty="Medium",
        expected_answer_points=["Project context", "Specific challenges", "Your actions", "Results achieved"],
    ),
    Question(
        id="default-3",
        question_type=QuestionType.TECHNICAL,
        text="Explain the difference between REST and GraphQL APIs. When would you choose one over the other?",
        category="Technical",
        difficulty="Medium",
        expected_answer_points=["REST characteristics", "GraphQL characteristics",
                                "Use cases for each", "Trade-offs"],
    ),
    Question(
        id="default-4",
        question_type=QuestionType.CODING,
        text=("Write a function to check if a given string is a palindrome. "
              "The function should ignore spaces and be case-insensitive."),
        category="Coding",
        difficulty="Easy",
        requires_coding=True,
        programming_languages=list(CODING_LANGUAGES),
        default_language="Python",
        test_case_template='"racecar" -> true; "A man a plan a canal Panama" -> true; "hello" -> false',
    ),
    Question(
        id="default-5",
        question_type=QuestionType.CODING,
        text="Implement a function to reverse a linked list. Return the head of the reversed list.",
        category="Coding",
        difficulty="Medium",
        requires_coding=True,
        programming_languages=list(CODING_LANGUAGES),
        default_language="Python",
        test_case_template="[1, 2, 3, 4, 5] -> [5, 4, 3, 2, 1]; [1, 2] -> [2, 1]; [1] -> [1]",
    ),
]


def question_from_dict(data: Dict[str, Any]) -> Question:
    """Build a Question from a bank record (snake_case keys)."""
    question_type = QuestionType(data.get("question_type", "technical"))
    requires_coding = bool(data.get("requires_coding", question_type == QuestionType.CODING))
    languages = list(data.get("programming_languages") or (CODING_LANGUAGES if requires_coding else []))
    template = data.get("test_case_template")
    if template is not None and not isinstance(template, str):
        template = json.dumps(template)
    return Question(
        id=str(data["id"]),
        question_type=question_type,
        text=data.get("question_text") or data["text"],
        category=data.get("category", "general"),
        difficulty=data.get("difficulty", "medium"),
        requires_coding=requires_coding,
        programming_languages=languages,
        default_language=data.get("default_language") or (languages[0] if languages else None),
        test_case_template=template,
        expected_answer_points=list(data.get("expected_answer_points") or []),
        company=data.get("company_name") or data.get("company"),
        role=data.get("role"),
        domain=data.get("domain"),
    )


class QuestionSource:
    """Supplies the ordered question list for a session configuration."""

    def __init__(self, bank: Optional[Sequence[Question]] = None, rng: Optional[random.Random] = None):
        self.bank: List[Question] = list(bank or [])
        self.rng = rng or random.Random()

    @classmethod
    def from_json_file(cls, path: str, rng: Optional[random.Random] = None) -> "QuestionSource":
        """Load a bank from a JSON file holding a list of question records."""
        with open(path, "r", encoding="utf-8") as f:
            records = json.load(f)
        bank = [question_from_dict(r) for r in records if r.get("is_active", True)]
        logger.info(f"Loaded {len(bank)} questions from {path}")
        return cls(bank, rng=rng)

    def select_questions(self, config: SessionConfig, count: Optional[int] = None) -> List[Question]:
        """
        Select questions for a session.

        Matching bank questions (company, role and domain, where configured)
        are mixed as: the first introduction question, then 30% behavioral,
        30% technical and the rest coding, each group shuffled. With no match
        the deterministic default set is used.

        Args:
            config: Session configuration
            count: Number of questions (defaults to config.question_count)

        Returns:
            Ordered list of questions (may be shorter than count if the bank is small)
        """
        count = count if count is not None else config.question_count
        matches = [q for q in self.bank if self._matches(q, config)]
        if not matches:
            logger.info("No bank questions match this configuration; using default questions")
            return self.default_questions(count)
        mixed = self._mix(matches, count)
        if not mixed:
            logger.warning(f"Question mix produced nothing from {len(matches)} matches; using default questions")
            return self.default_questions(count)
        return mixed

    @staticmethod
    def default_questions(count: int) -> List[Question]:
        return list(DEFAULT_QUESTIONS[:max(0, count)])

    @staticmethod
    def _matches(question: Question, config: SessionConfig) -> bool:
        if config.company and question.company != config.company:
            return False
        if config.target_role and question.role != config.target_role:
            return False
        if config.domain and question.domain != config.domain:
            return False
        return True

    def _shuffled(self, questions: List[Question]) -> List[Question]:
        shuffled = list(questions)
        self.rng.shuffle(shuffled)
        return shuffled

    def _mix(self, questions: List[Question], count: int) -> List[Question]:
        by_type = {t: [q for q in questions if q.question_type == t] for t in QuestionType}
        mixed: List[Question] = []
        if by_type[QuestionType.INTRODUCTION] and count > 0:
            mixed.append(by_type[QuestionType.INTRODUCTION][0])

        remaining = count - len(mixed)
        behavioral_count = int(remaining * 0.3)
        technical_count = int(remaining * 0.3)
        coding_count = remaining - behavioral_count - technical_count

        mixed.extend(self._shuffled(by_type[QuestionType.BEHAVIORAL])[:behavioral_count])
        mixed.extend(self._shuffled(by_type[QuestionType.TECHNICAL])[:technical_count])
        mixed.extend(self._shuffled(by_type[QuestionType.CODING])[:coding_count])
        return mixed
