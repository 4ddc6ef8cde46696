"""
Interview prompt templates.

This module contains all the prompt templates sent to the response/quality
oracle, keeping them separate from the controller logic for easier editing.
"""
import json
from typing import List, Optional


class InterviewPrompts:
    """Collection of all oracle prompts."""

    @staticmethod
    def evaluate_answer(question_text: str, question_type: str, answer: str,
                        expected_points: Optional[List[str]] = None) -> str:
        """Prompt for scoring a text or voice answer."""
        points = ""
        if expected_points:
            points = f"\nKey points a strong answer covers: {json.dumps(expected_points, ensure_ascii=False)}"
        return f"""
You are an experienced technical interviewer evaluating a candidate's answer.

Question type: {question_type}
Question: {question_text}{points}

Candidate's answer:
{answer}

Evaluate the answer for relevance, depth, clarity and structure.
Respond with JSON only:
{{"score": <integer 0-100>, "feedback": "<2-3 sentences>", "strengths": ["..."], "improvements": ["..."]}}
        """.strip()

    @staticmethod
    def generate_test_cases(question_text: str, language: str, count: int,
                            template: Optional[str] = None) -> str:
        """Prompt for generating test cases for a coding question."""
        template_note = f"\nTest case template / hints: {template}" if template else ""
        return f"""
Generate EXACTLY {count} test cases for this coding problem.
The first must check basic functionality; the second must be an edge case.

Problem: {question_text}
Language: {language}{template_note}

Inputs are passed on stdin and expected outputs are compared to stdout, so write
both exactly as plain text.
Respond with JSON only:
{{"testCases": [{{"input": "<stdin>", "expectedOutput": "<stdout>", "description": "<what it checks>"}}]}}
        """.strip()

    @staticmethod
    def analyze_code_quality(question_text: str, code: str, language: str,
                             passed_count: int, total_count: int) -> str:
        """Prompt for analyzing a submitted solution."""
        return f"""
You are reviewing a candidate's solution in a coding interview.

Problem: {question_text}
Language: {language}
Test results: {passed_count}/{total_count} test cases passed

Code:
```{language.lower()}
{code}
```

Assess correctness, time/space complexity, code quality and best practices.
Respond with JSON only:
{{"correctness": "<summary>", "complexity": "<big-O>", "codeQuality": "<summary>",
"bestPractices": ["..."], "improvements": ["..."], "score": <integer 0-100>}}
        """.strip()

    @staticmethod
    def generate_review_questions(question_text: str, code: str, language: str, count: int) -> str:
        """Prompt for follow-up questions that check the candidate understands their code."""
        return f"""
A candidate just submitted this solution. Ask up to {count} short follow-up questions that
check whether they understand their own code: its complexity, its logic and its edge cases.

Problem: {question_text}
Language: {language}

Code:
```{language.lower()}
{code}
```

Respond with JSON only:
{{"questions": [{{"type": "complexity|logic|edge_cases|optimization", "question": "<question>",
"codeReference": "<relevant line or null>", "expectedConcepts": ["..."]}}]}}
        """.strip()

    @staticmethod
    def evaluate_explanation(review_question: str, expected_concepts: List[str],
                             code: str, explanation: str) -> str:
        """Prompt for scoring a code-review explanation."""
        return f"""
Evaluate how well the candidate explains their own code.

Code:
{code}

Follow-up question: {review_question}
Concepts a complete explanation mentions: {json.dumps(expected_concepts, ensure_ascii=False)}

Candidate's explanation:
{explanation}

Respond with JSON only:
{{"understandingScore": <integer 0-100>, "feedback": "<1-2 sentences>",
"conceptsCovered": ["..."], "conceptsMissed": ["..."]}}
        """.strip()
