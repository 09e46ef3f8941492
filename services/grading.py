"""
Answer evaluation and attempt scoring.

Everything here is pure: no database access and no logging side effects, so the
same functions grade attempts in the services and in the tests.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

from core.exceptions import ValidationError

MULTIPLE_CHOICE = "multiple_choice"
CHECKBOX = "checkbox"
SHORT_ANSWER = "short_answer"


@dataclass(frozen=True)
class SingleAnswer:
    """multiple_choice: exact, case-sensitive match of one option."""
    value: str

    def matches(self, submitted: Any) -> bool:
        return isinstance(submitted, str) and submitted == self.value


@dataclass(frozen=True)
class MultipleAnswers:
    """checkbox: the submitted selection must equal the key, order-independent."""
    values: Tuple[str, ...]

    def matches(self, submitted: Any) -> bool:
        if not isinstance(submitted, (list, tuple)):
            return False
        if not all(isinstance(item, str) for item in submitted):
            return False
        # Sequence comparison after sorting, so duplicates count
        return sorted(submitted) == sorted(self.values)


@dataclass(frozen=True)
class KeywordAnswers:
    """short_answer: normalized text must equal one of the keywords."""
    keywords: Tuple[str, ...]

    def matches(self, submitted: Any) -> bool:
        if not isinstance(submitted, str):
            return False
        normalized = submitted.strip().lower()
        return any(normalized == keyword.strip().lower() for keyword in self.keywords)


CorrectAnswer = Union[SingleAnswer, MultipleAnswers, KeywordAnswers]


def _as_strings(raw: Any) -> Tuple[str, ...]:
    if isinstance(raw, str):
        return (raw,)
    if isinstance(raw, (list, tuple, set, frozenset)):
        return tuple(str(item) for item in raw)
    raise ValidationError(f"Unsupported correct answer value: {raw!r}")


def correct_answer_for(question_type: str, raw: Any) -> CorrectAnswer:
    """Build the answer key variant selected by the question type."""
    if question_type == MULTIPLE_CHOICE:
        values = _as_strings(raw)
        if len(values) != 1:
            raise ValidationError("multiple_choice questions take exactly one correct answer")
        return SingleAnswer(values[0])
    if question_type == CHECKBOX:
        return MultipleAnswers(_as_strings(raw))
    if question_type == SHORT_ANSWER:
        return KeywordAnswers(_as_strings(raw))
    raise ValidationError(f"Unsupported question type: {question_type!r}")


@dataclass(frozen=True)
class GradableQuestion:
    id: Any
    type: str
    correct_answers: Any
    points: int = 1
    explanation: Optional[str] = None


def evaluate_answer(question, submitted: Any) -> bool:
    """
    Grade one submitted answer against a question.

    ``question`` is anything exposing ``type`` and ``correct_answers`` (an ORM
    Question or a GradableQuestion). A missing answer is simply incorrect.
    """
    key = correct_answer_for(question.type, question.correct_answers)
    if submitted is None:
        return False
    return key.matches(submitted)


@dataclass(frozen=True)
class QuestionResult:
    correct: bool
    explanation: Optional[str] = None


@dataclass
class ScoreResult:
    total_score: int
    total_points: int
    percentage: int
    results: Dict[Any, QuestionResult] = field(default_factory=dict)


def calculate_percentage(score: int, total_points: int) -> int:
    """round(100 * score / total), halves rounded up, 0 when the quiz has no points."""
    if total_points <= 0:
        return 0
    percentage = (200 * score + total_points) // (2 * total_points)
    return max(0, min(100, percentage))


def _lookup(answers: Mapping, question_id: Any) -> Any:
    # Answers decoded from JSON carry string keys
    if question_id in answers:
        return answers[question_id]
    return answers.get(str(question_id))


def score_attempt(
    questions: Iterable,
    answers: Optional[Mapping] = None,
    total_points: Optional[int] = None,
) -> ScoreResult:
    questions = list(questions)
    answers = answers or {}
    if total_points is None:
        total_points = sum(q.points for q in questions)

    total_score = 0
    results: Dict[Any, QuestionResult] = {}
    for question in questions:
        is_correct = evaluate_answer(question, _lookup(answers, question.id))
        if is_correct:
            total_score += question.points
        results[question.id] = QuestionResult(correct=is_correct, explanation=question.explanation)

    return ScoreResult(
        total_score=total_score,
        total_points=total_points,
        percentage=calculate_percentage(total_score, total_points),
        results=results,
    )
