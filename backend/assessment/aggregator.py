"""Shared score aggregation for submission and manual grading.

Submission scores the incoming answers with :func:`aggregate_answers`;
manual grading re-runs the very same function over the answers stored on
the result and folds the professor's grades in with
:func:`merge_manual_grades`.  Both paths therefore always agree on what an
automatic question is worth.
"""

import math
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Mapping, Optional, Sequence

from assessment.answers import parse_answer
from assessment.models import QuizQuestion
from assessment.scoring import QuestionScore, score_question


@dataclass
class Aggregate:
    auto_score: float = 0.0
    max_score: float = 0.0
    needs_manual_grading: bool = False
    outcomes: dict[int, QuestionScore] = field(default_factory=dict)
    # normalized payloads keyed by str(question id), as stored on QuizResult
    answers: dict[str, Any] = field(default_factory=dict)

    @property
    def manual_question_ids(self) -> set[int]:
        return {qid for qid, o in self.outcomes.items() if o.requires_manual}


@dataclass
class MergedScore:
    score: float
    needs_manual_grading: bool


def round_score(value: float) -> float:
    return round(value, 2)


def _lookup(answers: Mapping, question_id: int) -> Any:
    key = str(question_id)
    if key in answers:
        return answers[key]
    return answers.get(question_id)


def aggregate_answers(
    questions: Sequence[QuizQuestion], answers: Optional[Mapping]
) -> Aggregate:
    """Score every question of a quiz against a mapping of raw answers.

    ``questions`` must have their ``options`` loaded.  Keys of ``answers``
    may be ints or their string form; unknown keys are ignored.
    """
    answers = answers or {}
    agg = Aggregate()
    for question in questions:
        agg.max_score += question.points
        answer = parse_answer(question.question_type, _lookup(answers, question.id))
        outcome = score_question(question, question.options, answer)
        agg.outcomes[question.id] = outcome
        agg.answers[str(question.id)] = answer.to_payload() if answer else None
        if outcome.requires_manual:
            agg.needs_manual_grading = True
        else:
            agg.auto_score += outcome.points
    agg.auto_score = round_score(agg.auto_score)
    agg.max_score = round_score(agg.max_score)
    return agg


def merge_manual_grades(
    aggregate: Aggregate, manual_grades: Mapping[int, float]
) -> MergedScore:
    """Combine automatic points with ``{question_id: awarded_points}``.

    A manual grade replaces the automatic points of its question.  Grades
    for questions that are no longer part of the quiz are ignored.  The
    result still needs grading while any manual question lacks a grade.
    """
    total = 0.0
    pending = False
    for question_id, outcome in aggregate.outcomes.items():
        if question_id in manual_grades:
            total += manual_grades[question_id]
        elif outcome.requires_manual:
            pending = True
        else:
            total += outcome.points
    return MergedScore(score=round_score(total), needs_manual_grading=pending)


def percentage(score: float, max_score: float) -> float:
    """Percentage with one decimal place, rounding halves up."""
    if max_score <= 0:
        return 0.0
    scaled = Decimal(str(score)) / Decimal(str(max_score)) * 1000
    return float(scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP) / 10)


def passed_on_submission(auto_score: float, max_score: float, passing_score: float) -> bool:
    if max_score <= 0:
        return False
    return auto_score / max_score >= passing_score / 100


def passed_after_grading(pct: float, passing_score: float) -> bool:
    return pct >= passing_score


def clamp_points(awarded: float, max_points: float) -> float:
    return min(max(awarded, 0.0), max_points)


def minutes_from_ms(time_taken_ms: Optional[int]) -> int:
    if not time_taken_ms or time_taken_ms < 0:
        return 0
    return math.floor(time_taken_ms / 60000 + 0.5)
