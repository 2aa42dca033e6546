"""Manual grading of a stored result.

Every grade call recomputes the result's total from scratch: the stored
answers are re-scored with the shared aggregator over the questions the
attempt was submitted against, and the professor's grades are merged on
top.  The write back is guarded by the result's
``version`` column so two graders working on the same result cannot
overwrite each other; the losing call rolls back and runs the whole
cycle again against the winner's state.
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from assessment.aggregator import (
    aggregate_answers,
    clamp_points,
    merge_manual_grades,
    passed_after_grading,
    percentage,
)
from assessment.crud import (
    get_attempt_questions,
    get_manual_grades,
    get_quiz,
    is_course_grader,
    lock_result,
    upsert_manual_grade,
)
from assessment.errors import (
    Expired,
    GradingConflict,
    QuestionNotFound,
    QuizEngineError,
    ResultNotFound,
    Unauthorized,
)
from assessment.models import QuizResult, User
from assessment.submission import is_forfeit

logger = logging.getLogger(__name__)

GRADING_MAX_RETRIES = int(os.getenv("GRADING_MAX_RETRIES", "5"))


@dataclass
class GradeOutcome:
    total_score: float
    max_score: float
    percentage: float
    passed: bool
    needs_manual_grading: bool


class _StaleResult(Exception):
    """Another grader committed between our read and our write."""


async def _grade_once(
    db: AsyncSession,
    result_id: int,
    question_id: int,
    awarded_points: float,
    feedback: Optional[str],
    grader_id: int,
    grader_role: str,
    now: datetime,
) -> GradeOutcome:
    result = await lock_result(db, result_id)
    if result is None:
        raise ResultNotFound()
    seen_version = result.version
    quiz = await get_quiz(db, result.quiz_id)
    if not await is_course_grader(db, grader_id, grader_role, quiz.course_id):
        raise Unauthorized("You do not teach the course of this quiz")

    if is_forfeit(result):
        raise Expired(
            "This attempt ran out of time and has nothing to grade",
            result_id=result.id,
        )

    questions = await get_attempt_questions(db, result)
    question = next((q for q in questions if q.id == question_id), None)
    if question is None:
        raise QuestionNotFound()

    points = clamp_points(awarded_points, question.points)
    await upsert_manual_grade(
        db, result.id, question, points, feedback, grader_id, now
    )
    grades = await get_manual_grades(db, result.id)

    aggregate = aggregate_answers(questions, result.answers)
    merged = merge_manual_grades(
        aggregate, {g.question_id: g.awarded_points for g in grades}
    )
    pct = percentage(merged.score, result.max_score)
    passed = passed_after_grading(pct, quiz.passing_score)

    written = await db.execute(
        update(QuizResult)
        .where(QuizResult.id == result.id, QuizResult.version == seen_version)
        .values(
            score=merged.score,
            passed=passed,
            needs_manual_grading=merged.needs_manual_grading,
            version=seen_version + 1,
        )
    )
    if written.rowcount != 1:
        raise _StaleResult()
    await db.commit()
    return GradeOutcome(
        total_score=merged.score,
        max_score=result.max_score,
        percentage=pct,
        passed=passed,
        needs_manual_grading=merged.needs_manual_grading,
    )


async def grade_question(
    db: AsyncSession,
    result_id: int,
    question_id: int,
    awarded_points: float,
    grader: User,
    feedback: Optional[str] = None,
    now: Optional[datetime] = None,
) -> GradeOutcome:
    """Store a grader's points for one question and recompute the result.

    ``awarded_points`` is clamped to ``[0, question.points]``.  Calling this
    twice with the same arguments leaves the result in the same state.
    """
    now = now or datetime.utcnow()
    # rollback expires loaded instances, keep plain copies of the principal
    grader_id, grader_role = grader.id, grader.role

    for attempt in range(1, GRADING_MAX_RETRIES + 1):
        try:
            outcome = await _grade_once(
                db,
                result_id,
                question_id,
                awarded_points,
                feedback,
                grader_id,
                grader_role,
                now,
            )
        except QuizEngineError:
            await db.rollback()
            raise
        except (_StaleResult, IntegrityError):
            await db.rollback()
            logger.warning(
                "Concurrent grading on result %s, retrying (attempt %s/%s)",
                result_id,
                attempt,
                GRADING_MAX_RETRIES,
            )
            continue
        logger.info(
            "Grader %s graded question %s of result %s: total %s/%s",
            grader_id,
            question_id,
            result_id,
            outcome.total_score,
            outcome.max_score,
        )
        return outcome

    raise GradingConflict(result_id=result_id)
