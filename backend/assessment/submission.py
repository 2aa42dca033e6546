"""Submission processing: eligibility checks, automatic scoring, storage.

A user gets exactly one :class:`QuizResult` per quiz.  The preconditions
are checked up front so callers receive a precise error, but the
``(quiz_id, user_id)`` unique constraint is what finally decides a race
between two simultaneous submissions.
"""

import logging
from datetime import datetime
from typing import Any, Mapping, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from assessment.aggregator import (
    aggregate_answers,
    minutes_from_ms,
    passed_on_submission,
)
from assessment.crud import (
    create_result,
    get_questions_with_options,
    get_quiz,
    get_result_for_user,
    is_enrolled,
)
from assessment.errors import (
    AlreadyCompleted,
    Ended,
    Expired,
    NotEnrolled,
    NotStarted,
    QuizEngineError,
    QuizNotFound,
)
from assessment.models import Quiz, QuizQuestion, QuizResult, User

logger = logging.getLogger(__name__)


def is_forfeit(result: QuizResult) -> bool:
    """A result with nothing scored out of nothing marks a timed-out attempt."""
    return result.score == 0 and result.max_score == 0


def completed_error(result: QuizResult) -> QuizEngineError:
    if is_forfeit(result):
        return Expired(result_id=result.id)
    return AlreadyCompleted(result_id=result.id)


async def check_can_attempt(
    db: AsyncSession, quiz_id: int, user: User, now: datetime
) -> Quiz:
    """Run the eligibility chain in order and return the quiz."""
    quiz = await get_quiz(db, quiz_id)
    if quiz is None:
        raise QuizNotFound()
    if not await is_enrolled(db, user.id, quiz.course_id):
        raise NotEnrolled()
    if quiz.start_datetime and now < quiz.start_datetime:
        raise NotStarted(quiz.start_datetime)
    if quiz.end_datetime and now > quiz.end_datetime:
        raise Ended(quiz.end_datetime)
    existing = await get_result_for_user(db, quiz.id, user.id)
    if existing:
        raise completed_error(existing)
    return quiz


async def get_quiz_for_attempt(
    db: AsyncSession, quiz_id: int, user: User, now: Optional[datetime] = None
) -> tuple[Quiz, list[QuizQuestion]]:
    quiz = await check_can_attempt(db, quiz_id, user, now or datetime.utcnow())
    return quiz, await get_questions_with_options(db, quiz.id)


async def _insert_once(db: AsyncSession, result: QuizResult) -> QuizResult:
    # rollback expires every loaded instance, read the keys first
    quiz_id, user_id = result.quiz_id, result.user_id
    try:
        return await create_result(db, result)
    except IntegrityError:
        await db.rollback()
        existing = await get_result_for_user(db, quiz_id, user_id)
        if existing is None:
            raise
        logger.info(
            "Duplicate result for quiz %s user %s rejected by constraint",
            quiz_id,
            user_id,
        )
        raise completed_error(existing)


async def submit_quiz(
    db: AsyncSession,
    quiz_id: int,
    user: User,
    answers: Optional[Mapping[str, Any]],
    time_taken_ms: Optional[int] = None,
    now: Optional[datetime] = None,
) -> tuple[QuizResult, Quiz]:
    """Score a submission and store its result.

    Returns the stored result and its quiz.  Raises a
    :class:`~assessment.errors.QuizEngineError` subclass when the user may
    not submit or an answer does not fit its question.
    """
    now = now or datetime.utcnow()
    try:
        quiz = await check_can_attempt(db, quiz_id, user, now)
        questions = await get_questions_with_options(db, quiz.id)
        aggregate = aggregate_answers(questions, answers)
    except QuizEngineError as exc:
        logger.info(
            "Submission by user %s for quiz %s rejected: %s", user.id, quiz_id, exc.code
        )
        raise

    result = QuizResult(
        quiz_id=quiz.id,
        user_id=user.id,
        answers=aggregate.answers,
        auto_score=aggregate.auto_score,
        score=aggregate.auto_score,
        max_score=aggregate.max_score,
        passed=passed_on_submission(
            aggregate.auto_score, aggregate.max_score, quiz.passing_score
        ),
        needs_manual_grading=aggregate.needs_manual_grading,
        time_taken_minutes=minutes_from_ms(time_taken_ms),
        completed_at=now,
    )
    result = await _insert_once(db, result)
    logger.info(
        "User %s submitted quiz %s: %s/%s%s",
        user.id,
        quiz.id,
        result.auto_score,
        result.max_score,
        " (needs manual grading)" if result.needs_manual_grading else "",
    )
    return result, quiz


async def forfeit_quiz(
    db: AsyncSession, quiz_id: int, user: User, now: Optional[datetime] = None
) -> QuizResult:
    """Record that the user's time ran out before they submitted."""
    now = now or datetime.utcnow()
    quiz = await check_can_attempt(db, quiz_id, user, now)
    result = QuizResult(
        quiz_id=quiz.id,
        user_id=user.id,
        answers={},
        auto_score=0.0,
        score=0.0,
        max_score=0.0,
        passed=False,
        needs_manual_grading=False,
        time_taken_minutes=quiz.time_limit_minutes or 0,
        completed_at=now,
    )
    result = await _insert_once(db, result)
    logger.info("User %s ran out of time on quiz %s", user.id, quiz.id)
    return result
