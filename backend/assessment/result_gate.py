"""Visibility rules for a stored result.

Until a quiz's ``results_publish_datetime`` passes, a student only sees
the headline numbers of their own result.  Graders of the course always
get the full breakdown because they need it to grade.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from assessment.aggregator import aggregate_answers, percentage
from assessment.crud import (
    get_attempt_questions,
    get_manual_grades,
    get_quiz,
    get_result,
    get_result_for_user,
    is_course_grader,
)
from assessment.errors import ResultNotFound, Unauthorized
from assessment.models import Quiz, QuizResult, User
from assessment.schemas.quiz import QuestionRead, QuizSummary
from assessment.schemas.result import (
    ManualGradeRead,
    QuestionBreakdown,
    ResultSummary,
    ResultView,
)


def results_published(quiz: Quiz, now: datetime) -> bool:
    if quiz.results_publish_datetime is None:
        return True
    return now >= quiz.results_publish_datetime


def summarize_result(result: QuizResult) -> ResultSummary:
    return ResultSummary(
        id=result.id,
        score=result.score,
        max_score=result.max_score,
        auto_score=result.auto_score,
        percentage=percentage(result.score, result.max_score),
        passed=result.passed,
        needs_manual_grading=result.needs_manual_grading,
        time_taken_minutes=result.time_taken_minutes,
        completed_at=result.completed_at,
    )


async def build_result_view(
    db: AsyncSession,
    result: QuizResult,
    quiz: Quiz,
    viewer: User,
    now: datetime,
) -> ResultView:
    grader = await is_course_grader(db, viewer.id, viewer.role, quiz.course_id)
    if not grader and result.user_id != viewer.id:
        raise Unauthorized("You cannot view this result")

    published = results_published(quiz, now)
    view = ResultView(
        quiz=QuizSummary.model_validate(quiz, from_attributes=True),
        result=summarize_result(result),
        results_published=published,
        publish_datetime=quiz.results_publish_datetime,
    )
    if not published and not grader:
        return view

    questions = await get_attempt_questions(db, result)
    grades = await get_manual_grades(db, result.id)
    grade_map = {g.question_id: g for g in grades}
    aggregate = aggregate_answers(questions, result.answers)

    view.questions = [
        QuestionRead.model_validate(q, from_attributes=True) for q in questions
    ]
    view.student_answers = result.answers
    breakdown = {}
    for q in questions:
        outcome = aggregate.outcomes[q.id]
        grade = grade_map.get(q.id)
        breakdown[str(q.id)] = QuestionBreakdown(
            auto_points=outcome.points,
            requires_manual=outcome.requires_manual,
            awarded_points=grade.awarded_points if grade else None,
            points=grade.awarded_points if grade else outcome.points,
            max_points=q.points,
        )
    view.breakdown = breakdown
    view.manual_grades = {
        str(qid): ManualGradeRead(awarded_points=g.awarded_points, feedback=g.feedback)
        for qid, g in grade_map.items()
    }
    return view


async def get_result_view(
    db: AsyncSession, result_id: int, viewer: User, now: Optional[datetime] = None
) -> ResultView:
    result = await get_result(db, result_id)
    if result is None:
        raise ResultNotFound()
    quiz = await get_quiz(db, result.quiz_id)
    return await build_result_view(db, result, quiz, viewer, now or datetime.utcnow())


async def get_own_result_view(
    db: AsyncSession, quiz_id: int, viewer: User, now: Optional[datetime] = None
) -> ResultView:
    result = await get_result_for_user(db, quiz_id, viewer.id)
    if result is None:
        raise ResultNotFound("You have not completed this quiz")
    quiz = await get_quiz(db, quiz_id)
    return await build_result_view(db, result, quiz, viewer, now or datetime.utcnow())
