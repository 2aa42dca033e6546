"""Student-facing routes for taking and submitting quizzes."""

from datetime import datetime
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from assessment.acl import ROLE_STUDENT
from assessment.auth import require_role
from assessment.database import get_session
from assessment.models import User
from assessment.result_gate import get_own_result_view, results_published
from assessment.schemas import (
    ForfeitResponse,
    QuizSubmission,
    QuizSummary,
    QuizTakeView,
    ResultView,
    StudentQuestionRead,
    SubmissionResponse,
)
from assessment.submission import forfeit_quiz, get_quiz_for_attempt, submit_quiz

router = APIRouter(prefix="/quizzes", tags=["submissions"])


@router.get("/{quiz_id}/take", response_model=QuizTakeView)
async def take_quiz(
    quiz_id: int,
    db: AsyncSession = Depends(get_session),
    student: User = Depends(require_role(ROLE_STUDENT)),
):
    """Return the quiz with option correctness stripped."""
    quiz, questions = await get_quiz_for_attempt(db, quiz_id, student)
    return QuizTakeView(
        quiz=QuizSummary.model_validate(quiz, from_attributes=True),
        questions=[
            StudentQuestionRead.model_validate(q, from_attributes=True)
            for q in questions
        ],
    )


@router.post("/{quiz_id}/submit", response_model=SubmissionResponse)
async def submit_quiz_route(
    quiz_id: int,
    submission: QuizSubmission,
    db: AsyncSession = Depends(get_session),
    student: User = Depends(require_role(ROLE_STUDENT)),
):
    result, quiz = await submit_quiz(
        db, quiz_id, student, submission.answers, submission.time_taken_ms
    )
    return SubmissionResponse(
        result_id=result.id,
        score=result.score,
        max_score=result.max_score,
        passed=result.passed,
        needs_manual_grading=result.needs_manual_grading,
        results_published=results_published(quiz, datetime.utcnow()),
        results_publish_datetime=quiz.results_publish_datetime,
    )


@router.post("/{quiz_id}/expire", response_model=ForfeitResponse)
async def expire_quiz_route(
    quiz_id: int,
    db: AsyncSession = Depends(get_session),
    student: User = Depends(require_role(ROLE_STUDENT)),
):
    """Record that the student's time limit ran out before submitting."""
    result = await forfeit_quiz(db, quiz_id, student)
    return ForfeitResponse(result_id=result.id)


@router.get(
    "/{quiz_id}/my-result",
    response_model=ResultView,
    response_model_exclude_unset=True,
)
async def my_result(
    quiz_id: int,
    db: AsyncSession = Depends(get_session),
    student: User = Depends(require_role(ROLE_STUDENT)),
):
    return await get_own_result_view(db, quiz_id, student)
