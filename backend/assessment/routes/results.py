"""Routes for viewing and manually grading quiz results."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from assessment.acl import GRADER_ROLES, ROLE_PROFESSOR
from assessment.auth import get_current_user, require_role
from assessment.crud import get_pending_results_for_instructor
from assessment.database import get_session
from assessment.grading import grade_question
from assessment.models import User
from assessment.result_gate import get_result_view
from assessment.schemas import (
    GradeRequest,
    GradeResponse,
    PendingResultRead,
    ResultView,
)

router = APIRouter(prefix="/results", tags=["results"])


@router.get("/pending", response_model=list[PendingResultRead])
async def pending_results(
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role(ROLE_PROFESSOR)),
):
    """Results on the caller's courses that still need a grader."""
    rows = await get_pending_results_for_instructor(db, current_user.id)
    return [
        PendingResultRead(
            result_id=result.id,
            quiz_id=quiz.id,
            quiz_title=quiz.title,
            course_id=quiz.course_id,
            user_id=student.id,
            student_name=student.name,
            student_email=student.email,
            score=result.score,
            max_score=result.max_score,
            completed_at=result.completed_at,
        )
        for result, quiz, student in rows
    ]


@router.get(
    "/{result_id}",
    response_model=ResultView,
    response_model_exclude_unset=True,
)
async def read_result(
    result_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return await get_result_view(db, result_id, current_user)


@router.post("/{result_id}/grade", response_model=GradeResponse)
async def grade_result_question(
    result_id: int,
    data: GradeRequest,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role(*GRADER_ROLES)),
):
    outcome = await grade_question(
        db,
        result_id,
        data.question_id,
        data.awarded_points,
        current_user,
        feedback=data.feedback,
    )
    return GradeResponse(
        total_score=outcome.total_score,
        max_score=outcome.max_score,
        percentage=outcome.percentage,
        passed=outcome.passed,
        needs_manual_grading=outcome.needs_manual_grading,
    )
