"""Admin-only endpoints for the collaborators the engine relies on.

Users, courses and enrollments are owned by the wider platform; these
routes exist so an installation can be set up and exercised on its own.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from assessment.acl import ALL_ROLES, ROLE_ADMIN, ROLE_PROFESSOR, ROLE_STUDENT
from assessment.database import get_session
from assessment.auth import require_role
from assessment.models import User, Course
from assessment.schemas import (
    UserResponse,
    RoleUpdate,
    CourseCreate,
    CourseRead,
    EnrollmentCreate,
    InstructorAssign,
)
from assessment.crud import (
    get_user,
    create_course,
    get_course,
    enroll_user,
    assign_instructor,
)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.put("/users/{user_id}/role", response_model=UserResponse)
async def admin_set_role(
    user_id: int,
    data: RoleUpdate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role(ROLE_ADMIN)),
):
    if data.role not in ALL_ROLES:
        raise HTTPException(status_code=400, detail="Unknown role")
    user = await get_user(db, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    user.role = data.role
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@router.post("/courses", response_model=CourseRead)
async def admin_create_course(
    data: CourseCreate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role(ROLE_ADMIN)),
):
    return await create_course(db, Course(title=data.title))


async def _get_course_or_404(db: AsyncSession, course_id: int) -> Course:
    course = await get_course(db, course_id)
    if not course:
        raise HTTPException(status_code=404, detail="Course not found")
    return course


@router.post("/courses/{course_id}/students")
async def admin_enroll_student(
    course_id: int,
    data: EnrollmentCreate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role(ROLE_ADMIN)),
):
    await _get_course_or_404(db, course_id)
    user = await get_user(db, data.user_id)
    if not user or user.role != ROLE_STUDENT:
        raise HTTPException(status_code=404, detail="Student not found")
    await enroll_user(db, user.id, course_id)
    return {"status": "ok"}


@router.post("/courses/{course_id}/instructors")
async def admin_assign_instructor(
    course_id: int,
    data: InstructorAssign,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role(ROLE_ADMIN)),
):
    await _get_course_or_404(db, course_id)
    user = await get_user(db, data.instructor_id)
    if not user or user.role != ROLE_PROFESSOR:
        raise HTTPException(status_code=404, detail="Professor not found")
    await assign_instructor(db, user.id, course_id)
    return {"status": "ok"}
