"""Asynchronous CRUD helpers for the application's data models.

Each function in this module encapsulates a specific database operation
using SQLModel and SQLAlchemy.  Centralizing the logic keeps route
handlers and the grading services light and makes behavior easier to
test.
"""

from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select
from sqlalchemy.orm import selectinload
from assessment.models import (
    User,
    Course,
    CourseEnrollment,
    CourseInstructor,
    Quiz,
    QuizQuestion,
    QuizOption,
    QuizResult,
    ManualGrade,
)
from assessment.auth import get_password_hash
from assessment.acl import ROLE_ADMIN, is_grader_role


async def create_user(db: AsyncSession, user: User) -> User:
    """Create a new user, hashing the password if it is still plain text."""

    if not user.password_hash.startswith("$2b$"):
        user.password_hash = get_password_hash(user.password_hash)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def get_user(db: AsyncSession, user_id: int) -> User | None:
    return await db.get(User, user_id)


async def create_course(db: AsyncSession, course: Course) -> Course:
    db.add(course)
    await db.commit()
    await db.refresh(course)
    return course


async def get_course(db: AsyncSession, course_id: int) -> Course | None:
    return await db.get(Course, course_id)


async def enroll_user(db: AsyncSession, user_id: int, course_id: int) -> CourseEnrollment:
    """Enroll a user in a course; enrolling twice is a no-op."""
    link = await db.get(CourseEnrollment, (user_id, course_id))
    if link:
        return link
    link = CourseEnrollment(user_id=user_id, course_id=course_id)
    db.add(link)
    await db.commit()
    return link


async def assign_instructor(
    db: AsyncSession, instructor_id: int, course_id: int
) -> CourseInstructor:
    link = await db.get(CourseInstructor, (course_id, instructor_id))
    if link:
        return link
    link = CourseInstructor(course_id=course_id, instructor_id=instructor_id)
    db.add(link)
    await db.commit()
    return link


async def is_enrolled(db: AsyncSession, user_id: int, course_id: int) -> bool:
    return await db.get(CourseEnrollment, (user_id, course_id)) is not None


async def is_instructor(db: AsyncSession, user_id: int, course_id: int) -> bool:
    return await db.get(CourseInstructor, (course_id, user_id)) is not None


async def is_course_grader(
    db: AsyncSession, user_id: int, role: str, course_id: int
) -> bool:
    """Admins grade everything, professors only the courses they teach."""
    if role == ROLE_ADMIN:
        return True
    if not is_grader_role(role):
        return False
    return await is_instructor(db, user_id, course_id)


async def create_quiz(
    db: AsyncSession, quiz: Quiz, questions: list[tuple[QuizQuestion, list[QuizOption]]]
) -> Quiz:
    """Insert a quiz together with its questions and options in one commit."""
    db.add(quiz)
    await db.flush()
    for question, options in questions:
        question.quiz_id = quiz.id
        db.add(question)
        await db.flush()
        for option in options:
            option.question_id = question.id
            db.add(option)
    await db.commit()
    await db.refresh(quiz)
    return quiz


async def add_question(
    db: AsyncSession, question: QuizQuestion, options: list[QuizOption]
) -> QuizQuestion:
    db.add(question)
    await db.flush()
    for option in options:
        option.question_id = question.id
        db.add(option)
    await db.commit()
    await db.refresh(question)
    return question


async def get_quiz(db: AsyncSession, quiz_id: int) -> Quiz | None:
    return await db.get(Quiz, quiz_id)


async def get_questions_with_options(
    db: AsyncSession, quiz_id: int, include_archived: bool = False
) -> list[QuizQuestion]:
    """Return a quiz's questions in display order with options loaded.

    Archived questions are left out unless ``include_archived`` is set;
    results submitted before a question was archived still refer to it.
    """
    query = (
        select(QuizQuestion)
        .where(QuizQuestion.quiz_id == quiz_id)
        .options(selectinload(QuizQuestion.options))
        .order_by(QuizQuestion.sort_order, QuizQuestion.id)
    )
    if not include_archived:
        query = query.where(QuizQuestion.archived == False)  # noqa: E712
    result = await db.execute(query)
    questions = result.scalars().all()
    for question in questions:
        question.options.sort(key=lambda o: (o.sort_order, o.id))
    return questions


async def get_attempt_questions(
    db: AsyncSession, result: QuizResult
) -> list[QuizQuestion]:
    """The questions ``result`` was scored against at submission time.

    Submission stores a key for every question it saw, answered or not, so
    questions added afterwards are never part of the attempt.
    """
    questions = await get_questions_with_options(
        db, result.quiz_id, include_archived=True
    )
    answered = set(result.answers or {})
    return [q for q in questions if str(q.id) in answered]


async def quiz_has_results(db: AsyncSession, quiz_id: int) -> bool:
    result = await db.execute(
        select(QuizResult.id).where(QuizResult.quiz_id == quiz_id).limit(1)
    )
    return result.first() is not None


async def update_quiz(db: AsyncSession, quiz: Quiz, changes: dict) -> Quiz:
    for key, value in changes.items():
        setattr(quiz, key, value)
    db.add(quiz)
    await db.commit()
    await db.refresh(quiz)
    return quiz


async def replace_question(
    db: AsyncSession,
    question: QuizQuestion,
    changes: dict,
    options: list[QuizOption],
) -> QuizQuestion:
    """Overwrite a question's fields and swap its options for ``options``.

    ``question`` must have its options loaded.
    """
    for key, value in changes.items():
        setattr(question, key, value)
    for option in list(question.options):
        await db.delete(option)
    for option in options:
        option.question_id = question.id
        db.add(option)
    db.add(question)
    await db.commit()
    await db.refresh(question, attribute_names=["options"])
    return question


async def archive_question(db: AsyncSession, question: QuizQuestion) -> QuizQuestion:
    question.archived = True
    db.add(question)
    await db.commit()
    return question


async def create_result(db: AsyncSession, result: QuizResult) -> QuizResult:
    """Insert a result.  A duplicate (quiz, user) raises ``IntegrityError``."""
    db.add(result)
    await db.commit()
    await db.refresh(result)
    return result


async def get_result(db: AsyncSession, result_id: int) -> QuizResult | None:
    return await db.get(QuizResult, result_id)


async def lock_result(db: AsyncSession, result_id: int) -> QuizResult | None:
    """Load a result fresh from the database, row-locked where supported."""
    result = await db.execute(
        select(QuizResult)
        .where(QuizResult.id == result_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_result_for_user(
    db: AsyncSession, quiz_id: int, user_id: int
) -> QuizResult | None:
    result = await db.execute(
        select(QuizResult).where(
            QuizResult.quiz_id == quiz_id, QuizResult.user_id == user_id
        )
    )
    return result.scalar_one_or_none()


async def get_results_for_quiz(db: AsyncSession, quiz_id: int) -> list[tuple[QuizResult, User]]:
    result = await db.execute(
        select(QuizResult, User)
        .join(User, User.id == QuizResult.user_id)
        .where(QuizResult.quiz_id == quiz_id)
        .order_by(QuizResult.completed_at.desc(), QuizResult.id.desc())
    )
    return result.all()


async def get_pending_results_for_instructor(
    db: AsyncSession, instructor_id: int
) -> list[tuple[QuizResult, Quiz, User]]:
    """Results still waiting for a grader on courses the user teaches."""
    result = await db.execute(
        select(QuizResult, Quiz, User)
        .join(Quiz, Quiz.id == QuizResult.quiz_id)
        .join(CourseInstructor, CourseInstructor.course_id == Quiz.course_id)
        .join(User, User.id == QuizResult.user_id)
        .where(
            CourseInstructor.instructor_id == instructor_id,
            QuizResult.needs_manual_grading == True,  # noqa: E712
        )
        .order_by(QuizResult.completed_at.desc(), QuizResult.id.desc())
    )
    return result.all()


async def get_manual_grades(db: AsyncSession, result_id: int) -> list[ManualGrade]:
    result = await db.execute(
        select(ManualGrade).where(ManualGrade.result_id == result_id)
    )
    return result.scalars().all()


async def upsert_manual_grade(
    db: AsyncSession,
    result_id: int,
    question: QuizQuestion,
    awarded_points: float,
    feedback: str | None,
    grader_id: int,
    now: datetime,
) -> ManualGrade:
    """Create or update the grade for one question and flush it.

    The caller owns the transaction; nothing is committed here.
    """
    result = await db.execute(
        select(ManualGrade).where(
            ManualGrade.result_id == result_id,
            ManualGrade.question_id == question.id,
        )
    )
    grade = result.scalar_one_or_none()
    if grade is None:
        grade = ManualGrade(
            result_id=result_id,
            question_id=question.id,
            created_at=now,
        )
    grade.awarded_points = awarded_points
    grade.max_points = question.points
    grade.feedback = feedback
    grade.grader_id = grader_id
    grade.updated_at = now
    db.add(grade)
    await db.flush()
    return grade
