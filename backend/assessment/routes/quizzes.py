"""Routes for authoring quizzes and reviewing their results."""

import logging
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from assessment.acl import GRADER_ROLES
from assessment.aggregator import percentage
from assessment.auth import require_role
from assessment.database import get_session
from assessment.errors import (
    InvalidSchedule,
    QuestionNotFound,
    QuizHasResults,
    QuizNotFound,
    Unauthorized,
)
from assessment.models import User, Quiz, QuizQuestion, QuizOption
from assessment.schemas import (
    QuizCreate,
    QuizRead,
    QuizUpdate,
    QuestionCreate,
    QuestionRead,
    QuizResultRow,
)
from assessment.crud import (
    add_question,
    archive_question,
    create_quiz,
    get_course,
    get_questions_with_options,
    get_quiz,
    get_results_for_quiz,
    is_course_grader,
    quiz_has_results,
    replace_question,
    update_quiz,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/quizzes", tags=["quizzes"])


def _build_question(data: QuestionCreate, position: int) -> tuple[QuizQuestion, list[QuizOption]]:
    question = QuizQuestion(
        question=data.question,
        question_type=data.question_type,
        points=data.points,
        require_justification=data.require_justification,
        sort_order=data.sort_order if data.sort_order is not None else position,
    )
    options = [
        QuizOption(option_text=o.option_text, is_correct=o.is_correct, sort_order=i)
        for i, o in enumerate(data.options)
    ]
    return question, options


async def _quiz_read(db: AsyncSession, quiz: Quiz) -> QuizRead:
    questions = await get_questions_with_options(db, quiz.id)
    read = QuizRead.model_validate(quiz, from_attributes=True)
    read.questions = [
        QuestionRead.model_validate(q, from_attributes=True) for q in questions
    ]
    return read


async def _get_graded_quiz(db: AsyncSession, quiz_id: int, user: User) -> Quiz:
    quiz = await get_quiz(db, quiz_id)
    if not quiz:
        raise QuizNotFound()
    if not await is_course_grader(db, user.id, user.role, quiz.course_id):
        raise Unauthorized("You do not teach the course of this quiz")
    return quiz


async def _get_quiz_question(db: AsyncSession, quiz: Quiz, question_id: int) -> QuizQuestion:
    questions = await get_questions_with_options(db, quiz.id)
    question = next((q for q in questions if q.id == question_id), None)
    if question is None:
        raise QuestionNotFound()
    return question


@router.post("/", response_model=QuizRead)
async def create_quiz_route(
    data: QuizCreate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role(*GRADER_ROLES)),
):
    if not await get_course(db, data.course_id):
        raise HTTPException(status_code=404, detail="Course not found")
    if not await is_course_grader(db, current_user.id, current_user.role, data.course_id):
        raise Unauthorized("You do not teach this course")
    quiz = Quiz(
        course_id=data.course_id,
        title=data.title.strip(),
        description=data.description,
        passing_score=data.passing_score,
        time_limit_minutes=data.time_limit_minutes,
        start_datetime=data.start_datetime,
        end_datetime=data.end_datetime,
        results_publish_datetime=data.results_publish_datetime,
    )
    questions = [_build_question(q, i) for i, q in enumerate(data.questions)]
    quiz = await create_quiz(db, quiz, questions)
    logger.info(
        "User %s created quiz %s with %s questions", current_user.id, quiz.id, len(questions)
    )
    return await _quiz_read(db, quiz)


@router.get("/{quiz_id}", response_model=QuizRead)
async def get_quiz_route(
    quiz_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role(*GRADER_ROLES)),
):
    quiz = await _get_graded_quiz(db, quiz_id, current_user)
    return await _quiz_read(db, quiz)


@router.post("/{quiz_id}/questions", response_model=QuestionRead)
async def add_question_route(
    quiz_id: int,
    data: QuestionCreate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role(*GRADER_ROLES)),
):
    quiz = await _get_graded_quiz(db, quiz_id, current_user)
    existing = await get_questions_with_options(db, quiz.id)
    question, options = _build_question(data, len(existing))
    question.quiz_id = quiz.id
    question = await add_question(db, question, options)
    questions = await get_questions_with_options(db, quiz.id)
    added = next(q for q in questions if q.id == question.id)
    return QuestionRead.model_validate(added, from_attributes=True)


@router.put("/{quiz_id}", response_model=QuizRead)
async def update_quiz_route(
    quiz_id: int,
    data: QuizUpdate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role(*GRADER_ROLES)),
):
    quiz = await _get_graded_quiz(db, quiz_id, current_user)
    changes = data.model_dump(exclude_unset=True)
    for required in ("title", "passing_score"):
        if required in changes and changes[required] is None:
            del changes[required]
    if "title" in changes:
        changes["title"] = changes["title"].strip()

    start = changes.get("start_datetime", quiz.start_datetime)
    end = changes.get("end_datetime", quiz.end_datetime)
    if start and end and end <= start:
        raise InvalidSchedule()

    quiz = await update_quiz(db, quiz, changes)
    logger.info(
        "User %s updated quiz %s: %s", current_user.id, quiz.id, ", ".join(sorted(changes))
    )
    return await _quiz_read(db, quiz)


@router.put("/{quiz_id}/questions/{question_id}", response_model=QuestionRead)
async def update_question_route(
    quiz_id: int,
    question_id: int,
    data: QuestionCreate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role(*GRADER_ROLES)),
):
    quiz = await _get_graded_quiz(db, quiz_id, current_user)
    question = await _get_quiz_question(db, quiz, question_id)
    if await quiz_has_results(db, quiz.id):
        raise QuizHasResults()
    built, options = _build_question(data, question.sort_order)
    changes = {
        "question": built.question,
        "question_type": built.question_type,
        "points": built.points,
        "require_justification": built.require_justification,
        "sort_order": built.sort_order,
    }
    question = await replace_question(db, question, changes, options)
    logger.info("User %s replaced question %s of quiz %s", current_user.id, question_id, quiz.id)
    question = await _get_quiz_question(db, quiz, question_id)
    return QuestionRead.model_validate(question, from_attributes=True)


@router.delete("/{quiz_id}/questions/{question_id}")
async def delete_question_route(
    quiz_id: int,
    question_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role(*GRADER_ROLES)),
):
    quiz = await _get_graded_quiz(db, quiz_id, current_user)
    question = await _get_quiz_question(db, quiz, question_id)
    await archive_question(db, question)
    logger.info("User %s removed question %s from quiz %s", current_user.id, question_id, quiz.id)
    return {"status": "ok"}


@router.get("/{quiz_id}/results", response_model=list[QuizResultRow])
async def list_quiz_results(
    quiz_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role(*GRADER_ROLES)),
):
    quiz = await _get_graded_quiz(db, quiz_id, current_user)
    rows = await get_results_for_quiz(db, quiz.id)
    return [
        QuizResultRow(
            result_id=result.id,
            user_id=student.id,
            user_name=student.name,
            user_email=student.email,
            score=result.score,
            max_score=result.max_score,
            percentage=percentage(result.score, result.max_score),
            passed=result.passed,
            needs_manual_grading=result.needs_manual_grading,
            completed_at=result.completed_at,
        )
        for result, student in rows
    ]
