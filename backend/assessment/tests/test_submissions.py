"""Tests for taking and submitting quizzes."""

import asyncio
from datetime import datetime, timedelta
import pathlib
import sys

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlmodel import SQLModel, select

sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from assessment.main import app
from assessment.database import get_session
from assessment.models import (
    User,
    Course,
    Quiz,
    QuizQuestion,
    QuizOption,
    QuizResult,
)
from assessment.auth import get_password_hash
from assessment.crud import add_question, create_quiz, enroll_user
from assessment.errors import (
    AlreadyCompleted,
    Ended,
    Expired,
    InvalidAnswer,
    NotEnrolled,
    NotStarted,
    QuestionNotFound,
    QuizNotFound,
)
from assessment.grading import grade_question
from assessment.result_gate import get_result_view
from assessment.submission import _insert_once, forfeit_quiz, submit_quiz


async def _seed(session, **quiz_fields):
    course = Course(title="Physics")
    student = User(
        name="Student",
        email="student@example.com",
        password_hash=get_password_hash("pass"),
        role="student",
    )
    outsider = User(
        name="Outsider",
        email="outsider@example.com",
        password_hash=get_password_hash("pass"),
        role="student",
    )
    session.add_all([course, student, outsider])
    await session.commit()
    await enroll_user(session, student.id, course.id)

    single = QuizQuestion(
        question="Pick B", question_type="single_choice", points=10, sort_order=0
    )
    essay = QuizQuestion(
        question="Explain", question_type="text", points=5, sort_order=1
    )
    quiz = await create_quiz(
        session,
        Quiz(course_id=course.id, title="Quiz 1", passing_score=60, **quiz_fields),
        [
            (
                single,
                [
                    QuizOption(option_text="A", is_correct=False, sort_order=0),
                    QuizOption(option_text="B", is_correct=True, sort_order=1),
                ],
            ),
            (essay, []),
        ],
    )
    return quiz, single, essay, student, outsider


def _run_with_session(body, **quiz_fields):
    async def run():
        engine = create_async_engine("sqlite+aiosqlite:///:memory:")
        async with engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        Session = async_sessionmaker(engine, expire_on_commit=False)
        async with Session() as session:
            seeded = await _seed(session, **quiz_fields)
            await body(session, *seeded)
        await engine.dispose()

    asyncio.run(run())


def test_worked_example_submission():
    async def body(session, quiz, single, essay, student, outsider):
        result = await session.execute(
            select(QuizOption).where(
                QuizOption.question_id == single.id, QuizOption.is_correct == True  # noqa: E712
            )
        )
        correct = result.scalar_one()
        stored, returned_quiz = await submit_quiz(
            session,
            quiz.id,
            student,
            {str(single.id): str(correct.id), str(essay.id): "my essay"},
            time_taken_ms=95_000,
        )
        assert returned_quiz.id == quiz.id
        assert stored.auto_score == 10
        assert stored.score == 10
        assert stored.max_score == 15
        assert stored.needs_manual_grading is True
        assert stored.passed is True
        assert stored.time_taken_minutes == 2
        assert stored.version == 1
        assert stored.answers == {str(single.id): correct.id, str(essay.id): "my essay"}

    _run_with_session(body)


def test_second_submission_is_rejected():
    async def body(session, quiz, single, essay, student, outsider):
        first, _ = await submit_quiz(session, quiz.id, student, {})
        assert first.score == 0
        assert first.max_score == 15
        with pytest.raises(AlreadyCompleted) as exc:
            await submit_quiz(session, quiz.id, student, {})
        assert exc.value.extra["result_id"] == first.id

    _run_with_session(body)


def test_duplicate_insert_is_caught_by_the_unique_constraint():
    async def body(session, quiz, single, essay, student, outsider):
        quiz_id, student_id = quiz.id, student.id
        session.add(QuizResult(quiz_id=quiz_id, user_id=student_id, max_score=15))
        await session.commit()
        # bypass the pre-check so only the database can notice
        with pytest.raises(AlreadyCompleted):
            await _insert_once(
                session, QuizResult(quiz_id=quiz_id, user_id=student_id, max_score=15)
            )
        rows = await session.execute(
            select(QuizResult).where(QuizResult.quiz_id == quiz_id)
        )
        assert len(rows.scalars().all()) == 1

    _run_with_session(body)


def test_not_started_and_ended_windows():
    now = datetime.utcnow()

    async def not_started(session, quiz, single, essay, student, outsider):
        with pytest.raises(NotStarted) as exc:
            await submit_quiz(session, quiz.id, student, {}, now=now)
        assert exc.value.to_detail()["start_datetime"] == quiz.start_datetime.isoformat()

    _run_with_session(not_started, start_datetime=now + timedelta(hours=1))

    async def ended(session, quiz, single, essay, student, outsider):
        with pytest.raises(Ended):
            await submit_quiz(session, quiz.id, student, {}, now=now)

    _run_with_session(
        ended,
        start_datetime=now - timedelta(days=2),
        end_datetime=now - timedelta(days=1),
    )


def test_unknown_quiz_and_unenrolled_user():
    async def body(session, quiz, single, essay, student, outsider):
        with pytest.raises(QuizNotFound):
            await submit_quiz(session, quiz.id + 100, student, {})
        with pytest.raises(NotEnrolled):
            await submit_quiz(session, quiz.id, outsider, {})

    _run_with_session(body)


def test_invalid_answer_stores_nothing():
    async def body(session, quiz, single, essay, student, outsider):
        with pytest.raises(InvalidAnswer):
            await submit_quiz(
                session, quiz.id, student, {str(single.id): ["1", "2"]}
            )
        rows = await session.execute(select(QuizResult))
        assert rows.scalars().all() == []

    _run_with_session(body)


def test_forfeit_blocks_later_submission_with_expired():
    async def body(session, quiz, single, essay, student, outsider):
        forfeited = await forfeit_quiz(session, quiz.id, student)
        assert forfeited.score == 0
        assert forfeited.max_score == 0
        assert forfeited.time_taken_minutes == 20
        with pytest.raises(Expired):
            await submit_quiz(session, quiz.id, student, {})
        with pytest.raises(Expired):
            await forfeit_quiz(session, quiz.id, student)

    _run_with_session(body, time_limit_minutes=20)


def test_max_score_is_frozen_at_submission():
    async def body(session, quiz, single, essay, student, outsider):
        stored, _ = await submit_quiz(session, quiz.id, student, {})
        await add_question(
            session,
            QuizQuestion(
                quiz_id=quiz.id, question="Late", question_type="text", points=20
            ),
            [],
        )
        result = await session.get(QuizResult, stored.id)
        await session.refresh(result)
        assert result.max_score == 15

    _run_with_session(body)


async def _admin(session):
    admin = User(
        name="Admin",
        email="admin@example.com",
        password_hash=get_password_hash("pass"),
        role="admin",
    )
    session.add(admin)
    await session.commit()
    return admin


def test_questions_added_after_submission_are_not_part_of_the_attempt():
    async def body(session, quiz, single, essay, student, outsider):
        admin = await _admin(session)
        admin_id, single_id, essay_id = admin.id, single.id, essay.id
        stored, _ = await submit_quiz(
            session, quiz.id, student, {str(essay.id): "Because"}
        )
        result_id = stored.id
        late = await add_question(
            session,
            QuizQuestion(
                quiz_id=quiz.id, question="Late", question_type="text", points=10
            ),
            [],
        )
        late_id = late.id

        with pytest.raises(QuestionNotFound):
            await grade_question(session, result_id, late_id, 10, admin)

        admin = await session.get(User, admin_id)
        outcome = await grade_question(session, result_id, essay_id, 5, admin)
        assert outcome.total_score == 5
        assert outcome.max_score == 15
        assert outcome.percentage <= 100

        view = await get_result_view(session, result_id, admin)
        assert [q.id for q in view.questions] == [single_id, essay_id]
        assert set(view.breakdown) == {str(single_id), str(essay_id)}

    _run_with_session(body)


def test_forfeited_attempt_cannot_be_graded():
    async def body(session, quiz, single, essay, student, outsider):
        admin = await _admin(session)
        quiz_id, student_id, essay_id = quiz.id, student.id, essay.id
        forfeited = await forfeit_quiz(session, quiz.id, student)
        result_id = forfeited.id

        with pytest.raises(Expired):
            await grade_question(session, result_id, essay_id, 5, admin)

        result = await session.get(QuizResult, result_id)
        await session.refresh(result)
        assert result.score == 0
        assert result.max_score == 0

        student = await session.get(User, student_id)
        with pytest.raises(Expired):
            await submit_quiz(session, quiz_id, student, {})

    _run_with_session(body, time_limit_minutes=20)


async def _setup_test_db():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    TestSession = async_sessionmaker(engine, expire_on_commit=False)

    async def override_get_session():
        async with TestSession() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    async with TestSession() as session:
        session.add_all(
            [
                User(
                    name="Admin",
                    email="admin@example.com",
                    password_hash=get_password_hash("adminpass"),
                    role="admin",
                ),
                User(
                    name="Prof",
                    email="prof@example.com",
                    password_hash=get_password_hash("profpass"),
                    role="professor",
                ),
            ]
        )
        await session.commit()

    return TestSession


async def _login(client, email, password):
    resp = await client.post("/login", json={"email": email, "password": password})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


def test_submission_endpoints():
    async def run():
        TestSession = await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            admin_headers = await _login(client, "admin@example.com", "adminpass")
            prof_headers = await _login(client, "prof@example.com", "profpass")

            resp = await client.post(
                "/register",
                json={"name": "Stu", "email": "stu@example.com", "password": "pass"},
            )
            assert resp.status_code == 200
            assert resp.json()["role"] == "student"
            student_id = resp.json()["id"]
            student_headers = await _login(client, "stu@example.com", "pass")

            async with TestSession() as session:
                prof = (
                    await session.execute(
                        select(User).where(User.email == "prof@example.com")
                    )
                ).scalar_one()
                prof_id = prof.id

            resp = await client.post(
                "/admin/courses", json={"title": "Biology"}, headers=admin_headers
            )
            assert resp.status_code == 200
            course_id = resp.json()["id"]
            resp = await client.post(
                f"/admin/courses/{course_id}/instructors",
                json={"instructor_id": prof_id},
                headers=admin_headers,
            )
            assert resp.status_code == 200

            resp = await client.post(
                "/quizzes/",
                json={
                    "course_id": course_id,
                    "title": "Cells",
                    "passing_score": 60,
                    "questions": [
                        {
                            "question": "Pick B",
                            "question_type": "single_choice",
                            "points": 10,
                            "options": [
                                {"option_text": "A"},
                                {"option_text": "B", "is_correct": True},
                            ],
                        },
                        {"question": "Explain", "question_type": "text", "points": 5},
                    ],
                },
                headers=prof_headers,
            )
            assert resp.status_code == 200
            quiz = resp.json()
            quiz_id = quiz["id"]
            single, essay = quiz["questions"]
            correct_id = next(o["id"] for o in single["options"] if o["is_correct"])

            # Not enrolled yet
            resp = await client.get(f"/quizzes/{quiz_id}/take", headers=student_headers)
            assert resp.status_code == 403
            assert resp.json()["detail"]["code"] == "not_enrolled"

            resp = await client.post(
                f"/admin/courses/{course_id}/students",
                json={"user_id": student_id},
                headers=admin_headers,
            )
            assert resp.status_code == 200

            resp = await client.get(f"/quizzes/{quiz_id}/take", headers=student_headers)
            assert resp.status_code == 200
            taken = resp.json()
            assert [q["id"] for q in taken["questions"]] == [single["id"], essay["id"]]
            assert all(
                "is_correct" not in o for q in taken["questions"] for o in q["options"]
            )

            # Professors cannot submit
            resp = await client.post(
                f"/quizzes/{quiz_id}/submit", json={"answers": {}}, headers=prof_headers
            )
            assert resp.status_code == 403

            resp = await client.post(
                f"/quizzes/{quiz_id}/submit",
                json={"answers": {str(single["id"]): "abc"}},
                headers=student_headers,
            )
            assert resp.status_code == 422
            assert resp.json()["detail"]["code"] == "invalid_answer"

            resp = await client.post(
                f"/quizzes/{quiz_id}/submit",
                json={
                    "answers": {
                        str(single["id"]): str(correct_id),
                        str(essay["id"]): "my essay",
                    },
                    "time_taken_ms": 61_000,
                },
                headers=student_headers,
            )
            assert resp.status_code == 200
            body = resp.json()
            assert body["score"] == 10
            assert body["max_score"] == 15
            assert body["passed"] is True
            assert body["needs_manual_grading"] is True
            assert body["results_published"] is True

            resp = await client.post(
                f"/quizzes/{quiz_id}/submit", json={"answers": {}}, headers=student_headers
            )
            assert resp.status_code == 409
            assert resp.json()["detail"]["code"] == "quiz_already_completed"

            resp = await client.get(f"/quizzes/{quiz_id}/take", headers=student_headers)
            assert resp.status_code == 409

            resp = await client.get(
                f"/quizzes/{quiz_id}/results", headers=prof_headers
            )
            assert resp.status_code == 200
            rows = resp.json()
            assert len(rows) == 1
            assert rows[0]["user_email"] == "stu@example.com"
            assert rows[0]["percentage"] == 66.7

            resp = await client.get(f"/quizzes/{quiz_id + 1}/take", headers=student_headers)
            assert resp.status_code == 404
            assert resp.json()["detail"]["code"] == "quiz_not_found"

        app.dependency_overrides.clear()

    asyncio.run(run())


def test_quiz_authoring_validation():
    async def run():
        await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            admin_headers = await _login(client, "admin@example.com", "adminpass")
            prof_headers = await _login(client, "prof@example.com", "profpass")
            resp = await client.post(
                "/admin/courses", json={"title": "Chemistry"}, headers=admin_headers
            )
            course_id = resp.json()["id"]

            # Professor does not teach this course
            resp = await client.post(
                "/quizzes/",
                json={"course_id": course_id, "title": "Atoms"},
                headers=prof_headers,
            )
            assert resp.status_code == 403
            assert resp.json()["detail"]["code"] == "unauthorized"

            bad_questions = [
                {"question": "x", "question_type": "text", "points": 1,
                 "options": [{"option_text": "a"}]},
                {"question": "x", "question_type": "single_choice", "points": 1,
                 "options": [{"option_text": "a"}, {"option_text": "b"}]},
                {"question": "x", "question_type": "true_false", "points": 1,
                 "options": [{"option_text": "Yes", "is_correct": True},
                             {"option_text": "No"}]},
                {"question": "x", "question_type": "text", "points": 0},
                {"question": "x", "question_type": "text", "points": 1,
                 "require_justification": True},
            ]
            for question in bad_questions:
                resp = await client.post(
                    "/quizzes/",
                    json={"course_id": course_id, "title": "Bad", "questions": [question]},
                    headers=admin_headers,
                )
                assert resp.status_code == 422

            resp = await client.post(
                "/quizzes/",
                json={
                    "course_id": course_id,
                    "title": "Window",
                    "start_datetime": "2030-01-02T00:00:00Z",
                    "end_datetime": "2030-01-01T00:00:00Z",
                },
                headers=admin_headers,
            )
            assert resp.status_code == 422

            resp = await client.post(
                "/quizzes/",
                json={
                    "course_id": course_id,
                    "title": "Atoms",
                    "start_datetime": "2030-01-01T02:00:00+02:00",
                },
                headers=admin_headers,
            )
            assert resp.status_code == 200
            quiz = resp.json()
            assert quiz["start_datetime"] == "2030-01-01T00:00:00"

            resp = await client.post(
                f"/quizzes/{quiz['id']}/questions",
                json={
                    "question": "Water is wet",
                    "question_type": "true_false",
                    "points": 2,
                    "require_justification": True,
                    "options": [
                        {"option_text": "Verdadero", "is_correct": True},
                        {"option_text": "Falso"},
                    ],
                },
                headers=admin_headers,
            )
            assert resp.status_code == 200
            added = resp.json()
            assert added["require_justification"] is True
            assert [o["option_text"] for o in added["options"]] == ["Verdadero", "Falso"]

        app.dependency_overrides.clear()

    asyncio.run(run())


def test_quiz_editing_endpoints():
    async def run():
        await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            admin_headers = await _login(client, "admin@example.com", "adminpass")
            # Prof does not teach the course below
            prof_headers = await _login(client, "prof@example.com", "profpass")
            students = []
            for name in ("stu", "late"):
                resp = await client.post(
                    "/register",
                    json={"name": name, "email": f"{name}@example.com", "password": "pass"},
                )
                assert resp.status_code == 200
                students.append(
                    (resp.json()["id"], await _login(client, f"{name}@example.com", "pass"))
                )
            (stu_id, stu_headers), (late_id, late_headers) = students

            resp = await client.post(
                "/admin/courses", json={"title": "Geology"}, headers=admin_headers
            )
            course_id = resp.json()["id"]
            for user_id in (stu_id, late_id):
                resp = await client.post(
                    f"/admin/courses/{course_id}/students",
                    json={"user_id": user_id},
                    headers=admin_headers,
                )
                assert resp.status_code == 200

            resp = await client.post(
                "/quizzes/",
                json={
                    "course_id": course_id,
                    "title": "Rocks",
                    "start_datetime": "2020-01-01T00:00:00Z",
                    "results_publish_datetime": "2099-01-01T00:00:00Z",
                    "questions": [
                        {
                            "question": "Pick B",
                            "question_type": "single_choice",
                            "points": 10,
                            "options": [
                                {"option_text": "A"},
                                {"option_text": "B", "is_correct": True},
                            ],
                        },
                        {"question": "Explain", "question_type": "text", "points": 5},
                    ],
                },
                headers=admin_headers,
            )
            assert resp.status_code == 200
            quiz_id = resp.json()["id"]
            single, essay = resp.json()["questions"]

            resp = await client.put(
                f"/quizzes/{quiz_id}", json={"passing_score": 10}, headers=prof_headers
            )
            assert resp.status_code == 403
            assert resp.json()["detail"]["code"] == "unauthorized"
            resp = await client.put(
                f"/quizzes/{quiz_id}", json={"passing_score": 10}, headers=stu_headers
            )
            assert resp.status_code == 403

            # The new end is checked against the stored start
            resp = await client.put(
                f"/quizzes/{quiz_id}",
                json={"end_datetime": "2019-12-31T00:00:00Z"},
                headers=admin_headers,
            )
            assert resp.status_code == 422
            assert resp.json()["detail"]["code"] == "invalid_schedule"

            resp = await client.put(
                f"/quizzes/{quiz_id}",
                json={
                    "title": " Rocks and minerals ",
                    "passing_score": 50,
                    "time_limit_minutes": 30,
                    "description": None,
                },
                headers=admin_headers,
            )
            assert resp.status_code == 200
            updated = resp.json()
            assert updated["title"] == "Rocks and minerals"
            assert updated["passing_score"] == 50
            assert updated["time_limit_minutes"] == 30
            assert updated["end_datetime"] is None
            assert updated["results_publish_datetime"] == "2099-01-01T00:00:00"

            resp = await client.put(
                f"/quizzes/{quiz_id}/questions/{essay['id']}",
                json={"question": "Explain in detail", "question_type": "text", "points": 8},
                headers=prof_headers,
            )
            assert resp.status_code == 403
            resp = await client.put(
                f"/quizzes/{quiz_id}/questions/999",
                json={"question": "x", "question_type": "text", "points": 1},
                headers=admin_headers,
            )
            assert resp.status_code == 404
            assert resp.json()["detail"]["code"] == "question_not_found"

            resp = await client.put(
                f"/quizzes/{quiz_id}/questions/{essay['id']}",
                json={"question": "Explain in detail", "question_type": "text", "points": 8},
                headers=admin_headers,
            )
            assert resp.status_code == 200
            assert resp.json()["points"] == 8
            assert resp.json()["sort_order"] == essay["sort_order"]

            resp = await client.put(
                f"/quizzes/{quiz_id}/questions/{single['id']}",
                json={
                    "question": "Pick D",
                    "question_type": "single_choice",
                    "points": 10,
                    "options": [
                        {"option_text": "C"},
                        {"option_text": "D", "is_correct": True},
                    ],
                },
                headers=admin_headers,
            )
            assert resp.status_code == 200
            replaced = resp.json()
            assert [o["option_text"] for o in replaced["options"]] == ["C", "D"]
            correct_id = next(o["id"] for o in replaced["options"] if o["is_correct"])

            resp = await client.post(
                f"/quizzes/{quiz_id}/submit",
                json={
                    "answers": {
                        str(single["id"]): str(correct_id),
                        str(essay["id"]): "Pressure and heat",
                    }
                },
                headers=stu_headers,
            )
            assert resp.status_code == 200
            submitted = resp.json()
            result_id = submitted["result_id"]
            assert submitted["score"] == 10
            assert submitted["max_score"] == 18
            assert submitted["passed"] is True
            assert submitted["results_published"] is False

            resp = await client.get(f"/quizzes/{quiz_id}/my-result", headers=stu_headers)
            assert resp.status_code == 200
            assert "questions" not in resp.json()

            # Submitted answers pin the questions
            resp = await client.put(
                f"/quizzes/{quiz_id}/questions/{essay['id']}",
                json={"question": "Explain", "question_type": "text", "points": 1},
                headers=admin_headers,
            )
            assert resp.status_code == 409
            assert resp.json()["detail"]["code"] == "quiz_has_results"

            resp = await client.put(
                f"/quizzes/{quiz_id}",
                json={"results_publish_datetime": None},
                headers=admin_headers,
            )
            assert resp.status_code == 200
            assert resp.json()["results_publish_datetime"] is None
            resp = await client.get(f"/quizzes/{quiz_id}/my-result", headers=stu_headers)
            assert resp.json()["results_published"] is True
            assert len(resp.json()["questions"]) == 2

            resp = await client.delete(
                f"/quizzes/{quiz_id}/questions/{essay['id']}", headers=prof_headers
            )
            assert resp.status_code == 403
            resp = await client.delete(
                f"/quizzes/{quiz_id}/questions/{essay['id']}", headers=admin_headers
            )
            assert resp.status_code == 200
            assert resp.json() == {"status": "ok"}
            resp = await client.delete(
                f"/quizzes/{quiz_id}/questions/{essay['id']}", headers=admin_headers
            )
            assert resp.status_code == 404

            resp = await client.get(f"/quizzes/{quiz_id}", headers=admin_headers)
            assert [q["id"] for q in resp.json()["questions"]] == [single["id"]]
            resp = await client.get(f"/quizzes/{quiz_id}/take", headers=late_headers)
            assert resp.status_code == 200
            assert [q["id"] for q in resp.json()["questions"]] == [single["id"]]

            # The earlier result still counts the removed question
            resp = await client.get(f"/results/{result_id}", headers=admin_headers)
            assert resp.status_code == 200
            kept = resp.json()
            assert kept["result"]["score"] == 10
            assert kept["result"]["max_score"] == 18
            assert [q["id"] for q in kept["questions"]] == [single["id"], essay["id"]]

            resp = await client.post(
                f"/results/{result_id}/grade",
                json={"question_id": essay["id"], "awarded_points": 8},
                headers=admin_headers,
            )
            assert resp.status_code == 200
            assert resp.json()["total_score"] == 18
            assert resp.json()["max_score"] == 18
            assert resp.json()["percentage"] == 100

            resp = await client.get(f"/quizzes/{quiz_id}/results", headers=admin_headers)
            assert resp.json()[0]["max_score"] == 18
            assert resp.json()[0]["score"] == 18

        app.dependency_overrides.clear()

    asyncio.run(run())
