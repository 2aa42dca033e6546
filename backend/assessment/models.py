"""Database models used by the quiz assessment engine.

The models are defined with SQLModel (built on SQLAlchemy and Pydantic)
and represent users, courses, quiz definitions and the results students
produce.  Comments are kept concise to avoid distracting from the field
definitions.
"""

from typing import Optional, List
from datetime import datetime
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import Column, JSON, UniqueConstraint


class User(SQLModel, table=True):
    """Authenticated principal (student, professor or admin)."""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str = Field(unique=True, index=True)
    password_hash: str
    role: str  # 'student', 'professor', 'admin'
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Course(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    created_at: datetime = Field(default_factory=datetime.utcnow)


class CourseEnrollment(SQLModel, table=True):
    """Many‑to‑many relationship between students and courses."""

    user_id: int = Field(foreign_key="user.id", primary_key=True)
    course_id: int = Field(foreign_key="course.id", primary_key=True)
    enrolled_at: datetime = Field(default_factory=datetime.utcnow)


class CourseInstructor(SQLModel, table=True):
    """Professors allowed to author and grade a course's quizzes."""

    course_id: int = Field(foreign_key="course.id", primary_key=True)
    instructor_id: int = Field(foreign_key="user.id", primary_key=True)


class Quiz(SQLModel, table=True):
    """Graded assessment belonging to a course."""
    id: Optional[int] = Field(default=None, primary_key=True)
    course_id: int = Field(foreign_key="course.id", index=True)
    title: str
    description: Optional[str] = None
    passing_score: float = 60.0  # percent, 0-100
    time_limit_minutes: Optional[int] = None
    start_datetime: Optional[datetime] = None
    end_datetime: Optional[datetime] = None
    results_publish_datetime: Optional[datetime] = None  # None publishes immediately
    created_at: datetime = Field(default_factory=datetime.utcnow)


class QuizQuestion(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    quiz_id: int = Field(foreign_key="quiz.id", index=True)
    question: str
    question_type: str  # single_choice, multiple_choice, true_false, text
    points: float
    require_justification: bool = False  # only meaningful for true_false
    sort_order: int = 0
    # removed from the quiz; kept so earlier results can still be scored
    archived: bool = False

    options: List["QuizOption"] = Relationship()


class QuizOption(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    question_id: int = Field(foreign_key="quizquestion.id", index=True)
    option_text: str
    is_correct: bool = False
    sort_order: int = 0


class QuizResult(SQLModel, table=True):
    """The single attempt of one user at one quiz.

    ``answers`` is written once at submission time.  ``score``, ``passed``
    and ``needs_manual_grading`` are only touched by manual grading, which
    bumps ``version`` on every write.
    """

    __table_args__ = (
        UniqueConstraint("quiz_id", "user_id", name="uq_quizresult_quiz_user"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    quiz_id: int = Field(foreign_key="quiz.id", index=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    answers: dict = Field(sa_column=Column(JSON), default_factory=dict)
    auto_score: float = 0.0
    score: float = 0.0
    max_score: float = 0.0
    passed: bool = False
    needs_manual_grading: bool = False
    time_taken_minutes: int = 0
    completed_at: datetime = Field(default_factory=datetime.utcnow)
    version: int = 1


class ManualGrade(SQLModel, table=True):
    """Professor‑assigned points for one question of one result."""

    __table_args__ = (
        UniqueConstraint(
            "result_id", "question_id", name="uq_manualgrade_result_question"
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    result_id: int = Field(foreign_key="quizresult.id", index=True)
    question_id: int = Field(foreign_key="quizquestion.id")
    awarded_points: float
    max_points: float
    feedback: Optional[str] = None
    grader_id: int = Field(foreign_key="user.id")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
