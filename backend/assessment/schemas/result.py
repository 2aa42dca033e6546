"""Schemas for result views and grader listings."""

from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel

from assessment.schemas.quiz import QuestionRead, QuizSummary


class ResultSummary(BaseModel):
    id: int
    score: float
    max_score: float
    auto_score: float
    percentage: float
    passed: bool
    needs_manual_grading: bool
    time_taken_minutes: int
    completed_at: datetime


class ManualGradeRead(BaseModel):
    awarded_points: float
    feedback: Optional[str] = None


class QuestionBreakdown(BaseModel):
    points: float
    max_points: float
    auto_points: float
    requires_manual: bool
    awarded_points: Optional[float] = None


class ResultView(BaseModel):
    """Result as returned by the visibility gate.

    The detail fields stay unset (and are left out of the response) while
    results are unpublished and the viewer is not a grader.
    """

    quiz: QuizSummary
    result: ResultSummary
    results_published: bool
    publish_datetime: Optional[datetime] = None
    questions: Optional[list[QuestionRead]] = None
    student_answers: Optional[dict[str, Any]] = None
    breakdown: Optional[dict[str, QuestionBreakdown]] = None
    manual_grades: Optional[dict[str, ManualGradeRead]] = None


class QuizResultRow(BaseModel):
    result_id: int
    user_id: int
    user_name: str
    user_email: str
    score: float
    max_score: float
    percentage: float
    passed: bool
    needs_manual_grading: bool
    completed_at: datetime


class PendingResultRead(BaseModel):
    result_id: int
    quiz_id: int
    quiz_title: str
    course_id: int
    user_id: int
    student_name: str
    student_email: str
    score: float
    max_score: float
    completed_at: datetime
