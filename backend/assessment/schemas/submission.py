"""Schemas for quiz submissions."""

from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, Field


class QuizSubmission(BaseModel):
    # payload shape depends on each question's type, see assessment.answers
    answers: dict[str, Any] = {}
    time_taken_ms: Optional[int] = Field(default=None, ge=0)


class SubmissionResponse(BaseModel):
    result_id: int
    score: float
    max_score: float
    passed: bool
    needs_manual_grading: bool
    results_published: bool
    results_publish_datetime: Optional[datetime] = None


class ForfeitResponse(BaseModel):
    result_id: int
    expired: bool = True
