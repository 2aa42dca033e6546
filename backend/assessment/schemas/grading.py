"""Schemas for manual grading."""

from typing import Optional
from pydantic import BaseModel


class GradeRequest(BaseModel):
    question_id: int
    awarded_points: float
    feedback: Optional[str] = None


class GradeResponse(BaseModel):
    total_score: float
    max_score: float
    percentage: float
    passed: bool
    needs_manual_grading: bool
