"""Schemas for the course and enrollment endpoints."""

from datetime import datetime
from pydantic import BaseModel, ConfigDict


class CourseCreate(BaseModel):
    title: str


class CourseRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    created_at: datetime


class EnrollmentCreate(BaseModel):
    user_id: int


class InstructorAssign(BaseModel):
    instructor_id: int
