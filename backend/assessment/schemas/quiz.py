"""Schemas for quiz authoring and for the quiz as shown to students."""

from datetime import datetime, timezone
from typing import Annotated, Literal, Optional
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator

from assessment.answers import (
    FALSE_LABEL,
    MULTIPLE_CHOICE,
    TEXT,
    TRUE_FALSE,
    TRUE_LABEL,
)


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    # stored datetimes are naive UTC, like every other timestamp in the app
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(_naive_utc)]


class OptionCreate(BaseModel):
    option_text: str
    is_correct: bool = False


class QuestionCreate(BaseModel):
    question: str
    question_type: Literal["single_choice", "multiple_choice", "true_false", "text"]
    points: float = Field(gt=0)
    require_justification: bool = False
    sort_order: Optional[int] = None
    options: list[OptionCreate] = []

    @model_validator(mode="after")
    def check_options(self):
        correct = [o for o in self.options if o.is_correct]
        if self.question_type == TEXT:
            if self.options:
                raise ValueError("text questions do not take options")
        elif self.question_type == MULTIPLE_CHOICE:
            if not correct:
                raise ValueError("multiple_choice needs at least one correct option")
        elif len(correct) != 1:
            raise ValueError(f"{self.question_type} needs exactly one correct option")
        if self.question_type == TRUE_FALSE:
            texts = sorted(o.option_text for o in self.options)
            if texts != sorted([TRUE_LABEL, FALSE_LABEL]):
                raise ValueError(
                    f"true_false options must be '{TRUE_LABEL}' and '{FALSE_LABEL}'"
                )
        if self.require_justification and self.question_type != TRUE_FALSE:
            raise ValueError("require_justification only applies to true_false")
        return self


class QuizCreate(BaseModel):
    course_id: int
    title: str
    description: Optional[str] = None
    passing_score: float = Field(default=60.0, ge=0, le=100)
    time_limit_minutes: Optional[int] = Field(default=None, gt=0)
    start_datetime: Optional[UtcDatetime] = None
    end_datetime: Optional[UtcDatetime] = None
    results_publish_datetime: Optional[UtcDatetime] = None
    questions: list[QuestionCreate] = []

    @model_validator(mode="after")
    def check_window(self):
        if (
            self.start_datetime
            and self.end_datetime
            and self.end_datetime <= self.start_datetime
        ):
            raise ValueError("end_datetime must be after start_datetime")
        return self


class QuizUpdate(BaseModel):
    """Partial update of quiz settings.

    Only the fields sent are changed.  ``null`` clears an optional field;
    ``title`` and ``passing_score`` cannot be cleared and ignore it.
    """

    title: Optional[str] = None
    description: Optional[str] = None
    passing_score: Optional[float] = Field(default=None, ge=0, le=100)
    time_limit_minutes: Optional[int] = Field(default=None, gt=0)
    start_datetime: Optional[UtcDatetime] = None
    end_datetime: Optional[UtcDatetime] = None
    results_publish_datetime: Optional[UtcDatetime] = None


class OptionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    option_text: str
    is_correct: bool
    sort_order: int


class QuestionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    question: str
    question_type: str
    points: float
    require_justification: bool
    sort_order: int
    options: list[OptionRead]


class QuizSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    course_id: int
    title: str
    description: Optional[str] = None
    passing_score: float
    time_limit_minutes: Optional[int] = None


class QuizRead(QuizSummary):
    start_datetime: Optional[datetime] = None
    end_datetime: Optional[datetime] = None
    results_publish_datetime: Optional[datetime] = None
    created_at: datetime
    questions: list[QuestionRead] = []


class StudentOptionRead(BaseModel):
    """Option as shown while taking a quiz: correctness is withheld."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    option_text: str
    sort_order: int


class StudentQuestionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    question: str
    question_type: str
    points: float
    require_justification: bool
    sort_order: int
    options: list[StudentOptionRead]


class QuizTakeView(BaseModel):
    quiz: QuizSummary
    questions: list[StudentQuestionRead]
