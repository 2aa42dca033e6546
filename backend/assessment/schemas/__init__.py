"""Convenience imports for all schema classes used by the API."""

from .user import UserCreate, UserResponse, UserLogin, RoleUpdate
from .course import CourseCreate, CourseRead, EnrollmentCreate, InstructorAssign
from .quiz import (
    OptionCreate,
    QuestionCreate,
    QuizCreate,
    QuizUpdate,
    OptionRead,
    QuestionRead,
    QuizSummary,
    QuizRead,
    StudentOptionRead,
    StudentQuestionRead,
    QuizTakeView,
)
from .submission import QuizSubmission, SubmissionResponse, ForfeitResponse
from .result import (
    ResultSummary,
    ManualGradeRead,
    QuestionBreakdown,
    ResultView,
    QuizResultRow,
    PendingResultRead,
)
from .grading import GradeRequest, GradeResponse

__all__ = [
    "UserCreate",
    "UserResponse",
    "UserLogin",
    "RoleUpdate",
    "CourseCreate",
    "CourseRead",
    "EnrollmentCreate",
    "InstructorAssign",
    "OptionCreate",
    "QuestionCreate",
    "QuizCreate",
    "QuizUpdate",
    "OptionRead",
    "QuestionRead",
    "QuizSummary",
    "QuizRead",
    "StudentOptionRead",
    "StudentQuestionRead",
    "QuizTakeView",
    "QuizSubmission",
    "SubmissionResponse",
    "ForfeitResponse",
    "ResultSummary",
    "ManualGradeRead",
    "QuestionBreakdown",
    "ResultView",
    "QuizResultRow",
    "PendingResultRead",
    "GradeRequest",
    "GradeResponse",
]
