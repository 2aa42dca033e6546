"""Typed failures raised by the assessment engine.

Services raise these instead of ``HTTPException`` so the same code paths
can be driven from tests or other callers.  ``main`` registers a handler
that renders them as ``{"detail": {"code": ..., "message": ...}}``, the
same shape the auth routes use for their errors.
"""

from datetime import datetime


class QuizEngineError(Exception):
    """Base class for recoverable, request-scoped failures."""

    code = "quiz_error"
    status_code = 400
    message = "Quiz request failed"

    def __init__(self, message: str | None = None, **extra):
        self.message = message or self.message
        self.extra = extra
        super().__init__(self.message)

    def to_detail(self) -> dict:
        detail = {"code": self.code, "message": self.message}
        for key, value in self.extra.items():
            detail[key] = value.isoformat() if isinstance(value, datetime) else value
        return detail


class NotEnrolled(QuizEngineError):
    code = "not_enrolled"
    status_code = 403
    message = "You are not enrolled in this course"


class NotStarted(QuizEngineError):
    code = "quiz_not_started"
    status_code = 400

    def __init__(self, start_datetime: datetime):
        super().__init__(
            f"This quiz has not started yet. It opens at {start_datetime.isoformat()}",
            start_datetime=start_datetime,
        )


class Ended(QuizEngineError):
    code = "quiz_ended"
    status_code = 400

    def __init__(self, end_datetime: datetime):
        super().__init__(
            f"This quiz has already ended. It closed at {end_datetime.isoformat()}",
            end_datetime=end_datetime,
        )


class AlreadyCompleted(QuizEngineError):
    code = "quiz_already_completed"
    status_code = 409
    message = "You have already completed this quiz"


class Expired(QuizEngineError):
    code = "quiz_expired"
    status_code = 409
    message = "The time for this quiz ran out and it can no longer be completed"


class QuizNotFound(QuizEngineError):
    code = "quiz_not_found"
    status_code = 404
    message = "Quiz not found"


class ResultNotFound(QuizEngineError):
    code = "result_not_found"
    status_code = 404
    message = "Result not found"


class QuestionNotFound(QuizEngineError):
    code = "question_not_found"
    status_code = 404
    message = "Question not found"


class InvalidAnswer(QuizEngineError):
    code = "invalid_answer"
    status_code = 422
    message = "Answer does not match the question type"


class Unauthorized(QuizEngineError):
    code = "unauthorized"
    status_code = 403
    message = "Not authorized"


class GradingConflict(QuizEngineError):
    code = "grading_conflict"
    status_code = 409
    message = "The result is being graded concurrently, try again"


class QuizHasResults(QuizEngineError):
    code = "quiz_has_results"
    status_code = 409
    message = "Questions cannot be changed once students have submitted"


class InvalidSchedule(QuizEngineError):
    code = "invalid_schedule"
    status_code = 422
    message = "end_datetime must be after start_datetime"
