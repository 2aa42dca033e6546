"""Aggregate import for all API route modules."""

from . import (
    auth,
    admin,
    quizzes,
    submissions,
    results,
)

__all__ = [
    "auth",
    "admin",
    "quizzes",
    "submissions",
    "results",
]
