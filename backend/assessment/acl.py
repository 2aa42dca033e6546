"""Role constants and helpers.

Requests are authorized by the role stored on the user record.  Graders
are further limited per course by ``crud.is_course_grader``.
"""

ROLE_STUDENT = "student"
ROLE_PROFESSOR = "professor"
ROLE_ADMIN = "admin"

ALL_ROLES = [ROLE_STUDENT, ROLE_PROFESSOR, ROLE_ADMIN]

# Roles that may author quizzes and grade results; professors only on
# the courses they teach.
GRADER_ROLES = [ROLE_PROFESSOR, ROLE_ADMIN]


def is_grader_role(role: str) -> bool:
    return role in GRADER_ROLES
