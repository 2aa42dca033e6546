"""Per-question scoring rules.

Every rule is a pure function of the question, its options and the typed
answer, returning the automatic points earned and whether a human has to
look at the answer.  Nothing here touches the database.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

from assessment.answers import (
    Answer,
    FALSE_LABEL,
    MULTIPLE_CHOICE,
    SINGLE_CHOICE,
    TEXT,
    TRUE_FALSE,
    MultipleChoiceAnswer,
    SingleChoiceAnswer,
    TextAnswer,
    TrueFalseAnswer,
)
from assessment.errors import InvalidAnswer
from assessment.models import QuizOption, QuizQuestion


@dataclass(frozen=True)
class QuestionScore:
    points: float
    requires_manual: bool


NO_POINTS = QuestionScore(points=0.0, requires_manual=False)


def score_single_choice(
    question: QuizQuestion, options: Sequence[QuizOption], answer: SingleChoiceAnswer
) -> QuestionScore:
    for option in options:
        if option.id == answer.option_id:
            if option.is_correct:
                return QuestionScore(points=question.points, requires_manual=False)
            break
    return NO_POINTS


def score_multiple_choice(
    question: QuizQuestion,
    options: Sequence[QuizOption],
    answer: MultipleChoiceAnswer,
) -> QuestionScore:
    """All or nothing: the selection has to be exactly the correct set."""
    correct = {o.id for o in options if o.is_correct}
    selected = set(answer.option_ids)
    if not correct or selected != correct:
        return NO_POINTS
    return QuestionScore(
        points=len(selected & correct) / len(correct) * question.points,
        requires_manual=False,
    )


def score_true_false(
    question: QuizQuestion, options: Sequence[QuizOption], answer: TrueFalseAnswer
) -> QuestionScore:
    if question.require_justification and answer.answer == FALSE_LABEL:
        # the justification decides; a missing one still goes to the grader
        return QuestionScore(points=0.0, requires_manual=True)
    for option in options:
        if option.is_correct:
            if option.option_text == answer.answer:
                return QuestionScore(points=question.points, requires_manual=False)
            break
    return NO_POINTS


def score_text(
    question: QuizQuestion, options: Sequence[QuizOption], answer: TextAnswer
) -> QuestionScore:
    return QuestionScore(points=0.0, requires_manual=True)


SCORING_RULES = {
    SINGLE_CHOICE: score_single_choice,
    MULTIPLE_CHOICE: score_multiple_choice,
    TRUE_FALSE: score_true_false,
    TEXT: score_text,
}


def score_question(
    question: QuizQuestion, options: Sequence[QuizOption], answer: Optional[Answer]
) -> QuestionScore:
    """Score one answer.  A missing answer earns nothing and needs no grader."""
    if answer is None:
        return NO_POINTS
    if answer.kind != question.question_type:
        raise InvalidAnswer(
            f"Answer for question {question.id} is not a {question.question_type} answer"
        )
    rule = SCORING_RULES[question.question_type]
    return rule(question, options, answer)
