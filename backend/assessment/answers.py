"""Typed answer payloads.

A submitted answer arrives as loosely typed JSON (an option id, a list of
option ids, a ``{"answer", "justification"}`` object or free text) whose
meaning depends on the question it answers.  ``parse_answer`` turns that
payload into one member of the ``Answer`` union so each scoring rule only
ever sees the shape it expects.  The same function reads answers back
from a stored result, which keeps the stored form and the wire form
interchangeable.
"""

from typing import Any, Literal, Optional, Union
from pydantic import BaseModel

from assessment.errors import InvalidAnswer

SINGLE_CHOICE = "single_choice"
MULTIPLE_CHOICE = "multiple_choice"
TRUE_FALSE = "true_false"
TEXT = "text"

QUESTION_TYPES = [SINGLE_CHOICE, MULTIPLE_CHOICE, TRUE_FALSE, TEXT]

TRUE_LABEL = "Verdadero"
FALSE_LABEL = "Falso"


class SingleChoiceAnswer(BaseModel):
    kind: Literal["single_choice"] = SINGLE_CHOICE
    option_id: int

    def to_payload(self):
        return self.option_id


class MultipleChoiceAnswer(BaseModel):
    kind: Literal["multiple_choice"] = MULTIPLE_CHOICE
    option_ids: list[int]

    def to_payload(self):
        return list(self.option_ids)


class TrueFalseAnswer(BaseModel):
    kind: Literal["true_false"] = TRUE_FALSE
    answer: Literal["Verdadero", "Falso"]
    justification: Optional[str] = None

    def to_payload(self):
        return {"answer": self.answer, "justification": self.justification}


class TextAnswer(BaseModel):
    kind: Literal["text"] = TEXT
    text: str

    def to_payload(self):
        return self.text


Answer = Union[SingleChoiceAnswer, MultipleChoiceAnswer, TrueFalseAnswer, TextAnswer]


def _is_blank(raw: Any) -> bool:
    return raw is None or (isinstance(raw, str) and not raw.strip())


def _option_id(raw: Any, question_type: str) -> int:
    # bool is an int subclass; ``true`` is never a valid option id
    if isinstance(raw, bool):
        raise InvalidAnswer(f"Expected an option id for {question_type} question")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    raise InvalidAnswer(f"Expected an option id for {question_type} question")


def _parse_single_choice(raw: Any) -> SingleChoiceAnswer:
    if isinstance(raw, list):
        if len(raw) != 1:
            raise InvalidAnswer("single_choice questions take exactly one option")
        raw = raw[0]
    return SingleChoiceAnswer(option_id=_option_id(raw, SINGLE_CHOICE))


def _parse_multiple_choice(raw: Any) -> Optional[MultipleChoiceAnswer]:
    values = raw if isinstance(raw, list) else [raw]
    ids = [_option_id(v, MULTIPLE_CHOICE) for v in values if not _is_blank(v)]
    if not ids:
        return None
    # duplicates collapse, first occurrence keeps its position
    return MultipleChoiceAnswer(option_ids=list(dict.fromkeys(ids)))


def _parse_true_false(raw: Any) -> Optional[TrueFalseAnswer]:
    justification = None
    if isinstance(raw, dict):
        value = raw.get("answer")
        justification = raw.get("justification")
    else:
        value = raw
    if _is_blank(value):
        return None
    if value not in (TRUE_LABEL, FALSE_LABEL):
        raise InvalidAnswer(
            f"true_false answers must be '{TRUE_LABEL}' or '{FALSE_LABEL}'"
        )
    if justification is not None and not isinstance(justification, str):
        raise InvalidAnswer("Justification must be text")
    if _is_blank(justification):
        justification = None
    return TrueFalseAnswer(answer=value, justification=justification)


def _parse_text(raw: Any) -> TextAnswer:
    if not isinstance(raw, str):
        raise InvalidAnswer("text questions take a free-text answer")
    return TextAnswer(text=raw)


_PARSERS = {
    SINGLE_CHOICE: _parse_single_choice,
    MULTIPLE_CHOICE: _parse_multiple_choice,
    TRUE_FALSE: _parse_true_false,
    TEXT: _parse_text,
}


def parse_answer(question_type: str, raw: Any) -> Optional[Answer]:
    """Return the typed answer for ``raw`` or ``None`` when it is missing.

    Raises :class:`InvalidAnswer` when the payload cannot be an answer to a
    question of ``question_type``.
    """
    if _is_blank(raw):
        return None
    parser = _PARSERS.get(question_type)
    if parser is None:
        raise InvalidAnswer(f"Unknown question type {question_type!r}")
    return parser(raw)
