"""Assessment question variants and their graders.

Questions and answers are tagged by ``kind``. Payloads are validated once when
they cross a boundary (content import, HTTP request, database read); graders
receive fully typed objects.
"""

from __future__ import annotations

from typing import Annotated, Dict, List, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, model_validator


class ChoiceItem(BaseModel):
    id: str = Field(..., min_length=1)
    text: str


class CaseOption(BaseModel):
    id: str = Field(..., min_length=1)
    text: str
    is_correct: bool = False
    explanation: str = ""


class SingleChoiceQuestion(BaseModel):
    kind: Literal["single_choice"] = "single_choice"
    prompt: str
    options: List[str] = Field(..., min_length=2)
    correct_option: int = Field(..., ge=0)

    @model_validator(mode="after")
    def _check_correct_option(self) -> "SingleChoiceQuestion":
        if self.correct_option >= len(self.options):
            raise ValueError("correct_option must index into options.")
        return self


class MatchingQuestion(BaseModel):
    kind: Literal["matching"] = "matching"
    prompt: str
    left_label: str = "Term"
    right_label: str = "Definition"
    left_items: List[ChoiceItem] = Field(..., min_length=2)
    right_items: List[ChoiceItem] = Field(..., min_length=2)
    correct_pairs: Dict[str, str]

    @model_validator(mode="after")
    def _check_pairs(self) -> "MatchingQuestion":
        left_ids = {item.id for item in self.left_items}
        right_ids = {item.id for item in self.right_items}
        if set(self.correct_pairs) != left_ids:
            raise ValueError("correct_pairs must map every left item exactly once.")
        if not set(self.correct_pairs.values()) <= right_ids:
            raise ValueError("correct_pairs references unknown right items.")
        return self


class OrderingQuestion(BaseModel):
    kind: Literal["ordering"] = "ordering"
    prompt: str
    items: List[ChoiceItem] = Field(..., min_length=2)
    correct_order: List[str]

    @model_validator(mode="after")
    def _check_order(self) -> "OrderingQuestion":
        ids = [item.id for item in self.items]
        if sorted(ids) != sorted(self.correct_order) or len(set(ids)) != len(ids):
            raise ValueError("correct_order must be a permutation of item ids.")
        return self


class CaseAnalysisQuestion(BaseModel):
    kind: Literal["case_analysis"] = "case_analysis"
    prompt: str
    case_label: str = "Case"
    case_content: str
    options: List[CaseOption] = Field(..., min_length=2)
    min_correct_required: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def _check_correct_count(self) -> "CaseAnalysisQuestion":
        correct = sum(1 for option in self.options if option.is_correct)
        if correct < self.min_correct_required:
            raise ValueError("min_correct_required exceeds the number of correct options.")
        return self


Question = Annotated[
    Union[SingleChoiceQuestion, MatchingQuestion, OrderingQuestion, CaseAnalysisQuestion],
    Field(discriminator="kind"),
]


class SingleChoiceAnswer(BaseModel):
    kind: Literal["single_choice"] = "single_choice"
    selected_option: int = Field(..., ge=0)


class MatchingAnswer(BaseModel):
    kind: Literal["matching"] = "matching"
    pairs: Dict[str, str]


class OrderingAnswer(BaseModel):
    kind: Literal["ordering"] = "ordering"
    order: List[str]


class CaseAnalysisAnswer(BaseModel):
    kind: Literal["case_analysis"] = "case_analysis"
    selected_option_ids: List[str]


Answer = Annotated[
    Union[SingleChoiceAnswer, MatchingAnswer, OrderingAnswer, CaseAnalysisAnswer],
    Field(discriminator="kind"),
]

QUESTION_ADAPTER: TypeAdapter[Question] = TypeAdapter(Question)
ANSWER_ADAPTER: TypeAdapter[Answer] = TypeAdapter(Answer)


class AnswerKindMismatch(ValueError):
    pass


def parse_question(payload: dict) -> Question:
    return QUESTION_ADAPTER.validate_python(payload)


def grade(question: Question, answer: Answer) -> bool:
    """Return whether ``answer`` is correct for ``question``."""
    if question.kind != answer.kind:
        raise AnswerKindMismatch(f"Expected a '{question.kind}' answer, got '{answer.kind}'.")
    if isinstance(question, SingleChoiceQuestion):
        return answer.selected_option == question.correct_option  # type: ignore[union-attr]
    if isinstance(question, MatchingQuestion):
        return dict(answer.pairs) == dict(question.correct_pairs)  # type: ignore[union-attr]
    if isinstance(question, OrderingQuestion):
        return list(answer.order) == list(question.correct_order)  # type: ignore[union-attr]
    selected = set(answer.selected_option_ids)  # type: ignore[union-attr]
    correct_ids = {option.id for option in question.options if option.is_correct}
    if selected - correct_ids:
        return False
    return len(selected) >= question.min_correct_required


__all__ = [
    "ANSWER_ADAPTER",
    "Answer",
    "AnswerKindMismatch",
    "CaseAnalysisAnswer",
    "CaseAnalysisQuestion",
    "CaseOption",
    "ChoiceItem",
    "MatchingAnswer",
    "MatchingQuestion",
    "OrderingAnswer",
    "OrderingQuestion",
    "QUESTION_ADAPTER",
    "Question",
    "SingleChoiceAnswer",
    "SingleChoiceQuestion",
    "grade",
    "parse_question",
]
