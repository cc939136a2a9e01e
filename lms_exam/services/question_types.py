"""
Question type variants.

Each question type is a small frozen dataclass that owns two things:

- ``validate_answer``: shape check for a learner's raw answer
- ``is_correct``: the deterministic grading rule (auto-gradable types only)

``from_model`` dispatches on the ``question_type`` tag stored on the row.
"""

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Optional, Tuple, Type

from lms_exam.core.exceptions import ValidationError
from lms_exam.models.question import Question


@dataclass(frozen=True)
class QuestionSpec:
    id: str
    points: float
    options: Tuple[str, ...] = ()
    correct_answer: Any = None
    order_index: int = 0
    question_text: str = ""

    question_type: ClassVar[str] = ""
    auto_gradable: ClassVar[bool] = False

    def validate_answer(self, answer: Any) -> None:
        raise NotImplementedError

    def is_correct(self, answer: Any) -> bool:
        return False

    def _reject(self, message: str) -> None:
        raise ValidationError(
            f"Invalid answer for question {self.id}: {message}",
            details={"question_id": self.id, "question_type": self.question_type},
        )


@dataclass(frozen=True)
class SingleChoiceQuestion(QuestionSpec):
    question_type: ClassVar[str] = "single_choice"
    auto_gradable: ClassVar[bool] = True

    def validate_answer(self, answer: Any) -> None:
        if not isinstance(answer, str):
            self._reject("expected a single selected option")
        if self.options and answer not in self.options:
            self._reject(f"'{answer}' is not one of the options")

    def is_correct(self, answer: Any) -> bool:
        # exact, case-sensitive
        return isinstance(answer, str) and answer == self.correct_answer


@dataclass(frozen=True)
class TrueFalseQuestion(SingleChoiceQuestion):
    question_type: ClassVar[str] = "true_false"


@dataclass(frozen=True)
class MultipleChoiceQuestion(QuestionSpec):
    question_type: ClassVar[str] = "multiple_choice"
    auto_gradable: ClassVar[bool] = True

    def validate_answer(self, answer: Any) -> None:
        if not isinstance(answer, list) or not all(isinstance(a, str) for a in answer):
            self._reject("expected a list of selected options")
        if self.options:
            unknown = [a for a in answer if a not in self.options]
            if unknown:
                self._reject(f"{unknown} are not among the options")

    def is_correct(self, answer: Any) -> bool:
        # a bare string key is a one-option key
        key = [self.correct_answer] if isinstance(self.correct_answer, str) else self.correct_answer
        if not isinstance(answer, list) or not isinstance(key, list):
            return False
        # same cardinality and same elements; no partial credit
        if len(answer) != len(key):
            return False
        return sorted(answer) == sorted(key)


@dataclass(frozen=True)
class FreeTextQuestion(QuestionSpec):
    def validate_answer(self, answer: Any) -> None:
        if not isinstance(answer, str):
            self._reject("expected a text answer")


@dataclass(frozen=True)
class ShortAnswerQuestion(FreeTextQuestion):
    question_type: ClassVar[str] = "short_answer"


@dataclass(frozen=True)
class LongAnswerQuestion(FreeTextQuestion):
    question_type: ClassVar[str] = "long_answer"


QUESTION_TYPES: Dict[str, Type[QuestionSpec]] = {
    cls.question_type: cls
    for cls in (
        SingleChoiceQuestion,
        MultipleChoiceQuestion,
        TrueFalseQuestion,
        ShortAnswerQuestion,
        LongAnswerQuestion,
    )
}

AUTO_GRADABLE_TYPES = frozenset(t for t, cls in QUESTION_TYPES.items() if cls.auto_gradable)
MANUAL_GRADABLE_TYPES = frozenset(t for t, cls in QUESTION_TYPES.items() if not cls.auto_gradable)


def from_model(question: Question) -> QuestionSpec:
    cls: Optional[Type[QuestionSpec]] = QUESTION_TYPES.get(question.question_type)
    if cls is None:
        raise ValidationError(
            f"Question {question.id} has unsupported type '{question.question_type}'"
        )

    points = float(question.points or 0)
    if points <= 0:
        raise ValidationError(f"Question {question.id} must have a positive point value")

    return cls(
        id=question.id,
        points=points,
        options=tuple(question.options or ()),
        correct_answer=question.correct_answer,
        order_index=question.order_index or 0,
        question_text=question.question_text,
    )
