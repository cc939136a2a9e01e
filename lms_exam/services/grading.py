"""
Grading engine.

Two phases:

1. ``auto_grade``: objective questions are scored by exact key comparison,
   subjective ones are parked for a human grader.
2. ``apply_manual_grades``: a grader awards points for the parked questions.

``finalize`` combines both phases into the final score and pass/fail flag.
Nothing in this module touches the database.
"""

import copy
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from lms_exam.core.config import settings
from lms_exam.core.exceptions import AlreadyGradedError, ValidationError
from lms_exam.models.attempt import STATUS_AUTO_GRADED, ExaminationAttempt
from lms_exam.services.question_types import QuestionSpec


@dataclass
class QuestionOutcome:
    """One entry of the attempt's answer ledger."""

    question_id: str
    question_type: str
    points: float
    student_answer: Any
    is_correct: Optional[bool]
    points_awarded: Optional[float]
    requires_manual_grading: bool

    def to_record(self) -> Dict[str, Any]:
        return {
            "question_id": self.question_id,
            "question_type": self.question_type,
            "points": self.points,
            "student_answer": self.student_answer,
            "is_correct": self.is_correct,
            "points_awarded": self.points_awarded,
            "requires_manual_grading": self.requires_manual_grading,
        }


@dataclass
class AutoGradeResult:
    auto_score: float
    auto_max: float
    manual_max: float
    outcomes: List[QuestionOutcome] = field(default_factory=list)
    pending_manual_question_ids: List[str] = field(default_factory=list)

    @property
    def finalizable(self) -> bool:
        return not self.pending_manual_question_ids

    def answer_records(self) -> List[Dict[str, Any]]:
        return [o.to_record() for o in self.outcomes]


@dataclass(frozen=True)
class ManualGrade:
    question_id: str
    points_awarded: float
    feedback: Optional[str] = None


@dataclass
class ManualGradeResult:
    manual_score: float
    manual_max: float
    updated_answers: List[Dict[str, Any]]
    ungraded_question_ids: List[str]

    @property
    def fully_graded(self) -> bool:
        return not self.ungraded_question_ids


@dataclass(frozen=True)
class FinalGrade:
    total_score: float
    max_score: float
    percentage: float  # unrounded; pass/fail is decided on this value
    passed: bool

    @property
    def rounded_percentage(self) -> float:
        return round(self.percentage, 2)


def compute_percentage(total_score: float, max_score: float) -> float:
    if max_score <= 0:
        return 0.0
    return total_score / max_score * 100


def passing_threshold_for(content_data: Optional[Mapping[str, Any]]) -> float:
    """Per-examination passing percentage, ``content_data["passingScore"]``."""
    value = (content_data or {}).get("passingScore")
    if value is None or value == "":
        return settings.DEFAULT_PASSING_SCORE
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid passing score configured: {value!r}")


def auto_grade(
    questions: Sequence[QuestionSpec],
    answers: Mapping[str, Any],
) -> AutoGradeResult:
    """
    Score the objective questions of an examination.

    Args:
        questions: Every question of the examination
        answers: question_id -> raw answer (missing or None means unanswered)

    Returns:
        AutoGradeResult. Unanswered objective questions score zero; subjective
        questions get a zero provisional score and land in
        ``pending_manual_question_ids``.
    """
    auto_score = 0.0
    auto_max = 0.0
    manual_max = 0.0
    outcomes: List[QuestionOutcome] = []
    pending: List[str] = []

    for question in questions:
        student_answer = answers.get(question.id)

        if question.auto_gradable:
            auto_max += question.points
            correct = student_answer is not None and question.is_correct(student_answer)
            awarded = question.points if correct else 0.0
            auto_score += awarded
            outcomes.append(
                QuestionOutcome(
                    question_id=question.id,
                    question_type=question.question_type,
                    points=question.points,
                    student_answer=student_answer,
                    is_correct=correct,
                    points_awarded=awarded,
                    requires_manual_grading=False,
                )
            )
        else:
            manual_max += question.points
            pending.append(question.id)
            outcomes.append(
                QuestionOutcome(
                    question_id=question.id,
                    question_type=question.question_type,
                    points=question.points,
                    student_answer=student_answer,
                    is_correct=None,
                    points_awarded=None,
                    requires_manual_grading=True,
                )
            )

    return AutoGradeResult(
        auto_score=auto_score,
        auto_max=auto_max,
        manual_max=manual_max,
        outcomes=outcomes,
        pending_manual_question_ids=pending,
    )


def _manual_records(answers: Iterable[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    return {a["question_id"]: a for a in answers if a.get("requires_manual_grading")}


def apply_manual_grades(
    attempt: ExaminationAttempt,
    grades: Sequence[ManualGrade],
    *,
    graded_by: str,
    graded_at: datetime,
) -> ManualGradeResult:
    """
    Apply a grader's batch to the subjective questions of an attempt.

    A batch may cover a subset of the manual questions; earlier grades stay
    in the ledger and may be overwritten until the attempt is finalized.
    The attempt object itself is not modified.

    Raises:
        AlreadyGradedError: attempt is not awaiting manual grading
        ValidationError: unknown/duplicate question id or points out of range
    """
    if attempt.status != STATUS_AUTO_GRADED:
        raise AlreadyGradedError()

    if not grades:
        raise ValidationError("At least one manual grade is required")

    updated_answers = copy.deepcopy(list(attempt.answers or []))
    manual = _manual_records(updated_answers)

    seen: set[str] = set()
    for grade in grades:
        record = manual.get(grade.question_id)
        if record is None:
            raise ValidationError(
                f"Question {grade.question_id} not found or not a manual grading question",
                details={"question_id": grade.question_id},
            )
        if grade.question_id in seen:
            raise ValidationError(
                f"Question {grade.question_id} graded more than once in the same batch",
                details={"question_id": grade.question_id},
            )
        seen.add(grade.question_id)

        max_points = float(record["points"])
        if not math.isfinite(grade.points_awarded):
            raise ValidationError(
                f"Points awarded for question {grade.question_id} must be a finite number",
                details={"question_id": grade.question_id, "min_points": 0, "max_points": max_points},
            )
        if grade.points_awarded < 0 or grade.points_awarded > max_points:
            raise ValidationError(
                f"Points awarded for question {grade.question_id} must be between 0 and {max_points:g}",
                details={
                    "question_id": grade.question_id,
                    "min_points": 0,
                    "max_points": max_points,
                    "points_awarded": grade.points_awarded,
                },
            )

        record["points_awarded"] = float(grade.points_awarded)
        record["feedback"] = grade.feedback
        record["graded_by"] = graded_by
        record["graded_at"] = graded_at.isoformat()

    manual_score = sum(r["points_awarded"] or 0.0 for r in manual.values())
    manual_max = sum(float(r["points"]) for r in manual.values())
    ungraded = [qid for qid, r in manual.items() if r.get("points_awarded") is None]

    return ManualGradeResult(
        manual_score=manual_score,
        manual_max=manual_max,
        updated_answers=updated_answers,
        ungraded_question_ids=ungraded,
    )


def finalize(
    *,
    auto_score: float,
    auto_max: float,
    manual_score: float,
    manual_max: float,
    passing_threshold: float,
) -> FinalGrade:
    total_score = auto_score + manual_score
    max_score = auto_max + manual_max
    percentage = compute_percentage(total_score, max_score)
    return FinalGrade(
        total_score=total_score,
        max_score=max_score,
        percentage=percentage,
        passed=percentage >= passing_threshold,
    )
