# lms_exam/schemas/examination.py
from datetime import datetime
from typing import Any, List

from pydantic import BaseModel, Field


class AnswerIn(BaseModel):
    question_id: str
    # str for single_choice / true_false / text, list[str] for multiple_choice
    answer: str | List[str] | None = None


class SubmitExaminationRequest(BaseModel):
    examination_id: str
    answers: List[AnswerIn]
    time_spent: int = Field(default=0, ge=0)  # seconds


class QuestionCounts(BaseModel):
    total: int
    auto_graded: int
    manual_grading: int


class SubmitExaminationResponse(BaseModel):
    success: bool = True
    message: str
    attempt_id: str
    status: str
    auto_score: float
    auto_max: float
    manual_grading_pending: bool
    question_counts: QuestionCounts
    # only set when the attempt completed at submission time
    percentage: float | None = None
    passed: bool | None = None
    certificate_issued: bool = False
    certificate_number: str | None = None


class ManualGradeIn(BaseModel):
    question_id: str
    points_awarded: float = Field(allow_inf_nan=False)
    feedback: str | None = None


class GradeExaminationRequest(BaseModel):
    manual_grades: List[ManualGradeIn] = Field(min_length=1)


class GradeExaminationResponse(BaseModel):
    success: bool = True
    message: str
    attempt_id: str
    status: str
    auto_score: float
    manual_score: float
    final_score: float
    max_score: float
    percentage: float
    passed: bool | None = None  # None while manual questions are still ungraded
    pending_question_ids: List[str] = []
    certificate_issued: bool = False
    certificate_number: str | None = None


class AttemptPublic(BaseModel):
    id: str
    content_block_id: str
    user_id: str
    status: str
    auto_graded_score: float
    auto_graded_max_score: float
    manual_graded_score: float
    manual_graded_max_score: float
    total_score: float
    max_score: float
    percentage: float
    is_passed: bool
    time_taken: int | None = None
    submitted_at: datetime | None = None
    graded_by: str | None = None
    graded_at: datetime | None = None
    completed_at: datetime | None = None

    model_config = {"from_attributes": True}


class AttemptQuestion(BaseModel):
    id: str
    question_text: str
    question_type: str
    points: float
    student_answer: Any = None
    is_correct: bool | None = None
    points_awarded: float | None = None
    requires_manual_grading: bool = False
    feedback: str | None = None


class AttemptDetail(AttemptPublic):
    examination_title: str
    student_name: str | None = None
    passing_score: float
    questions: List[AttemptQuestion]


class PendingGradingItem(BaseModel):
    id: str
    content_block_id: str
    user_id: str
    student_name: str | None = None
    examination_title: str
    auto_graded_score: float
    auto_graded_max_score: float
    manual_graded_max_score: float
    submitted_at: datetime | None = None


class AttemptStatusResponse(BaseModel):
    has_attempt: bool
    attempt: AttemptPublic | None = None
