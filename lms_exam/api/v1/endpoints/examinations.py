# lms_exam/api/v1/endpoints/examinations.py
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from lms_exam.core.security import get_current_grader, get_current_student, get_current_user
from lms_exam.db.session import get_db
from lms_exam.models.attempt import ExaminationAttempt
from lms_exam.models.user import User
from lms_exam.schemas.examination import (
    AttemptDetail,
    AttemptPublic,
    AttemptStatusResponse,
    GradeExaminationRequest,
    GradeExaminationResponse,
    PendingGradingItem,
    QuestionCounts,
    SubmitExaminationRequest,
    SubmitExaminationResponse,
)
from lms_exam.services import attempt_service
from lms_exam.services.artifact_store import CertificateArtifactStore, get_artifact_store
from lms_exam.services.attempt_service import SubmittedAnswer
from lms_exam.services.grading import ManualGrade

router = APIRouter(prefix="/examinations", tags=["examinations"])


@router.post(
    "/submit",
    response_model=SubmitExaminationResponse,
    status_code=status.HTTP_201_CREATED,
)
def submit_examination(
    payload: SubmitExaminationRequest,
    db: Session = Depends(get_db),
    current_student: User = Depends(get_current_student),
    store: CertificateArtifactStore = Depends(get_artifact_store),
):
    """
    学生提交考试答案：自动评分客观题，主观题等待老师评分。
    """
    outcome = attempt_service.submit_examination(
        db,
        learner_id=current_student.id,
        examination_id=payload.examination_id,
        answers=[SubmittedAnswer(a.question_id, a.answer) for a in payload.answers],
        time_spent=payload.time_spent,
        store=store,
    )
    attempt = outcome.attempt
    completed = not outcome.manual_grading_pending

    return SubmitExaminationResponse(
        message=(
            "Examination submitted successfully. Your answers are being reviewed."
            if outcome.manual_grading_pending
            else "Examination completed successfully."
        ),
        attempt_id=attempt.id,
        status=attempt.status,
        auto_score=attempt.auto_graded_score,
        auto_max=attempt.auto_graded_max_score,
        manual_grading_pending=outcome.manual_grading_pending,
        question_counts=QuestionCounts(
            total=outcome.total_questions,
            auto_graded=outcome.auto_graded_questions,
            manual_grading=outcome.manual_grading_questions,
        ),
        percentage=attempt.percentage if completed else None,
        passed=attempt.is_passed if completed else None,
        certificate_issued=outcome.certificate_number is not None,
        certificate_number=outcome.certificate_number,
    )


@router.post("/attempts/{attempt_id}/grade", response_model=GradeExaminationResponse)
def grade_examination(
    attempt_id: str,
    payload: GradeExaminationRequest,
    db: Session = Depends(get_db),
    current_grader: User = Depends(get_current_grader),
    store: CertificateArtifactStore = Depends(get_artifact_store),
):
    """
    老师人工评分主观题；全部评完后结算总分并在及格时颁发证书。
    """
    outcome = attempt_service.grade_examination(
        db,
        attempt_id=attempt_id,
        grader=current_grader,
        grades=[
            ManualGrade(g.question_id, g.points_awarded, g.feedback)
            for g in payload.manual_grades
        ],
        store=store,
    )
    attempt = outcome.attempt

    if not outcome.finalized:
        message = "Grades saved. Remaining questions must be graded before the result is final."
    elif attempt.is_passed:
        message = "Examination graded successfully. Student has passed!"
    else:
        message = "Examination graded successfully. Student did not pass."

    return GradeExaminationResponse(
        message=message,
        attempt_id=attempt.id,
        status=attempt.status,
        auto_score=attempt.auto_graded_score,
        manual_score=attempt.manual_graded_score,
        final_score=attempt.total_score,
        max_score=attempt.max_score,
        percentage=attempt.percentage,
        passed=attempt.is_passed if outcome.finalized else None,
        pending_question_ids=outcome.ungraded_question_ids,
        certificate_issued=outcome.certificate_number is not None,
        certificate_number=outcome.certificate_number,
    )


@router.get("/pending-grading", response_model=List[PendingGradingItem])
def list_pending_grading(
    db: Session = Depends(get_db),
    current_grader: User = Depends(get_current_grader),
    skip: int = 0,
    limit: int = 100,
):
    attempts = attempt_service.list_pending_grading(db, skip=skip, limit=limit)
    return [
        PendingGradingItem(
            id=a.id,
            content_block_id=a.content_block_id,
            user_id=a.user_id,
            student_name=a.learner.name if a.learner else None,
            examination_title=a.content_block.title,
            auto_graded_score=a.auto_graded_score,
            auto_graded_max_score=a.auto_graded_max_score,
            manual_graded_max_score=a.manual_graded_max_score,
            submitted_at=a.submitted_at,
        )
        for a in attempts
    ]


@router.get("/me", response_model=List[AttemptPublic])
def list_my_attempts(
    db: Session = Depends(get_db),
    current_student: User = Depends(get_current_student),
    skip: int = 0,
    limit: int = 100,
):
    return attempt_service.list_attempts_for_learner(
        db, learner_id=current_student.id, skip=skip, limit=limit
    )


@router.get("/attempts/{attempt_id}", response_model=AttemptDetail)
def get_attempt(
    attempt_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),  # 学生只能看自己的
):
    attempt: ExaminationAttempt = attempt_service.get_attempt_for_viewer(
        db, attempt_id, current_user
    )
    detail = attempt_service.get_attempt_detail(db, attempt)
    return AttemptDetail(
        **AttemptPublic.model_validate(attempt).model_dump(),
        examination_title=detail["examination_title"],
        student_name=detail["student_name"],
        passing_score=detail["passing_score"],
        questions=detail["questions"],
    )


@router.get("/{examination_id}/status", response_model=AttemptStatusResponse)
def get_attempt_status(
    examination_id: str,
    db: Session = Depends(get_db),
    current_student: User = Depends(get_current_student),
):
    attempt = attempt_service.get_attempt_status(
        db, examination_id=examination_id, learner_id=current_student.id
    )
    if attempt is None:
        return AttemptStatusResponse(has_attempt=False)
    return AttemptStatusResponse(
        has_attempt=True,
        attempt=AttemptPublic.model_validate(attempt),
    )
