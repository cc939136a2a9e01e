# lms_exam/services/attempt_service.py
"""
Examination attempt lifecycle.

    submitted (in memory only)
        -> auto_graded   manual questions pending
        -> completed     no manual questions, or after manual grading

Each transition is a single commit. ``completed`` is terminal.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from lms_exam.core.exceptions import (
    AlreadyAttemptedError,
    AuthorizationError,
    ConflictError,
    InfrastructureError,
    NotFoundError,
    ValidationError,
)
from lms_exam.core.security import GRADER_ROLES
from lms_exam.models.attempt import STATUS_AUTO_GRADED, STATUS_COMPLETED, ExaminationAttempt
from lms_exam.models.content import ContentBlock
from lms_exam.models.user import User
from lms_exam.services import certificate_service, eligibility, progress, question_bank
from lms_exam.services.artifact_store import CertificateArtifactStore
from lms_exam.services.grading import (
    FinalGrade,
    ManualGrade,
    apply_manual_grades,
    auto_grade,
    compute_percentage,
    finalize,
    passing_threshold_for,
)
from lms_exam.services.question_types import QuestionSpec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmittedAnswer:
    question_id: str
    answer: Any = None


@dataclass
class SubmissionOutcome:
    attempt: ExaminationAttempt
    total_questions: int
    auto_graded_questions: int
    manual_grading_questions: int
    certificate_number: Optional[str] = None

    @property
    def manual_grading_pending(self) -> bool:
        return self.manual_grading_questions > 0


@dataclass
class GradingOutcome:
    attempt: ExaminationAttempt
    finalized: bool
    ungraded_question_ids: List[str] = field(default_factory=list)
    certificate_number: Optional[str] = None


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _answer_map(
    questions: Sequence[QuestionSpec],
    answers: Sequence[SubmittedAnswer],
) -> Dict[str, Any]:
    """Check every answer against its question variant; None means unanswered."""
    by_id = {q.id: q for q in questions}
    answer_map: Dict[str, Any] = {}

    for item in answers:
        question = by_id.get(item.question_id)
        if question is None:
            raise ValidationError(
                f"Question {item.question_id} does not belong to this examination",
                details={"question_id": item.question_id},
            )
        if item.question_id in answer_map:
            raise ValidationError(
                f"Question {item.question_id} answered more than once",
                details={"question_id": item.question_id},
            )
        if item.answer is not None:
            question.validate_answer(item.answer)
        answer_map[item.question_id] = item.answer

    return answer_map


def _apply_final_grade(attempt: ExaminationAttempt, final: FinalGrade, at: datetime) -> None:
    attempt.total_score = final.total_score
    attempt.max_score = final.max_score
    attempt.percentage = final.rounded_percentage
    attempt.is_passed = final.passed
    attempt.status = STATUS_COMPLETED
    attempt.completed_at = at


def _mark_examination_complete(db: Session, attempt: ExaminationAttempt) -> None:
    progress.mark_block_complete(
        db,
        block_id=attempt.content_block_id,
        learner_id=attempt.user_id,
        progress_data={
            "examination_passed": attempt.is_passed,
            "score": attempt.total_score,
            "percentage": attempt.percentage,
        },
    )


def submit_examination(
    db: Session,
    *,
    learner_id: str,
    examination_id: str,
    answers: Sequence[SubmittedAnswer],
    time_spent: int | None = None,
    store: CertificateArtifactStore | None = None,
) -> SubmissionOutcome:
    """
    学生提交考试：eligibility -> auto grade -> one insert.

    Raises:
        ExaminationNotFoundError, AlreadyAttemptedError,
        PrerequisitesIncompleteError, ValidationError, InfrastructureError
    """
    ctx = eligibility.can_submit(db, learner_id, examination_id)
    answer_map = _answer_map(ctx.questions, answers)
    result = auto_grade(ctx.questions, answer_map)

    now = _now()
    attempt = ExaminationAttempt(
        content_block_id=examination_id,
        user_id=learner_id,
        answers=result.answer_records(),
        time_taken=time_spent,
        auto_graded_score=result.auto_score,
        auto_graded_max_score=result.auto_max,
        manual_graded_score=0.0,
        manual_graded_max_score=result.manual_max,
        submitted_at=now,
    )

    if result.finalizable:
        final = finalize(
            auto_score=result.auto_score,
            auto_max=result.auto_max,
            manual_score=0.0,
            manual_max=0.0,
            passing_threshold=ctx.passing_threshold,
        )
        _apply_final_grade(attempt, final, now)
    else:
        # provisional, auto-only totals
        attempt.total_score = result.auto_score
        attempt.max_score = result.auto_max + result.manual_max
        attempt.percentage = round(compute_percentage(attempt.total_score, attempt.max_score), 2)
        attempt.is_passed = False
        attempt.status = STATUS_AUTO_GRADED

    db.add(attempt)
    if attempt.status == STATUS_COMPLETED:
        _mark_examination_complete(db, attempt)

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        # lost the race against a concurrent first submission
        if eligibility.has_attempted(db, learner_id, examination_id):
            logger.info(
                f"Duplicate submission rejected for learner {learner_id}, "
                f"examination {examination_id}"
            )
            raise AlreadyAttemptedError()
        raise ConflictError("Examination submission conflicted with another write")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to persist examination attempt: {e}", exc_info=True)
        raise InfrastructureError("Failed to submit examination") from e

    db.refresh(attempt)
    logger.info(
        f"Examination {examination_id} submitted by {learner_id}: attempt={attempt.id}, "
        f"status={attempt.status}, auto={result.auto_score}/{result.auto_max}"
    )

    outcome = SubmissionOutcome(
        attempt=attempt,
        total_questions=len(ctx.questions),
        auto_graded_questions=len(ctx.questions) - len(result.pending_manual_question_ids),
        manual_grading_questions=len(result.pending_manual_question_ids),
    )
    if attempt.status == STATUS_COMPLETED and attempt.is_passed:
        outcome.certificate_number = certificate_service.issue_best_effort(
            db, attempt.id, store=store
        )
        db.refresh(attempt)
    return outcome


def grade_examination(
    db: Session,
    *,
    attempt_id: str,
    grader: User,
    grades: Sequence[ManualGrade],
    store: CertificateArtifactStore | None = None,
) -> GradingOutcome:
    """
    老师人工评分：auto_graded -> completed once every manual question is graded.

    A partial batch is stored and the attempt stays auto_graded.

    Raises:
        AuthorizationError, NotFoundError, AlreadyGradedError, ValidationError
    """
    if grader.role not in GRADER_ROLES:
        raise AuthorizationError("Only staff can grade examinations")

    # row lock: concurrent graders of the same attempt queue up here
    attempt: Optional[ExaminationAttempt] = (
        db.query(ExaminationAttempt)
        .filter(ExaminationAttempt.id == attempt_id)
        .with_for_update()
        .first()
    )
    if attempt is None:
        raise NotFoundError.for_resource("Examination attempt")

    now = _now()
    try:
        result = apply_manual_grades(attempt, grades, graded_by=grader.id, graded_at=now)
    except Exception:
        db.rollback()
        raise

    attempt.answers = result.updated_answers
    attempt.manual_graded_score = result.manual_score
    attempt.manual_graded_max_score = result.manual_max

    if result.fully_graded:
        final = finalize(
            auto_score=attempt.auto_graded_score,
            auto_max=attempt.auto_graded_max_score,
            manual_score=result.manual_score,
            manual_max=result.manual_max,
            passing_threshold=passing_threshold_for(attempt.content_block.content_data),
        )
        _apply_final_grade(attempt, final, now)
        attempt.graded_at = now
        attempt.graded_by = grader.id
        _mark_examination_complete(db, attempt)
    else:
        attempt.total_score = attempt.auto_graded_score + result.manual_score
        attempt.percentage = round(compute_percentage(attempt.total_score, attempt.max_score), 2)

    db.add(attempt)
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to persist grading of attempt {attempt_id}: {e}", exc_info=True)
        raise InfrastructureError("Failed to grade examination") from e

    db.refresh(attempt)
    outcome = GradingOutcome(
        attempt=attempt,
        finalized=result.fully_graded,
        ungraded_question_ids=result.ungraded_question_ids,
    )

    if not result.fully_graded:
        logger.info(
            f"Attempt {attempt_id} partially graded by {grader.id}; "
            f"{len(result.ungraded_question_ids)} question(s) still pending"
        )
        return outcome

    logger.info(
        f"Attempt {attempt_id} graded by {grader.id}: {attempt.total_score}/{attempt.max_score} "
        f"({attempt.percentage}%), passed={attempt.is_passed}"
    )
    if attempt.is_passed:
        outcome.certificate_number = certificate_service.issue_best_effort(
            db, attempt.id, store=store
        )
        db.refresh(attempt)
    return outcome


def get_attempt(db: Session, attempt_id: str) -> Optional[ExaminationAttempt]:
    return db.get(ExaminationAttempt, attempt_id)


def get_attempt_for_viewer(db: Session, attempt_id: str, viewer: User) -> ExaminationAttempt:
    attempt = get_attempt(db, attempt_id)
    if attempt is None:
        raise NotFoundError.for_resource("Examination attempt")
    if attempt.user_id != viewer.id and viewer.role not in GRADER_ROLES:
        # do not reveal other learners' attempts
        raise NotFoundError.for_resource("Examination attempt")
    return attempt


def get_attempt_detail(db: Session, attempt: ExaminationAttempt) -> Dict[str, Any]:
    """Attempt merged with its questions for review screens."""
    block: ContentBlock = attempt.content_block
    ledger = {a["question_id"]: a for a in (attempt.answers or [])}

    questions = []
    for q in question_bank.get_questions(db, attempt.content_block_id):
        record = ledger.get(q.id, {})
        questions.append(
            {
                "id": q.id,
                "question_text": q.question_text,
                "question_type": q.question_type,
                "points": q.points,
                "student_answer": record.get("student_answer"),
                "is_correct": record.get("is_correct"),
                "points_awarded": record.get("points_awarded"),
                "requires_manual_grading": record.get("requires_manual_grading", False),
                "feedback": record.get("feedback"),
            }
        )

    return {
        "examination_title": block.title,
        "student_name": attempt.learner.name if attempt.learner else None,
        "passing_score": passing_threshold_for(block.content_data),
        "questions": questions,
    }


def list_pending_grading(
    db: Session,
    *,
    skip: int = 0,
    limit: int = 100,
) -> List[ExaminationAttempt]:
    """Attempts waiting for a grader, oldest submission first."""
    return (
        db.query(ExaminationAttempt)
        .filter(ExaminationAttempt.status == STATUS_AUTO_GRADED)
        .order_by(ExaminationAttempt.submitted_at.asc())
        .offset(skip)
        .limit(limit)
        .all()
    )


def get_attempt_status(
    db: Session,
    *,
    examination_id: str,
    learner_id: str,
) -> Optional[ExaminationAttempt]:
    return (
        db.query(ExaminationAttempt)
        .filter(
            ExaminationAttempt.content_block_id == examination_id,
            ExaminationAttempt.user_id == learner_id,
        )
        .first()
    )


def list_attempts_for_learner(
    db: Session,
    *,
    learner_id: str,
    skip: int = 0,
    limit: int = 100,
) -> List[ExaminationAttempt]:
    return (
        db.query(ExaminationAttempt)
        .filter(ExaminationAttempt.user_id == learner_id)
        .order_by(ExaminationAttempt.submitted_at.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )
