# lms_exam/services/eligibility.py
"""
Eligibility gate: may this learner start this examination?

Pure read/decision, no writes. The single-attempt check here is only a fast
path; the unique constraint on examination_attempts is what actually holds
under concurrent first submissions.
"""
import logging
from dataclasses import dataclass
from typing import List

from sqlalchemy.orm import Session

from lms_exam.core.exceptions import (
    AlreadyAttemptedError,
    ExaminationNotFoundError,
    PrerequisitesIncompleteError,
)
from lms_exam.models.attempt import ExaminationAttempt
from lms_exam.models.content import ContentBlock
from lms_exam.services import progress, question_bank
from lms_exam.services.grading import passing_threshold_for
from lms_exam.services.question_types import QuestionSpec

logger = logging.getLogger(__name__)


@dataclass
class ExaminationContext:
    examination: ContentBlock
    questions: List[QuestionSpec]
    passing_threshold: float


def get_examination(db: Session, examination_id: str) -> ContentBlock:
    block = db.get(ContentBlock, examination_id)
    if block is None or block.type != progress.EXAMINATION_BLOCK_TYPE or not block.is_active:
        raise ExaminationNotFoundError("Examination not found")
    return block


def has_attempted(db: Session, learner_id: str, examination_id: str) -> bool:
    return (
        db.query(ExaminationAttempt.id)
        .filter(
            ExaminationAttempt.content_block_id == examination_id,
            ExaminationAttempt.user_id == learner_id,
        )
        .first()
        is not None
    )


def can_submit(db: Session, learner_id: str, examination_id: str) -> ExaminationContext:
    """
    Raises:
        ExaminationNotFoundError: block missing, not an examination, inactive,
            or without questions
        AlreadyAttemptedError: an attempt already exists for the pair
        PrerequisitesIncompleteError: a required course block is not complete
    """
    examination = get_examination(db, examination_id)

    if has_attempted(db, learner_id, examination_id):
        raise AlreadyAttemptedError()

    required = progress.list_required_blocks(db, examination.session_id)
    completed = sum(1 for block_id in required if progress.is_block_complete(db, learner_id, block_id))
    if completed < len(required):
        logger.info(
            f"Learner {learner_id} blocked from examination {examination_id}: "
            f"{completed}/{len(required)} required blocks complete"
        )
        raise PrerequisitesIncompleteError(required=len(required), completed=completed)

    questions = question_bank.get_questions(db, examination_id)
    if not questions:
        raise ExaminationNotFoundError("Examination has no questions")

    return ExaminationContext(
        examination=examination,
        questions=questions,
        passing_threshold=passing_threshold_for(examination.content_data),
    )
