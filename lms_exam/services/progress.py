# lms_exam/services/progress.py
"""
Course-completion tracker: which content blocks a learner has finished.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from lms_exam.models.content import ContentBlock, ContentProgress

EXAMINATION_BLOCK_TYPE = "examination"


def list_required_blocks(db: Session, session_id: str) -> List[str]:
    """Required, active, non-examination blocks of a course session."""
    rows = (
        db.query(ContentBlock.id)
        .filter(
            ContentBlock.session_id == session_id,
            ContentBlock.type != EXAMINATION_BLOCK_TYPE,
            ContentBlock.is_required.is_(True),
            ContentBlock.is_active.is_(True),
        )
        .all()
    )
    return [r.id for r in rows]


def is_block_complete(db: Session, learner_id: str, block_id: str) -> bool:
    # no progress row at all counts as incomplete
    progress = (
        db.query(ContentProgress)
        .filter(
            ContentProgress.content_block_id == block_id,
            ContentProgress.user_id == learner_id,
        )
        .first()
    )
    return bool(progress and progress.is_completed)


def mark_block_complete(
    db: Session,
    *,
    block_id: str,
    learner_id: str,
    progress_data: Dict[str, Any] | None = None,
) -> ContentProgress:
    """
    Upsert a completion record. Does not commit: callers fold it into the
    transaction of the transition that completed the block.
    """
    progress = (
        db.query(ContentProgress)
        .filter(
            ContentProgress.content_block_id == block_id,
            ContentProgress.user_id == learner_id,
        )
        .first()
    )
    if progress is None:
        progress = ContentProgress(content_block_id=block_id, user_id=learner_id)

    progress.is_completed = True
    progress.completed_at = datetime.now(timezone.utc)
    progress.progress_data = progress_data
    db.add(progress)
    return progress
