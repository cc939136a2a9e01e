# lms_exam/models/attempt.py
import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from lms_exam.db.base import Base

STATUS_AUTO_GRADED = "auto_graded"
STATUS_COMPLETED = "completed"


class ExaminationAttempt(Base):
    __tablename__ = "examination_attempts"
    # one attempt per learner per examination; the insert is the arbiter
    __table_args__ = (
        UniqueConstraint("content_block_id", "user_id", name="uq_examination_attempt_user"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    content_block_id = Column(String(36), ForeignKey("content_blocks.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    # per-question ledger, see services.grading.QuestionOutcome
    answers = Column(JSON, nullable=False)
    time_taken = Column(Integer, nullable=True)  # seconds

    auto_graded_score = Column(Float, nullable=False, default=0)
    auto_graded_max_score = Column(Float, nullable=False, default=0)
    manual_graded_score = Column(Float, nullable=False, default=0)
    manual_graded_max_score = Column(Float, nullable=False, default=0)
    total_score = Column(Float, nullable=False, default=0)
    max_score = Column(Float, nullable=False, default=0)
    percentage = Column(Float, nullable=False, default=0)
    is_passed = Column(Boolean, nullable=False, default=False)

    # 状态：auto_graded / completed
    status = Column(String(20), nullable=False, index=True)

    submitted_at = Column(DateTime(timezone=True), nullable=True)
    graded_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    graded_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    content_block = relationship("ContentBlock")
    learner = relationship("User", foreign_keys=[user_id])
