# lms_exam/models/certificate.py
import uuid

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.sql import func

from lms_exam.db.base import Base


class Certificate(Base):
    __tablename__ = "course_certificates"
    # at most one live certificate per attempt; revoked rows stay for audit
    __table_args__ = (
        Index(
            "uq_certificate_active_attempt",
            "examination_attempt_id",
            unique=True,
            postgresql_where=text("is_revoked = false"),
            sqlite_where=text("is_revoked = 0"),
        ),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    certificate_number = Column(String(100), unique=True, nullable=False, index=True)

    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    subject_id = Column(String(36), ForeignKey("subjects.id"), nullable=False, index=True)
    session_id = Column(String(36), ForeignKey("course_sessions.id"), nullable=False)
    examination_attempt_id = Column(
        String(36), ForeignKey("examination_attempts.id"), nullable=False
    )

    student_name = Column(String(255), nullable=False)
    course_name = Column(String(500), nullable=False)
    course_code = Column(String(50), nullable=True)
    completion_date = Column(Date, nullable=False)
    issue_date = Column(Date, nullable=False)

    final_score = Column(Float, nullable=False)
    max_score = Column(Float, nullable=False)
    percentage = Column(Float, nullable=False)
    grade = Column(String(10), nullable=False)

    certificate_url = Column(Text, nullable=False)
    certificate_hash = Column(String(64), nullable=False)
    issued_at = Column(DateTime(timezone=True), nullable=False)

    is_revoked = Column(Boolean, nullable=False, default=False, index=True)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    revoked_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    revocation_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )


class CertificateSequence(Base):
    """Per-year serial counter; incremented in place with UPDATE ... RETURNING."""

    __tablename__ = "certificate_sequences"

    year = Column(Integer, primary_key=True, autoincrement=False)
    last_value = Column(Integer, nullable=False, default=0)
