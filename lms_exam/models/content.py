# lms_exam/models/content.py
"""
Course structure read by the examination engine.

Subjects, sessions and content blocks are authored elsewhere; this service only
reads them, and writes ``ContentProgress`` when an examination completes.
"""
import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from lms_exam.db.base import Base


class Subject(Base):
    __tablename__ = "subjects"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    code = Column(String(50), nullable=False)
    name = Column(String(500), nullable=False)


class CourseSession(Base):
    __tablename__ = "course_sessions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    subject_id = Column(String(36), ForeignKey("subjects.id"), nullable=True, index=True)
    title = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    subject = relationship("Subject")
    content_blocks = relationship("ContentBlock", back_populates="session")


class ContentBlock(Base):
    __tablename__ = "content_blocks"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    session_id = Column(String(36), ForeignKey("course_sessions.id"), nullable=False, index=True)

    # video / text / quiz / assignment / examination
    type = Column(String(30), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_required = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True)
    order_index = Column(Integer, nullable=False, default=0)

    # examination blocks: {"passingScore": 60, ...}
    content_data = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    session = relationship("CourseSession", back_populates="content_blocks")
    questions = relationship(
        "Question",
        back_populates="content_block",
        order_by="Question.order_index",
    )


class ContentProgress(Base):
    __tablename__ = "content_progress"
    __table_args__ = (
        UniqueConstraint("content_block_id", "user_id", name="uq_content_progress_user_block"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    content_block_id = Column(String(36), ForeignKey("content_blocks.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    is_completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    progress_data = Column(JSON, nullable=True)

    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
