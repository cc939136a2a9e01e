# lms_exam/models/question.py
import uuid

from sqlalchemy import JSON, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from lms_exam.db.base import Base


class Question(Base):
    __tablename__ = "quiz_questions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    content_block_id = Column(String(36), ForeignKey("content_blocks.id"), nullable=False, index=True)

    question_text = Column(Text, nullable=False)
    # single_choice / multiple_choice / true_false / short_answer / long_answer
    question_type = Column(String(30), nullable=False)

    options = Column(JSON, nullable=True)         # ["Paris", "Rome", ...]
    correct_answer = Column(JSON, nullable=True)  # "Paris" or ["a", "c"]; NULL for manual types

    points = Column(Float, nullable=False, default=1)
    order_index = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    content_block = relationship("ContentBlock", back_populates="questions")
