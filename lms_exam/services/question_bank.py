# lms_exam/services/question_bank.py
from typing import List

from sqlalchemy.orm import Session

from lms_exam.models.question import Question
from lms_exam.services.question_types import QuestionSpec, from_model


def get_questions(db: Session, examination_id: str) -> List[QuestionSpec]:
    """
    Questions of an examination block in display order.
    Read-only; authoring lives in the content service.
    """
    rows = (
        db.query(Question)
        .filter(Question.content_block_id == examination_id)
        .order_by(Question.order_index.asc(), Question.created_at.asc())
        .all()
    )
    return [from_model(q) for q in rows]
