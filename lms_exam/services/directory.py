# lms_exam/services/directory.py
"""
Learner / subject directory lookups used when printing certificates.
"""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from lms_exam.models.content import CourseSession
from lms_exam.models.user import User


@dataclass(frozen=True)
class SubjectInfo:
    subject_id: str
    session_id: str
    code: str
    name: str


def get_learner_name(db: Session, learner_id: str) -> Optional[str]:
    user = db.get(User, learner_id)
    return user.name if user else None


def get_subject_info(db: Session, session_id: str) -> Optional[SubjectInfo]:
    session = db.get(CourseSession, session_id)
    if session is None or session.subject is None:
        return None
    return SubjectInfo(
        subject_id=session.subject.id,
        session_id=session.id,
        code=session.subject.code,
        name=session.subject.name,
    )
