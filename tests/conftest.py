"""
Shared fixtures: in-memory SQLite database, a course with two required
blocks and an examination, and a TestClient wired to the same session.
"""

import os

# must be set before lms_exam.core.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CERTIFICATE_RETRY_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from lms_exam.core.security import create_access_token
from lms_exam.db.base import Base
from lms_exam.db.session import get_db
from lms_exam.main import app
from lms_exam.models.content import ContentBlock, ContentProgress, CourseSession, Subject
from lms_exam.models.question import Question
from lms_exam.models.user import User
from lms_exam.services.artifact_store import CertificateArtifactStore, get_artifact_store

TEST_DATABASE_URL = "sqlite://"


@pytest.fixture(scope="function")
def db_session():
    """Create a test database session."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def store(tmp_path):
    return CertificateArtifactStore(tmp_path / "certificates")


def _make_user(db, email, name, role):
    user = User(email=email, name=name, role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def student(db_session):
    return _make_user(db_session, "student@example.com", "Asha Raman", "student")


@pytest.fixture
def other_student(db_session):
    return _make_user(db_session, "other@example.com", "Vikram Das", "student")


@pytest.fixture
def staff(db_session):
    return _make_user(db_session, "staff@example.com", "Meena Iyer", "staff")


@pytest.fixture
def admin(db_session):
    return _make_user(db_session, "admin@example.com", "Ravi Kumar", "admin")


@pytest.fixture
def course(db_session):
    """Subject + session with two required lessons."""
    subject = Subject(code="CS101", name="Introduction to Programming")
    db_session.add(subject)
    db_session.flush()

    session = CourseSession(subject_id=subject.id, title="Semester 1")
    db_session.add(session)
    db_session.flush()

    for i, kind in enumerate(("video", "text")):
        db_session.add(
            ContentBlock(
                session_id=session.id,
                type=kind,
                title=f"Lesson {i + 1}",
                is_required=True,
                order_index=i,
            )
        )
    # optional blocks never gate the examination
    db_session.add(
        ContentBlock(
            session_id=session.id,
            type="text",
            title="Further reading",
            is_required=False,
            order_index=5,
        )
    )
    db_session.commit()
    db_session.refresh(session)
    return session


def _required_blocks(db, session):
    return (
        db.query(ContentBlock)
        .filter(
            ContentBlock.session_id == session.id,
            ContentBlock.is_required.is_(True),
            ContentBlock.type != "examination",
        )
        .all()
    )


@pytest.fixture
def complete_course(db_session):
    """Mark every required block of a session complete for a learner."""

    def _complete(learner, session):
        for block in _required_blocks(db_session, session):
            db_session.add(
                ContentProgress(content_block_id=block.id, user_id=learner.id, is_completed=True)
            )
        db_session.commit()

    return _complete


def _add_exam(db, session, questions, passing_score=60, title="Final Examination"):
    exam = ContentBlock(
        session_id=session.id,
        type="examination",
        title=title,
        is_required=True,
        order_index=10,
        content_data={"passingScore": passing_score},
    )
    db.add(exam)
    db.flush()
    for i, q in enumerate(questions):
        db.add(Question(content_block_id=exam.id, order_index=i, **q))
    db.commit()
    db.refresh(exam)
    return exam


@pytest.fixture
def make_exam(db_session, course):
    def _make(questions, passing_score=60, title="Final Examination"):
        return _add_exam(db_session, course, questions, passing_score, title)

    return _make


OBJECTIVE_QUESTIONS = [
    {
        "question_text": "Capital of France?",
        "question_type": "single_choice",
        "options": ["Paris", "Rome", "Madrid"],
        "correct_answer": "Paris",
        "points": 4,
    },
    {
        "question_text": "Select the prime numbers",
        "question_type": "multiple_choice",
        "options": ["2", "3", "4", "5"],
        "correct_answer": ["2", "3", "5"],
        "points": 3,
    },
    {
        "question_text": "Python is dynamically typed",
        "question_type": "true_false",
        "options": ["true", "false"],
        "correct_answer": "true",
        "points": 3,
    },
]

MIXED_QUESTIONS = OBJECTIVE_QUESTIONS[:1] + [
    {
        "question_text": "Define recursion",
        "question_type": "short_answer",
        "points": 4,
    },
    {
        "question_text": "Explain garbage collection",
        "question_type": "long_answer",
        "points": 2,
    },
]


@pytest.fixture
def objective_exam(make_exam):
    """10 points, all auto-gradable, passing score 60."""
    return make_exam(OBJECTIVE_QUESTIONS)


@pytest.fixture
def mixed_exam(make_exam):
    """4 auto points + 6 manual points, passing score 60."""
    return make_exam(MIXED_QUESTIONS)


def question_ids(db, exam):
    return [
        q.id
        for q in db.query(Question)
        .filter(Question.content_block_id == exam.id)
        .order_by(Question.order_index)
        .all()
    ]


@pytest.fixture
def no_retry_queue(monkeypatch):
    """Record retry enqueues instead of talking to Redis."""
    calls = []

    def _enqueue(attempt_id):
        calls.append(attempt_id)
        return f"certificate-{attempt_id}"

    monkeypatch.setattr(
        "lms_exam.services.certificate_service.enqueue_certificate_issuance", _enqueue
    )
    return calls


@pytest.fixture
def client(db_session, store):
    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_artifact_store] = lambda: store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def auth_headers(user):
    token = create_access_token({"sub": user.id})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def ids_of(db_session):
    return lambda exam: question_ids(db_session, exam)


@pytest.fixture
def headers_for():
    return auth_headers
