# lms_exam/db/init_db.py
from lms_exam.db.base import Base
from lms_exam.db.session import engine
from lms_exam import models  # noqa: F401  (registers tables on Base.metadata)


def init_db():
    Base.metadata.create_all(bind=engine)
