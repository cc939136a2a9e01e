from lms_exam.models.user import User  # noqa: F401
from lms_exam.models.content import ContentBlock, ContentProgress, CourseSession, Subject  # noqa: F401
from lms_exam.models.question import Question  # noqa: F401
from lms_exam.models.attempt import ExaminationAttempt  # noqa: F401
from lms_exam.models.certificate import Certificate, CertificateSequence  # noqa: F401
