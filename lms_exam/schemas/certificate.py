# lms_exam/schemas/certificate.py
from datetime import date, datetime

from pydantic import BaseModel, Field


class CertificatePublic(BaseModel):
    certificate_number: str
    user_id: str
    subject_id: str
    session_id: str
    examination_attempt_id: str

    student_name: str
    course_name: str
    course_code: str | None = None
    completion_date: date
    issue_date: date

    final_score: float
    max_score: float
    percentage: float
    grade: str

    certificate_url: str
    certificate_hash: str
    issued_at: datetime

    is_revoked: bool
    revoked_at: datetime | None = None
    revoked_by: str | None = None
    revocation_reason: str | None = None

    model_config = {"from_attributes": True}


class VerificationResponse(BaseModel):
    valid: bool
    status: str  # valid / not_found / revoked / tampered
    reason: str
    certificate: CertificatePublic | None = None


class RevokeCertificateRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=2000)
