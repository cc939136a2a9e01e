# lms_exam/services/certificate_service.py
"""
Certificate issuance, revocation and verification.

Issuance order: allocate serial -> render PDF -> durable write -> hash the
bytes read back from storage -> insert the record. The record is only written
for bytes that are actually on disk.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lms_exam.core.config import settings
from lms_exam.core.exceptions import (
    AlreadyIssuedError,
    ArtifactGenerationError,
    BusinessRuleError,
    ConflictError,
    ExamEngineError,
    InfrastructureError,
    NotFoundError,
    NotPassedError,
    SerialConflictError,
    ValidationError,
)
from lms_exam.models.attempt import STATUS_COMPLETED, ExaminationAttempt
from lms_exam.models.certificate import Certificate, CertificateSequence
from lms_exam.services import directory
from lms_exam.services.artifact_store import CertificateArtifactStore, get_artifact_store
from lms_exam.services.certificate_renderer import CertificateContent, render_certificate_pdf
from lms_exam.workers.queue import enqueue_certificate_issuance

logger = logging.getLogger(__name__)

GRADE_BREAKPOINTS = (
    (90, "A+"),
    (85, "A"),
    (80, "A-"),
    (75, "B+"),
    (70, "B"),
    (65, "B-"),
    (60, "C+"),
    (55, "C"),
    (50, "C-"),
)


def letter_grade(percentage: float) -> str:
    for threshold, grade in GRADE_BREAKPOINTS:
        if percentage >= threshold:
            return grade
    return "F"


def format_serial(year: int, sequence: int, prefix: str | None = None) -> str:
    return f"{prefix or settings.CERTIFICATE_ORG_PREFIX}-{year}-{sequence:06d}"


def artifact_name(serial: str) -> str:
    return f"{serial}.pdf"


def next_serial(db: Session, year: int) -> str:
    """
    Allocate the next serial for ``year`` from the certificate_sequences row.

    The increment is a single UPDATE ... RETURNING, so concurrent issuers are
    serialized by the database. Commits immediately; an issuance that fails
    later leaves a gap in the sequence, never a duplicate.
    """
    table = CertificateSequence.__table__
    bump = (
        update(table)
        .where(table.c.year == year)
        .values(last_value=table.c.last_value + 1)
        .returning(table.c.last_value)
    )

    value = db.execute(bump).scalar_one_or_none()
    if value is None:
        # first certificate of the year
        db.add(CertificateSequence(year=year, last_value=1))
        try:
            db.commit()
            return format_serial(year, 1)
        except IntegrityError:
            # another issuer created the row first
            db.rollback()
            value = db.execute(bump).scalar_one()

    db.commit()
    return format_serial(year, value)


def get_certificate(db: Session, serial: str) -> Optional[Certificate]:
    return (
        db.query(Certificate)
        .filter(Certificate.certificate_number == serial)
        .first()
    )


def get_active_certificate_for_attempt(db: Session, attempt_id: str) -> Optional[Certificate]:
    return (
        db.query(Certificate)
        .filter(
            Certificate.examination_attempt_id == attempt_id,
            Certificate.is_revoked.is_(False),
        )
        .first()
    )


def list_certificates_for_learner(db: Session, learner_id: str) -> List[Certificate]:
    return (
        db.query(Certificate)
        .filter(Certificate.user_id == learner_id)
        .order_by(Certificate.issued_at.desc())
        .all()
    )


def _already_issued(existing: Certificate) -> AlreadyIssuedError:
    return AlreadyIssuedError(
        f"Certificate {existing.certificate_number} has already been issued for this attempt",
        details={"certificate_number": existing.certificate_number},
    )


def issue_certificate(
    db: Session,
    attempt_id: str,
    *,
    store: CertificateArtifactStore | None = None,
) -> Certificate:
    """
    Issue the completion certificate for a passing attempt.

    Raises:
        NotFoundError: attempt, learner or subject missing
        NotPassedError: attempt not completed or not passed
        AlreadyIssuedError: a non-revoked certificate exists for the attempt
        ArtifactGenerationError: rendering or writing the PDF failed
        SerialConflictError: serial already taken on insert (retryable)
    """
    store = store or get_artifact_store()

    attempt: Optional[ExaminationAttempt] = db.get(ExaminationAttempt, attempt_id)
    if attempt is None:
        raise NotFoundError.for_resource("Examination attempt")
    if attempt.status != STATUS_COMPLETED or not attempt.is_passed:
        raise NotPassedError(
            "Certificates are only issued for completed, passing examination attempts"
        )

    existing = get_active_certificate_for_attempt(db, attempt_id)
    if existing is not None:
        raise _already_issued(existing)

    subject = directory.get_subject_info(db, attempt.content_block.session_id)
    if subject is None:
        raise NotFoundError.for_resource("Subject for examination session")
    learner_name = directory.get_learner_name(db, attempt.user_id)
    if learner_name is None:
        raise NotFoundError.for_resource("Learner")

    learner_id = attempt.user_id
    final_score = attempt.total_score
    max_score = attempt.max_score
    percentage = attempt.percentage
    completed_on = (attempt.completed_at or datetime.now(timezone.utc)).date()
    grade = letter_grade(percentage)

    issued_at = datetime.now(timezone.utc)
    serial = next_serial(db, issued_at.year)
    file_name = artifact_name(serial)

    try:
        pdf_bytes = render_certificate_pdf(
            CertificateContent(
                serial=serial,
                learner_name=learner_name,
                subject_code=subject.code,
                subject_name=subject.name,
                final_score=final_score,
                max_score=max_score,
                percentage=percentage,
                grade=grade,
                completed_on=completed_on,
                institution=settings.CERTIFICATE_TITLE,
            )
        )
        store.write(file_name, pdf_bytes)
        # hash what is on disk, not what we meant to write
        certificate_hash = store.sha256(file_name)
    except Exception as e:
        logger.error(f"Failed to generate certificate {serial}: {e}", exc_info=True)
        raise ArtifactGenerationError(f"Failed to generate certificate artifact: {e}") from e

    certificate = Certificate(
        certificate_number=serial,
        user_id=learner_id,
        subject_id=subject.subject_id,
        session_id=subject.session_id,
        examination_attempt_id=attempt_id,
        student_name=learner_name,
        course_name=subject.name,
        course_code=subject.code,
        completion_date=completed_on,
        issue_date=issued_at.date(),
        final_score=final_score,
        max_score=max_score,
        percentage=percentage,
        grade=grade,
        certificate_url=f"{settings.CERTIFICATE_URL_PREFIX}/{file_name}",
        certificate_hash=certificate_hash,
        issued_at=issued_at,
    )
    db.add(certificate)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        store.delete(file_name)
        existing = get_active_certificate_for_attempt(db, attempt_id)
        if existing is not None:
            raise _already_issued(existing)
        raise SerialConflictError(
            f"Certificate serial {serial} is already in use; retry issuance",
            details={"certificate_number": serial},
        )

    db.refresh(certificate)
    logger.info(f"Certificate issued: {serial} for user {learner_id} (attempt {attempt_id})")
    return certificate


def schedule_issuance_retry(attempt_id: str) -> Optional[str]:
    if not settings.CERTIFICATE_RETRY_ENABLED:
        return None
    try:
        job_id = enqueue_certificate_issuance(attempt_id)
    except Exception as e:
        logger.error(
            f"Could not enqueue certificate retry for attempt {attempt_id}: {e}",
            exc_info=True,
        )
        return None
    logger.info(f"Certificate retry queued for attempt {attempt_id}: job {job_id}")
    return job_id


def issue_best_effort(
    db: Session,
    attempt_id: str,
    *,
    store: CertificateArtifactStore | None = None,
) -> Optional[str]:
    """
    Issue after a grading transition has committed.

    Never raises: the grading outcome stands whatever happens here. Transient
    failures are queued for an out-of-band retry. Returns the serial of the
    live certificate, or None.
    """
    try:
        return issue_certificate(db, attempt_id, store=store).certificate_number
    except AlreadyIssuedError as e:
        return e.details.get("certificate_number")
    except (InfrastructureError, ConflictError) as e:
        db.rollback()
        logger.error(f"Certificate issuance failed for attempt {attempt_id}: {e.message}")
        schedule_issuance_retry(attempt_id)
    except ExamEngineError as e:
        db.rollback()
        logger.warning(f"Certificate not issued for attempt {attempt_id}: {e.message}")
    except Exception as e:
        db.rollback()
        logger.error(
            f"Unexpected error issuing certificate for attempt {attempt_id}: {e}",
            exc_info=True,
        )
        schedule_issuance_retry(attempt_id)
    return None


def retry_issuance(
    db: Session,
    attempt_id: str,
    *,
    store: CertificateArtifactStore | None = None,
) -> str:
    """Idempotent issuance keyed by attempt id; used by the retry worker."""
    try:
        return issue_certificate(db, attempt_id, store=store).certificate_number
    except AlreadyIssuedError as e:
        return e.details["certificate_number"]


def revoke_certificate(
    db: Session,
    serial: str,
    *,
    revoked_by: str,
    reason: str,
) -> Certificate:
    if not reason or not reason.strip():
        raise ValidationError("A revocation reason is required")

    certificate = get_certificate(db, serial)
    if certificate is None:
        raise NotFoundError.for_resource("Certificate")
    if certificate.is_revoked:
        raise BusinessRuleError(f"Certificate {serial} is already revoked")

    certificate.is_revoked = True
    certificate.revoked_at = datetime.now(timezone.utc)
    certificate.revoked_by = revoked_by
    certificate.revocation_reason = reason.strip()
    db.add(certificate)
    db.commit()
    db.refresh(certificate)

    logger.info(f"Certificate {serial} revoked by {revoked_by}")
    return certificate


@dataclass
class VerificationResult:
    valid: bool
    status: str  # valid / not_found / revoked / tampered
    reason: str
    certificate: Optional[Certificate] = None


def verify_certificate(
    db: Session,
    serial: str,
    *,
    store: CertificateArtifactStore | None = None,
    require_artifact: bool | None = None,
) -> VerificationResult:
    store = store or get_artifact_store()
    if require_artifact is None:
        require_artifact = settings.VERIFY_REQUIRES_ARTIFACT

    certificate = get_certificate(db, serial)
    if certificate is None:
        return VerificationResult(valid=False, status="not_found", reason="Certificate not found")

    if certificate.is_revoked:
        revoked_at = certificate.revoked_at.isoformat() if certificate.revoked_at else "unknown date"
        return VerificationResult(
            valid=False,
            status="revoked",
            reason=f"Certificate revoked on {revoked_at}. Reason: {certificate.revocation_reason}",
            certificate=certificate,
        )

    name = artifact_name(certificate.certificate_number)
    if not store.exists(name):
        if require_artifact:
            logger.warning(f"Certificate {serial} artifact missing")
            return VerificationResult(
                valid=False,
                status="tampered",
                reason="Certificate file is missing and cannot be verified (tampered)",
                certificate=certificate,
            )
    elif store.sha256(name) != certificate.certificate_hash:
        logger.warning(f"Certificate {serial} failed hash verification")
        return VerificationResult(
            valid=False,
            status="tampered",
            reason="Certificate file has been tampered with",
            certificate=certificate,
        )

    return VerificationResult(
        valid=True,
        status="valid",
        reason="Certificate is valid and authentic",
        certificate=certificate,
    )


def read_artifact(certificate: Certificate, *, store: CertificateArtifactStore | None = None) -> bytes:
    store = store or get_artifact_store()
    try:
        return store.read(artifact_name(certificate.certificate_number))
    except FileNotFoundError:
        raise NotFoundError.for_resource("Certificate file")
