"""
Certificate issuer and verifier.
"""

from datetime import datetime, timezone

import pytest

from lms_exam.core.exceptions import (
    AlreadyIssuedError,
    BusinessRuleError,
    NotFoundError,
    NotPassedError,
    ValidationError,
)
from lms_exam.models.attempt import STATUS_AUTO_GRADED, STATUS_COMPLETED, ExaminationAttempt
from lms_exam.models.certificate import Certificate
from lms_exam.services import certificate_service
from lms_exam.services.certificate_renderer import CertificateContent, render_certificate_pdf
from lms_exam.workers import tasks


@pytest.fixture
def passed_attempt(db_session, student, objective_exam):
    """A completed, passing attempt inserted directly (no inline issuance)."""
    attempt = ExaminationAttempt(
        content_block_id=objective_exam.id,
        user_id=student.id,
        answers=[],
        auto_graded_score=8,
        auto_graded_max_score=10,
        total_score=8,
        max_score=10,
        percentage=80.0,
        is_passed=True,
        status=STATUS_COMPLETED,
        submitted_at=datetime(2025, 5, 2, 9, 0, tzinfo=timezone.utc),
        completed_at=datetime(2025, 5, 2, 9, 0, tzinfo=timezone.utc),
    )
    db_session.add(attempt)
    db_session.commit()
    db_session.refresh(attempt)
    return attempt


@pytest.fixture
def issued(db_session, passed_attempt, store):
    return certificate_service.issue_certificate(db_session, passed_attempt.id, store=store)


class TestSerialsAndGrades:
    def test_format_serial(self):
        assert certificate_service.format_serial(2025, 42, prefix="ACTLMS") == "ACTLMS-2025-000042"

    def test_sequence_is_per_year_and_monotonic(self, db_session):
        first = certificate_service.next_serial(db_session, 2025)
        second = certificate_service.next_serial(db_session, 2025)
        other_year = certificate_service.next_serial(db_session, 2026)

        assert first.endswith("-2025-000001")
        assert second.endswith("-2025-000002")
        assert other_year.endswith("-2026-000001")

    @pytest.mark.parametrize(
        "percentage, grade",
        [
            (100, "A+"),
            (90, "A+"),
            (89.99, "A"),
            (80, "A-"),
            (72.5, "B"),
            (65, "B-"),
            (60, "C+"),
            (55, "C"),
            (50, "C-"),
            (49.99, "F"),
        ],
    )
    def test_letter_grade(self, percentage, grade):
        assert certificate_service.letter_grade(percentage) == grade


class TestIssueCertificate:
    def test_issue(self, db_session, issued, passed_attempt, student, store):
        year = issued.issued_at.year
        assert issued.certificate_number == f"ACTLMS-{year}-000001"
        assert issued.user_id == student.id
        assert issued.student_name == "Asha Raman"
        assert issued.course_code == "CS101"
        assert issued.course_name == "Introduction to Programming"
        assert issued.grade == "A-"
        assert issued.final_score == 8
        assert issued.completion_date.isoformat() == "2025-05-02"
        assert issued.certificate_url == f"/certificates/{issued.certificate_number}.pdf"

        name = f"{issued.certificate_number}.pdf"
        assert store.read(name).startswith(b"%PDF")
        assert store.sha256(name) == issued.certificate_hash

    def test_second_issue_is_rejected(self, db_session, issued, passed_attempt, store):
        with pytest.raises(AlreadyIssuedError) as exc:
            certificate_service.issue_certificate(db_session, passed_attempt.id, store=store)
        assert exc.value.details["certificate_number"] == issued.certificate_number
        assert db_session.query(Certificate).count() == 1

    def test_retry_is_idempotent(self, db_session, issued, passed_attempt, store):
        assert (
            certificate_service.retry_issuance(db_session, passed_attempt.id, store=store)
            == issued.certificate_number
        )

    def test_failed_attempt_gets_no_certificate(self, db_session, passed_attempt, store):
        passed_attempt.is_passed = False
        db_session.commit()
        with pytest.raises(NotPassedError):
            certificate_service.issue_certificate(db_session, passed_attempt.id, store=store)

    def test_pending_attempt_gets_no_certificate(self, db_session, passed_attempt, store):
        passed_attempt.status = STATUS_AUTO_GRADED
        db_session.commit()
        with pytest.raises(NotPassedError):
            certificate_service.issue_certificate(db_session, passed_attempt.id, store=store)

    def test_unknown_attempt(self, db_session, store):
        with pytest.raises(NotFoundError):
            certificate_service.issue_certificate(db_session, "missing", store=store)

    def test_reissue_after_revocation(self, db_session, issued, passed_attempt, admin, store):
        certificate_service.revoke_certificate(
            db_session, issued.certificate_number, revoked_by=admin.id, reason="Printed wrong name"
        )
        reissued = certificate_service.issue_certificate(db_session, passed_attempt.id, store=store)
        assert reissued.certificate_number != issued.certificate_number
        active = certificate_service.get_active_certificate_for_attempt(db_session, passed_attempt.id)
        assert active.id == reissued.id

    def test_best_effort_returns_none_and_queues_retry(
        self, db_session, passed_attempt, store, monkeypatch, no_retry_queue
    ):
        from lms_exam.core.config import settings

        monkeypatch.setattr(settings, "CERTIFICATE_RETRY_ENABLED", True)

        def broken_render(content):
            raise RuntimeError("font missing")

        monkeypatch.setattr(certificate_service, "render_certificate_pdf", broken_render)

        assert certificate_service.issue_best_effort(db_session, passed_attempt.id, store=store) is None
        assert no_retry_queue == [passed_attempt.id]
        assert db_session.query(Certificate).count() == 0

    def test_best_effort_not_passed_is_not_retried(
        self, db_session, passed_attempt, store, monkeypatch, no_retry_queue
    ):
        from lms_exam.core.config import settings

        monkeypatch.setattr(settings, "CERTIFICATE_RETRY_ENABLED", True)
        passed_attempt.is_passed = False
        db_session.commit()

        assert certificate_service.issue_best_effort(db_session, passed_attempt.id, store=store) is None
        assert no_retry_queue == []


class TestVerifyCertificate:
    def test_valid(self, db_session, issued, store):
        result = certificate_service.verify_certificate(
            db_session, issued.certificate_number, store=store
        )
        assert result.valid
        assert result.status == "valid"
        assert result.certificate.id == issued.id

    def test_not_found(self, db_session, store):
        result = certificate_service.verify_certificate(db_session, "ACTLMS-2025-999999", store=store)
        assert not result.valid
        assert result.status == "not_found"
        assert result.reason == "Certificate not found"

    def test_one_byte_tamper(self, db_session, issued, store):
        path = store.path_for(f"{issued.certificate_number}.pdf")
        data = bytearray(path.read_bytes())
        data[-10] ^= 0x01
        path.write_bytes(bytes(data))

        result = certificate_service.verify_certificate(
            db_session, issued.certificate_number, store=store
        )
        assert not result.valid
        assert result.status == "tampered"
        assert result.reason == "Certificate file has been tampered with"

    def test_missing_file_policy(self, db_session, issued, store):
        store.delete(f"{issued.certificate_number}.pdf")

        strict = certificate_service.verify_certificate(
            db_session, issued.certificate_number, store=store, require_artifact=True
        )
        assert strict.status == "tampered"

        lenient = certificate_service.verify_certificate(
            db_session, issued.certificate_number, store=store, require_artifact=False
        )
        assert lenient.valid

    def test_revoked(self, db_session, issued, admin, store):
        certificate_service.revoke_certificate(
            db_session, issued.certificate_number, revoked_by=admin.id, reason="Academic misconduct"
        )
        result = certificate_service.verify_certificate(
            db_session, issued.certificate_number, store=store
        )
        assert not result.valid
        assert result.status == "revoked"
        assert result.reason.startswith("Certificate revoked on ")
        assert result.reason.endswith("Reason: Academic misconduct")


class TestRevokeCertificate:
    def test_reason_required(self, db_session, issued, admin):
        with pytest.raises(ValidationError):
            certificate_service.revoke_certificate(
                db_session, issued.certificate_number, revoked_by=admin.id, reason="  "
            )

    def test_unknown_serial(self, db_session, admin):
        with pytest.raises(NotFoundError):
            certificate_service.revoke_certificate(
                db_session, "ACTLMS-2025-000404", revoked_by=admin.id, reason="x"
            )

    def test_revoke_twice(self, db_session, issued, admin):
        certificate_service.revoke_certificate(
            db_session, issued.certificate_number, revoked_by=admin.id, reason="x"
        )
        with pytest.raises(BusinessRuleError):
            certificate_service.revoke_certificate(
                db_session, issued.certificate_number, revoked_by=admin.id, reason="x"
            )


class TestRenderer:
    def test_rendering_is_deterministic(self):
        content = CertificateContent(
            serial="ACTLMS-2025-000001",
            learner_name="Asha Raman",
            subject_code="CS101",
            subject_name="Introduction to Programming",
            final_score=8,
            max_score=10,
            percentage=80.0,
            grade="A-",
            completed_on=datetime(2025, 5, 2).date(),
            institution="Student-ACT Learning Management System",
        )
        assert render_certificate_pdf(content) == render_certificate_pdf(content)


class TestCertificateTask:
    def test_task_issues_once(self, db_session, passed_attempt, store, monkeypatch):
        monkeypatch.setattr(tasks, "SessionLocal", lambda: db_session)
        monkeypatch.setattr(certificate_service, "get_artifact_store", lambda: store)

        attempt_id = passed_attempt.id
        first = tasks.certificate_issuance_task(attempt_id)
        # the task closes the session it was handed
        second = tasks.certificate_issuance_task(attempt_id)

        assert first["status"] == "success"
        assert second["certificate_number"] == first["certificate_number"]
        assert db_session.query(Certificate).count() == 1

    def test_task_reports_engine_errors(self, db_session, monkeypatch, store):
        monkeypatch.setattr(tasks, "SessionLocal", lambda: db_session)
        monkeypatch.setattr(certificate_service, "get_artifact_store", lambda: store)

        result = tasks.certificate_issuance_task("missing")
        assert result["status"] == "error"
        assert result["error_code"] == "NOT_FOUND"
