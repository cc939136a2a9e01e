"""
Certificate Tasks for Worker
Executed by RQ workers to retry certificate issuance out-of-band
"""

import logging

from lms_exam.core.exceptions import ExamEngineError
from lms_exam.db.session import SessionLocal
from lms_exam.services.certificate_service import retry_issuance

logger = logging.getLogger(__name__)


def certificate_issuance_task(attempt_id: str) -> dict:
    """
    Worker task to (re-)issue the certificate of a passing attempt.

    Idempotent: when a live certificate already exists for the attempt its
    serial is returned and nothing is written.

    Args:
        attempt_id: ID of the completed, passing examination attempt

    Returns:
        Dictionary with the issuance result

    Note:
        Enqueued by enqueue_certificate_issuance() in queue.py after an
        inline issuance failed.
    """
    db = SessionLocal()
    try:
        logger.info(f"Starting certificate task for attempt {attempt_id}")
        serial = retry_issuance(db, attempt_id)
        logger.info(f"Completed certificate task for attempt {attempt_id}: {serial}")
        return {
            "status": "success",
            "attempt_id": attempt_id,
            "certificate_number": serial,
        }

    except ExamEngineError as e:
        db.rollback()
        logger.error(f"Certificate issuance failed for attempt {attempt_id}: {e.message}")
        return {
            "status": "error",
            "attempt_id": attempt_id,
            "error_code": e.error_code,
            "error": e.message,
        }

    finally:
        db.close()
