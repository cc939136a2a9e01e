"""
Examination & certification exceptions.

Every error raised by the services carries the HTTP status code and a stable
``error_code`` so the API layer can render it without knowing the subclass:

- ValidationError       malformed input, never retried
- BusinessRuleError     user-facing rejection (already attempted, not passed, ...)
- NotFoundError         unknown examination / attempt / certificate
- ConflictError         uniqueness violation on a concurrent write
- InfrastructureError   artifact write failure, storage unavailable
"""

from typing import Any, Dict, Optional


class ExamEngineError(Exception):
    """
    Base class for all examination engine errors.

    Attributes:
        message: Human-readable error message shown to the caller
        status_code: HTTP status code used by the API layer
        error_code: Machine-readable error category
        details: Optional extra context (question id, valid range, ...)
    """

    status_code: int = 500
    error_code: str = "EXAM_ENGINE_ERROR"

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "success": False,
            "message": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(ExamEngineError):
    status_code = 422
    error_code = "VALIDATION_ERROR"


class BusinessRuleError(ExamEngineError):
    status_code = 400
    error_code = "BUSINESS_RULE_VIOLATION"


class AlreadyAttemptedError(BusinessRuleError):
    error_code = "ALREADY_ATTEMPTED"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or "You have already attempted this examination. Only one attempt is allowed."
        )


class PrerequisitesIncompleteError(BusinessRuleError):
    error_code = "PREREQUISITES_INCOMPLETE"

    def __init__(self, required: int, completed: int) -> None:
        super().__init__(
            "You must complete all required course content before taking the examination.",
            details={"required_blocks": required, "completed_blocks": completed},
        )


class AlreadyGradedError(BusinessRuleError):
    error_code = "ALREADY_GRADED"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or "This examination has already been graded or is not ready for manual grading"
        )


class NotPassedError(BusinessRuleError):
    error_code = "NOT_PASSED"


class NotFoundError(ExamEngineError):
    status_code = 404
    error_code = "NOT_FOUND"

    @classmethod
    def for_resource(cls, resource: str) -> "NotFoundError":
        return cls(f"{resource} not found")


class ExaminationNotFoundError(NotFoundError):
    error_code = "EXAMINATION_NOT_FOUND"


class ConflictError(ExamEngineError):
    status_code = 409
    error_code = "CONFLICT"


class AlreadyIssuedError(ConflictError):
    error_code = "ALREADY_ISSUED"


class SerialConflictError(ConflictError):
    """Certificate serial collided on insert; the issuance may be retried."""

    error_code = "SERIAL_CONFLICT"


class AuthorizationError(ExamEngineError):
    status_code = 403
    error_code = "AUTHORIZATION_ERROR"


class InfrastructureError(ExamEngineError):
    status_code = 500
    error_code = "INFRASTRUCTURE_ERROR"


class ArtifactGenerationError(InfrastructureError):
    error_code = "ARTIFACT_GENERATION_ERROR"
