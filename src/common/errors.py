"""
Error taxonomy for the automation research service.

Every error the service raises on purpose derives from ResearchError, which
carries an HTTP-style status code and a stable machine-readable code so the
caller-facing layer can serialize it without knowing the concrete class.
"""

import logging
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

# Time until the daily admission window rotates
DAILY_RETRY_AFTER_SECONDS = 86400


class ResearchError(Exception):
    """Base class for all expected service errors."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[Any] = None):
        self.message = message
        self.details = details
        super().__init__(message)


class ValidationError(ResearchError):
    """Malformed or missing input. Always surfaced, never retried."""

    status_code = 400
    code = "VALIDATION_ERROR"


class AdmissionDenied(ResearchError):
    """Tenant quota exceeded. Surfaced with a retry-after, never retried internally."""

    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"

    def __init__(
        self,
        tenant_id: str,
        message: str = "Daily research limit exceeded. Please try again tomorrow.",
        retry_after_seconds: int = DAILY_RETRY_AFTER_SECONDS,
    ):
        self.tenant_id = tenant_id
        self.retry_after_seconds = retry_after_seconds
        super().__init__(message, details={"retryAfter": retry_after_seconds})


class EvidenceCollectionError(ResearchError):
    """Evidence for one company could not be collected."""

    status_code = 502
    code = "EXTERNAL_SERVICE_ERROR"

    def __init__(self, company: str, reason: Optional[str] = None):
        self.company = company
        self.reason = reason
        super().__init__(f"Evidence collection failed for {company}")


class CapabilityUnavailable(ResearchError):
    """The optional analysis capability errored, timed out or returned garbage."""

    status_code = 503
    code = "CAPABILITY_UNAVAILABLE"


class BackendUnavailable(ResearchError):
    """Counter store or cache store could not be reached."""

    status_code = 503
    code = "BACKEND_UNAVAILABLE"

    def __init__(self, backend: str, operation: str, reason: Optional[str] = None):
        self.backend = backend
        self.operation = operation
        self.reason = reason
        super().__init__(f"{backend} backend unavailable during {operation}: {reason or 'unknown'}")


class ResearchTimeoutError(ResearchError):
    """The per-request time budget ran out."""

    status_code = 408
    code = "TIMEOUT_ERROR"

    def __init__(self, operation: str, timeout_seconds: float):
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Operation '{operation}' timed out after {timeout_seconds}s")


def error_response(error: BaseException) -> Tuple[int, Dict[str, Any]]:
    """
    Map an exception to a (status_code, body) pair for the caller.

    Known ResearchErrors keep their message and code; anything else is logged
    and reported as a generic internal error.
    """
    if isinstance(error, ResearchError):
        body: Dict[str, Any] = {"message": error.message, "code": error.code}
        if error.details is not None:
            body["details"] = error.details
        return error.status_code, {"error": body}

    logger.error(f"Unexpected error: {error}", exc_info=error)
    return 500, {
        "error": {
            "message": "Internal server error",
            "code": "INTERNAL_ERROR",
        }
    }
