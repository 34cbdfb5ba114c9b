import logging

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


def _error_payload(code: str, message: str, details):
    return {"code": code, "message": message, "details": details}


# ---------------------------------------------------------------------------
# Case workflow errors
# ---------------------------------------------------------------------------


class CaseWorkflowError(HTTPException):
    """Base for workflow failures; rendered as ``{code, message, details}``."""

    status_code = 400
    code = "case_workflow_error"

    def __init__(self, message: str, details=None):
        self.message = message
        self.details = details
        super().__init__(
            status_code=self.status_code,
            detail=_error_payload(self.code, message, details),
        )


class InvalidStateTransition(CaseWorkflowError):
    status_code = 409
    code = "invalid_state_transition"


class CaseLocked(CaseWorkflowError):
    status_code = 423
    code = "case_locked"


class ReadinessNotMet(CaseWorkflowError):
    status_code = 409
    code = "readiness_not_met"


class IntegrityViolation(CaseWorkflowError):
    status_code = 422
    code = "integrity_violation"


class ExternalServiceError(CaseWorkflowError):
    """A case intelligence collaborator failed; never retried by the core."""

    status_code = 502
    code = "external_service_error"


class AnalysisError(ExternalServiceError):
    code = "analysis_error"


class PolicyError(ExternalServiceError):
    code = "policy_error"


class RecommendationError(ExternalServiceError):
    code = "recommendation_error"


class GenerationError(ExternalServiceError):
    code = "generation_error"


class OCRError(ExternalServiceError):
    code = "ocr_error"


class StaleResult(Exception):
    """An async result resolved against an outdated analysis version."""

    def __init__(
        self,
        case_id,
        expected_version: int,
        current_version: int,
        reason: str | None = None,
    ):
        self.case_id = case_id
        self.expected_version = expected_version
        self.current_version = current_version
        self.reason = reason
        if reason is None:
            reason = (
                f"computed against analysis version {expected_version}, "
                f"current is {current_version}"
            )
        super().__init__(f"Result for case {case_id} {reason}")


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def register_error_handlers(app) -> None:
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        detail = exc.detail
        code = f"http_{exc.status_code}"
        message = "Request failed"
        details = None
        if isinstance(detail, dict):
            code = detail.get("code", code)
            message = detail.get("message", message)
            details = detail.get("details")
        elif isinstance(detail, str):
            message = detail
        else:
            details = detail
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_payload(code, message, details),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        # exc.errors() ctx may contain raw Exception objects (not JSON-serialisable).
        errors = [
            {k: str(v) if k == "ctx" else v for k, v in err.items()}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=422,
            content=_error_payload("validation_error", "Validation error", errors),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=_error_payload("internal_error", "Internal server error", None),
        )
