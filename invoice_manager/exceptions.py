"""
RFC 7807 Problem Details exception handling.

Every error surfaced by the API is rendered as ``application/problem+json``
with a machine-readable code and the request's trace id.

See: https://datatracker.ietf.org/doc/html/rfc7807
"""

from typing import Optional, Dict, Any, List
from enum import Enum
from pydantic import BaseModel, Field
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import traceback
from datetime import datetime, timezone

from invoice_manager.middleware.correlation import get_request_id, generate_id
from invoice_manager.core.sentry import capture_exception

logger = logging.getLogger(__name__)

PROBLEM_TYPE_BASE = "https://invoice-manager.local/problems"


def _get_trace_id() -> str:
    """Get trace ID from correlation context or generate a new one."""
    request_id = get_request_id()
    if request_id and request_id != "unknown":
        return request_id
    return generate_id()


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class ErrorCode(str, Enum):
    """Standardized error codes for the invoice manager API."""

    # Authentication & OAuth
    NOT_CONNECTED = "AUTH_001"
    CSRF_INVALID = "AUTH_004"

    # Validation
    VALIDATION_ERROR = "VAL_001"
    MISSING_IDENTIFIER = "VAL_003"

    # Resource
    NOT_FOUND = "RES_001"

    # Business Logic
    BUSINESS_RULE_VIOLATION = "BIZ_001"

    # External Services
    EXTERNAL_SERVICE_ERROR = "EXT_001"
    HUBSPOT_ERROR = "EXT_002"

    # Server
    INTERNAL_ERROR = "SRV_001"
    CONFIGURATION_ERROR = "SRV_002"
    TIMEOUT = "SRV_003"


class ProblemDetail(BaseModel):
    """
    RFC 7807 Problem Details response schema.

    Attributes:
        type: URI reference identifying the problem type
        title: Short, human-readable summary
        status: HTTP status code
        detail: Human-readable explanation specific to this occurrence
        instance: URI reference identifying this specific occurrence
        code: Machine-readable error code for client handling
        timestamp: ISO 8601 timestamp of when the error occurred
        trace_id: Unique identifier for tracing in logs/Sentry
        errors: List of field-level validation errors
    """

    type: str = Field(default="about:blank")
    title: str
    status: int
    detail: str
    instance: Optional[str] = None
    code: str
    timestamp: str
    trace_id: str
    errors: Optional[List[Dict[str, Any]]] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "type": f"{PROBLEM_TYPE_BASE}/auth-001",
                "title": "Unauthorized",
                "status": 401,
                "detail": "HubSpot is not connected for portal 12345. Run the OAuth flow via /auth/start.",
                "instance": "/companies/9876",
                "code": "AUTH_001",
                "timestamp": "2026-01-29T10:30:00Z",
                "trace_id": "abc123def456",
            }
        }
    }


class CRMException(HTTPException):
    """
    Base exception for the API with RFC 7807 support.

    Usage:
        raise CRMException(
            status_code=404,
            code=ErrorCode.NOT_FOUND,
            detail="Invoice not found",
        )
    """

    def __init__(
        self,
        status_code: int,
        code: ErrorCode,
        detail: str,
        title: Optional[str] = None,
        instance: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.code = code
        self.title = title or self._default_title(status_code)
        self.instance = instance
        self.errors = errors
        self.trace_id = _get_trace_id()
        self.timestamp = _utc_timestamp()

        super().__init__(status_code=status_code, detail=detail, headers=headers)

    def __str__(self) -> str:
        return str(self.detail)

    @staticmethod
    def _default_title(status_code: int) -> str:
        """Get default title based on status code."""
        titles = {
            400: "Bad Request",
            401: "Unauthorized",
            403: "Forbidden",
            404: "Not Found",
            409: "Conflict",
            422: "Validation Error",
            429: "Too Many Requests",
            500: "Internal Server Error",
            502: "Bad Gateway",
            503: "Service Unavailable",
            504: "Gateway Timeout",
        }
        return titles.get(status_code, "Error")

    def to_problem_detail(self, instance: Optional[str] = None) -> ProblemDetail:
        """Convert to RFC 7807 ProblemDetail."""
        return ProblemDetail(
            type=f"{PROBLEM_TYPE_BASE}/{self.code.value.lower().replace('_', '-')}",
            title=self.title,
            status=self.status_code,
            detail=self.detail,
            instance=self.instance or instance,
            code=self.code.value,
            timestamp=self.timestamp,
            trace_id=self.trace_id,
            errors=self.errors,
        )


# Error taxonomy

class ConfigurationError(CRMException):
    """OAuth app credentials missing (500)."""

    def __init__(self, missing: str):
        super().__init__(
            status_code=500,
            code=ErrorCode.CONFIGURATION_ERROR,
            detail=(
                f"HubSpot integration is not configured: {missing} is not set. "
                f"Set {missing} in the environment and restart the service."
            ),
        )


class NotConnectedError(CRMException):
    """No usable HubSpot credential for the tenant (401)."""

    def __init__(self, portal_id: Optional[str] = None):
        if portal_id:
            detail = f"HubSpot is not connected for portal {portal_id}. Run the OAuth flow via /auth/start."
        else:
            detail = "HubSpot is not connected. Run the OAuth flow via /auth/start."
        super().__init__(
            status_code=401,
            code=ErrorCode.NOT_CONNECTED,
            detail=detail,
        )


class InvalidStateError(CRMException):
    """OAuth CSRF state missing, expired or already used (400)."""

    def __init__(self):
        super().__init__(
            status_code=400,
            code=ErrorCode.CSRF_INVALID,
            detail="OAuth state is invalid or expired. Restart the connection via /auth/start.",
        )


class MissingIdentifierError(CRMException):
    """A required identifier was not supplied (400)."""

    def __init__(self, name: str):
        self.identifier = name
        super().__init__(
            status_code=400,
            code=ErrorCode.MISSING_IDENTIFIER,
            detail=f"{name} is required",
        )


class ValidationError(CRMException):
    """Malformed request body (400), surfacing the first violation."""

    def __init__(
        self,
        detail: str,
        errors: Optional[List[Dict[str, Any]]] = None
    ):
        super().__init__(
            status_code=400,
            code=ErrorCode.VALIDATION_ERROR,
            detail=detail,
            errors=errors,
        )


class ProviderError(CRMException):
    """
    Failure reported by (or while reaching) the HubSpot API.

    ``provider_status`` is the upstream HTTP status, ``None`` for timeouts
    and transport faults.
    """

    def __init__(
        self,
        message: str,
        provider_status: Optional[int] = None,
        category: Optional[str] = None,
        status_code: int = 500,
        code: ErrorCode = ErrorCode.HUBSPOT_ERROR,
    ):
        self.message = message
        self.provider_status = provider_status
        self.category = category
        super().__init__(status_code=status_code, code=code, detail=message)


class InvoicePreconditionError(ProviderError):
    """Invoice is not eligible for a bad-debt action (400)."""

    def __init__(self, detail: str = "Invoice must be overdue and not paid to mark as bad debt."):
        super().__init__(
            message=detail,
            status_code=400,
            code=ErrorCode.BUSINESS_RULE_VIOLATION,
        )


# Exception handlers for FastAPI

def _with_cors(response: JSONResponse, request: Request, allowed_origins: Optional[List[str]]) -> JSONResponse:
    if allowed_origins:
        origin = request.headers.get("origin", "")
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Vary"] = "Origin"
    return response


def create_problem_response(
    status_code: int,
    code: ErrorCode,
    detail: str,
    request: Request,
    errors: Optional[List[Dict[str, Any]]] = None,
    trace_id: Optional[str] = None,
    allowed_origins: Optional[List[str]] = None,
) -> JSONResponse:
    """Create a RFC 7807 compliant JSON response with CORS headers."""
    problem = ProblemDetail(
        type=f"{PROBLEM_TYPE_BASE}/{code.value.lower().replace('_', '-')}",
        title=CRMException._default_title(status_code),
        status=status_code,
        detail=detail,
        instance=str(request.url.path),
        code=code.value,
        timestamp=_utc_timestamp(),
        trace_id=trace_id or _get_trace_id(),
        errors=errors,
    )

    response = JSONResponse(
        status_code=status_code,
        content=problem.model_dump(exclude_none=True),
        media_type="application/problem+json",
    )
    return _with_cors(response, request, allowed_origins)


def create_exception_handlers(allowed_origins: List[str]):
    """
    Create exception handlers with configured allowed origins for CORS.

    Usage in main.py:
        handlers = create_exception_handlers(allowed_origins)
        app.add_exception_handler(CRMException, handlers["crm"])
        app.add_exception_handler(RequestValidationError, handlers["validation"])
        app.add_exception_handler(Exception, handlers["generic"])
    """

    async def handle_crm_exception(request: Request, exc: CRMException) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            f"{type(exc).__name__}: {exc.code.value} - {exc.detail}",
            extra={
                "trace_id": exc.trace_id,
                "status_code": exc.status_code,
                "path": request.url.path,
            }
        )

        response = JSONResponse(
            status_code=exc.status_code,
            content=exc.to_problem_detail(instance=str(request.url.path)).model_dump(exclude_none=True),
            media_type="application/problem+json",
            headers=exc.headers,
        )
        return _with_cors(response, request, allowed_origins)

    async def handle_http_exception(
        request: Request,
        exc: StarletteHTTPException
    ) -> JSONResponse:
        """Handle standard HTTPException (routing 404/405) with RFC 7807 response."""
        code_map = {
            400: ErrorCode.VALIDATION_ERROR,
            401: ErrorCode.NOT_CONNECTED,
            404: ErrorCode.NOT_FOUND,
            500: ErrorCode.INTERNAL_ERROR,
            502: ErrorCode.EXTERNAL_SERVICE_ERROR,
        }

        code = code_map.get(exc.status_code, ErrorCode.INTERNAL_ERROR)

        return create_problem_response(
            status_code=exc.status_code,
            code=code,
            detail=str(exc.detail),
            request=request,
            allowed_origins=allowed_origins,
        )

    async def handle_validation_exception(
        request: Request,
        exc: RequestValidationError
    ) -> JSONResponse:
        """Map request validation failures to a 400 carrying the first violation."""
        errors = []
        for error in exc.errors():
            errors.append({
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            })

        detail = errors[0]["message"] if errors else "Invalid request body"
        if errors and errors[0]["field"]:
            detail = f"{errors[0]['field']}: {detail}"

        return await handle_crm_exception(request, ValidationError(detail, errors=errors))

    async def handle_generic_exception(
        request: Request,
        exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions with RFC 7807 response."""
        trace_id = _get_trace_id()

        logger.error(
            f"Unhandled exception: {type(exc).__name__}",
            extra={"trace_id": trace_id, "path": request.url.path},
        )
        logger.error(traceback.format_exc())

        capture_exception(
            exc,
            context={
                "trace_id": trace_id,
                "path": request.url.path,
                "method": request.method,
            }
        )

        # Don't expose internal details in production
        from invoice_manager.config import settings
        detail = str(exc) if settings.DEBUG else "An unexpected error occurred"

        return create_problem_response(
            status_code=500,
            code=ErrorCode.INTERNAL_ERROR,
            detail=detail,
            request=request,
            trace_id=trace_id,
            allowed_origins=allowed_origins,
        )

    return {
        "crm": handle_crm_exception,
        "http": handle_http_exception,
        "validation": handle_validation_exception,
        "generic": handle_generic_exception,
    }
