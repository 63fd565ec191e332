"""
Errors raised by the conversation engine and their HTTP rendering.

Two families live here:

- ``YarrowException`` subclasses reach API clients as RFC 7807
  ``application/problem+json`` bodies (``NotFoundError``,
  ``InvalidStatusError``).
- Plain internal errors (``ReasoningServiceError``, ``ActionPersistenceError``,
  ``SummarizerError``) never reach a client. The engine turns them into a
  fallback reply, a ``failed`` audit message, or a log line.

See: https://datatracker.ietf.org/doc/html/rfc7807
"""

from typing import Optional, Dict, Any, List
from enum import Enum
from pydantic import BaseModel
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import uuid
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Machine-readable codes carried in every problem body."""

    UNAUTHORIZED = "AUTH_001"
    FORBIDDEN = "AUTH_002"

    VALIDATION_ERROR = "VAL_001"
    INVALID_STATUS = "VAL_005"

    NOT_FOUND = "RES_001"
    CONFLICT = "RES_003"

    EXTERNAL_SERVICE_ERROR = "EXT_001"

    INTERNAL_ERROR = "SRV_001"
    SERVICE_UNAVAILABLE = "SRV_002"


HTTP_TITLES = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    409: "Conflict",
    422: "Validation Error",
    500: "Internal Server Error",
    502: "Bad Gateway",
    503: "Service Unavailable",
}

STATUS_CODES = {
    400: ErrorCode.VALIDATION_ERROR,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    409: ErrorCode.CONFLICT,
    422: ErrorCode.VALIDATION_ERROR,
    502: ErrorCode.EXTERNAL_SERVICE_ERROR,
    503: ErrorCode.SERVICE_UNAVAILABLE,
}


def _trace_id() -> str:
    """The request id when inside a request, else a fresh one."""
    from yarrow.middleware.correlation import get_request_id

    request_id = get_request_id()
    if request_id != "unknown":
        return request_id
    return uuid.uuid4().hex[:12]


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class ProblemDetail(BaseModel):
    """RFC 7807 body plus ``code``, ``timestamp``, ``trace_id`` and field ``errors``."""

    type: str = "about:blank"
    title: str
    status: int
    detail: str
    instance: Optional[str] = None
    code: str
    timestamp: str
    trace_id: str
    errors: Optional[List[Dict[str, Any]]] = None


def _problem_type(code: ErrorCode) -> str:
    return f"https://yarrow.app/problems/{code.value.lower().replace('_', '-')}"


class YarrowException(HTTPException):
    """Base for errors a caller of the conversation API is meant to see."""

    def __init__(
        self,
        status_code: int,
        code: ErrorCode,
        detail: str,
        errors: Optional[List[Dict[str, Any]]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.code = code
        self.errors = errors
        self.trace_id = _trace_id()
        super().__init__(status_code=status_code, detail=detail, headers=headers)

    def to_problem_detail(self, instance: Optional[str] = None) -> ProblemDetail:
        return ProblemDetail(
            type=_problem_type(self.code),
            title=HTTP_TITLES.get(self.status_code, "Error"),
            status=self.status_code,
            detail=self.detail,
            instance=instance,
            code=self.code.value,
            timestamp=_now(),
            trace_id=self.trace_id,
            errors=self.errors,
        )


class NotFoundError(YarrowException):
    """Unknown ticket (or other resource)."""

    def __init__(self, resource: str, resource_id: Any):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(
            status_code=404,
            code=ErrorCode.NOT_FOUND,
            detail=f"{resource} with ID {resource_id} was not found",
        )


class InvalidStatusError(YarrowException):
    """Status value outside the ticket lifecycle. Nothing was changed."""

    def __init__(self, status: Any, allowed: List[str]):
        self.status = status
        self.allowed = allowed
        super().__init__(
            status_code=422,
            code=ErrorCode.INVALID_STATUS,
            detail=f"Invalid ticket status '{status}'. Allowed: {', '.join(allowed)}",
            errors=[{"field": "status", "message": "unrecognized status", "type": "invalid_status"}],
        )


# Internal errors, converted by the engine and never rendered directly

class ReasoningServiceError(Exception):
    """The reasoning call failed or returned an unusable payload."""

    def __init__(self, detail: str, status_code: Optional[int] = None):
        self.detail = detail
        self.status_code = status_code
        super().__init__(detail)


class ActionPersistenceError(Exception):
    """A proposed action's state change could not be persisted."""

    def __init__(self, action_type: str, detail: str):
        self.action_type = action_type
        self.detail = detail
        super().__init__(f"{action_type}: {detail}")


class SummarizerError(Exception):
    """The rolling conversation summary could not be updated."""


# Exception handlers for FastAPI

def _problem_response(
    problem: ProblemDetail,
    request: Request,
    allowed_origins: Optional[List[str]],
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    response = JSONResponse(
        status_code=problem.status,
        content=problem.model_dump(exclude_none=True),
        media_type="application/problem+json",
        headers=headers,
    )
    # Error responses bypass CORSMiddleware when raised from a handler
    origin = request.headers.get("origin", "")
    if allowed_origins and origin in allowed_origins:
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
    problem = ProblemDetail(
        type=_problem_type(code),
        title=HTTP_TITLES.get(status_code, "Error"),
        status=status_code,
        detail=detail,
        instance=str(request.url.path),
        code=code.value,
        timestamp=_now(),
        trace_id=trace_id or _trace_id(),
        errors=errors,
    )
    return _problem_response(problem, request, allowed_origins)


def create_exception_handlers(allowed_origins: List[str]):
    """
    Build the app's exception handlers.

    Usage in main.py:
        handlers = create_exception_handlers(allowed_origins)
        app.add_exception_handler(YarrowException, handlers["yarrow"])
    """

    async def handle_yarrow_exception(request: Request, exc: YarrowException) -> JSONResponse:
        logger.warning(
            "%s on %s: %s", exc.code.value, request.url.path, exc.detail,
            extra={"trace_id": exc.trace_id},
        )
        problem = exc.to_problem_detail(instance=str(request.url.path))
        return _problem_response(problem, request, allowed_origins, headers=exc.headers)

    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        response = create_problem_response(
            status_code=exc.status_code,
            code=STATUS_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR),
            detail=str(exc.detail),
            request=request,
            allowed_origins=allowed_origins,
        )
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    async def handle_validation_exception(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]
        return create_problem_response(
            status_code=422,
            code=ErrorCode.VALIDATION_ERROR,
            detail="Request validation failed",
            request=request,
            errors=errors,
            allowed_origins=allowed_origins,
        )

    async def handle_generic_exception(request: Request, exc: Exception) -> JSONResponse:
        trace_id = _trace_id()
        logger.exception(
            "Unhandled %s on %s", type(exc).__name__, request.url.path,
            extra={"trace_id": trace_id},
        )

        # Don't expose internal details in production
        from yarrow.config import settings
        detail = str(exc) if settings.DEBUG and not settings.is_production else "An unexpected error occurred"

        return create_problem_response(
            status_code=500,
            code=ErrorCode.INTERNAL_ERROR,
            detail=detail,
            request=request,
            trace_id=trace_id,
            allowed_origins=allowed_origins,
        )

    return {
        "yarrow": handle_yarrow_exception,
        "http": handle_http_exception,
        "validation": handle_validation_exception,
        "generic": handle_generic_exception,
    }
