"""
Error taxonomy shared by every module, and the classifier that turns any
exception raised while serving a request into an HTTP status and JSON body.

Modules raise the typed errors below with a human readable message. The
classifier is a match over the error type, never over message text.
"""
from dataclasses import dataclass, field
from typing import Any

import pydantic
from fastapi import status

from signflow.utils import get_logger


log = get_logger(__name__)

GENERIC_INTERNAL_MESSAGE = "An unexpected error occurred"
MALFORMED_BODY_MESSAGE = "Malformed JSON in request body"


class AppError(Exception):
    """Base class for errors that carry their own HTTP outcome."""
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    title: str = "Internal Server Error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str


class ValidationError(AppError):
    """Malformed or out-of-range input, one message per offending field."""
    status_code = status.HTTP_400_BAD_REQUEST
    title = "Validation Error"

    def __init__(self, fields: list[FieldError]):
        self.fields = list(fields)
        super().__init__("; ".join(_describe(f) for f in self.fields) or "Invalid input")

    @classmethod
    def single(cls, field_name: str, message: str) -> "ValidationError":
        return cls([FieldError(field_name, message)])

    @classmethod
    def from_pydantic(cls, exc: pydantic.ValidationError) -> "ValidationError":
        fields = []
        for error in exc.errors():
            loc = [str(part) for part in error.get("loc", ())]
            fields.append(FieldError(".".join(loc) or "root", error.get("msg", "invalid value")))
        return cls(fields)


class MalformedBodyError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    title = "Bad Request"

    def __init__(self, message: str = MALFORMED_BODY_MESSAGE):
        super().__init__(message)


class AuthenticationError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    title = "Access Denied"


class AuthorizationError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    title = "Forbidden"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    title = "Not Found"

    def __init__(self, resource: str, message: str | None = None):
        self.resource = resource
        super().__init__(message or f"{resource} not found")


class BusinessRuleError(AppError):
    """Well-formed request rejected by a domain rule (duplicates, wrong state)."""
    status_code = status.HTTP_400_BAD_REQUEST
    title = "Business Rule Violation"


class UpstreamTimeoutError(AppError):
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    title = "Gateway Timeout"


class InternalError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    title = "Internal Server Error"


class RouteConflictError(Exception):
    """Two bindings for the same method and path, raised at startup."""


class ModuleRegistrationError(Exception):
    """A module was rejected by the registry before initialization."""


def _describe(error: FieldError) -> str:
    if error.field in ("", "root", "__root__"):
        return error.message
    return f"{error.field}: {error.message}"


@dataclass
class ErrorResponse:
    status_code: int
    body: dict[str, Any] = field(default_factory=dict)


def classify(exc: BaseException) -> ErrorResponse:
    """
    Map any exception to its HTTP outcome.

    Order matters, first match wins:
    1. validation failures (400, all field messages joined)
    2. malformed request bodies (400)
    3. missing credentials (401) and insufficient rights (403)
    4. missing resources (404) and domain rule violations (400)
    5. downstream deadline exceeded (504)
    6. anything else (500, generic message, original logged only)
    """
    if isinstance(exc, pydantic.ValidationError):
        exc = ValidationError.from_pydantic(exc)

    if isinstance(exc, ValidationError):
        return ErrorResponse(exc.status_code, {
            "error": exc.title,
            "message": exc.message,
            "details": [{"field": f.field, "message": f.message} for f in exc.fields],
        })

    if isinstance(exc, InternalError):
        log.error("Internal error: %s", exc.message)
        return _internal()

    if isinstance(exc, AppError):
        log.info("%s (%s): %s", exc.title, exc.status_code, exc.message)
        return ErrorResponse(exc.status_code, {"error": exc.title, "message": exc.message})

    log.error("Unhandled error while serving request", exc_info=exc)
    return _internal()


def _internal() -> ErrorResponse:
    return ErrorResponse(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        {"error": InternalError.title, "message": GENERIC_INTERNAL_MESSAGE},
    )
