import enum
from typing import Any, Optional


class ErrorKind(str, enum.Enum):
    MALFORMED_INPUT = "malformed_input"
    UNAUTHENTICATED = "unauthenticated"
    UNAUTHORIZED = "unauthorized"
    MISSING_RESOURCE = "missing_resource"
    SERVER_FAULT = "server_fault"
    UNKNOWN = "unknown"


def classify_status(status_code: Optional[int]) -> ErrorKind:
    if status_code == 400:
        return ErrorKind.MALFORMED_INPUT
    if status_code == 401:
        return ErrorKind.UNAUTHENTICATED
    if status_code == 403:
        return ErrorKind.UNAUTHORIZED
    if status_code == 404:
        return ErrorKind.MISSING_RESOURCE
    if status_code is not None and status_code >= 500:
        return ErrorKind.SERVER_FAULT
    return ErrorKind.UNKNOWN


class CatalogError(Exception):
    """Base class for errors surfaced to a view."""


class DraftValidationError(CatalogError):
    """A draft record is missing required fields. Raised before any request."""

    def __init__(self, fields: list[str]):
        self.fields = fields
        super().__init__(f"Please fill in all required fields: {', '.join(fields)}")


class TransportError(CatalogError):
    def __init__(self, message: str, status_code: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.kind = classify_status(status_code)


def _validation_messages(body: Any) -> list[str]:
    messages = []
    for value in (body.get("errors") or {}).values():
        if isinstance(value, list):
            messages.extend(str(v) for v in value)
        elif value:
            messages.append(str(value))
    return messages


def describe_error(exc: Exception) -> str:
    """Turn an exception into the message shown next to a view."""
    if isinstance(exc, DraftValidationError):
        return str(exc)

    if not isinstance(exc, TransportError):
        return str(exc) or "An unexpected error occurred. Please try again."

    body = exc.body
    if exc.kind is ErrorKind.MALFORMED_INPUT:
        if isinstance(body, dict):
            if body.get("errors"):
                return "\n".join(_validation_messages(body))
            if body.get("title"):
                return str(body["title"])
        return "Invalid data. Please check your input and try again."
    if exc.kind is ErrorKind.UNAUTHENTICATED:
        return "Unauthorized. Please log in again."
    if exc.kind is ErrorKind.UNAUTHORIZED:
        return "You do not have permission to perform this action."
    if exc.kind is ErrorKind.MISSING_RESOURCE:
        return "The requested resource was not found."
    if exc.kind is ErrorKind.SERVER_FAULT:
        return "A server error occurred. Please try again later."

    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    if isinstance(body, str) and body:
        return body
    return str(exc) or "An unexpected error occurred. Please try again."
