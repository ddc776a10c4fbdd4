"""Error taxonomy and the single classifier used by every lifecycle operation.

TAXONOMY:
- NotFound: the target object is absent. Exists turns it into False, Delete
  into success, every other operation propagates it.
- Malformed identity: client-side validation of an ID or name failed before
  any network call. Always fatal, never retried.
- Fatal: a structured provider error other than not-found, propagated with
  its original message.
- Timeout: the operation deadline expired. Never reinterpreted as NotFound.
- Transport: connectivity failure raised by the HTTP pipeline, surfaced as-is.

Provider errors subclass azure-core's HttpResponseError so callers can handle
them next to the pipeline's own ServiceRequestError/ServiceResponseError.
"""

from __future__ import annotations

from enum import Enum

from azure.core.exceptions import HttpResponseError, ServiceRequestError, ServiceResponseError

# CloudStack error codes returned by the compute API
PARAM_ERROR = 431  # Invalid parameter or unknown object
UNAUTHORIZED = 401
METHOD_NOT_ALLOWED = 405
INTERNAL_ERROR = 530
RESOURCE_UNAVAILABLE = 534

# DNS API signals absence with a plain HTTP status
DNS_NOT_FOUND_STATUS = 404


class ErrorClass(str, Enum):
    """Classification of a failed API interaction."""

    NOT_FOUND = "not_found"
    FATAL = "fatal"
    TIMEOUT = "timeout"
    TRANSPORT = "transport"


class ReconcileError(Exception):
    """Base class for errors raised by the reconciliation core."""

    pass


class MalformedIdentityError(ReconcileError, ValueError):
    """Raised when an identity fails validation before any API call."""

    def __init__(self, kind: str, value: object, reason: str) -> None:
        self.kind = kind
        self.value = value
        self.reason = reason
        super().__init__(f"{kind}: malformed identity {value!r}: {reason}")


class NotFoundError(ReconcileError):
    """Raised when the remote object does not exist (anymore)."""

    def __init__(self, message: str, *, address: str | None = None) -> None:
        self.address = address
        super().__init__(message)


class OperationTimeoutError(ReconcileError, TimeoutError):
    """Raised when a lifecycle operation exceeds its deadline."""

    def __init__(self, operation: str, timeout_seconds: float) -> None:
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        label = operation or "operation"
        super().__init__(f"{label} timed out after {timeout_seconds:g}s")


class UnsupportedOperationError(ReconcileError):
    """Raised when a resource kind does not implement a lifecycle operation."""

    pass


class UnknownReferenceError(ReconcileError, LookupError):
    """Raised when a referenced object (zone, template, group...) cannot be found by name."""

    def __init__(self, what: str, name: str) -> None:
        self.what = what
        self.name = name
        super().__init__(f"{what} {name!r} not found")


class APIError(HttpResponseError):
    """Structured error returned by the CloudStack-style compute API.

    Attributes:
        error_code: CloudStack error code (e.g. 431 for parameter errors).
        cs_error_code: CloudStack internal exception code.
        command: API command that failed.
    """

    def __init__(
        self,
        message: str,
        *,
        error_code: int,
        cs_error_code: int = 0,
        command: str = "",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message=message)
        self.error_code = error_code
        self.cs_error_code = cs_error_code
        self.command = command
        self.status_code = status_code if status_code is not None else error_code

    def __str__(self) -> str:
        prefix = f"{self.command}: " if self.command else ""
        return f"{prefix}API error {self.error_code} ({self.cs_error_code}): {self.message}"


class DNSAPIError(HttpResponseError):
    """Error returned by the DNS API.

    Attributes:
        errors: Field-level validation messages, when the API provides them.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        errors: dict[str, list[str]] | None = None,
    ) -> None:
        super().__init__(message=message)
        self.status_code = status_code
        self.errors = errors or {}

    def __str__(self) -> str:
        details = "; ".join(
            f"{field}: {', '.join(messages)}" for field, messages in sorted(self.errors.items())
        )
        suffix = f" ({details})" if details else ""
        return f"DNS API error {self.status_code}: {self.message}{suffix}"


def classify(exc: BaseException) -> ErrorClass:
    """Classify an exception raised while talking to the API.

    Args:
        exc: The exception to classify.

    Returns:
        The error class driving how Exists/Read/Delete react.
    """
    if isinstance(exc, NotFoundError):
        return ErrorClass.NOT_FOUND
    if isinstance(exc, APIError):
        return ErrorClass.NOT_FOUND if exc.error_code == PARAM_ERROR else ErrorClass.FATAL
    if isinstance(exc, DNSAPIError):
        return ErrorClass.NOT_FOUND if exc.status_code == DNS_NOT_FOUND_STATUS else ErrorClass.FATAL
    if isinstance(exc, TimeoutError):
        return ErrorClass.TIMEOUT
    if isinstance(exc, ServiceRequestError | ServiceResponseError):
        return ErrorClass.TRANSPORT
    return ErrorClass.FATAL


def is_not_found(exc: BaseException) -> bool:
    """Check whether an exception means the remote object is absent."""
    return classify(exc) is ErrorClass.NOT_FOUND
