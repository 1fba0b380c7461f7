"""Error taxonomy for completion requests.

Every terminal condition surfaced by the client is a `CompletionError`
carrying a stable `kind`, so callers branch on `error.kind` instead of
inspecting message text.
"""

from enum import Enum
from typing import Any

from smartflash_llm.models import ValidationIssue


class ErrorKind(str, Enum):
    """Stable error discriminator."""

    CONFIGURATION = "configuration"
    INPUT = "input"
    AUTHORIZATION = "authorization"
    RATE_LIMITED = "rate_limited"
    SERVER = "server"
    NETWORK = "network"
    CLIENT = "client"
    TIMEOUT = "timeout"
    VALIDATION = "validation"
    INVALID_RESPONSE = "invalid_response"
    CIRCUIT_OPEN = "circuit_open"
    CANCELLED = "cancelled"


class CompletionError(Exception):
    """Base class for all client errors."""

    kind: ErrorKind = ErrorKind.SERVER
    retryable: bool = False

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        """Render the error for logs and collaborators."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "retryable": self.retryable,
            "context": self.context,
        }


class ConfigurationError(CompletionError):
    """Invalid construction input."""

    kind = ErrorKind.CONFIGURATION


class InputError(CompletionError):
    """Malformed request from the caller; no network call was made."""

    kind = ErrorKind.INPUT


class AuthorizationError(CompletionError):
    """401/403 from the endpoint."""

    kind = ErrorKind.AUTHORIZATION

    def __init__(self, message: str, status: int, code: str | None = None) -> None:
        super().__init__(message, status=status, code=code)
        self.status = status
        self.code = code


class ClientRequestError(CompletionError):
    """Non-retryable 4xx other than 401/403/429."""

    kind = ErrorKind.CLIENT

    def __init__(self, message: str, status: int, code: str | None = None) -> None:
        super().__init__(message, status=status, code=code)
        self.status = status
        self.code = code


class RateLimitedError(CompletionError):
    """429 responses that outlasted the retry budget."""

    kind = ErrorKind.RATE_LIMITED
    retryable = True

    def __init__(self, detail: str, attempts: int, retry_after: float | None = None) -> None:
        super().__init__(
            f"Rate limited after {attempts} attempt(s): {detail}",
            attempts=attempts,
            retry_after=retry_after,
        )
        self.attempts = attempts
        self.retry_after = retry_after


class ServerError(CompletionError):
    """5xx responses that outlasted the retry budget."""

    kind = ErrorKind.SERVER
    retryable = True

    def __init__(self, detail: str, status: int, attempts: int) -> None:
        super().__init__(
            f"Server error after {attempts} attempt(s): {detail}",
            status=status,
            attempts=attempts,
        )
        self.status = status
        self.attempts = attempts


class NetworkError(CompletionError):
    """Connection-level failure that outlasted the retry budget."""

    kind = ErrorKind.NETWORK
    retryable = True

    def __init__(self, detail: str, attempts: int) -> None:
        super().__init__(f"Network error after {attempts} attempt(s): {detail}", attempts=attempts)
        self.attempts = attempts


class RequestTimeoutError(CompletionError):
    """A single transport attempt exceeded its timeout."""

    kind = ErrorKind.TIMEOUT

    def __init__(self, timeout: float) -> None:
        super().__init__(f"Request timeout after {timeout:g}s", timeout=timeout)
        self.timeout = timeout


class RequestCancelledError(CompletionError):
    """The caller signalled abort while the request was in flight."""

    kind = ErrorKind.CANCELLED

    def __init__(self, message: str = "Request cancelled by caller") -> None:
        super().__init__(message)


class InvalidResponseError(CompletionError):
    """The endpoint answered 2xx with an unusable body."""

    kind = ErrorKind.INVALID_RESPONSE


class CircuitOpenError(CompletionError):
    """Calls are being rejected until the breaker cools down."""

    kind = ErrorKind.CIRCUIT_OPEN

    def __init__(self, retry_after: float) -> None:
        super().__init__(
            f"Circuit breaker is OPEN. Service unavailable. Retry in {max(retry_after, 0):.0f}s",
            retry_after=retry_after,
        )
        self.retry_after = retry_after


class SchemaValidationError(CompletionError):
    """Content failed its JSON Schema."""

    kind = ErrorKind.VALIDATION

    def __init__(self, errors: list[ValidationIssue], message: str | None = None) -> None:
        summary = "; ".join(str(issue) for issue in errors)
        super().__init__(
            message or f"Validation failed: {summary}",
            errors=[issue.model_dump() for issue in errors],
        )
        self.errors = list(errors)


class ResponseValidationError(SchemaValidationError):
    """The model kept answering outside the schema."""

    def __init__(self, errors: list[ValidationIssue], attempts: int) -> None:
        summary = "; ".join(str(issue) for issue in errors)
        super().__init__(
            errors,
            message=f"Response validation failed after {attempts} attempt(s): {summary}",
        )
        self.attempts = attempts
        self.context["attempts"] = attempts
