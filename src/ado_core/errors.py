"""Error taxonomy for Azure DevOps calls.

Two layers live here:
- Raw upstream errors (UpstreamHTTPError, UpstreamTransportError) raised by the
  transport client. These are the only errors the retry loop looks at.
- ClassifiedError, the terminal, user-facing form. It is built once by
  classify() and then propagated untouched to the protocol layer.
"""
import enum
import logging
import re
from contextlib import contextmanager
from typing import Iterator, Optional

logger = logging.getLogger("ado-core.errors")


class ErrorKind(str, enum.Enum):
    """Machine-checkable failure category."""

    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    RATE_LIMIT = "rate_limit"
    SERVICE_UNAVAILABLE = "service_unavailable"
    UNKNOWN = "unknown"


_AUTHORIZATION_VALUE = re.compile(r"(Authorization\s*[:=]\s*)(Basic|Bearer)\s+[A-Za-z0-9+/=._\-]+", re.IGNORECASE)


def redact(text: str, secrets: tuple[str, ...] = ()) -> str:
    """Mask credentials and authorization header values in text."""
    for secret in secrets:
        if secret:
            text = text.replace(secret, "***")
    return _AUTHORIZATION_VALUE.sub(r"\1\2 ***", text)


# ============================================================================
# Raw upstream errors
# ============================================================================


class UpstreamError(Exception):
    """Base class for failures raised by the transport client."""

    status_code: Optional[int] = None

    def __init__(self, message: str, troubleshooting: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.troubleshooting = troubleshooting

    @property
    def retryable(self) -> bool:
        return True


class UpstreamHTTPError(UpstreamError):
    """The upstream answered with an HTTP error status."""

    def __init__(
        self,
        status_code: int,
        message: str,
        body: Optional[dict] = None,
        method: Optional[str] = None,
        url: Optional[str] = None,
        troubleshooting: Optional[str] = None,
    ):
        super().__init__(message, troubleshooting)
        self.status_code = status_code
        self.body = body or {}
        self.method = method
        self.url = url

    @property
    def type_key(self) -> Optional[str]:
        return self.body.get("typeKey")

    @property
    def retryable(self) -> bool:
        # other 4xx are terminal
        return self.status_code == 429 or self.status_code >= 500


class UpstreamTransportError(UpstreamError):
    """Network failure or timeout; no HTTP status was received."""

    def __init__(self, message: str, timed_out: bool = False, troubleshooting: Optional[str] = None):
        super().__init__(message, troubleshooting)
        self.timed_out = timed_out


# ============================================================================
# Classified errors
# ============================================================================


class ClassifiedError(Exception):
    """Terminal error carrying a kind and a user-facing message.

    Never retried once constructed.
    """

    def __init__(
        self,
        kind: ErrorKind,
        source: str,
        source_operation: str,
        raw_message: str,
        user_message: str,
        upstream_status: Optional[int] = None,
        type_key: Optional[str] = None,
    ):
        super().__init__(user_message)
        self.kind = kind
        self.source = source
        self.source_operation = source_operation
        self.raw_message = raw_message
        self.user_message = user_message
        self.upstream_status = upstream_status
        self.type_key = type_key

    def to_dict(self) -> dict:
        data = {
            "kind": self.kind.value,
            "source": self.source,
            "operation": self.source_operation,
            "upstreamStatus": self.upstream_status,
            "message": self.user_message,
        }
        if self.type_key:
            data["typeKey"] = self.type_key
        return data

    def __repr__(self) -> str:
        return (f"{type(self).__name__}(kind={self.kind.value!r}, "
                f"operation={self.source_operation!r}, message={self.user_message!r})")


class UnknownToolError(ClassifiedError):
    """Raised by the registry when a tool name has no registration."""


_STATUS_KINDS: dict[int, ErrorKind] = {
    400: ErrorKind.VALIDATION,
    401: ErrorKind.AUTHENTICATION,
    403: ErrorKind.AUTHORIZATION,
    404: ErrorKind.NOT_FOUND,
    429: ErrorKind.RATE_LIMIT,
}


def kind_for_status(status: Optional[int]) -> ErrorKind:
    """Map an HTTP status to an error kind."""
    if status is None:
        return ErrorKind.UNKNOWN
    if status in _STATUS_KINDS:
        return _STATUS_KINDS[status]
    if status >= 500:
        return ErrorKind.SERVICE_UNAVAILABLE
    return ErrorKind.UNKNOWN


def _extract_status(error: BaseException) -> Optional[int]:
    for attr in ("status_code", "status", "statusCode"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def _extract_message(error: BaseException) -> str:
    # explicit message > nested body message > str(error)
    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message
    body = getattr(error, "body", None)
    if isinstance(body, dict):
        nested = body.get("message")
        inner = body.get("error")
        if not nested and isinstance(inner, dict):
            nested = inner.get("message")
        if isinstance(nested, str) and nested:
            return nested
    text = str(error)
    return text or type(error).__name__


def build_user_message(
    kind: ErrorKind,
    message: str,
    operation: str,
    troubleshooting: Optional[str] = None,
) -> str:
    """Compose the human message for a classified failure."""
    message = message.rstrip(".")
    if kind == ErrorKind.AUTHENTICATION:
        text = f"Authentication failed: {message}. Please check your credentials."
    elif kind == ErrorKind.AUTHORIZATION:
        text = f"Authorization failed: {message}. You don't have permission to perform this operation."
    elif kind == ErrorKind.NOT_FOUND:
        text = f"Resource not found: {message}. Please check that the requested resource exists."
    elif kind == ErrorKind.VALIDATION:
        text = f"Validation failed: {message}. Please check your input parameters."
    elif kind == ErrorKind.RATE_LIMIT:
        text = f"Rate limit exceeded: {message}. Please try again later."
    elif kind == ErrorKind.SERVICE_UNAVAILABLE:
        text = f"Service unavailable: {message}. Please try again later."
    else:
        text = f"Error during {operation}: {message}"

    if troubleshooting:
        text = f"{text} {troubleshooting}"
    return text


def classify(
    error: BaseException,
    source: str,
    operation: str,
    troubleshooting: Optional[str] = None,
    log: Optional[logging.Logger] = None,
) -> ClassifiedError:
    """Turn any failure into a ClassifiedError.

    Never raises. Already classified errors are returned as they are, so an
    error is only ever classified (and logged) once.

    Args:
        error: The raw failure
        source: Component that saw the failure (tool name, "AdoApiClient", ...)
        operation: Operation being performed (e.g. "execute_list", "get_pull_request")
        troubleshooting: Hint appended to the user message; overrides a hint
            carried by the raw error
        log: Logger to report to (defaults to the module logger)

    Returns:
        ClassifiedError ready to be raised by the caller
    """
    if isinstance(error, ClassifiedError):
        return error

    log = log or logger
    try:
        status = _extract_status(error)
        type_key = getattr(error, "type_key", None)
        if not isinstance(type_key, str):
            type_key = None
        kind = kind_for_status(status)
        raw_message = redact(_extract_message(error))
        hint = troubleshooting or getattr(error, "troubleshooting", None)
        user_message = redact(build_user_message(kind, raw_message, operation, hint))
    except Exception as exc:  # classification itself must not fail
        status, kind, type_key = None, ErrorKind.UNKNOWN, None
        raw_message = type(error).__name__
        user_message = f"Error during {operation}: {raw_message}"
        log.debug(f"Fell back to generic classification: {exc!r}")

    log.error(
        f"[{source}] {operation} failed: kind={kind.value} status={status} "
        f"error_type={type(error).__name__} message={raw_message}"
    )
    return ClassifiedError(
        kind=kind,
        source=source,
        source_operation=operation,
        raw_message=raw_message,
        user_message=user_message,
        upstream_status=status,
        type_key=type_key,
    )


def validation_error(source: str, operation: str, message: str) -> ClassifiedError:
    """Build a Validation-kind error for failures detected locally."""
    logger.warning(f"[{source}] {operation} rejected: {message}")
    return ClassifiedError(
        kind=ErrorKind.VALIDATION,
        source=source,
        source_operation=operation,
        raw_message=message,
        user_message=build_user_message(ErrorKind.VALIDATION, message, operation),
    )


@contextmanager
def classified(
    source: str,
    operation: str,
    troubleshooting: Optional[str] = None,
) -> Iterator[None]:
    """Classify any raw error escaping the block with this context."""
    try:
        yield
    except ClassifiedError:
        raise
    except Exception as exc:
        raise classify(exc, source, operation, troubleshooting) from exc
