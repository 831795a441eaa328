import json
import logging
from typing import Optional

logger = logging.getLogger(__name__)

### PEP-249 Mandated ###
# https://peps.python.org/pep-0249/#exceptions
class Error(Exception):
    """Base class for all errors raised by this library.
    `message`: A user-friendly error message. It should be short, actionable and stable
    `context`: Optional extra context about the error. MUST be JSON serializable
    `code`: Machine-checkable error kind, e.g. ``INVALID_STATE`` or ``ABORTED``
    `statement_id`: The statement the error relates to, when known
    """

    default_code = "UNKNOWN_ERROR"

    def __init__(
        self,
        message=None,
        context=None,
        *args,
        code: Optional[str] = None,
        statement_id: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(message, *args, **kwargs)
        self.message = message
        self.context = context or {}
        self.code = code or self.default_code
        self.statement_id = statement_id
        if statement_id is not None:
            self.context.setdefault("statement-id", statement_id)

    def __str__(self):
        return self.message

    def message_with_context(self):
        return self.message + ": " + json.dumps(self.context, default=str)


class Warning(Exception):
    pass


class InterfaceError(Error):
    pass


class DatabaseError(Error):
    pass


class InternalError(DatabaseError):
    pass


class OperationalError(DatabaseError):
    pass


class ProgrammingError(DatabaseError):
    pass


class DataError(DatabaseError):
    pass


class NotSupportedError(DatabaseError):
    pass


### Custom error classes ###
class InvalidStateError(ProgrammingError):
    """Thrown when a result is used in a state that does not allow it, e.g. fetching rows
    from a statement that has not succeeded, or from a result without a manifest.
    """

    default_code = "INVALID_STATE"


class UnsupportedFormatError(NotSupportedError):
    """Thrown when the disposition/format combination of a result is not supported by the
    requested operation, for example row streaming over CSV external links.
    """

    default_code = "UNSUPPORTED_FORMAT"


class ValueFormatError(DataError):
    """Thrown when a value cannot be decoded, such as a STRUCT cell holding malformed JSON
    or a JSON_ARRAY stream whose elements are not arrays.
    """

    default_code = "INVALID_FORMAT"


class AbortError(OperationalError):
    """Thrown when an operation is aborted through its AbortSignal."""

    default_code = "ABORTED"

    def __init__(self, message="Operation was aborted", context=None, **kwargs):
        super().__init__(message, context, **kwargs)


class StatementCancelledError(OperationalError):
    """Thrown when the statement reached the CANCELED state on the server."""

    default_code = "CANCELLED"

    def __init__(self, statement_id: str, context=None):
        super().__init__(
            "Statement {} was cancelled".format(statement_id),
            context,
            statement_id=statement_id,
        )


class ServerOperationError(DatabaseError):
    """Thrown if the statement moved to an error state, if for example there was a syntax
    error. The code is the server supplied ``error_code`` when there is one.
    Its context will have the following keys:
    "statement-id": The id of the failed statement
    "sql-state": The SQLSTATE reported by the server (if available)
    """

    pass


class RequestError(OperationalError):
    """Thrown if there was a error during request to the server.
    Its context will have the following keys:
    "method": The HTTP method of the failed request
    "path": The API path of the failed request
    "http-code": HTTP response code (if available)
    "original-exception": The Python level original exception (if available)
    """

    default_code = "REQUEST_ERROR"


class HttpError(RequestError):
    """Thrown when the server answers with a non-success status code."""

    def __init__(self, status: int, reason: str, message=None, context=None, **kwargs):
        context = dict(context or {})
        context.setdefault("http-code", status)
        super().__init__(
            message or "HTTP {}: {}".format(status, reason),
            context,
            code="HTTP_{}".format(status),
            **kwargs,
        )
        self.status = status
        self.reason = reason


class AuthenticationError(HttpError):
    """Thrown on HTTP 401. Never retried."""

    def __init__(self, context=None, **kwargs):
        super().__init__(
            401,
            "Unauthorized",
            "Authentication failed. Check your token.",
            context,
            **kwargs,
        )


class RateLimitError(HttpError):
    """Thrown on HTTP 429 once retries are exhausted. ``retry_after`` holds the server's
    Retry-After hint in seconds, if it sent one.
    """

    def __init__(self, retry_after: Optional[float] = None, context=None, **kwargs):
        super().__init__(429, "Too Many Requests", "Rate limit exceeded", context, **kwargs)
        self.retry_after = retry_after


class MaxRetryDurationError(RequestError):
    """Thrown if the next HTTP request retry would exceed the configured
    stop_after_attempts_duration
    """


class NonRecoverableNetworkError(RequestError):
    """Thrown if an HTTP code 501 is received"""


class UnsafeToRetryError(RequestError):
    """Thrown if an ExecuteStatement request receives a code other than 429 or 503"""
