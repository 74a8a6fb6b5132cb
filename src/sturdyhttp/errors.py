"""Error taxonomy for sturdyhttp.

Every error raised by the library derives from :class:`SturdyHTTPError`, which
carries a machine-readable ``code`` (``sturdyhttp:<area>/<reason>``), a
human-readable ``message`` and a ``details`` dict suitable for structured logs.

The taxonomy mirrors how failures are treated by :meth:`sturdyhttp.Client.do`:

- Construction errors (:class:`UnsupportedBodyError`, :class:`BodyOpenError`)
  are permanent and surface before any network activity.
- Transport errors (:class:`RequestError`, :class:`DialError` and subclasses)
  are routed through the client's error hook and retried only when the hook
  suppresses them or they are timeout-like.
- Application errors (:class:`StatusError`, :class:`ContentError`) are never
  raised by the retry loop itself; callers and error-response hooks build them.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from sturdyhttp.response import Response

# Maximum number of response body bytes captured by StatusError.
STATUS_ERROR_BODY_LIMIT = 4 * 1024


class SturdyHTTPError(Exception):
    """Base exception for all sturdyhttp errors.

    Attributes:
        code: Error code following the sturdyhttp:<area>/<reason> pattern
        message: Human-readable error message
        details: Optional additional error context
    """

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize to ``{code, message, details}`` dict."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class UnsupportedBodyError(SturdyHTTPError, TypeError):
    """Raised when a request body has a type that cannot be replayed.

    Attributes:
        body_type: Qualified name of the rejected type
    """

    def __init__(self, value: object, details: dict[str, Any] | None = None) -> None:
        body_type = f"{type(value).__module__}.{type(value).__qualname__}"
        super().__init__(
            code="sturdyhttp:body/unsupported_type",
            message=f"cannot handle body of type {body_type}",
            details={"body_type": body_type, **(details or {})},
        )
        self.body_type = body_type


class BodyOpenError(SturdyHTTPError):
    """Raised when a body source cannot produce a fresh stream.

    This indicates a broken body source (failed stat or seek, closed file),
    not a transient network condition, so the request is never retried.

    Attributes:
        reason: Why the body could not be opened
        attempt: Attempt number during which opening failed (None before any attempt)
    """

    def __init__(
        self,
        reason: str,
        attempt: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details_dict: dict[str, Any] = {"reason": reason}
        if attempt is not None:
            details_dict["attempt"] = attempt
        if details:
            details_dict.update(details)
        super().__init__(
            code="sturdyhttp:body/open_failed",
            message=f"failed to open request body: {reason}",
            details=details_dict,
        )
        self.reason = reason
        self.attempt = attempt

    def with_attempt(self, attempt: int) -> BodyOpenError:
        """Record the attempt number on the error and return it."""
        self.attempt = attempt
        self.details["attempt"] = attempt
        return self


class ContextError(SturdyHTTPError):
    """Raised when a request context is already canceled or past its deadline."""


class ContextCanceledError(ContextError):
    """Raised when a request context was canceled by its owner."""

    def __init__(self, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="sturdyhttp:context/canceled",
            message="context canceled",
            details=details,
        )


class DeadlineExceededError(ContextError, TimeoutError):
    """Raised when a request context deadline has elapsed.

    Deadline errors are timeout-like: :func:`is_timeout` returns True for them.
    """

    def __init__(self, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="sturdyhttp:context/deadline_exceeded",
            message="context deadline exceeded",
            details=details,
        )


class RequestError(SturdyHTTPError):
    """Raised when a request could not be completed, i.e. the server was never reached.

    Attributes:
        cause: The underlying transport exception
        attempt: Attempt number that failed
    """

    def __init__(
        self,
        cause: BaseException,
        attempt: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details_dict: dict[str, Any] = {"error_type": type(cause).__name__}
        if attempt is not None:
            details_dict["attempt"] = attempt
        if details:
            details_dict.update(details)
        super().__init__(
            code="sturdyhttp:transport/request_failed",
            message=f"request failed: {cause}",
            details=details_dict,
        )
        self.cause = cause
        self.attempt = attempt
        self.__cause__ = cause


class DialError(SturdyHTTPError):
    """Base class for errors raised by the restricted dialer after connecting.

    The connection has already been established when these are raised; it is
    attached as ``connection`` so the caller can release it.

    Attributes:
        connection: The established connection (socket or network stream), if any
    """

    def __init__(
        self,
        code: str,
        message: str,
        connection: Any = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(code=code, message=message, details=details)
        self.connection = connection

    def close_connection(self) -> None:
        """Close the attached connection, if any."""
        connection = self.connection
        if connection is None:
            return
        self.connection = None
        connection.close()


class InternalResolutionError(DialError):
    """Raised when a destination resolves to a restricted network location.

    This is a security control, not a transient condition.

    Attributes:
        address: The resolved peer IP address that was rejected
    """

    def __init__(
        self,
        address: str,
        connection: Any = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code="sturdyhttp:dial/internal_resolution",
            message="destination resolves to an internal network location",
            connection=connection,
            details={"address": address, **(details or {})},
        )
        self.address = address


class RemoteAddressError(DialError):
    """Raised when the peer address of an established connection cannot be parsed.

    Attributes:
        address: The raw peer address reported by the socket
    """

    def __init__(
        self,
        address: object,
        reason: str,
        connection: Any = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code="sturdyhttp:dial/unparsable_address",
            message=f"failed to parse remote address {address!r}: {reason}",
            connection=connection,
            details={"address": repr(address), "reason": reason, **(details or {})},
        )
        self.address = address
        self.reason = reason


class RetryAfterError(SturdyHTTPError, ValueError):
    """Raised when a Retry-After header value cannot be used.

    Attributes:
        value: The raw header value
        reason: Why the value was rejected
    """

    def __init__(self, value: str, reason: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="sturdyhttp:header/invalid_retry_after",
            message=f"invalid Retry-After header {value!r}: {reason}",
            details={"value": value, "reason": reason, **(details or {})},
        )
        self.value = value
        self.reason = reason


class StatusError(SturdyHTTPError):
    """Indicates an HTTP response carried an unexpected status code.

    Attributes:
        status_code: Status code of the response that caused this error
        expected: Status code that was expected instead
        data: Leading bytes of the response body (whitespace-stripped, at most 4 KiB)
    """

    def __init__(self, status_code: int, expected: int, data: bytes = b"") -> None:
        super().__init__(
            code="sturdyhttp:response/unexpected_status",
            message=(
                f"expected {expected} status code, but got {status_code} "
                f"({data.decode('utf-8', 'replace')!r})"
            ),
            details={"status_code": {"got": status_code, "expected": expected}},
        )
        self.status_code = status_code
        self.expected = expected
        self.data = data

    @classmethod
    def from_response(cls, response: Response | None, expected: int) -> StatusError:
        """Build a StatusError from a response, consuming and closing its body.

        At most :data:`STATUS_ERROR_BODY_LIMIT` bytes of the body are captured.
        """
        if response is None:
            return cls(status_code=0, expected=expected)
        data = b""
        try:
            data = response.body.read(STATUS_ERROR_BODY_LIMIT).strip()
        except (httpx.HTTPError, OSError):
            data = b""
        finally:
            response.close()
        return cls(status_code=response.status_code, expected=expected, data=data)


class ContentError(SturdyHTTPError):
    """Indicates an HTTP response contained an unexpected ``Content-*`` header.

    Attributes:
        header: Header that triggered the error
        value: Value of the header in the response
        allowed: Allowed or expected values for the header
    """

    def __init__(self, header: str, value: str, allowed: Sequence[str] = ()) -> None:
        allowed_list = list(allowed) or [""]
        if len(allowed_list) == 1:
            message = (
                f"expected '{header}' header to match '{allowed_list[0]}', "
                f"but got '{value}' instead"
            )
        else:
            message = (
                f"expected '{header}' header to match one of {allowed_list}, "
                f"but got '{value}' instead"
            )
        super().__init__(
            code="sturdyhttp:response/unexpected_content",
            message=message,
            details={"header": header, "value": value, "allowed": allowed_list},
        )
        self.header = header
        self.value = value
        self.allowed = allowed_list


def _iter_chain(exc: BaseException | None):
    seen: set[int] = set()
    while exc is not None and id(exc) not in seen:
        seen.add(id(exc))
        yield exc
        exc = exc.__cause__ or exc.__context__


def as_status_error(exc: BaseException | None) -> StatusError | None:
    """Find a StatusError in an exception's cause/context chain.

    Returns the first StatusError found, even when it has been wrapped by
    ``raise ... from``, or None.
    """
    for item in _iter_chain(exc):
        if isinstance(item, StatusError):
            return item
    return None


def is_timeout(exc: BaseException | None) -> bool:
    """Return True if an exception (or anything in its chain) is timeout-like.

    Accepts httpx timeouts, builtin ``TimeoutError`` (which includes
    :class:`DeadlineExceededError` and ``socket.timeout``), and any exception
    exposing a truthy ``timeout()`` method or ``is_timeout`` attribute.
    """
    for item in _iter_chain(exc):
        if isinstance(item, (httpx.TimeoutException, TimeoutError)):
            return True
        indicator = getattr(item, "timeout", None)
        if callable(indicator):
            try:
                if indicator() is True:
                    return True
            except TypeError:
                pass
        if getattr(item, "is_timeout", False) is True:
            return True
    return False
