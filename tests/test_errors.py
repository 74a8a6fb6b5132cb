"""Tests for the sturdyhttp error taxonomy."""

from __future__ import annotations

import socket

import httpx
import pytest

from sturdyhttp.errors import (
    BodyOpenError,
    ContentError,
    ContextCanceledError,
    DeadlineExceededError,
    DialError,
    InternalResolutionError,
    RemoteAddressError,
    RequestError,
    StatusError,
    SturdyHTTPError,
    as_status_error,
    is_timeout,
)


class TestSturdyHTTPError:
    """Tests for the base error."""

    def test_to_dict(self) -> None:
        """Errors serialize to code, message and details."""
        error = SturdyHTTPError("sturdyhttp:test/x", "boom", {"k": "v"})
        assert error.to_dict() == {
            "code": "sturdyhttp:test/x",
            "message": "boom",
            "details": {"k": "v"},
        }
        assert str(error) == "boom"

    def test_details_default_empty(self) -> None:
        """Details default to an empty dict."""
        assert SturdyHTTPError("sturdyhttp:test/x", "boom").details == {}


class TestErrorCodes:
    """Each concrete error carries its own code."""

    @pytest.mark.parametrize(
        ("error", "code"),
        [
            (BodyOpenError("closed"), "sturdyhttp:body/open_failed"),
            (ContextCanceledError(), "sturdyhttp:context/canceled"),
            (DeadlineExceededError(), "sturdyhttp:context/deadline_exceeded"),
            (RequestError(OSError("x")), "sturdyhttp:transport/request_failed"),
            (InternalResolutionError("10.0.0.1"), "sturdyhttp:dial/internal_resolution"),
            (RemoteAddressError("?", "bad"), "sturdyhttp:dial/unparsable_address"),
            (StatusError(500, 200), "sturdyhttp:response/unexpected_status"),
            (ContentError("Content-Type", "text/html"), "sturdyhttp:response/unexpected_content"),
        ],
    )
    def test_codes(self, error: SturdyHTTPError, code: str) -> None:
        """Codes follow the sturdyhttp:<area>/<reason> pattern."""
        assert error.code == code


class TestBodyOpenError:
    """Tests for BodyOpenError."""

    def test_with_attempt(self) -> None:
        """The attempt number is recorded on the error and its details."""
        error = BodyOpenError("file closed").with_attempt(2)
        assert error.attempt == 2
        assert error.details == {"reason": "file closed", "attempt": 2}
        assert "file closed" in str(error)


class TestRequestError:
    """Tests for RequestError."""

    def test_wraps_cause(self) -> None:
        """The transport exception is kept as cause and __cause__."""
        cause = httpx.ConnectError("refused")
        error = RequestError(cause, attempt=3)
        assert error.cause is cause
        assert error.__cause__ is cause
        assert error.attempt == 3
        assert error.details["error_type"] == "ConnectError"
        assert "refused" in error.message


class TestDialErrors:
    """Tests for DialError and subclasses."""

    def test_close_connection(self) -> None:
        """The attached connection is closed once and then detached."""
        left, right = socket.socketpair()
        try:
            error = InternalResolutionError("127.0.0.1", connection=left)
            error.close_connection()
            assert left.fileno() == -1
            assert error.connection is None
            error.close_connection()
        finally:
            left.close()
            right.close()

    def test_close_without_connection(self) -> None:
        """Closing with no connection is a no-op."""
        DialError("sturdyhttp:dial/x", "x").close_connection()

    def test_internal_resolution_details(self) -> None:
        """The rejected address is part of the details."""
        error = InternalResolutionError("169.254.169.254")
        assert error.address == "169.254.169.254"
        assert error.details["address"] == "169.254.169.254"
        assert isinstance(error, DialError)


class TestStatusError:
    """Tests for StatusError."""

    def test_message(self) -> None:
        """The message names both status codes and quotes the body."""
        error = StatusError(503, 200, b"overloaded")
        assert error.message == "expected 200 status code, but got 503 ('overloaded')"
        assert error.details == {"status_code": {"got": 503, "expected": 200}}

    def test_from_none_response(self) -> None:
        """A missing response yields status 0."""
        error = StatusError.from_response(None, 200)
        assert error.status_code == 0
        assert error.data == b""

    def test_as_status_error_direct(self) -> None:
        """A StatusError is found as itself."""
        error = StatusError(404, 200)
        assert as_status_error(error) is error

    def test_as_status_error_through_wrapping(self) -> None:
        """A StatusError is found behind raise-from wrapping."""
        original = StatusError(500, 200)
        try:
            try:
                raise original
            except StatusError as e:
                raise RuntimeError("sync failed") from e
        except RuntimeError as wrapped:
            assert as_status_error(wrapped) is original

    def test_as_status_error_missing(self) -> None:
        """Chains without a StatusError give None."""
        assert as_status_error(ValueError("x")) is None
        assert as_status_error(None) is None


class TestContentError:
    """Tests for ContentError."""

    def test_single_allowed_value(self) -> None:
        """One allowed value is quoted directly."""
        error = ContentError("Content-Type", "text/html", ["application/json"])
        assert error.message == (
            "expected 'Content-Type' header to match 'application/json', "
            "but got 'text/html' instead"
        )

    def test_multiple_allowed_values(self) -> None:
        """Several allowed values are listed."""
        error = ContentError("Content-Encoding", "br", ["gzip", "identity"])
        assert "one of ['gzip', 'identity']" in error.message
        assert error.allowed == ["gzip", "identity"]

    def test_no_allowed_values(self) -> None:
        """Without allowed values the empty string is expected."""
        assert ContentError("Content-Type", "x").allowed == [""]


class TestIsTimeout:
    """Tests for is_timeout()."""

    @pytest.mark.parametrize(
        "error",
        [
            httpx.ReadTimeout("slow"),
            httpx.ConnectTimeout("slow"),
            TimeoutError(),
            socket.timeout(),
            DeadlineExceededError(),
        ],
    )
    def test_timeouts(self, error: BaseException) -> None:
        """Builtin, socket and httpx timeouts are timeout-like."""
        assert is_timeout(error)

    def test_wrapped_timeout(self) -> None:
        """A timeout behind RequestError is still timeout-like."""
        assert is_timeout(RequestError(httpx.ReadTimeout("slow")))

    def test_custom_indicators(self) -> None:
        """Objects reporting timeout() or is_timeout count as timeouts."""

        class MethodTimeout(Exception):
            def timeout(self) -> bool:
                return True

        class FlagTimeout(Exception):
            is_timeout = True

        assert is_timeout(MethodTimeout())
        assert is_timeout(FlagTimeout())

    @pytest.mark.parametrize(
        "error",
        [httpx.ConnectError("refused"), ValueError("x"), ContextCanceledError(), None],
    )
    def test_non_timeouts(self, error: BaseException | None) -> None:
        """Other errors are not timeout-like."""
        assert not is_timeout(error)
