"""Tests for Response and the draining body stream."""

from __future__ import annotations

import gzip
import io

import httpx
import pytest

from sturdyhttp.errors import ContentError, RetryAfterError, StatusError, as_status_error
from sturdyhttp.observability.metrics import get_metrics
from sturdyhttp.response import DrainingStream, Response

from conftest import RecordingStream


class FakeBody:
    """Readable stream that counts reads and can be told to fail."""

    def __init__(self, data: bytes, fail_after: int | None = None) -> None:
        self._buf = io.BytesIO(data)
        self.reads = 0
        self.closed = False
        self.close_calls = 0
        self._fail_after = fail_after

    def read(self, size: int = -1) -> bytes:
        self.reads += 1
        if self._fail_after is not None and self.reads > self._fail_after:
            raise OSError("connection reset")
        return self._buf.read(size)

    def close(self) -> None:
        self.closed = True
        self.close_calls += 1

    @property
    def position(self) -> int:
        return self._buf.tell()


class TestDrainingStream:
    """Tests for bounded draining on close."""

    def test_unread_body_drained_on_close(self) -> None:
        """Closing drains the unread remainder when it fits the limit."""
        body = FakeBody(b"x" * 1000)
        stream = DrainingStream(body)
        stream.close()
        assert body.position == 1000
        assert body.closed
        assert stream.eof
        assert get_metrics().get_counter("sturdyhttp_body_drained_bytes_total") == 1000.0

    def test_no_extra_read_after_eof(self) -> None:
        """A body read to its end is not read again on close."""
        body = FakeBody(b"hello")
        stream = DrainingStream(body)
        assert stream.read(100) == b"hello"
        assert stream.read(100) == b""
        reads = body.reads
        stream.close()
        assert body.reads == reads
        assert body.closed

    def test_read_all_marks_eof(self) -> None:
        """Reading everything at once counts as reaching the end."""
        body = FakeBody(b"hello")
        stream = DrainingStream(body)
        assert stream.read() == b"hello"
        assert stream.eof
        reads = body.reads
        stream.close()
        assert body.reads == reads

    def test_zero_length_read_is_not_eof(self) -> None:
        """read(0) returning nothing does not mean the body ended."""
        stream = DrainingStream(FakeBody(b"abc"))
        assert stream.read(0) == b""
        assert not stream.eof

    def test_drain_is_bounded(self) -> None:
        """At most the limit is drained from a large body."""
        body = FakeBody(b"x" * 100_000)
        stream = DrainingStream(body, limit=16 * 1024)
        stream.close()
        assert body.position == 16 * 1024
        assert not stream.eof
        assert body.closed

    def test_partial_read_then_close(self) -> None:
        """Only the unread remainder is drained."""
        body = FakeBody(b"a" * 10 + b"b" * 10)
        stream = DrainingStream(body)
        assert stream.read(10) == b"a" * 10
        stream.close()
        assert body.position == 20
        assert get_metrics().get_counter("sturdyhttp_body_drained_bytes_total") == 10.0

    def test_close_idempotent(self) -> None:
        """The underlying stream is closed once."""
        body = FakeBody(b"abc")
        stream = DrainingStream(body)
        stream.close()
        stream.close()
        assert body.close_calls == 1

    def test_drain_failure_still_closes(self) -> None:
        """Errors while draining are swallowed and the stream is still closed."""
        body = FakeBody(b"x" * 1000, fail_after=0)
        with DrainingStream(body):
            pass
        assert body.closed


def _response(
    status_code: int = 200,
    content: bytes = b"",
    headers: dict[str, str] | None = None,
) -> Response:
    return Response(httpx.Response(status_code, content=content, headers=headers))


class TestResponse:
    """Tests for the Response wrapper."""

    def test_properties(self) -> None:
        """Status and headers come from the underlying response."""
        response = _response(201, b"{}", {"X-Id": "7"})
        assert response.status_code == 201
        assert response.is_success
        assert response.reason_phrase == "Created"
        assert response.get_header("x-id") == "7"
        assert response.get_header("X-Missing") == ""

    def test_read_and_json(self) -> None:
        """The body can be read once and parsed as JSON; reading closes the response."""
        response = _response(200, b'{"items": [1, 2]}')
        assert response.json() == {"items": [1, 2]}
        assert response.closed
        assert response.read() == b'{"items": [1, 2]}'

    def test_text(self) -> None:
        """Text decodes with the response charset."""
        response = _response(
            200, "café".encode("latin-1"), {"Content-Type": "text/plain; charset=latin-1"}
        )
        assert response.text() == "café"

    def test_iter_bytes_closes(self) -> None:
        """Iterating to the end closes the response."""
        response = _response(200, b"abcdef")
        assert b"".join(response.iter_bytes(chunk_size=2)) == b"abcdef"
        assert response.closed

    def test_close_callbacks_run_once(self) -> None:
        """Close callbacks run after the body is closed, exactly once."""
        calls: list[str] = []
        response = _response(200, b"abc")
        response.call_on_close(lambda: calls.append("closed"))
        with response:
            pass
        response.close()
        assert calls == ["closed"]

    def test_close_drains_streamed_body(self) -> None:
        """Closing an unread streamed response reads and closes the raw stream."""
        raw_stream = RecordingStream([b"a" * 100, b"b" * 100])
        response = Response(httpx.Response(503, stream=raw_stream))
        response.close()
        assert raw_stream.chunks_read == 2
        assert raw_stream.closed

    def test_drain_counts_wire_bytes_of_compressed_body(self) -> None:
        """A gzip body is drained without decompressing it."""
        compressed = gzip.compress(b"\0" * (10 * 1024 * 1024))
        assert len(compressed) < 16 * 1024
        raw_stream = RecordingStream([compressed])
        response = Response(
            httpx.Response(503, headers={"Content-Encoding": "gzip"}, stream=raw_stream)
        )
        response.close()
        assert raw_stream.closed
        assert response.body.eof
        drained = get_metrics().get_counter("sturdyhttp_body_drained_bytes_total")
        assert drained == float(len(compressed))

    def test_drain_stops_after_limit_of_wire_bytes(self) -> None:
        """Draining stops once the limit is pulled from the connection."""
        raw_stream = RecordingStream([b"x" * 8 * 1024] * 10)
        response = Response(httpx.Response(503, stream=raw_stream))
        response.close()
        assert raw_stream.chunks_read == 2
        assert not response.body.eof
        assert raw_stream.closed

    def test_drain_after_partial_read(self) -> None:
        """Only the unread remainder is counted after a partial read."""
        raw_stream = RecordingStream([b"a" * 10, b"b" * 100])
        response = Response(httpx.Response(200, stream=raw_stream))
        assert response.body.read(10) == b"a" * 10
        response.close()
        assert raw_stream.chunks_read == 2
        assert get_metrics().get_counter("sturdyhttp_body_drained_bytes_total") == 100.0

    def test_retry_after(self) -> None:
        """Retry-After parses to seconds, 0 when absent."""
        assert _response(503, headers={"Retry-After": "12"}).retry_after() == 12.0
        assert _response(503).retry_after() == 0.0
        with pytest.raises(RetryAfterError):
            _response(503, headers={"Retry-After": "later"}).retry_after()


class TestExpectHeader:
    """Tests for Response.expect_header()."""

    def test_content_type_ignores_parameters(self) -> None:
        """Media type parameters and case are ignored for Content-Type."""
        response = _response(200, headers={"Content-Type": "Application/JSON; charset=utf-8"})
        response.expect_header("content-type", "application/json")

    def test_content_type_mismatch(self) -> None:
        """A different media type raises ContentError."""
        response = _response(200, headers={"Content-Type": "text/html"})
        with pytest.raises(ContentError) as exc_info:
            response.expect_header("Content-Type", "application/json", "application/xml")
        assert exc_info.value.value == "text/html"
        assert exc_info.value.allowed == ["application/json", "application/xml"]

    def test_other_headers_compared_exactly(self) -> None:
        """Other headers must match an allowed value exactly."""
        response = _response(200, headers={"Content-Encoding": "gzip"})
        response.expect_header("Content-Encoding", "gzip", "identity")
        with pytest.raises(ContentError):
            response.expect_header("Content-Encoding", "GZIP")

    def test_missing_header(self) -> None:
        """A missing header only matches the empty string."""
        response = _response(200)
        response.expect_header("Content-Encoding", "")
        with pytest.raises(ContentError):
            response.expect_header("Content-Encoding", "gzip")


class TestStatusErrorFromResponse:
    """Tests for StatusError.from_response()."""

    def test_captures_trimmed_body(self) -> None:
        """The body is captured with surrounding whitespace stripped."""
        response = _response(500, b"  \n internal failure \n")
        error = StatusError.from_response(response, 200)
        assert error.status_code == 500
        assert error.expected == 200
        assert error.data == b"internal failure"
        assert response.closed

    def test_body_capture_is_bounded(self) -> None:
        """At most 4 KiB of the body is captured."""
        response = _response(502, b"x" * 10_000)
        error = StatusError.from_response(response, 200)
        assert error.data == b"x" * 4096

    def test_found_behind_wrapping(self) -> None:
        """An error built from a response survives raise-from wrapping."""
        original = StatusError.from_response(_response(404, b"nope"), 200)
        try:
            try:
                raise original
            except StatusError as e:
                raise ValueError("lookup failed") from e
        except ValueError as wrapped:
            found = as_status_error(wrapped)
        assert found is original
        assert found.data == b"nope"
