"""Response wrapper that drains unread bodies on close.

Closing a response whose body was not read to the end would normally leave the
connection unusable for keep-alive. :class:`DrainingStream` reads and discards
up to :data:`~sturdyhttp.constants.DRAIN_LIMIT` bytes before the real close so
the connection can go back to the pool. The limit keeps a misbehaving server
from stalling the close; a body larger than that simply costs the connection.

Example:
    >>> with client.get("https://api.example.com/items") as response:
    ...     response.expect_header("Content-Type", "application/json")
    ...     items = response.json()
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, Any

import httpx

from sturdyhttp import headers as hdr
from sturdyhttp.constants import DRAIN_LIMIT
from sturdyhttp.errors import ContentError
from sturdyhttp.headers import parse_retry_after
from sturdyhttp.observability import get_logger, get_metrics

if TYPE_CHECKING:
    from sturdyhttp.request import Request

logger = get_logger(__name__)

_DRAIN_CHUNK_SIZE = 4 * 1024


class _HTTPXBodyStream:
    """File-like reader over a streamed ``httpx.Response``."""

    def __init__(self, raw: httpx.Response) -> None:
        self._raw = raw
        self._chunks: Iterator[bytes] | None = None
        self._buffer = b""
        self._exhausted = False

    def read(self, size: int = -1, /) -> bytes:
        if self._chunks is None:
            self._chunks = self._raw.iter_bytes()

        if size is None or size < 0:
            parts = [self._buffer]
            self._buffer = b""
            parts.extend(self._chunks)
            self._exhausted = True
            return b"".join(parts)

        while len(self._buffer) < size and not self._exhausted:
            try:
                self._buffer += next(self._chunks)
            except StopIteration:
                self._exhausted = True
        data, self._buffer = self._buffer[:size], self._buffer[size:]
        return data

    def drain(self, limit: int) -> tuple[int, bool]:
        """Discard unread data, counting bytes as received from the connection.

        Returns the number of bytes pulled off the wire and whether the end of
        the body was reached. Content decoding is skipped when nothing was read
        yet, so a compressed body cannot inflate past ``limit``.
        """
        self._buffer = b""
        if self._chunks is None:
            if self._raw.is_stream_consumed:
                # Body was loaded into memory; nothing is left on the wire.
                return 0, True
            chunks: Iterator[bytes] = self._raw.iter_raw(_DRAIN_CHUNK_SIZE)
        else:
            chunks = self._chunks
        start = self._raw.num_bytes_downloaded
        for _ in chunks:
            if self._raw.num_bytes_downloaded - start >= limit:
                return self._raw.num_bytes_downloaded - start, False
        self._exhausted = True
        return self._raw.num_bytes_downloaded - start, True

    def close(self) -> None:
        self._raw.close()


class DrainingStream:
    """Wraps a body stream so closing it drains a bounded amount of unread data.

    End of data is recorded when a read returns no bytes (or when the whole
    remainder is read at once); after that, close skips the drain.
    """

    def __init__(self, stream: Any, limit: int = DRAIN_LIMIT) -> None:
        self._stream = stream
        self._limit = limit
        self.eof = False
        self.closed = False

    def read(self, size: int = -1, /) -> bytes:
        data = self._stream.read(size)
        if not data and size != 0:
            self.eof = True
        elif size is None or size < 0:
            self.eof = True
        return data

    def _drain(self) -> int:
        wire_drain = getattr(self._stream, "drain", None)
        if wire_drain is not None:
            drained, self.eof = wire_drain(self._limit)
            return int(drained)
        drained = 0
        while drained < self._limit:
            chunk = self._stream.read(min(_DRAIN_CHUNK_SIZE, self._limit - drained))
            if not chunk:
                self.eof = True
                break
            drained += len(chunk)
        return drained

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            if not self.eof:
                try:
                    drained = self._drain()
                except (httpx.HTTPError, OSError) as e:
                    logger.debug(
                        "sturdyhttp.response.drain_failed",
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                else:
                    if drained:
                        get_metrics().increment_counter(
                            "sturdyhttp_body_drained_bytes_total", value=float(drained)
                        )
                        logger.debug(
                            "sturdyhttp.response.drained",
                            drained_bytes=drained,
                            eof=self.eof,
                        )
        finally:
            self._stream.close()

    def __enter__(self) -> DrainingStream:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class Response:
    """A received HTTP response whose body is read on demand.

    The caller owns the response and must close it (or use it as a context
    manager). Closing drains a bounded amount of unread body data first.

    Attributes:
        raw: The underlying ``httpx.Response``
        body: Draining stream over the response body
        request: The :class:`~sturdyhttp.request.Request` that produced it
    """

    def __init__(self, raw: httpx.Response, request: Request | None = None) -> None:
        self.raw = raw
        self.request = request
        self.body = DrainingStream(_HTTPXBodyStream(raw))
        self._on_close: list[Callable[[], None]] = []
        self._content: bytes | None = None

    @property
    def status_code(self) -> int:
        return self.raw.status_code

    @property
    def reason_phrase(self) -> str:
        return self.raw.reason_phrase

    @property
    def http_version(self) -> str:
        return self.raw.http_version

    @property
    def headers(self) -> httpx.Headers:
        return self.raw.headers

    @property
    def url(self) -> httpx.URL:
        return self.raw.url

    @property
    def is_success(self) -> bool:
        return self.raw.is_success

    @property
    def closed(self) -> bool:
        return self.body.closed

    def call_on_close(self, callback: Callable[[], None]) -> None:
        """Register a callback run after the body is closed, e.g. to release a private client."""
        self._on_close.append(callback)

    def read(self) -> bytes:
        """Read the remaining body into memory and close the response."""
        if self._content is None:
            try:
                self._content = self.body.read()
            finally:
                self.close()
        return self._content

    def text(self, encoding: str | None = None) -> str:
        return self.read().decode(encoding or self.raw.encoding or "utf-8", errors="replace")

    def json(self, **kwargs: Any) -> Any:
        return json.loads(self.read(), **kwargs)

    def iter_bytes(self, chunk_size: int = 64 * 1024) -> Iterator[bytes]:
        """Yield the body in chunks; the response is closed once exhausted."""
        try:
            while True:
                chunk = self.body.read(chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            self.close()

    def close(self) -> None:
        if self.body.closed:
            return
        try:
            self.body.close()
        finally:
            callbacks, self._on_close = self._on_close, []
            for callback in callbacks:
                callback()

    def __enter__(self) -> Response:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def get_header(self, key: str) -> str:
        """Return the first value of a header, or an empty string."""
        values = self.raw.headers.get_list(key)
        return values[0] if values else ""

    def retry_after(self) -> float:
        """Parse the Retry-After header into seconds (0.0 when absent).

        Raises:
            RetryAfterError: If the header is malformed or in the past
        """
        return parse_retry_after(self.get_header(hdr.RETRY_AFTER))

    def expect_header(self, key: str, *allowed: str) -> None:
        """Check that a header matches one of the allowed values.

        Media-type parameters are ignored for ``Content-Type``, so
        ``application/json; charset=utf-8`` matches ``application/json``.

        Raises:
            ContentError: If the header value is not allowed
        """
        value = self.get_header(key)
        candidate = value
        if hdr.canonicalize(key) == hdr.CONTENT_TYPE:
            candidate = value.split(";", 1)[0].strip().lower()
            if candidate in (a.lower() for a in allowed):
                return
        elif candidate in allowed:
            return
        raise ContentError(header=key, value=value, allowed=allowed)

    def __repr__(self) -> str:
        return f"<Response [{self.status_code} {self.reason_phrase}]>"


__all__ = ["DrainingStream", "Response"]
