"""Re-openable request bodies.

A request may be sent several times by the retry loop, so its body cannot be a
one-shot stream. Every supported body value is resolved once, when the request
is built, into an :class:`Opener`: something that hands out a fresh, rewound
stream on every :meth:`~Opener.open` call and knows the content length up
front (``-1`` when it genuinely does not).

Supported values, in resolution order:

1. An object already implementing :class:`Opener` (used as-is)
2. A binary file with a real file descriptor (size taken from ``os.fstat``)
3. Any other seekable binary stream (size from ``size()``, the buffer, or ``len()``)
4. ``bytes``/``bytearray``/``memoryview``, ``str`` (UTF-8) and form values
   (a mapping or a sequence of ``(key, value)`` pairs, URL-encoded)

Example:
    >>> opener = get_body(b"hello")
    >>> opener.size()
    5
    >>> opener.open().read() == opener.open().read() == b"hello"
    True
"""

from __future__ import annotations

import io
import os
from collections.abc import Callable, Mapping, Sequence
from typing import Any, Protocol, runtime_checkable
from urllib.parse import urlencode

from sturdyhttp.errors import BodyOpenError, UnsupportedBodyError

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


@runtime_checkable
class Readable(Protocol):
    """Minimal stream interface handed out by openers."""

    def read(self, size: int = -1, /) -> bytes: ...

    def close(self) -> None: ...


@runtime_checkable
class Opener(Protocol):
    """Produces independent, rewound streams over the same content.

    ``size()`` returns the exact content length in bytes, or ``-1`` if it is
    unknown. ``0`` means the content really is empty.
    """

    def open(self) -> Readable: ...

    def size(self) -> int: ...


class ReadOpener:
    """Opener backed by a caller-supplied function returning a new stream."""

    def __init__(self, fn: Callable[[], Readable], size: int = -1) -> None:
        self._fn = fn
        self._size = size

    def open(self) -> Readable:
        return self._fn()

    def size(self) -> int:
        return self._size

    def __repr__(self) -> str:
        return f"ReadOpener(fn={self._fn!r}, size={self._size})"


def opener_for(fn: Callable[[], Readable], size: int = -1) -> Opener:
    """Create an :class:`Opener` from a function and a content length.

    Use ``-1`` when the length is unknown. Only pass ``0`` when the stream
    really is empty.

    Example:
        >>> opener = opener_for(lambda: io.BytesIO(b"data"), 4)
        >>> opener.size()
        4
    """
    return ReadOpener(fn, size)


class EmptyOpener:
    """Opener for a request without a body."""

    def open(self) -> Readable:
        return io.BytesIO(b"")

    def size(self) -> int:
        return 0

    def __repr__(self) -> str:
        return "EmptyOpener()"


class BytesOpener:
    """Opener over an immutable in-memory payload."""

    def __init__(self, data: bytes, content_type: str | None = None) -> None:
        self._data = data
        self.content_type = content_type

    def open(self) -> Readable:
        return io.BytesIO(self._data)

    def size(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"BytesOpener(size={len(self._data)}, content_type={self.content_type!r})"


class _BorrowedReader:
    """Reads from a stream owned by someone else, optionally capped at ``limit`` bytes.

    Closing the reader does not close the underlying stream, which must stay
    usable for the next attempt.
    """

    def __init__(self, stream: Any, limit: int = -1) -> None:
        self._stream = stream
        self._remaining = limit
        self.closed = False

    def read(self, size: int = -1, /) -> bytes:
        if self.closed:
            raise ValueError("read from closed body stream")
        if self._remaining == 0:
            return b""
        if self._remaining > 0 and (size is None or size < 0 or size > self._remaining):
            size = self._remaining
        data = self._stream.read(size)
        if data is None:
            data = b""
        if self._remaining > 0:
            self._remaining -= len(data)
        return bytes(data)

    def close(self) -> None:
        self.closed = True


class SeekableFileOpener:
    """Opener over a binary file with a file descriptor.

    The size is taken once, when the opener is created. Files can grow while
    they are being sent, so every stream is capped at that size to keep the
    announced Content-Length truthful.
    """

    def __init__(self, fp: Any, size: int) -> None:
        self._fp = fp
        self._size = size

    def open(self) -> Readable:
        self._fp.seek(0, io.SEEK_SET)
        return _BorrowedReader(self._fp, self._size)

    def size(self) -> int:
        return self._size

    def __repr__(self) -> str:
        return f"SeekableFileOpener(name={getattr(self._fp, 'name', None)!r}, size={self._size})"


class ReadSeekerOpener:
    """Opener over a seekable stream, rewound to the start on every open."""

    def __init__(self, fp: Any, size: int = -1) -> None:
        self._fp = fp
        self._size = size

    def open(self) -> Readable:
        self._fp.seek(0, io.SEEK_SET)
        return _BorrowedReader(self._fp)

    def size(self) -> int:
        return self._size

    def __repr__(self) -> str:
        return f"ReadSeekerOpener(stream={self._fp!r}, size={self._size})"


def _stream_size(value: Any) -> int:
    # Prefer sizes describing the whole content: every open rewinds to the
    # start, so the unread remainder of a partially consumed buffer is wrong.
    size_fn = getattr(value, "size", None)
    if callable(size_fn):
        try:
            size = size_fn()
        except TypeError:
            size = None
        if isinstance(size, int) and not isinstance(size, bool):
            return size

    getbuffer = getattr(value, "getbuffer", None)
    if callable(getbuffer):
        with getbuffer() as view:
            return view.nbytes

    try:
        return len(value)
    except TypeError:
        return -1


def _file_size(value: Any) -> int | None:
    """Return the size of a file backed by a real descriptor, or None for other streams."""
    fileno = getattr(value, "fileno", None)
    if not callable(fileno):
        return None
    try:
        fd = fileno()
    except (io.UnsupportedOperation, AttributeError):
        return None
    except (OSError, ValueError) as e:
        raise BodyOpenError(f"failed to stat file to use as body: {e}") from e
    try:
        return os.fstat(fd).st_size
    except OSError as e:
        raise BodyOpenError(f"failed to stat file to use as body: {e}") from e


def _is_seekable_stream(value: Any) -> bool:
    return callable(getattr(value, "read", None)) and callable(getattr(value, "seek", None))


def _is_form_pairs(value: Any) -> bool:
    if isinstance(value, (str, bytes, bytearray, memoryview)) or not isinstance(value, Sequence):
        return False
    return all(isinstance(item, (tuple, list)) and len(item) == 2 for item in value)


def encode_form(value: Mapping[str, Any] | Sequence[tuple[str, Any]]) -> bytes:
    """URL-encode form values, sorted by key.

    Sequence values of a mapping are expanded into repeated keys. The relative
    order of repeated keys given as pairs is preserved.

    Example:
        >>> encode_form({"b": "2", "a": ["1", "x y"]})
        b'a=1&a=x+y&b=2'
    """
    items = list(value.items()) if isinstance(value, Mapping) else [tuple(p) for p in value]
    items.sort(key=lambda item: str(item[0]))
    return urlencode(items, doseq=True).encode("ascii")


def get_body(value: Any) -> Opener | None:
    """Resolve a body value into an :class:`Opener`.

    Args:
        value: Body value, or None for no body

    Returns:
        An opener, or None if ``value`` is None

    Raises:
        UnsupportedBodyError: If the value's type cannot be replayed
        BodyOpenError: If a file body cannot be stat'ed
    """
    if value is None:
        return None

    if isinstance(value, Opener):
        return value

    if isinstance(value, io.TextIOBase):
        # Text streams cannot produce a byte length without decoding the file.
        raise UnsupportedBodyError(value)

    if _is_seekable_stream(value):
        size = _file_size(value)
        if size is not None:
            return SeekableFileOpener(value, size)
        return ReadSeekerOpener(value, _stream_size(value))

    if isinstance(value, (bytes, bytearray, memoryview)):
        return BytesOpener(bytes(value))

    if isinstance(value, str):
        return BytesOpener(value.encode("utf-8"))

    if isinstance(value, Mapping) or _is_form_pairs(value):
        return BytesOpener(encode_form(value), content_type=FORM_CONTENT_TYPE)

    raise UnsupportedBodyError(value)


__all__ = [
    "BytesOpener",
    "EmptyOpener",
    "FORM_CONTENT_TYPE",
    "Opener",
    "ReadOpener",
    "ReadSeekerOpener",
    "Readable",
    "SeekableFileOpener",
    "encode_form",
    "get_body",
    "opener_for",
]
