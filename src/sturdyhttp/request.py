"""HTTP request model with a re-openable body.

Example:
    >>> req = Request("POST", "https://api.example.com/items", body={"name": "x"})
    >>> req.content_length
    6
    >>> req.get_header("Content-Type")
    'application/x-www-form-urlencoded'
"""

from __future__ import annotations

import copy
from typing import Any, BinaryIO

import httpx

from sturdyhttp import headers as hdr
from sturdyhttp.body import EmptyOpener, Opener, Readable, get_body
from sturdyhttp.constants import BODY_CHUNK_SIZE
from sturdyhttp.context import Context
from sturdyhttp.errors import BodyOpenError

HeaderTypes = httpx.Headers | dict[str, str] | list[tuple[str, str]] | None


class Request:
    """An HTTP request whose body can be replayed for every attempt.

    Attributes:
        method: Upper-cased HTTP method
        url: Target URL
        headers: Request headers (case-insensitive)
        context: Cancellation context checked by the retry loop
    """

    def __init__(
        self,
        method: str,
        url: httpx.URL | str,
        body: Any = None,
        headers: HeaderTypes = None,
        context: Context | None = None,
    ) -> None:
        self.method = method.upper()
        self.url = httpx.URL(url)
        self.headers = httpx.Headers(headers)
        self.context = context if context is not None else Context.background()
        self._opener: Opener = EmptyOpener()
        self._has_body = False
        self.set_body(body)

    def set_body(self, value: Any) -> None:
        """Replace the body. ``None`` removes it.

        Raises:
            UnsupportedBodyError: If the value cannot be replayed
        """
        opener = get_body(value)
        if opener is None:
            self._opener = EmptyOpener()
            self._has_body = False
            return
        self._opener = opener
        self._has_body = True
        content_type = getattr(opener, "content_type", None)
        if content_type and hdr.CONTENT_TYPE not in self.headers:
            self.headers[hdr.CONTENT_TYPE] = content_type

    @property
    def has_body(self) -> bool:
        return self._has_body

    @property
    def opener(self) -> Opener:
        return self._opener

    @property
    def content_length(self) -> int:
        """Declared body length in bytes; -1 when unknown."""
        return self._opener.size()

    def get_body(self) -> Readable:
        """Open a fresh stream over the body.

        Always safe to call; a request without a body yields an empty stream.

        Raises:
            BodyOpenError: If the body source cannot be re-opened
        """
        try:
            return self._opener.open()
        except BodyOpenError:
            raise
        except (OSError, ValueError) as e:
            raise BodyOpenError(str(e) or type(e).__name__) from e

    def with_context(self, context: Context) -> Request:
        """Return a shallow copy bound to ``context``, sharing the body source."""
        clone = copy.copy(self)
        clone.headers = httpx.Headers(self.headers)
        clone.context = context
        return clone

    def add_header(self, key: str, value: str) -> None:
        """Append a header value, keeping existing values for the same key."""
        self.headers = httpx.Headers([*self.headers.multi_items(), (key, value)])

    def set_header(self, key: str, value: str) -> None:
        """Set a header, replacing any existing values."""
        self.headers[key] = value

    def del_header(self, key: str) -> None:
        """Remove all values of a header; missing headers are ignored."""
        if key in self.headers:
            del self.headers[key]

    def get_header(self, key: str) -> str:
        """Return the first value of a header, or an empty string."""
        values = self.headers.get_list(key)
        return values[0] if values else ""

    def write_to(self, fp: BinaryIO) -> int:
        """Copy a fresh body stream into a writable binary file.

        Returns:
            Number of bytes written
        """
        stream = self.get_body()
        written = 0
        try:
            while True:
                chunk = stream.read(BODY_CHUNK_SIZE)
                if not chunk:
                    break
                fp.write(chunk)
                written += len(chunk)
        finally:
            stream.close()
        return written

    def __repr__(self) -> str:
        return f"<Request [{self.method} {self.url}]>"


__all__ = ["HeaderTypes", "Request"]
