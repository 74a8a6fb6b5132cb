"""HTTP header names and header value parsing.

Header names are exported as constants in their canonical MIME form (the form
produced by :func:`canonicalize`), so call sites never build them by hand and
typos surface as ``NameError`` instead of silently missing headers.

Example:
    >>> from sturdyhttp import headers
    >>> headers.canonicalize("content-type") == headers.CONTENT_TYPE
    True
    >>> headers.parse_retry_after("120")
    120.0
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

from sturdyhttp.errors import RetryAfterError

ACCEPT = "Accept"
ACCEPT_ENCODING = "Accept-Encoding"
ACCEPT_RANGES = "Accept-Ranges"
AGE = "Age"
ALLOW = "Allow"
ALT_SVC = "Alt-Svc"
ALT_USED = "Alt-Used"
AUTHORIZATION = "Authorization"
CACHE_CONTROL = "Cache-Control"
CONNECTION = "Connection"
CONTENT_DIGEST = "Content-Digest"
CONTENT_DISPOSITION = "Content-Disposition"
CONTENT_ENCODING = "Content-Encoding"
CONTENT_LANGUAGE = "Content-Language"
CONTENT_LENGTH = "Content-Length"
CONTENT_LOCATION = "Content-Location"
CONTENT_RANGE = "Content-Range"
CONTENT_SECURITY_POLICY = "Content-Security-Policy"
CONTENT_TYPE = "Content-Type"
COOKIE = "Cookie"
DATE = "Date"
EARLY_DATA = "Early-Data"
# Canonical form lower-cases everything after the first letter of a word.
ETAG = "Etag"
EXPECT = "Expect"
EXPIRES = "Expires"
FORWARDED = "Forwarded"
FROM = "From"
HOST = "Host"
IDEMPOTENCY_KEY = "Idempotency-Key"
IF_MATCH = "If-Match"
IF_MODIFIED_SINCE = "If-Modified-Since"
IF_NONE_MATCH = "If-None-Match"
IF_RANGE = "If-Range"
IF_UNMODIFIED_SINCE = "If-Unmodified-Since"
KEEP_ALIVE = "Keep-Alive"
LAST_MODIFIED = "Last-Modified"
LINK = "Link"
LOCATION = "Location"
ORIGIN = "Origin"
RANGE = "Range"
REPR_DIGEST = "Repr-Digest"
RETRY_AFTER = "Retry-After"
SERVER = "Server"
SET_COOKIE = "Set-Cookie"
TE = "Te"
TRAILER = "Trailer"
TRANSFER_ENCODING = "Transfer-Encoding"
UPGRADE = "Upgrade"
USER_AGENT = "User-Agent"
VARY = "Vary"
VIA = "Via"
WWW_AUTHENTICATE = "Www-Authenticate"

ALL_HEADERS: tuple[str, ...] = (
    ACCEPT,
    ACCEPT_ENCODING,
    ACCEPT_RANGES,
    AGE,
    ALLOW,
    ALT_SVC,
    ALT_USED,
    AUTHORIZATION,
    CACHE_CONTROL,
    CONNECTION,
    CONTENT_DIGEST,
    CONTENT_DISPOSITION,
    CONTENT_ENCODING,
    CONTENT_LANGUAGE,
    CONTENT_LENGTH,
    CONTENT_LOCATION,
    CONTENT_RANGE,
    CONTENT_SECURITY_POLICY,
    CONTENT_TYPE,
    COOKIE,
    DATE,
    EARLY_DATA,
    ETAG,
    EXPECT,
    EXPIRES,
    FORWARDED,
    FROM,
    HOST,
    IDEMPOTENCY_KEY,
    IF_MATCH,
    IF_MODIFIED_SINCE,
    IF_NONE_MATCH,
    IF_RANGE,
    IF_UNMODIFIED_SINCE,
    KEEP_ALIVE,
    LAST_MODIFIED,
    LINK,
    LOCATION,
    ORIGIN,
    RANGE,
    REPR_DIGEST,
    RETRY_AFTER,
    SERVER,
    SET_COOKIE,
    TE,
    TRAILER,
    TRANSFER_ENCODING,
    UPGRADE,
    USER_AGENT,
    VARY,
    VIA,
    WWW_AUTHENTICATE,
)

# RFC 7230 token characters.
_TOKEN_CHARS = frozenset(
    "!#$%&'*+-.^_`|~0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
)

_INTEGER_PATTERN = re.compile(r"^[+-]?\d+$")


def canonicalize(name: str) -> str:
    """Return the canonical MIME form of a header name.

    The first letter and any letter following a hyphen are upper-cased, the
    rest lower-cased. Names containing characters that are not valid in an
    HTTP token are returned unchanged.

    Example:
        >>> canonicalize("x-request-id")
        'X-Request-Id'
        >>> canonicalize("ETag")
        'Etag'
        >>> canonicalize("bad header")
        'bad header'
    """
    if not name or any(ch not in _TOKEN_CHARS for ch in name):
        return name
    out: list[str] = []
    upper = True
    for ch in name:
        out.append(ch.upper() if upper else ch.lower())
        upper = ch == "-"
    return "".join(out)


def _check_canonical() -> None:
    for name in ALL_HEADERS:
        expected = canonicalize(name)
        if name != expected:
            raise RuntimeError(
                f"sturdyhttp.headers: header is not properly canonicalized "
                f"(got: {name!r}, expected: {expected!r})"
            )


_check_canonical()


def parse_retry_after(value: str, now: datetime | None = None) -> float:
    """Parse a Retry-After header value into a delay in seconds.

    The value is either a non-negative number of seconds or an HTTP-date. An
    empty value means "no delay" and yields 0.0.

    Args:
        value: Raw header value
        now: Reference time for HTTP-date values (defaults to the current UTC time)

    Returns:
        Delay in seconds

    Raises:
        RetryAfterError: If the value is negative, not a valid date, or a date in the past

    Example:
        >>> parse_retry_after("")
        0.0
        >>> parse_retry_after("5")
        5.0
    """
    if value == "":
        return 0.0

    text = value.strip()
    if _INTEGER_PATTERN.match(text):
        try:
            seconds = int(text)
            delay = float(seconds)
        except (ValueError, OverflowError) as e:
            raise RetryAfterError(value, f"number of seconds out of range ({e})") from e
        if seconds < 0:
            raise RetryAfterError(value, f"negative value ({seconds})")
        return delay

    try:
        retry_at = parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError) as e:
        raise RetryAfterError(value, f"not a number of seconds or an HTTP-date ({e})") from e
    if retry_at is None:
        raise RetryAfterError(value, "not a number of seconds or an HTTP-date")
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)

    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    delay = (retry_at - current).total_seconds()
    if delay < 0:
        raise RetryAfterError(value, f"date is in the past ({retry_at.isoformat()})")
    return delay

