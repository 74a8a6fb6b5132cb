"""sturdyhttp: resilient HTTP requests.

A synchronous HTTP client built on httpx that retries transient failures,
honours Retry-After, replays request bodies safely, drains abandoned response
bodies so connections are reused, and can refuse connections to internal
network addresses.

Example:
    >>> from sturdyhttp import Client, Request
    >>> with Client(max_attempts=3) as client:
    ...     with client.do(Request("GET", "https://api.example.com/items")) as response:
    ...         items = response.json()
"""

__version__ = "0.1.0"

from sturdyhttp.body import Opener, ReadOpener, get_body, opener_for
from sturdyhttp.client import Client
from sturdyhttp.context import Context
from sturdyhttp.dialer import RestrictedDialer, RestrictedNetworkBackend
from sturdyhttp.errors import (
    BodyOpenError,
    ContentError,
    ContextCanceledError,
    ContextError,
    DeadlineExceededError,
    DialError,
    InternalResolutionError,
    RemoteAddressError,
    RequestError,
    RetryAfterError,
    StatusError,
    SturdyHTTPError,
    UnsupportedBodyError,
    as_status_error,
    is_timeout,
)
from sturdyhttp.headers import canonicalize, parse_retry_after
from sturdyhttp.models import DialerPolicy
from sturdyhttp.options import ClientOptions, RequestOptions
from sturdyhttp.request import Request
from sturdyhttp.response import DrainingStream, Response
from sturdyhttp.retry import Backoff, Constant, Exponential, Retrier
from sturdyhttp.transport import TransportConfig, WrappingTransport

__all__ = [
    "__version__",
    "Backoff",
    "BodyOpenError",
    "Client",
    "ClientOptions",
    "Constant",
    "ContentError",
    "Context",
    "ContextCanceledError",
    "ContextError",
    "DeadlineExceededError",
    "DialError",
    "DialerPolicy",
    "DrainingStream",
    "Exponential",
    "InternalResolutionError",
    "Opener",
    "ReadOpener",
    "RemoteAddressError",
    "Request",
    "RequestError",
    "RequestOptions",
    "Response",
    "RestrictedDialer",
    "RestrictedNetworkBackend",
    "Retrier",
    "RetryAfterError",
    "StatusError",
    "SturdyHTTPError",
    "TransportConfig",
    "UnsupportedBodyError",
    "WrappingTransport",
    "as_status_error",
    "canonicalize",
    "get_body",
    "is_timeout",
    "opener_for",
    "parse_retry_after",
]
