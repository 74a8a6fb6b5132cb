"""Transport template and round-tripper wrappers.

A :class:`TransportConfig` describes the connection pool a client sends
requests through. The client builds one shared transport from it; per-request
overrides work on a :meth:`~TransportConfig.clone` so the shared template is
never modified.

Example:
    >>> config = TransportConfig(http2=True)
    >>> transport = config.build()
    >>> isinstance(transport, httpx.HTTPTransport)
    True
"""

from __future__ import annotations

import dataclasses
import ssl
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpcore
import httpx

from sturdyhttp.constants import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_KEEPALIVE_EXPIRY,
    DEFAULT_MAX_CONNECTIONS,
    DEFAULT_MAX_KEEPALIVE_CONNECTIONS,
    DEFAULT_POOL_TIMEOUT,
    DEFAULT_READ_TIMEOUT,
    DEFAULT_WRITE_TIMEOUT,
)
from sturdyhttp.dialer import RestrictedDialer, RestrictedNetworkBackend

RoundTripperFunc = Callable[[httpx.BaseTransport], httpx.BaseTransport]
"""Wraps a transport, e.g. to add headers or tracing around every attempt."""

DEFAULT_TIMEOUT = httpx.Timeout(
    connect=DEFAULT_CONNECT_TIMEOUT,
    read=DEFAULT_READ_TIMEOUT,
    write=DEFAULT_WRITE_TIMEOUT,
    pool=DEFAULT_POOL_TIMEOUT,
)


@dataclass
class TransportConfig:
    """Connection pool settings used to build an ``httpx.HTTPTransport``.

    Attributes:
        verify: TLS verification (True, False or an ``ssl.SSLContext``)
        cert: Client certificate for mutual TLS
        trust_env: Honour SSL_CERT_FILE / SSL_CERT_DIR
        http1: Enable HTTP/1.1
        http2: Enable HTTP/2 (requires the ``h2`` package)
        max_connections: Maximum concurrent connections
        max_keepalive_connections: Maximum idle connections kept for reuse
        keepalive_expiry: Seconds before an idle connection is closed
        retries: Connection-establishment retries done by httpcore itself
        local_address: Source address to bind outgoing connections to
        proxy: Proxy URL; cannot be combined with ``dialer``
        dialer: Restricted dialer verifying every new connection
    """

    verify: bool | ssl.SSLContext = True
    cert: Any = None
    trust_env: bool = True
    http1: bool = True
    http2: bool = False
    max_connections: int | None = DEFAULT_MAX_CONNECTIONS
    max_keepalive_connections: int | None = DEFAULT_MAX_KEEPALIVE_CONNECTIONS
    keepalive_expiry: float | None = DEFAULT_KEEPALIVE_EXPIRY
    retries: int = 0
    local_address: str | None = None
    proxy: str | httpx.URL | httpx.Proxy | None = None
    dialer: RestrictedDialer | None = None

    def clone(self) -> TransportConfig:
        """Return an independent copy that can be customized freely."""
        return dataclasses.replace(self)

    @property
    def limits(self) -> httpx.Limits:
        return httpx.Limits(
            max_connections=self.max_connections,
            max_keepalive_connections=self.max_keepalive_connections,
            keepalive_expiry=self.keepalive_expiry,
        )

    def build(self) -> httpx.HTTPTransport:
        """Create a transport from this configuration.

        Raises:
            ValueError: If both a proxy and a restricted dialer are configured
        """
        if self.proxy is not None and self.dialer is not None:
            raise ValueError(
                "a restricted dialer cannot be combined with a proxy: "
                "the dialer would only ever see the proxy's address"
            )

        kwargs: dict[str, Any] = {
            "verify": self.verify,
            "trust_env": self.trust_env,
            "http1": self.http1,
            "http2": self.http2,
            "limits": self.limits,
            "retries": self.retries,
            "local_address": self.local_address,
        }
        if self.cert is not None:
            kwargs["cert"] = self.cert
        if self.proxy is not None:
            kwargs["proxy"] = self.proxy
        transport = httpx.HTTPTransport(**kwargs)

        if self.dialer is not None:
            # httpx has no public hook for the network backend, so the pool is
            # rebuilt around the restricted backend with the same TLS context.
            ssl_context = getattr(transport._pool, "_ssl_context", None)
            transport._pool = httpcore.ConnectionPool(
                ssl_context=ssl_context,
                max_connections=self.max_connections,
                max_keepalive_connections=self.max_keepalive_connections,
                keepalive_expiry=self.keepalive_expiry,
                http1=self.http1,
                http2=self.http2,
                retries=self.retries,
                local_address=self.local_address,
                network_backend=RestrictedNetworkBackend(self.dialer),
            )
        return transport


class WrappingTransport(httpx.BaseTransport):
    """Base class for round-trippers that delegate to another transport.

    Subclasses override :meth:`handle_request` and call ``super()`` (or
    ``self.inner``) to send the request on.
    """

    def __init__(self, inner: httpx.BaseTransport) -> None:
        self.inner = inner

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        return self.inner.handle_request(request)

    def close(self) -> None:
        self.inner.close()


def wrap_transport(
    transport: httpx.BaseTransport, round_tripper: RoundTripperFunc | None
) -> httpx.BaseTransport:
    """Apply an optional round-tripper wrapper to a transport."""
    if round_tripper is None:
        return transport
    wrapped = round_tripper(transport)
    if wrapped is None:
        raise TypeError("round_tripper must return a transport")
    return wrapped


__all__ = [
    "DEFAULT_TIMEOUT",
    "RoundTripperFunc",
    "TransportConfig",
    "WrappingTransport",
    "wrap_transport",
]
