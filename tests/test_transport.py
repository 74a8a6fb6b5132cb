"""Tests for the transport template and round-tripper wrappers."""

from __future__ import annotations

import httpx
import pytest

from sturdyhttp.dialer import RestrictedDialer, RestrictedNetworkBackend
from sturdyhttp.transport import TransportConfig, WrappingTransport, wrap_transport


class TestTransportConfig:
    """Tests for TransportConfig."""

    def test_clone_is_independent(self) -> None:
        """Changing a clone leaves the original untouched."""
        config = TransportConfig(max_connections=10)
        clone = config.clone()
        clone.max_connections = 1
        clone.http2 = True
        assert config.max_connections == 10
        assert config.http2 is False

    def test_limits(self) -> None:
        """Pool limits are exposed as httpx.Limits."""
        limits = TransportConfig(max_connections=7, max_keepalive_connections=2).limits
        assert limits.max_connections == 7
        assert limits.max_keepalive_connections == 2

    def test_build_plain(self) -> None:
        """Without a dialer the standard pool is used."""
        transport = TransportConfig().build()
        try:
            assert isinstance(transport, httpx.HTTPTransport)
            assert not isinstance(transport._pool._network_backend, RestrictedNetworkBackend)
        finally:
            transport.close()

    def test_build_with_dialer(self) -> None:
        """A dialer swaps the pool's network backend."""
        dialer = RestrictedDialer()
        transport = TransportConfig(dialer=dialer).build()
        try:
            backend = transport._pool._network_backend
            assert isinstance(backend, RestrictedNetworkBackend)
            assert backend.dialer is dialer
        finally:
            transport.close()

    def test_proxy_and_dialer_conflict(self) -> None:
        """A dialer would only see the proxy, so the combination is refused."""
        config = TransportConfig(proxy="http://proxy.internal:3128", dialer=RestrictedDialer())
        with pytest.raises(ValueError, match="proxy"):
            config.build()


class _HeaderTransport(WrappingTransport):
    def handle_request(self, request: httpx.Request) -> httpx.Response:
        request.headers["X-Wrapped"] = "1"
        return super().handle_request(request)


class TestWrapping:
    """Tests for round-tripper wrapping."""

    def test_no_round_tripper(self) -> None:
        """Without a wrapper the transport is returned unchanged."""
        transport = httpx.MockTransport(lambda request: httpx.Response(200))
        assert wrap_transport(transport, None) is transport

    def test_wrapper_sees_every_request(self) -> None:
        """A wrapping transport can modify requests before they are sent."""
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers.get("X-Wrapped", ""))
            return httpx.Response(204)

        transport = wrap_transport(httpx.MockTransport(handler), _HeaderTransport)
        with httpx.Client(transport=transport) as client:
            client.get("https://example.com/")
        assert seen == ["1"]

    def test_wrapper_must_return_transport(self) -> None:
        """A wrapper returning None is a programming error."""
        transport = httpx.MockTransport(lambda request: httpx.Response(200))
        with pytest.raises(TypeError):
            wrap_transport(transport, lambda inner: None)  # type: ignore[arg-type,return-value]
