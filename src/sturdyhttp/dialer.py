"""Restricted dialer: refuse connections to internal network locations.

Designed for untrusted hostnames (user-supplied download URLs, webhook
targets). The check runs against the peer address of the *connected* socket,
never against a DNS answer obtained beforehand, so a hostname that resolves to
a public address at lookup time and to an internal one at connect time (DNS
rebinding) is still rejected. Because of that, following redirects is safe.

Two entry points share one policy:

- :meth:`RestrictedDialer.dial` opens a plain TCP socket
- :class:`RestrictedNetworkBackend` plugs the same check into httpcore's
  connection pool, which is how :class:`sturdyhttp.Client` uses it

Example:
    >>> dialer = RestrictedDialer()
    >>> dialer.is_allowed("10.0.0.1")
    False
    >>> dialer.is_allowed("1.1.1.1")
    True
"""

from __future__ import annotations

import ipaddress
import socket
from collections.abc import Iterable
from typing import Any

import httpcore

from sturdyhttp.errors import DialError, InternalResolutionError, RemoteAddressError
from sturdyhttp.models import DialerPolicy
from sturdyhttp.observability import get_logger, get_metrics

logger = get_logger(__name__)

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address

_PRIVATE_NETWORKS = (
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("fc00::/7"),
)
_LOOPBACK_NETWORKS = (
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("::1/128"),
)
_LINK_LOCAL_UNICAST_NETWORKS = (
    ipaddress.ip_network("169.254.0.0/16"),
    ipaddress.ip_network("fe80::/10"),
)
_IPV4_LINK_LOCAL_MULTICAST = ipaddress.ip_network("224.0.0.0/24")

_SocketOption = (
    tuple[int, int, int] | tuple[int, int, bytes | bytearray] | tuple[int, int, None, int]
)


def _in_any(addr: IPAddress, networks: Iterable[Any]) -> bool:
    return any(addr.version == net.version and addr in net for net in networks)


def _ipv6_multicast_scope(addr: IPAddress) -> int | None:
    if addr.version != 6 or not addr.is_multicast:
        return None
    return addr.packed[1] & 0x0F


def is_private(addr: IPAddress) -> bool:
    """RFC 1918 IPv4 and RFC 4193 IPv6 unique local addresses."""
    return _in_any(addr, _PRIVATE_NETWORKS)


def is_loopback(addr: IPAddress) -> bool:
    return _in_any(addr, _LOOPBACK_NETWORKS)


def is_link_local_unicast(addr: IPAddress) -> bool:
    return _in_any(addr, _LINK_LOCAL_UNICAST_NETWORKS)


def is_link_local_multicast(addr: IPAddress) -> bool:
    """224.0.0.0/24 or an IPv6 multicast address with link-local scope (ff02::/16 style)."""
    if addr.version == 4:
        return addr in _IPV4_LINK_LOCAL_MULTICAST
    return _ipv6_multicast_scope(addr) == 0x2


def is_interface_local_multicast(addr: IPAddress) -> bool:
    """IPv6 multicast address with interface-local scope (ff01::/16 style)."""
    return _ipv6_multicast_scope(addr) == 0x1


def parse_address(value: Any) -> IPAddress:
    """Parse an IP address, unwrapping IPv4-mapped IPv6 and dropping any zone.

    Raises:
        ValueError: If the value is not an IP address
    """
    if isinstance(value, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        addr: IPAddress = value
    else:
        text = str(value).strip()
        if text.startswith("[") and text.endswith("]"):
            text = text[1:-1]
        addr = ipaddress.ip_address(text.split("%", 1)[0])
    if addr.version == 6 and addr.ipv4_mapped is not None:
        return addr.ipv4_mapped
    return addr


class RestrictedDialer:
    """Connects to a destination and rejects it if the peer address is not allowed.

    A default dialer rejects private, loopback, link-local unicast, link-local
    multicast and interface-local multicast addresses. Use ``allowed`` to carve
    out exceptions (they win over everything) and ``blocked`` to reject more.

    Example:
        >>> dialer = RestrictedDialer(
        ...     DialerPolicy(allowed=["1.1.1.1/32"], blocked=["0.0.0.0/0", "::/0"])
        ... )
        >>> dialer.is_allowed("1.1.1.1"), dialer.is_allowed("1.0.0.1")
        (True, False)
    """

    def __init__(self, policy: DialerPolicy | None = None, **overrides: Any) -> None:
        if policy is None:
            policy = DialerPolicy(**overrides)
        elif overrides:
            policy = DialerPolicy(**{**policy.model_dump(), **overrides})
        self.policy = policy

    def is_allowed(self, address: Any) -> bool:
        """Return True if the policy accepts ``address``.

        Raises:
            ValueError: If ``address`` is not an IP address
        """
        addr = parse_address(address)
        policy = self.policy

        if _in_any(addr, policy.allowed):
            return True
        if _in_any(addr, policy.blocked):
            return False

        if policy.block_private and is_private(addr):
            return False
        if policy.block_loopback and is_loopback(addr):
            return False
        if policy.block_link_local_unicast and is_link_local_unicast(addr):
            return False
        if policy.block_link_local_multicast and is_link_local_multicast(addr):
            return False
        if policy.block_interface_local_multicast and is_interface_local_multicast(addr):
            return False
        return True

    def verify_peer(self, peer: Any, connection: Any = None) -> None:
        """Check the peer address of an established connection.

        Args:
            peer: Peer address as reported by the socket (a tuple or a string)
            connection: The established connection, attached to any error raised

        Raises:
            RemoteAddressError: If the peer address cannot be parsed
            InternalResolutionError: If the peer address is not allowed
        """
        host = peer[0] if isinstance(peer, (tuple, list)) and peer else peer
        try:
            addr = parse_address(host)
        except ValueError as e:
            logger.warning(
                "sturdyhttp.dialer.address_unparsable",
                peer=repr(peer),
                error=str(e),
            )
            raise RemoteAddressError(peer, str(e), connection=connection) from e

        if not self.is_allowed(addr):
            get_metrics().increment_counter("sturdyhttp_dial_blocked_total")
            logger.warning(
                "sturdyhttp.dialer.blocked",
                address=str(addr),
                message=f"Refusing connection to internal address {addr}",
            )
            raise InternalResolutionError(str(addr), connection=connection)

    def dial(
        self,
        address: tuple[str, int],
        timeout: float | None = None,
        source_address: tuple[str, int] | None = None,
    ) -> socket.socket:
        """Open a TCP connection and verify its peer address.

        On rejection the connected socket is attached to the raised error as
        ``connection``; call :meth:`DialError.close_connection` to release it.

        Raises:
            OSError: If the connection cannot be established
            InternalResolutionError: If the peer address is not allowed
            RemoteAddressError: If the peer address cannot be parsed
        """
        sock = socket.create_connection(address, timeout=timeout, source_address=source_address)
        try:
            peer = sock.getpeername()
        except OSError as e:
            raise RemoteAddressError("", str(e), connection=sock) from e
        self.verify_peer(peer, connection=sock)
        return sock

    def __repr__(self) -> str:
        return f"RestrictedDialer(policy={self.policy!r})"


class RestrictedNetworkBackend(httpcore.NetworkBackend):
    """httpcore network backend that verifies every new TCP connection.

    Rejected connections are closed before the error propagates, so nothing
    leaks into the pool.
    """

    def __init__(
        self,
        dialer: RestrictedDialer | None = None,
        backend: httpcore.NetworkBackend | None = None,
    ) -> None:
        self.dialer = dialer or RestrictedDialer()
        self._inner = backend or httpcore.SyncBackend()

    def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: float | None = None,
        local_address: str | None = None,
        socket_options: Iterable[_SocketOption] | None = None,
    ) -> httpcore.NetworkStream:
        stream = self._inner.connect_tcp(
            host,
            port,
            timeout=timeout,
            local_address=local_address,
            socket_options=socket_options,
        )
        try:
            self.dialer.verify_peer(stream.get_extra_info("server_addr"), connection=stream)
        except DialError as e:
            e.close_connection()
            raise
        return stream

    def connect_unix_socket(
        self,
        path: str,
        timeout: float | None = None,
        socket_options: Iterable[_SocketOption] | None = None,
    ) -> httpcore.NetworkStream:
        raise RemoteAddressError(path, "unix socket connections have no IP address to verify")

    def sleep(self, seconds: float) -> None:
        self._inner.sleep(seconds)


__all__ = [
    "RestrictedDialer",
    "RestrictedNetworkBackend",
    "is_interface_local_multicast",
    "is_link_local_multicast",
    "is_link_local_unicast",
    "is_loopback",
    "is_private",
    "parse_address",
]
