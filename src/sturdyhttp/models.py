"""Validated configuration models.

All models inherit from SturdyBaseModel to ensure consistent behavior:
- Immutability (frozen=True) so a policy can be shared by concurrent requests
- Strict validation (extra="forbid") to catch typos in option names
"""

from __future__ import annotations

import ipaddress
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, IPvAnyNetwork, field_validator

IPNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network


class SturdyBaseModel(BaseModel):
    """Base model for sturdyhttp configuration objects.

    Example:
        >>> class Limits(SturdyBaseModel):
        ...     attempts: int = Field(default=3, ge=0)
        >>> Limits(attempts=5).attempts
        5
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        validate_default=True,
        validate_assignment=True,
        json_schema_extra={
            "additionalProperties": False,
        },
    )


def _parse_network(value: Any) -> Any:
    if isinstance(value, (ipaddress.IPv4Network, ipaddress.IPv6Network)):
        return value
    if isinstance(value, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return ipaddress.ip_network(value)
    if isinstance(value, str):
        # Host bits are allowed ("10.1.2.3/8"), as with most CIDR parsers.
        return ipaddress.ip_network(value.strip(), strict=False)
    return value


class DialerPolicy(SturdyBaseModel):
    """Which peer addresses the restricted dialer accepts.

    Evaluation order is ``allowed`` (accept), then ``blocked`` (reject), then
    the ``block_*`` toggles, then accept. An address in ``allowed`` is accepted
    even when it is also in ``blocked`` or covered by a toggle.

    Attributes:
        allowed: Networks that are always accepted
        blocked: Networks that are rejected unless allowed
        block_private: Reject 10.0.0.0/8, 172.16.0.0/12, 192.168.0.0/16 and fc00::/7
        block_loopback: Reject 127.0.0.0/8 and ::1
        block_link_local_unicast: Reject 169.254.0.0/16 and fe80::/10
        block_link_local_multicast: Reject 224.0.0.0/24 and ff02::/16
        block_interface_local_multicast: Reject ff01::/16
    """

    allowed: tuple[IPvAnyNetwork, ...] = ()
    blocked: tuple[IPvAnyNetwork, ...] = ()
    block_private: bool = True
    block_loopback: bool = True
    block_link_local_unicast: bool = True
    block_link_local_multicast: bool = True
    block_interface_local_multicast: bool = True

    @field_validator("allowed", "blocked", mode="before")
    @classmethod
    def _parse_networks(cls, value: Any) -> Any:
        if isinstance(value, (str, ipaddress.IPv4Network, ipaddress.IPv6Network)):
            value = [value]
        return tuple(_parse_network(item) for item in value)

    @classmethod
    def unrestricted(cls) -> DialerPolicy:
        """A policy with every toggle disabled and no blocked networks."""
        return cls(
            block_private=False,
            block_loopback=False,
            block_link_local_unicast=False,
            block_link_local_multicast=False,
            block_interface_local_multicast=False,
        )


class EnvSettings(SturdyBaseModel):
    """Client settings read from the environment.

    Attributes:
        max_attempts: Maximum attempts per request (0 = unlimited)
        min_retry_after: Retry-After values at or below this are ignored (seconds)
        max_retry_after: Retry-After values above this are truncated (seconds, 0 = no cap)
        timeout: Client-level timeout in seconds
        user_agent: Default User-Agent header
        restricted: Route connections through the restricted dialer
    """

    max_attempts: int | None = Field(default=None, ge=0)
    min_retry_after: float | None = Field(default=None, ge=0)
    max_retry_after: float | None = Field(default=None, ge=0)
    timeout: float | None = Field(default=None, gt=0)
    user_agent: str | None = Field(default=None, min_length=1)
    restricted: bool = False


__all__ = ["DialerPolicy", "EnvSettings", "IPNetwork", "SturdyBaseModel"]
