"""Client and per-request options.

Example:
    >>> options = ClientOptions(
    ...     max_attempts=5,
    ...     default_headers={"User-Agent": "inventory-sync/1.0"},
    ... )
    >>> options.max_attempts
    5
"""

from __future__ import annotations

import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, fields
from http.cookiejar import CookieJar
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import ValidationError

from sturdyhttp import headers as hdr
from sturdyhttp.constants import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_REDIRECTS,
    DEFAULT_MAX_RETRY_AFTER,
    DEFAULT_MIN_RETRY_AFTER,
)
from sturdyhttp.context import Context
from sturdyhttp.dialer import RestrictedDialer
from sturdyhttp.models import EnvSettings
from sturdyhttp.retry import Backoff, Exponential
from sturdyhttp.transport import RoundTripperFunc, TransportConfig

if TYPE_CHECKING:
    from sturdyhttp.response import Response

ErrorHook = Callable[[Context, BaseException], "BaseException | None"]
"""Called with every transport error; may return a replacement error or None to retry."""

ErrorResponseHook = Callable[[Context, "Response"], "BaseException | None"]
"""Called with every non-2xx response; returning an error stops retrying and raises it."""

TransportCustomizer = Callable[[TransportConfig], None]
"""Mutates a transport configuration in place."""

RedirectHook = Callable[[httpx.Response], "BaseException | None"]
"""Called with each redirect response before it is followed; a returned error is raised."""

DEFAULT_ENV_PREFIX = "STURDYHTTP_"


def _keep_error(_ctx: Context, error: BaseException) -> BaseException | None:
    return error


@dataclass
class ClientOptions:
    """Configuration for :class:`sturdyhttp.Client`.

    Attributes:
        default_headers: Headers added to every request that does not set them
        max_attempts: Maximum attempts per request (0 = unlimited)
        min_retry_after: Retry-After values at or below this are ignored (seconds)
        max_retry_after: Retry-After values above this are truncated (seconds, 0 = no cap)
        backoff: Delay schedule between attempts
        on_error: Hook for transport errors (identity by default)
        on_error_response: Hook for non-2xx responses
        timeout: Client-level timeout per attempt
        cookies: Cookie jar shared by all requests
        follow_redirects: Follow redirects automatically
        max_redirects: Redirects followed per request before giving up
        check_redirect: Vetoes individual redirects while following them
        transport: Connection pool template
        customize_transport: Applied to a copy of ``transport`` when the client is built
        round_tripper: Wraps the built transport
        dialer: Restricted dialer for every new connection
    """

    default_headers: Mapping[str, str] = field(default_factory=dict)
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    min_retry_after: float = DEFAULT_MIN_RETRY_AFTER
    max_retry_after: float = DEFAULT_MAX_RETRY_AFTER
    backoff: Backoff = field(default_factory=Exponential)
    on_error: ErrorHook = _keep_error
    on_error_response: ErrorResponseHook | None = None
    timeout: float | httpx.Timeout | None = None
    cookies: CookieJar | None = None
    follow_redirects: bool = False
    max_redirects: int = DEFAULT_MAX_REDIRECTS
    check_redirect: RedirectHook | None = None
    transport: TransportConfig | None = None
    customize_transport: TransportCustomizer | None = None
    round_tripper: RoundTripperFunc | None = None
    dialer: RestrictedDialer | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 0:
            raise ValueError(f"max_attempts must be >= 0, got {self.max_attempts}")
        if self.min_retry_after < 0 or self.max_retry_after < 0:
            raise ValueError("min_retry_after and max_retry_after must be >= 0")
        if self.max_redirects < 0:
            raise ValueError(f"max_redirects must be >= 0, got {self.max_redirects}")
        self.default_headers = {
            hdr.canonicalize(k): v for k, v in dict(self.default_headers).items()
        }
        if self.on_error is None:
            self.on_error = _keep_error

    def with_overrides(self, **overrides: Any) -> ClientOptions:
        """Return a copy with the given fields replaced.

        Raises:
            TypeError: If an override does not name a field
        """
        names = {f.name for f in fields(self)}
        unknown = set(overrides) - names
        if unknown:
            raise TypeError(f"unknown client options: {', '.join(sorted(unknown))}")
        values = {name: getattr(self, name) for name in names}
        values.update(overrides)
        return ClientOptions(**values)

    def transport_config(self) -> TransportConfig:
        """Return the effective transport template (always a fresh copy)."""
        config = self.transport.clone() if self.transport is not None else TransportConfig()
        if self.dialer is not None:
            config.dialer = self.dialer
        if self.customize_transport is not None:
            self.customize_transport(config)
        return config

    @classmethod
    def from_env(
        cls,
        prefix: str = DEFAULT_ENV_PREFIX,
        environ: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> ClientOptions:
        """Build options from environment variables.

        Reads ``<prefix>MAX_ATTEMPTS``, ``MIN_RETRY_AFTER``, ``MAX_RETRY_AFTER``,
        ``TIMEOUT``, ``USER_AGENT`` and ``RESTRICTED``. Unset variables keep
        their defaults; keyword overrides win over the environment.

        Raises:
            ValueError: If a variable holds an invalid value
        """
        env = os.environ if environ is None else environ
        raw: dict[str, Any] = {}
        for name in EnvSettings.model_fields:
            value = env.get(f"{prefix}{name.upper()}")
            if value is not None and value.strip() != "":
                raw[name] = value.strip()
        try:
            settings = EnvSettings.model_validate(raw)
        except ValidationError as e:
            raise ValueError(f"invalid {prefix}* environment configuration: {e}") from e

        values: dict[str, Any] = {}
        if settings.max_attempts is not None:
            values["max_attempts"] = settings.max_attempts
        if settings.min_retry_after is not None:
            values["min_retry_after"] = settings.min_retry_after
        if settings.max_retry_after is not None:
            values["max_retry_after"] = settings.max_retry_after
        if settings.timeout is not None:
            values["timeout"] = settings.timeout
        if settings.user_agent is not None:
            values["default_headers"] = {hdr.USER_AGENT: settings.user_agent}
        if settings.restricted:
            values["dialer"] = RestrictedDialer()
        values.update(overrides)
        return cls(**values)


@dataclass
class RequestOptions:
    """Overrides that apply to a single :meth:`sturdyhttp.Client.do` call.

    Either option makes the call use a private transport built from a copy of
    the client's template; the client's shared transport is left untouched.

    Attributes:
        transport: Customizes the copied transport configuration
        round_tripper: Wraps the private transport
    """

    transport: TransportCustomizer | None = None
    round_tripper: RoundTripperFunc | None = None

    @property
    def overrides_transport(self) -> bool:
        return self.transport is not None or self.round_tripper is not None


__all__ = [
    "ClientOptions",
    "DEFAULT_ENV_PREFIX",
    "ErrorHook",
    "ErrorResponseHook",
    "RedirectHook",
    "RequestOptions",
    "TransportCustomizer",
]
