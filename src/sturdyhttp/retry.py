"""Retry policies: backoff schedules and per-call attempt accounting.

A :class:`Backoff` computes the delay before a retry from the retry number.
A :class:`Retrier` is created for every :meth:`sturdyhttp.Client.do` call,
counts attempts against a maximum and lets the caller override the next delay
(used to honour ``Retry-After``). Retriers are never shared between calls.

Example:
    >>> retrier = Retrier(max_attempts=3, backoff=Exponential(factor=2, min=1, max=5))
    >>> retrier.has_attempts_remaining()
    True
    >>> retrier.next_delay()
    1.0
    >>> retrier.next_delay()
    2.0
    >>> retrier.has_attempts_remaining()
    False
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from sturdyhttp.constants import (
    DEFAULT_BACKOFF_FACTOR,
    DEFAULT_BACKOFF_MAX,
    DEFAULT_BACKOFF_MIN,
    DEFAULT_MAX_ATTEMPTS,
)


@runtime_checkable
class Backoff(Protocol):
    """Computes the delay in seconds before retry number ``retry`` (0-based)."""

    def delay(self, retry: int) -> float: ...


@dataclass(frozen=True)
class Exponential:
    """Exponential backoff: ``min * factor ** retry``, capped at ``max``.

    Attributes:
        factor: Multiplier applied per retry
        min: Delay before the first retry in seconds
        max: Upper bound for any delay in seconds
        jitter: Add up to 10% random jitter to spread out concurrent clients
    """

    factor: float = DEFAULT_BACKOFF_FACTOR
    min: float = DEFAULT_BACKOFF_MIN
    max: float = DEFAULT_BACKOFF_MAX
    jitter: bool = False

    def delay(self, retry: int) -> float:
        # Cap the exponent so huge retry counts cannot overflow the float.
        exponent = min(max(retry, 0), 64)
        try:
            delay = self.min * (self.factor**exponent)
        except OverflowError:
            delay = self.max
        delay = min(delay, self.max)

        if self.jitter:
            delay += random.uniform(0, delay * 0.1)  # nosec B311

        return float(delay)


@dataclass(frozen=True)
class Constant:
    """Fixed delay between every attempt."""

    interval: float = DEFAULT_BACKOFF_MIN

    def delay(self, retry: int) -> float:
        return float(self.interval)


class Retrier:
    """Attempt counter plus backoff schedule for a single request.

    ``max_attempts`` of 0 means unlimited attempts.
    """

    def __init__(
        self, max_attempts: int = DEFAULT_MAX_ATTEMPTS, backoff: Backoff | None = None
    ) -> None:
        if max_attempts < 0:
            raise ValueError(f"max_attempts must be >= 0, got {max_attempts}")
        self.max_attempts = max_attempts
        self.backoff: Backoff = backoff if backoff is not None else Exponential()
        self.attempt = 1
        self._override: float | None = None

    def has_attempts_remaining(self) -> bool:
        """Return True if another attempt may be made after the current one."""
        return self.max_attempts == 0 or self.attempt < self.max_attempts

    def next_delay(self) -> float:
        """Consume an attempt and return the delay to wait before making it.

        A delay set with :meth:`override_next_delay` takes precedence over the
        backoff schedule, once.
        """
        if self._override is not None:
            delay = self._override
            self._override = None
        else:
            delay = self.backoff.delay(self.attempt - 1)
        self.attempt += 1
        return delay

    def override_next_delay(self, seconds: float) -> None:
        """Use ``seconds`` as the next delay instead of the backoff value."""
        self._override = max(0.0, float(seconds))

    def __repr__(self) -> str:
        return f"Retrier(attempt={self.attempt}, max_attempts={self.max_attempts})"
