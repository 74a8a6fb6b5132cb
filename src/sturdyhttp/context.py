"""Cooperative cancellation and deadlines for requests.

A :class:`Context` travels with a :class:`~sturdyhttp.request.Request` and is
checked by the retry loop before every attempt and while sleeping between
attempts. Contexts form a tree: canceling a parent cancels all of its children,
and a child's deadline can never be later than its parent's.

Example:
    >>> ctx = Context.background().with_timeout(30)
    >>> ctx.done()
    False
    >>> ctx.cancel()
    >>> type(ctx.err()).__name__
    'ContextCanceledError'
"""

from __future__ import annotations

import threading
import time
import weakref

from sturdyhttp.errors import ContextCanceledError, ContextError, DeadlineExceededError


class Context:
    """Thread-safe cancellation signal with an optional deadline.

    Deadlines are expressed on the :func:`time.monotonic` clock.
    """

    def __init__(self, parent: Context | None = None, deadline: float | None = None) -> None:
        self._parent = parent
        self._canceled = threading.Event()
        self._lock = threading.Lock()
        self._children: weakref.WeakSet[Context] = weakref.WeakSet()

        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self._deadline = deadline

        if parent is not None:
            parent._add_child(self)

    @classmethod
    def background(cls) -> Context:
        """Return a new root context with no deadline."""
        return cls()

    def with_cancel(self) -> Context:
        """Return a child context that can be canceled independently."""
        return Context(parent=self)

    def with_timeout(self, seconds: float) -> Context:
        """Return a child context whose deadline is ``seconds`` from now."""
        return Context(parent=self, deadline=time.monotonic() + seconds)

    def with_deadline(self, deadline: float) -> Context:
        """Return a child context with an absolute :func:`time.monotonic` deadline."""
        return Context(parent=self, deadline=deadline)

    @property
    def deadline(self) -> float | None:
        return self._deadline

    def _add_child(self, child: Context) -> None:
        with self._lock:
            self._children.add(child)
            canceled = self._canceled.is_set()
        if canceled:
            child.cancel()

    def cancel(self) -> None:
        """Cancel this context and every context derived from it."""
        with self._lock:
            if self._canceled.is_set():
                return
            self._canceled.set()
            children = list(self._children)
        for child in children:
            child.cancel()

    def remaining(self) -> float | None:
        """Seconds until the deadline (never negative), or None without a deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def err(self) -> ContextError | None:
        """Return the reason this context is done, or None while it is still live."""
        if self._canceled.is_set():
            return ContextCanceledError()
        if self._deadline is not None and time.monotonic() >= self._deadline:
            return DeadlineExceededError()
        return None

    def done(self) -> bool:
        return self.err() is not None

    def sleep(self, seconds: float) -> bool:
        """Block for ``seconds`` or until the context is done.

        Returns:
            True if the full duration elapsed, False if the context ended first.
        """
        if seconds <= 0:
            return not self.done()
        remaining = self.remaining()
        if remaining is not None and remaining < seconds:
            self._canceled.wait(min(remaining, threading.TIMEOUT_MAX))
            return False
        # Event.wait() rejects timeouts beyond the platform limit.
        return not self._canceled.wait(min(seconds, threading.TIMEOUT_MAX))

    def __repr__(self) -> str:
        state = "canceled" if self._canceled.is_set() else "active"
        return f"Context(state={state}, deadline={self._deadline})"
