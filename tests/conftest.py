"""Shared pytest fixtures for sturdyhttp tests."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from unittest.mock import MagicMock, patch

import httpx
import pytest

from sturdyhttp import Client, ClientOptions
from sturdyhttp.observability.metrics import reset_metrics

Handler = Callable[[httpx.Request], httpx.Response]


class RecordingStream(httpx.SyncByteStream):
    """Response body stream that records how much was read and whether it was closed."""

    def __init__(self, chunks: list[bytes]) -> None:
        self.chunks = chunks
        self.chunks_read = 0
        self.closed = False

    def __iter__(self) -> Iterator[bytes]:
        for chunk in self.chunks:
            self.chunks_read += 1
            yield chunk

    def close(self) -> None:
        self.closed = True


class CountingHandler:
    """MockTransport handler replaying a script of outcomes, one per request.

    An outcome is a status code, an exception to raise, or a callable building
    the response. The last outcome repeats once the script runs out.
    """

    def __init__(self, *outcomes: int | Exception | Handler) -> None:
        self.outcomes = list(outcomes)
        self.requests: list[httpx.Request] = []
        self.bodies: list[bytes] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.bodies.append(request.read())
        outcome = self.outcomes[min(len(self.requests), len(self.outcomes)) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, int):
            return httpx.Response(outcome)
        return outcome(request)


def make_client(handler: Handler, **overrides: object) -> Client:
    """Build a Client whose requests are answered by ``handler``."""
    http_client = httpx.Client(transport=httpx.MockTransport(handler))
    return Client(ClientOptions(**overrides), http_client=http_client)  # type: ignore[arg-type]


@pytest.fixture(autouse=True)
def _reset_metrics() -> Iterator[None]:
    """Start every test with empty metrics."""
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture
def no_wait() -> Iterator[MagicMock]:
    """Replace the sleep between attempts with a mock recording the delays."""
    with patch("sturdyhttp.client._wait") as wait:
        yield wait
