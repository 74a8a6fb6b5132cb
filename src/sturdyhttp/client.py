"""Retrying HTTP client.

:meth:`Client.do` sends a :class:`~sturdyhttp.request.Request` and retries it
on transient failure:

- Transport errors go through the ``on_error`` hook. They are retried when the
  hook returns None or the (possibly replaced) error is timeout-like; any
  other error is raised.
- A 2xx response is returned immediately.
- Other responses go through the ``on_error_response`` hook; an error it
  returns is raised. Then 429, 500, 502, 503 and 504 are retried and every
  other status is returned to the caller as-is.
- A Retry-After header above ``min_retry_after`` replaces the next backoff
  delay, truncated to ``max_retry_after``. Malformed values are logged and
  ignored.

Discarded responses are closed (draining a bounded amount of unread body)
before waiting for the next attempt, so their connections return to the pool.
When attempts run out, the last response is returned or the last error raised.

Example:
    >>> with Client(max_attempts=5) as client:
    ...     with client.post("https://api.example.com/items", body={"name": "x"}) as response:
    ...         response.status_code
    201
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterator
from typing import Any

import httpx

from sturdyhttp import headers as hdr
from sturdyhttp.body import Readable
from sturdyhttp.constants import BODY_CHUNK_SIZE, RETRYABLE_STATUS_CODES
from sturdyhttp.context import Context
from sturdyhttp.errors import (
    BodyOpenError,
    DialError,
    RequestError,
    RetryAfterError,
    is_timeout,
)
from sturdyhttp.observability import get_logger, get_metrics, sanitize_for_logging
from sturdyhttp.options import ClientOptions, RequestOptions
from sturdyhttp.request import HeaderTypes, Request
from sturdyhttp.response import Response
from sturdyhttp.retry import Retrier
from sturdyhttp.transport import DEFAULT_TIMEOUT, TransportConfig, wrap_transport
from sturdyhttp.utils.sanitization import sanitize_url

logger = get_logger(__name__)


def _wait(ctx: Context, seconds: float) -> None:
    """Sleep between attempts, returning early if the context ends."""
    ctx.sleep(seconds)


def _redirect_hooks(opts: ClientOptions) -> dict[str, list[Callable[..., Any]]]:
    check = opts.check_redirect
    if check is None or not opts.follow_redirects:
        return {}

    def on_response(response: httpx.Response) -> None:
        if not response.has_redirect_location:
            return
        error = check(response)
        if error is not None:
            logger.info(
                "sturdyhttp.client.redirect_rejected",
                target_url=sanitize_url(response.request.url),
                status_code=response.status_code,
                error=str(error),
            )
            raise error

    return {"response": [on_response]}


def _iter_stream(stream: Readable, chunk_size: int = BODY_CHUNK_SIZE) -> Iterator[bytes]:
    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            return
        yield chunk


def _cap_timeout(timeout: httpx.Timeout, remaining: float) -> httpx.Timeout:
    def cap(value: float | None) -> float:
        return remaining if value is None else min(value, remaining)

    return httpx.Timeout(
        connect=cap(timeout.connect),
        read=cap(timeout.read),
        write=cap(timeout.write),
        pool=cap(timeout.pool),
    )


class Client:
    """HTTP client with retries, Retry-After support and optional destination restrictions.

    Safe to share between threads: every :meth:`do` call keeps its own retry
    state and only reads the client's configuration.

    Example:
        >>> client = Client(default_headers={"User-Agent": "inventory-sync/1.0"})
        >>> response = client.get("https://api.example.com/health")
        >>> response.close()
        >>> client.close()
    """

    def __init__(
        self,
        options: ClientOptions | None = None,
        *,
        http_client: httpx.Client | None = None,
        **overrides: Any,
    ) -> None:
        opts = options if options is not None else ClientOptions()
        if overrides:
            opts = opts.with_overrides(**overrides)
        self.options = opts
        self._transport_template = opts.transport_config()

        if http_client is None:
            self._client = httpx.Client(
                transport=wrap_transport(self._transport_template.build(), opts.round_tripper),
                timeout=opts.timeout if opts.timeout is not None else DEFAULT_TIMEOUT,
                cookies=opts.cookies,
                follow_redirects=opts.follow_redirects,
                max_redirects=opts.max_redirects,
                event_hooks=_redirect_hooks(opts),
            )
            self._owns_client = True
        else:
            self._client = http_client
            self._owns_client = False

    @classmethod
    def from_httpx(
        cls, http_client: httpx.Client, options: ClientOptions | None = None, **overrides: Any
    ) -> Client:
        """Wrap an existing ``httpx.Client``.

        The wrapped client's transport, timeout, cookies and redirect policy
        are used as-is, and it is not closed by :meth:`close`. Transport
        settings in ``options`` only apply to per-request overrides.
        """
        return cls(options, http_client=http_client, **overrides)

    @property
    def http_client(self) -> httpx.Client:
        return self._client

    @property
    def transport_template(self) -> TransportConfig:
        """A copy of the transport configuration per-request overrides start from."""
        return self._transport_template.clone()

    def close(self) -> None:
        """Close the connection pool if this client created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> Client:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def request(
        self,
        method: str,
        url: httpx.URL | str,
        body: Any = None,
        *,
        headers: HeaderTypes = None,
        context: Context | None = None,
        options: RequestOptions | None = None,
    ) -> Response:
        """Build a :class:`Request` and send it with :meth:`do`."""
        return self.do(Request(method, url, body=body, headers=headers, context=context), options)

    def get(self, url: httpx.URL | str, **kwargs: Any) -> Response:
        return self.request("GET", url, **kwargs)

    def head(self, url: httpx.URL | str, **kwargs: Any) -> Response:
        return self.request("HEAD", url, **kwargs)

    def delete(self, url: httpx.URL | str, **kwargs: Any) -> Response:
        return self.request("DELETE", url, **kwargs)

    def post(self, url: httpx.URL | str, body: Any = None, **kwargs: Any) -> Response:
        return self.request("POST", url, body, **kwargs)

    def put(self, url: httpx.URL | str, body: Any = None, **kwargs: Any) -> Response:
        return self.request("PUT", url, body, **kwargs)

    def patch(self, url: httpx.URL | str, body: Any = None, **kwargs: Any) -> Response:
        return self.request("PATCH", url, body, **kwargs)

    def do(self, request: Request, options: RequestOptions | None = None) -> Response:
        """Send a request, retrying transient failures.

        Args:
            request: The request to send; its body is re-opened for every attempt
            options: Per-request transport overrides

        Returns:
            The final response. The caller owns it and must close it.

        Raises:
            ContextError: If the request context is canceled or past its deadline
            BodyOpenError: If the request body cannot be re-opened
            RequestError: If the server could not be reached
            Exception: Whatever ``on_error`` or ``on_error_response`` returned
        """
        ctx = request.context
        ctx_error = ctx.err()
        if ctx_error is not None:
            raise ctx_error

        http_client = self._client
        private_client: httpx.Client | None = None
        if options is not None and options.overrides_transport:
            private_client = self._build_request_client(options)
            http_client = private_client

        metrics = get_metrics()
        start_time = time.perf_counter()
        try:
            response = self._do(http_client, request)
        except BaseException:
            if private_client is not None:
                private_client.close()
            metrics.increment_counter("sturdyhttp_requests_total", {"outcome": "error"})
            metrics.observe_histogram(
                "sturdyhttp_request_duration_seconds", time.perf_counter() - start_time
            )
            raise

        if private_client is not None:
            response.call_on_close(private_client.close)
        outcome = "success" if response.is_success else "status"
        metrics.increment_counter("sturdyhttp_requests_total", {"outcome": outcome})
        metrics.observe_histogram(
            "sturdyhttp_request_duration_seconds", time.perf_counter() - start_time
        )
        return response

    def _build_request_client(self, options: RequestOptions) -> httpx.Client:
        config = self._transport_template.clone()
        if options.transport is not None:
            options.transport(config)
        transport = wrap_transport(config.build(), options.round_tripper)
        return httpx.Client(
            transport=transport,
            timeout=self._client.timeout,
            cookies=self._client.cookies.jar,
            follow_redirects=self._client.follow_redirects,
            max_redirects=self._client.max_redirects,
            event_hooks=self._client.event_hooks,
        )

    def _do(self, http_client: httpx.Client, request: Request) -> Response:
        ctx = request.context
        opts = self.options
        metrics = get_metrics()
        retrier = Retrier(max_attempts=opts.max_attempts, backoff=opts.backoff)
        target_url = sanitize_url(request.url)
        last_error: BaseException | None = None

        while True:
            ctx_error = ctx.err()
            if ctx_error is not None:
                if last_error is not None:
                    raise ctx_error from last_error
                raise ctx_error

            attempt = retrier.attempt
            metrics.increment_counter("sturdyhttp_attempts_total")
            logger.debug(
                "sturdyhttp.client.attempt",
                method=request.method,
                target_url=target_url,
                attempt=attempt,
                max_attempts=opts.max_attempts,
            )

            transport_error: RequestError | None = None
            try:
                raw = self._send(http_client, request)
            except BodyOpenError as e:
                raise e.with_attempt(attempt)
            except (httpx.RequestError, DialError) as e:
                transport_error = RequestError(e, attempt=attempt)

            if transport_error is not None:
                error = opts.on_error(ctx, transport_error)
                if error is not None and not is_timeout(error):
                    logger.warning(
                        "sturdyhttp.client.permanent_error",
                        method=request.method,
                        target_url=target_url,
                        attempt=attempt,
                        error=str(error),
                        error_type=type(error).__name__,
                    )
                    raise error
                if not retrier.has_attempts_remaining():
                    logger.warning(
                        "sturdyhttp.client.exhausted",
                        method=request.method,
                        target_url=target_url,
                        attempts=attempt,
                        error=str(transport_error),
                        message=f"Giving up after {attempt} attempts",
                    )
                    raise error if error is not None else transport_error
                last_error = error if error is not None else transport_error
                delay = retrier.next_delay()
                metrics.increment_counter("sturdyhttp_retries_total", {"reason": "transport"})
                logger.info(
                    "sturdyhttp.client.transport_error",
                    method=request.method,
                    target_url=target_url,
                    attempt=attempt,
                    delay_seconds=round(delay, 2),
                    error=str(transport_error.cause),
                    error_type=type(transport_error.cause).__name__,
                    message=f"Request failed, retrying in {delay:.2f}s",
                )
                _wait(ctx, delay)
                continue

            response = Response(raw, request=request)
            status_code = response.status_code
            if 200 <= status_code <= 299:
                logger.debug(
                    "sturdyhttp.client.response",
                    method=request.method,
                    target_url=target_url,
                    attempt=attempt,
                    status_code=status_code,
                )
                return response

            if opts.on_error_response is not None:
                hook_error = opts.on_error_response(ctx, response)
                if hook_error is not None:
                    response.close()
                    raise hook_error

            if status_code not in RETRYABLE_STATUS_CODES:
                logger.debug(
                    "sturdyhttp.client.response",
                    method=request.method,
                    target_url=target_url,
                    attempt=attempt,
                    status_code=status_code,
                )
                return response

            if not retrier.has_attempts_remaining():
                logger.warning(
                    "sturdyhttp.client.exhausted",
                    method=request.method,
                    target_url=target_url,
                    attempts=attempt,
                    status_code=status_code,
                    message=f"Giving up after {attempt} attempts (last status {status_code})",
                )
                return response

            self._apply_retry_after(response, retrier, target_url)
            delay = retrier.next_delay()
            response.close()
            last_error = None
            metrics.increment_counter("sturdyhttp_retries_total", {"reason": str(status_code)})
            logger.info(
                "sturdyhttp.client.retry",
                method=request.method,
                target_url=target_url,
                attempt=attempt,
                status_code=status_code,
                delay_seconds=round(delay, 2),
                message=f"Status {status_code}, retrying in {delay:.2f}s",
            )
            _wait(ctx, delay)

    def _apply_retry_after(self, response: Response, retrier: Retrier, target_url: str) -> None:
        value = response.get_header(hdr.RETRY_AFTER)
        if not value:
            return
        try:
            delay = response.retry_after()
        except RetryAfterError as e:
            logger.warning(
                "sturdyhttp.client.retry_after_invalid",
                target_url=target_url,
                retry_after_header=value,
                error=e.reason,
                message="Invalid Retry-After header, using calculated backoff",
            )
            return

        if delay <= self.options.min_retry_after:
            return
        max_retry_after = self.options.max_retry_after
        if max_retry_after > 0 and delay > max_retry_after:
            delay = max_retry_after
        retrier.override_next_delay(delay)
        logger.info(
            "sturdyhttp.client.retry_after",
            target_url=target_url,
            retry_after_seconds=round(delay, 2),
            retry_after_header=value,
            message=f"Respecting server Retry-After: {delay:.2f}s",
        )

    def _send(self, http_client: httpx.Client, request: Request) -> httpx.Response:
        headers = httpx.Headers(request.headers)
        for key, value in self.options.default_headers.items():
            if key not in headers:
                headers[key] = value

        stream: Readable | None = None
        content: Iterator[bytes] | None = None
        if request.has_body:
            stream = request.get_body()
            size = request.content_length
            if size >= 0 and hdr.CONTENT_LENGTH not in headers:
                headers[hdr.CONTENT_LENGTH] = str(size)
            content = _iter_stream(stream)

        remaining = request.context.remaining()
        timeout: Any = httpx.USE_CLIENT_DEFAULT
        if remaining is not None:
            timeout = _cap_timeout(http_client.timeout, remaining)

        logger.debug(
            "sturdyhttp.client.request_headers",
            target_url=sanitize_url(request.url),
            headers=sanitize_for_logging(dict(headers)),
        )

        try:
            http_request = http_client.build_request(
                request.method,
                request.url,
                headers=headers,
                content=content,
                timeout=timeout,
            )
            return http_client.send(http_request, stream=True)
        finally:
            if stream is not None:
                stream.close()


__all__ = ["Client"]
