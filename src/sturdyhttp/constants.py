"""Default configuration values for sturdyhttp clients."""

# Retry defaults
DEFAULT_MAX_ATTEMPTS = 3
"""Default maximum number of attempts per request.

A value of 0 means the number of attempts is unlimited; callers should then
bound the request with a context deadline.
"""

DEFAULT_BACKOFF_FACTOR = 2.0
"""Multiplier applied to the backoff delay after every attempt."""

DEFAULT_BACKOFF_MIN = 1.0
"""Delay in seconds before the first retry when no Retry-After applies."""

DEFAULT_BACKOFF_MAX = 5.0
"""Upper bound in seconds for the exponential backoff delay."""

DEFAULT_MIN_RETRY_AFTER = 3.0
"""Minimum Retry-After value in seconds that overrides the backoff.

Retry-After values at or below this threshold are ignored and the regular
backoff schedule is used instead.
"""

DEFAULT_MAX_RETRY_AFTER = 30.0
"""Maximum Retry-After value in seconds that is honoured.

Larger values are truncated to this amount. A value of 0 disables the cap.
"""

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
"""HTTP status codes that are retried. Any other non-2xx status is terminal."""

DEFAULT_MAX_REDIRECTS = 10
"""Redirects followed per request when redirect following is enabled."""

# Response lifecycle
DRAIN_LIMIT = 16 * 1024
"""Maximum number of unread response body bytes discarded on close.

Bounded so a misbehaving server cannot force unbounded reads on close. If the
body is not entirely drained the connection is simply not reused.
"""

# Transport defaults
DEFAULT_CONNECT_TIMEOUT = 5.0
"""Connection establishment timeout in seconds (TCP and TLS handshake)."""

DEFAULT_READ_TIMEOUT = 10.0
"""Maximum wait in seconds between bytes received from the server."""

DEFAULT_WRITE_TIMEOUT = 10.0
"""Maximum wait in seconds while sending the request body."""

DEFAULT_POOL_TIMEOUT = 5.0
"""Timeout in seconds for acquiring a connection from the pool."""

DEFAULT_MAX_CONNECTIONS = 100
"""Maximum number of concurrent connections across all hosts."""

DEFAULT_MAX_KEEPALIVE_CONNECTIONS = 4
"""Maximum number of idle connections kept in the pool."""

DEFAULT_KEEPALIVE_EXPIRY = 30.0
"""Seconds an idle connection is kept before being closed."""

# Request bodies
BODY_CHUNK_SIZE = 64 * 1024
"""Chunk size in bytes used when streaming request bodies."""
