"""
Rate limit bookkeeping for the Discord REST API.

Discord enforces limits per bucket (a quota shared by a group of routes) and
globally (across every route). This module tracks both from response
headers:

- derive_bucket_key: Maps (method, route) to a local bucket key.
- RateLimitHeaders: The `x-ratelimit-*` headers of one response.
- RateLimitBucket: Known state of one bucket (remaining, reset time).
- RateLimitState: Thread-safe bucket table plus the global reset time.

Until the server tells us which bucket a route belongs to (via the
`x-ratelimit-bucket` header), routes are grouped by their template: every
snowflake id in the route is replaced by a placeholder, so
`channels/111.../messages` and `channels/222.../messages` share accounting.
This is conservative: two remote buckets sharing a template may be
throttled together, but a known limit is never exceeded.

Example:
    >>> state = RateLimitState()
    >>> key = derive_bucket_key("POST", "channels/123456789012345678/messages")
    >>> key
    'POST:channels/:id/messages'
    >>> state.wait_for_bucket(key)  # returns immediately on a cold start
    0.0
"""

import logging
import re
import threading
from collections.abc import Mapping
from dataclasses import dataclass, replace

from relaycord._utils import SYSTEM_CLOCK, Clock

logger = logging.getLogger(__name__)

# Discord snowflakes are 17 to 19 decimal digits, not part of a longer number
SNOWFLAKE_PATTERN = re.compile(r"(?<!\d)\d{17,19}(?!\d)")
SNOWFLAKE_PLACEHOLDER = ":id"


def derive_bucket_key(method: str, route: str) -> str:
    """
    Map a (method, route) pair to a local rate-limit bucket key.

    Every 17-19 digit snowflake is replaced by `:id` wherever it appears
    (path segments, emoji names such as `blob:<id>`, query parameters).
    Longer digit runs are left alone. Never raises: malformed input is
    passed through as its string form.

    Args:
        method: HTTP method (case-insensitive, defaults to GET when empty).
        route: Route relative to the API base URL.

    Returns:
        The key in the form "{METHOD}:{templated-route}".

    Example:
        >>> derive_bucket_key("get", "guilds/123456789012345678/members")
        'GET:guilds/:id/members'
        >>> derive_bucket_key("GET", "gateway/bot")
        'GET:gateway/bot'
    """
    method_name = str(method or "GET").upper()
    if not isinstance(route, str):
        return f"{method_name}:{route}"

    return f"{method_name}:{SNOWFLAKE_PATTERN.sub(SNOWFLAKE_PLACEHOLDER, route)}"


def _parse_int(value: str | None) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        try:
            return int(float(value))
        except ValueError:
            return None


def _parse_float(value: str | None) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except ValueError:
        return None


@dataclass(frozen=True)
class RateLimitHeaders:
    """
    Rate limit information carried by one response.

    Attributes:
        limit: Requests allowed per window (`x-ratelimit-limit`).
        remaining: Requests left in the window (`x-ratelimit-remaining`).
        reset_after: Seconds until the window resets (`x-ratelimit-reset-after`).
        bucket: Server-assigned bucket token (`x-ratelimit-bucket`).
        is_global: Whether a 429 applies globally (`x-ratelimit-global`).
    """

    limit: int | None = None
    remaining: int | None = None
    reset_after: float | None = None
    bucket: str | None = None
    is_global: bool = False

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> "RateLimitHeaders":
        """
        Parse the `x-ratelimit-*` headers. Unparsable values are treated as absent.

        Args:
            headers: Response headers. `requests` headers are case-insensitive;
                plain dicts are expected to use lower-case names.
        """
        return cls(
            limit=_parse_int(headers.get("x-ratelimit-limit")),
            remaining=_parse_int(headers.get("x-ratelimit-remaining")),
            reset_after=_parse_float(headers.get("x-ratelimit-reset-after")),
            bucket=headers.get("x-ratelimit-bucket") or None,
            is_global=str(headers.get("x-ratelimit-global", "")).lower() == "true",
        )

    @property
    def has_bucket_state(self) -> bool:
        """True when the headers carry enough to update a bucket."""
        return self.remaining is not None and self.reset_after is not None


@dataclass(frozen=True)
class RateLimitBucket:
    """
    Known state of one rate-limit bucket.

    Attributes:
        id: Table key: a derived template key or a server bucket token.
        remaining: Requests left in the window; None means unknown.
        reset_at: Absolute time (clock seconds) when `remaining` resets.
        limit: Requests allowed per window, kept for diagnostics.
    """

    id: str
    remaining: int | None
    reset_at: float
    limit: int | None = None

    def is_exhausted(self, now: float) -> bool:
        """True when no request may be sent before `reset_at`."""
        return self.remaining == 0 and self.reset_at > now


class RateLimitState:
    """
    Thread-safe bucket table and global rate limit deadline.

    One instance is owned by one RestClient. Every read and write goes
    through a lock; waiting always happens outside the lock so other
    threads can keep dispatching to unrelated buckets.

    Concurrent callers to the same exhausted bucket each wait on the same
    deadline and re-check after waking. There is no FIFO queue: requests
    may dispatch in any order once a limit clears.

    Args:
        clock: Time source for deadlines and sleeping (default: system clock).
    """

    def __init__(self, clock: Clock | None = None):
        self.clock = clock or SYSTEM_CLOCK

        self._buckets: dict[str, RateLimitBucket] = {}
        self._route_buckets: dict[str, str] = {}
        self._global_reset_at = 0.0
        self._lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @property
    def global_reset_at(self) -> float:
        """Absolute time after which the global limit no longer applies."""
        with self._lock:
            return self._global_reset_at

    def resolve_bucket_id(self, route_key: str) -> str:
        """Return the server bucket token learned for a route key, or the key itself."""
        with self._lock:
            return self._route_buckets.get(route_key, route_key)

    def bucket_for(self, route_key: str) -> RateLimitBucket | None:
        """Return the known bucket for a route key, if any."""
        with self._lock:
            return self._buckets.get(self._route_buckets.get(route_key, route_key))

    def buckets(self) -> dict[str, RateLimitBucket]:
        """Return a snapshot of the bucket table."""
        with self._lock:
            return dict(self._buckets)

    # -------------------------------------------------------------------------
    # Waiting
    # -------------------------------------------------------------------------

    def wait_for_global(self, logger_prefix: str = "") -> float:
        """
        Block until the global rate limit, if any, has cleared.

        Re-checks after waking in case another global limit was hit meanwhile.

        Returns:
            Total seconds waited.
        """
        prefix = f"{logger_prefix} | " if logger_prefix else ""
        waited = 0.0
        while True:
            with self._lock:
                deadline = self._global_reset_at
            wait_time = deadline - self.clock.now()
            if wait_time <= 0:
                return waited
            logger.warning(f"{prefix}Global rate limit active. Waiting {wait_time:.2f}s before next request.")
            waited += self.clock.sleep_until(deadline)

    def wait_for_bucket(self, route_key: str, logger_prefix: str = "") -> float:
        """
        Block until the bucket of a route key has capacity.

        If the bucket is known to be exhausted, sleeps until its reset time and
        re-checks, since another response may have pushed the reset further
        out while we slept. Once the reset has passed, `remaining` is marked
        unknown, so the next response's headers are trusted rather than
        assuming the bucket was replenished.

        Returns:
            Total seconds waited (0 if the bucket was not exhausted).
        """
        prefix = f"{logger_prefix} | " if logger_prefix else ""
        waited = 0.0
        while True:
            with self._lock:
                bucket_id = self._route_buckets.get(route_key, route_key)
                bucket = self._buckets.get(bucket_id)
                now = self.clock.now()
                if bucket is None or not bucket.is_exhausted(now):
                    if bucket is not None and bucket.remaining == 0:
                        self._buckets[bucket_id] = replace(bucket, remaining=None)
                    return waited
                deadline = bucket.reset_at

            logger.warning(
                f"{prefix}Bucket {bucket_id} exhausted. "
                f"Waiting {deadline - now:.2f}s before next request."
            )
            waited += self.clock.sleep_until(deadline)

    # -------------------------------------------------------------------------
    # Updates
    # -------------------------------------------------------------------------

    def update_from_headers(self, route_key: str, headers: RateLimitHeaders) -> RateLimitBucket | None:
        """
        Record the bucket state reported by a response (last write wins).

        The bucket is stored under the server-provided bucket token when
        present, otherwise under the derived route key. A learned token
        becomes the table key for the route from then on.

        Returns:
            The stored bucket, or None if the headers carried no bucket state.
        """
        with self._lock:
            if headers.bucket:
                self._route_buckets[route_key] = headers.bucket

            if not headers.has_bucket_state:
                return None

            assert headers.remaining is not None and headers.reset_after is not None
            bucket_id = headers.bucket or self._route_buckets.get(route_key, route_key)
            bucket = RateLimitBucket(
                id=bucket_id,
                remaining=max(0, headers.remaining),
                reset_at=self.clock.now() + headers.reset_after,
                limit=headers.limit,
            )
            self._buckets[bucket_id] = bucket
            return bucket

    def mark_bucket_exhausted(self, route_key: str, retry_after: float) -> RateLimitBucket:
        """
        Mark a route's bucket as exhausted for `retry_after` seconds (bucket 429).

        Only this bucket is affected; the known limit, if any, is kept.
        """
        with self._lock:
            bucket_id = self._route_buckets.get(route_key, route_key)
            current = self._buckets.get(bucket_id)
            bucket = RateLimitBucket(
                id=bucket_id,
                remaining=0,
                reset_at=self.clock.now() + retry_after,
                limit=current.limit if current else None,
            )
            self._buckets[bucket_id] = bucket
            return bucket

    def set_global_reset(self, retry_after: float) -> float:
        """
        Block every route for `retry_after` seconds (global 429).

        Returns:
            The new global reset time.
        """
        with self._lock:
            self._global_reset_at = self.clock.now() + retry_after
            return self._global_reset_at
