"""
Reliable client for the rate-limited Discord REST API.

RestClient.send() performs one logical request and hides the mechanics of
talking to a rate-limited remote API:

1. Waits out a known global rate limit.
2. Waits out a known exhausted bucket for the route.
3. Dispatches the request with auth, content-type and user-agent headers.
4. Records the bucket state reported by the `x-ratelimit-*` headers.
5. Classifies the outcome:
   - 2xx: returns a Body variant (JsonBody, EmptyBody or RawBody).
   - 429: records the bucket or global limit, waits `retry_after`, retries.
   - other 4xx: raises ClientError immediately (never retried).
   - 5xx: waits `attempt * retry_backoff` seconds (linear) and retries.
   - transient transport failure: same backoff; the original error is
     re-raised once attempts run out.
6. Raises RetriesExhaustedError when attempts run out on 429/5xx.

All retryable outcomes share one attempt budget (`retries`, total attempts
including the first one, default 3).

Example:
    >>> from relaycord import RestClient, JsonBody
    >>> client = RestClient()
    >>> body = client.send(
    ...     "channels/123456789012345678/messages",
    ...     method="POST",
    ...     body={"content": "Hello!"},
    ... )
    >>> if isinstance(body, JsonBody):
    ...     print(body.value["id"])
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import requests

from relaycord._http import HttpClient, classify_transport_error
from relaycord._models import Body, body_from_response
from relaycord._rate_limit import RateLimitHeaders, RateLimitState, derive_bucket_key
from relaycord._retry import (
    MaxRetriesExceededError,
    RetryableError,
    RetryAttempt,
    Retrying,
    linear_backoff,
)
from relaycord._utils import SYSTEM_CLOCK, Clock

if TYPE_CHECKING:
    from relaycord._config import DiscordConfig

logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================


class ClientError(Exception):
    """
    Raised for a 4xx response other than 429.

    The request itself is malformed or unauthorized, so it is never retried.

    Attributes:
        status: The HTTP status code.
        body: The response body, parsed as JSON when possible, else its text.
        route: The route that was requested.
    """

    def __init__(self, status: int, body: Any, route: str | None = None):
        self.status = status
        self.body = body
        self.route = route
        super().__init__(f"API client error ({status}) on route '{route}': {body}")


class RetriesExhaustedError(MaxRetriesExceededError):
    """
    Raised when every attempt ended in a retryable condition (429 or 5xx).

    Lets callers tell "the remote refused" (ClientError) apart from "we gave
    up waiting".

    Attributes:
        route: The route that was requested.
        attempts: How many attempts were made.
        last_exception: The RateLimitedError or ServerError of the last attempt.
    """

    def __init__(self, route: str, attempts: int, last_exception: Exception | None = None):
        self.route = route
        self.attempts = attempts
        super().__init__(
            f"Request failed after {attempts} attempts for route: {route}",
            last_exception=last_exception,
        )


class RateLimitedError(RetryableError):
    """
    Raised internally for a 429 response; retried after `retry_after` seconds.

    Attributes:
        retry_after: Seconds the server asked us to wait.
        is_global: Whether the limit applies to every route.
        bucket_id: The bucket that was exhausted (None for a global limit).
    """

    def __init__(self, retry_after: float, is_global: bool = False, bucket_id: str | None = None):
        self.retry_after = retry_after
        self.is_global = is_global
        self.bucket_id = bucket_id
        scope = "global" if is_global else f"bucket {bucket_id}"
        super().__init__(f"Rate limited ({scope}); retry after {retry_after:.3f}s")


class ServerError(RetryableError):
    """
    Raised internally for a 5xx response; retried with linear backoff.

    Attributes:
        status: The HTTP status code.
        body: The response body, parsed as JSON when possible, else its text.
    """

    def __init__(self, status: int, body: Any = None):
        self.status = status
        self.body = body
        super().__init__(f"API server error ({status}): {body}")


def _is_retryable_transport_error(exc: Exception) -> bool:
    return classify_transport_error(exc).retryable


def _parse_error_body(response: requests.Response) -> Any:
    """Return the body of an error response as JSON, falling back to text."""
    try:
        return response.json()
    except ValueError:
        return response.text or None


# =============================================================================
# Options
# =============================================================================


@dataclass(frozen=True)
class RestClientOptions:
    """
    Configuration options for RestClient.

    Fields set to None use values from global config (RELAYCORD.config.discord).

    Attributes:
        request_timeout: HTTP request timeout in seconds.
        retry_max_attempts: Default total attempts per request.
        retry_backoff: Linear backoff step in seconds for 5xx and transport failures.
        user_agent: User-Agent header sent with every request.
    """

    request_timeout: int | None = None
    retry_max_attempts: int | None = None
    retry_backoff: float | None = None
    user_agent: str | None = None

    def with_defaults_from(self, cfg: "DiscordConfig") -> "RestClientOptions":
        """Return new options with None values filled from config."""
        return RestClientOptions(
            request_timeout=self.request_timeout if self.request_timeout is not None else cfg.request_timeout,
            retry_max_attempts=self.retry_max_attempts if self.retry_max_attempts is not None else cfg.retry_max_attempts,
            retry_backoff=self.retry_backoff if self.retry_backoff is not None else cfg.retry_backoff,
            user_agent=self.user_agent if self.user_agent is not None else cfg.user_agent,
        )


# =============================================================================
# Client
# =============================================================================


class RestClient:
    """
    Rate-limit aware client for the Discord REST API.

    One RestClient owns one RateLimitState. Share the client (it is
    thread-safe) rather than creating one per request, so every caller sees
    the same buckets and global limit.

    Attributes:
        base_url: Base URL; routes are appended to it.
        options: Resolved client options.
        http_client: HTTP client performing the authenticated calls.
        rate_limits: Bucket table and global limit state.
        clock: Time source used for every wait.
    """

    CONTENT_TYPE = "application/json; charset=UTF-8"

    def __init__(
        self,
        base_url: str | None = None,
        options: RestClientOptions | None = None,
        http_client: HttpClient | None = None,
        rate_limits: RateLimitState | None = None,
        clock: Clock | None = None,
    ):
        """
        Initialize the REST client.

        Args:
            base_url: API base URL. If None, uses RELAYCORD.config.discord.base_url.
            options: Client options; None fields fall back to RELAYCORD.config.discord.
            http_client: HTTP client for API calls. If None, a StandaloneHttpClient
                authenticated with the configured bot token.
            rate_limits: Rate limit state. If None, a fresh state on `clock`.
            clock: Time source. Defaults to the clock of `rate_limits`, else
                the system clock.

        Raises:
            AuthenticationError: If no http_client is given and no bot token is configured.
        """
        from relaycord._config import RELAYCORD
        cfg = RELAYCORD.config.discord

        resolved_options = (options or RestClientOptions()).with_defaults_from(cfg)

        if base_url is None:
            base_url = cfg.base_url

        if http_client is None:
            from relaycord._auth import create_bot_auth
            from relaycord._http import StandaloneHttpClient
            http_client = StandaloneHttpClient(auth_provider=create_bot_auth(cfg))

        if clock is None:
            clock = rate_limits.clock if rate_limits is not None else SYSTEM_CLOCK
        if rate_limits is None:
            rate_limits = RateLimitState(clock=clock)

        assert base_url, "RestClient base_url cannot be empty."
        assert resolved_options.retry_max_attempts is not None and resolved_options.retry_max_attempts >= 1, \
            "retry_max_attempts must be >= 1."

        self.base_url = base_url.rstrip("/")
        self.options = resolved_options
        self.http_client: HttpClient = http_client
        self.rate_limits = rate_limits
        self.clock = clock

    def send(
        self,
        route: str,
        *,
        method: str = "GET",
        body: Any = None,
        headers: dict[str, str] | None = None,
        retries: int | None = None,
    ) -> Body:
        """
        Perform a reliable request against the REST API.

        Args:
            route: Path relative to the base URL (may contain snowflake ids).
            method: HTTP method (default: GET).
            body: JSON-serializable request body, or None for no body.
            headers: Extra headers, merged over the defaults.
            retries: Total attempts, including the first one. If None, uses
                `options.retry_max_attempts` (3 by default).

        Returns:
            JsonBody for a JSON body, EmptyBody for 204 or an empty body,
            RawBody for a non-JSON body.

        Raises:
            ClientError: On a 4xx response other than 429 (after one attempt).
            RetriesExhaustedError: When every attempt hit a 429 or 5xx.
            requests.RequestException: The transport error of the last attempt,
                or any transport error not classified as retryable.
        """
        max_attempts = retries if retries is not None else self.options.retry_max_attempts
        assert max_attempts is not None and max_attempts >= 1, f"retries must be >= 1, got {max_attempts}"
        assert self.options.retry_backoff is not None, \
            "🌀 Sanity check | retry_backoff must be set after with_defaults_from()"

        method = (method or "GET").upper()
        route_key = derive_bucket_key(method, route)
        url = self._build_url(route)
        request_headers = {**self._default_headers(), **(headers or {})}
        logger_prefix = f"RestClient | {method} {route}"

        try:
            for attempt in Retrying(
                max_attempts=max_attempts,
                wait=linear_backoff(self.options.retry_backoff),
                retry_if=_is_retryable_transport_error,
                sleep=self.clock.sleep,
                logger_prefix=logger_prefix,
            ):
                with attempt as current:
                    return self._do_send(
                        method=method,
                        url=url,
                        route=route,
                        route_key=route_key,
                        body=body,
                        headers=request_headers,
                        attempt=current,
                        logger_prefix=logger_prefix,
                    )
        except MaxRetriesExceededError as e:
            last_exception = e.last_exception
            if last_exception is not None and not isinstance(last_exception, RetryableError):
                logger.error(f"{logger_prefix} | ❌ Failed after {max_attempts} attempts: {last_exception}")
                raise last_exception from None
            raise RetriesExhaustedError(
                route=route,
                attempts=max_attempts,
                last_exception=last_exception,
            ) from e

        # Should never reach here - Retrying either returns or raises
        raise RuntimeError(f"Unexpected end of retry loop for route: {route}")

    def _do_send(
        self,
        method: str,
        url: str,
        route: str,
        route_key: str,
        body: Any,
        headers: dict[str, str],
        attempt: RetryAttempt,
        logger_prefix: str,
    ) -> Body:
        """
        Execute one attempt (without retry logic).

        Raises:
            RateLimitedError: On 429.
            ServerError: On 5xx.
            ClientError: On any other 4xx.
            requests.RequestException: On transport failure.
        """
        assert self.options.request_timeout is not None, \
            "🌀 Sanity check | request_timeout must be set after with_defaults_from()"

        self.rate_limits.wait_for_global(logger_prefix)
        self.rate_limits.wait_for_bucket(route_key, logger_prefix)

        logger.debug(f"{logger_prefix} | Sending request (attempt {attempt.attempt_number}/{attempt.max_attempts})...")
        response = self.http_client.request(
            method,
            url,
            data=body,
            headers=headers,
            timeout=self.options.request_timeout,
        )

        rate_limit_headers = RateLimitHeaders.from_headers(response.headers)
        self.rate_limits.update_from_headers(route_key, rate_limit_headers)

        status = response.status_code
        if status < 400:
            return body_from_response(response)

        if status == 429:
            raise self._handle_rate_limited(response, route_key, rate_limit_headers, attempt)

        error_body = _parse_error_body(response)
        if status < 500:
            logger.error(f"{logger_prefix} | ❌ Client error {status}: {error_body}")
            raise ClientError(status=status, body=error_body, route=route)

        raise ServerError(status=status, body=error_body)

    def _handle_rate_limited(
        self,
        response: requests.Response,
        route_key: str,
        rate_limit_headers: RateLimitHeaders,
        attempt: RetryAttempt,
    ) -> RateLimitedError:
        """Record a 429 in the rate limit state and build the error to retry on."""
        assert self.options.retry_backoff is not None

        payload = _parse_error_body(response)
        payload = payload if isinstance(payload, dict) else {}

        retry_after = self._retry_after_of(payload, response)
        if retry_after is None:
            retry_after = attempt.attempt_number * self.options.retry_backoff

        if bool(payload.get("global")) or rate_limit_headers.is_global:
            self.rate_limits.set_global_reset(retry_after)
            return RateLimitedError(retry_after=retry_after, is_global=True)

        bucket = self.rate_limits.mark_bucket_exhausted(route_key, retry_after)
        return RateLimitedError(retry_after=retry_after, is_global=False, bucket_id=bucket.id)

    @staticmethod
    def _retry_after_of(payload: dict[str, Any], response: requests.Response) -> float | None:
        """Read the retry delay in seconds from the 429 body, then the Retry-After header."""
        for raw in (payload.get("retry_after"), response.headers.get("Retry-After")):
            if raw is None:
                continue
            try:
                return max(0.0, float(raw))
            except (TypeError, ValueError):
                continue
        return None

    def _build_url(self, route: str) -> str:
        return f"{self.base_url}/{str(route).lstrip('/')}"

    def _default_headers(self) -> dict[str, str]:
        assert self.options.user_agent is not None
        return {
            "Content-Type": self.CONTENT_TYPE,
            "User-Agent": self.options.user_agent,
        }

    # -------------------------------------------------------------------------
    # Convenience verbs
    # -------------------------------------------------------------------------

    def get(self, route: str, **kwargs: Any) -> Body:
        return self.send(route, method="GET", **kwargs)

    def post(self, route: str, body: Any = None, **kwargs: Any) -> Body:
        return self.send(route, method="POST", body=body, **kwargs)

    def put(self, route: str, body: Any = None, **kwargs: Any) -> Body:
        return self.send(route, method="PUT", body=body, **kwargs)

    def patch(self, route: str, body: Any = None, **kwargs: Any) -> Body:
        return self.send(route, method="PATCH", body=body, **kwargs)

    def delete(self, route: str, **kwargs: Any) -> Body:
        return self.send(route, method="DELETE", **kwargs)

    def edit_original_response(
        self,
        application_id: str,
        interaction_token: str,
        content: str,
    ) -> Body:
        """
        Replace the content of a deferred interaction response.

        User mentions in `content` are allowed to ping.

        Args:
            application_id: The bot's application id.
            interaction_token: The token of the interaction being answered.
            content: The new message content.
        """
        assert application_id, "application_id cannot be empty."
        assert interaction_token, "interaction_token cannot be empty."

        return self.patch(
            f"webhooks/{application_id}/{interaction_token}/messages/@original",
            body={
                "content": content,
                "allowed_mentions": {"parse": ["users"]},
            },
        )
