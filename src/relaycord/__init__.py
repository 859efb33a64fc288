"""
relaycord: a rate-limit aware Discord REST client with an LLM relay.

Quick Start (REST):
    >>> from relaycord import RestClient, JsonBody
    >>> client = RestClient()
    >>> body = client.send("channels/123456789012345678/messages", method="POST", body={"content": "Hi"})
    >>> if isinstance(body, JsonBody):
    ...     print(body.value["id"])

Quick Start (LLM):
    >>> from relaycord.llm import LlmClient, CompletionRequest
    >>> response = LlmClient().complete(CompletionRequest(prompt="What is SOLID?"))
    >>> print(response.content)

Global Configuration:
    >>> from relaycord import RELAYCORD
    >>>
    >>> # Pre-loaded with defaults + env vars
    >>> timeout = RELAYCORD.config.discord.request_timeout
    >>>
    >>> # Custom configuration
    >>> RELAYCORD.configure(
    ...     discord={"bot_token": "...", "retry_max_attempts": 5},
    ...     llm={"model": "deepseek-ai/DeepSeek-V3"},
    ... )

Main Classes:
    - RestClient: Reliable client for the Discord REST API.
    - RestClientOptions: Timeout, attempts and backoff for RestClient.
    - JsonBody, EmptyBody, RawBody: Successful response body variants.
    - ClientError: Raised on a non-429 4xx response.
    - RetriesExhaustedError: Raised when every attempt hit a 429 or 5xx.

Rate Limiting:
    - RateLimitState: Bucket table and global limit shared by requests.
    - RateLimitBucket: Known state of one bucket.
    - RateLimitHeaders: Parsed `x-ratelimit-*` headers.
    - derive_bucket_key: Maps (method, route) to a bucket key.

Configuration:
    - RELAYCORD: Global singleton for configuration.
    - RelaycordConfig: Root configuration dataclass.
    - DiscordConfig: Discord REST configuration.
    - LlmConfig: LLM relay configuration.
    - ConfigEnvVarError: Exception raised when env var parsing fails.
    - ConfigValidationError: Exception raised when config validation fails.

Authentication:
    - AuthProvider: Abstract base class for authentication providers.
    - BotTokenAuthProvider: Discord `Bot` token authentication.
    - BearerTokenAuthProvider: API key (`Bearer`) authentication.
    - AuthenticationError: Exception raised when no credential is available.
    - create_bot_auth: Helper to create the bot auth provider from config.

HTTP Client:
    - HttpClient: Abstract base class for HTTP clients.
    - StandaloneHttpClient: HTTP client using an AuthProvider.
    - classify_transport_error: Decides whether a transport failure is retryable.

Retry:
    - Retrying: Context manager loop for retry with pluggable backoff.
    - RetryableError: Base class for exceptions that trigger automatic retry.
    - MaxRetriesExceededError: Exception raised when all attempts are exhausted.

Time:
    - Clock: Injectable time source (now/sleep).
    - SystemClock: Wall-clock implementation.
"""

from importlib.metadata import version as _get_version

__version__ = _get_version("relaycord")

from relaycord._auth import (
    AuthenticationError,
    AuthProvider,
    BearerTokenAuthProvider,
    BotTokenAuthProvider,
    create_bot_auth,
)
from relaycord._config import (
    RELAYCORD,
    ConfigEntry,
    ConfigEnvVarError,
    ConfigValidationError,
    DiscordConfig,
    LlmConfig,
    RelaycordConfig,
)
from relaycord._http import (
    HttpClient,
    StandaloneHttpClient,
    TransportErrorClassification,
    TransportFailure,
    classify_transport_error,
)
from relaycord._models import (
    Body,
    EmptyBody,
    JsonBody,
    RawBody,
)
from relaycord._rate_limit import (
    RateLimitBucket,
    RateLimitHeaders,
    RateLimitState,
    derive_bucket_key,
)
from relaycord._rest import (
    ClientError,
    RateLimitedError,
    RestClient,
    RestClientOptions,
    RetriesExhaustedError,
    ServerError,
)
from relaycord._retry import (
    MaxRetriesExceededError,
    RetryableError,
    Retrying,
    linear_backoff,
)
from relaycord._utils import (
    SYSTEM_CLOCK,
    Clock,
    SystemClock,
)

__all__ = [
    "__version__",
    # Configuration
    "RELAYCORD",
    "RelaycordConfig",
    "ConfigEntry",
    "ConfigEnvVarError",
    "ConfigValidationError",
    "DiscordConfig",
    "LlmConfig",
    # Authentication
    "AuthProvider",
    "BotTokenAuthProvider",
    "BearerTokenAuthProvider",
    "AuthenticationError",
    "create_bot_auth",
    # HTTP Client
    "HttpClient",
    "StandaloneHttpClient",
    "TransportFailure",
    "TransportErrorClassification",
    "classify_transport_error",
    # REST
    "RestClient",
    "RestClientOptions",
    "Body",
    "JsonBody",
    "EmptyBody",
    "RawBody",
    "ClientError",
    "RetriesExhaustedError",
    "RateLimitedError",
    "ServerError",
    # Rate limiting
    "RateLimitState",
    "RateLimitBucket",
    "RateLimitHeaders",
    "derive_bucket_key",
    # Retry
    "Retrying",
    "RetryableError",
    "MaxRetriesExceededError",
    "linear_backoff",
    # Time
    "Clock",
    "SystemClock",
    "SYSTEM_CLOCK",
]
