"""
HTTP client abstraction for relaycord.

Every outbound call (Discord REST, LLM providers) goes through an HttpClient,
so authentication and transport concerns live in one place and tests can
swap in a fake.

Available implementations:
    - StandaloneHttpClient: `requests`-based client using an AuthProvider.

Transport failures raised by `requests` are classified by
`classify_transport_error()`, which decides whether a failure is worth
retrying.

Example:
    >>> from relaycord._auth import BotTokenAuthProvider
    >>> from relaycord._http import StandaloneHttpClient
    >>> client = StandaloneHttpClient(auth_provider=BotTokenAuthProvider("token"))
    >>> response = client.get("https://discord.com/api/v10/gateway")
"""

import json
import logging
import socket
from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, override

import requests

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from relaycord._auth import AuthProvider


# =============================================================================
# Transport Error Classification
# =============================================================================


class TransportFailure(StrEnum):
    """Recognized kinds of transport-level failure."""

    TIMEOUT = "timeout"
    CONNECTION_REFUSED = "connection_refused"
    CONNECTION_RESET = "connection_reset"
    DNS_FAILURE = "dns_failure"
    CONNECTION_FAILED = "connection_failed"
    TLS_FAILURE = "tls_failure"
    UNRECOGNIZED = "unrecognized"


# Failures that a later attempt can plausibly succeed on
RETRYABLE_TRANSPORT_FAILURES = frozenset({
    TransportFailure.TIMEOUT,
    TransportFailure.CONNECTION_REFUSED,
    TransportFailure.CONNECTION_RESET,
    TransportFailure.DNS_FAILURE,
    TransportFailure.CONNECTION_FAILED,
})


@dataclass(frozen=True)
class TransportErrorClassification:
    """
    Result of classifying a transport exception.

    Attributes:
        retryable: Whether retrying the request may succeed.
        reason: Which recognized failure the exception matched.
    """

    retryable: bool
    reason: TransportFailure


def _iter_causes(exc: BaseException) -> Iterator[BaseException]:
    """Walk an exception, its chained causes and urllib3-style wrapped reasons."""
    seen: set[int] = set()
    pending: list[BaseException] = [exc]
    while pending:
        current = pending.pop(0)
        if id(current) in seen:
            continue
        seen.add(id(current))
        yield current

        for linked in (current.__cause__, current.__context__, getattr(current, "reason", None)):
            if isinstance(linked, BaseException):
                pending.append(linked)
        pending.extend(arg for arg in current.args if isinstance(arg, BaseException))


def _is_name_resolution_error(exc: BaseException) -> bool:
    return isinstance(exc, socket.gaierror) or type(exc).__name__ == "NameResolutionError"


def classify_transport_error(exc: BaseException) -> TransportErrorClassification:
    """
    Classify an exception raised while performing an HTTP call.

    Only an enumerated set of transient conditions is retryable: timeouts,
    refused or reset connections, DNS resolution failures and generic
    connection failures. Anything unrecognized (including TLS failures and
    programming errors) is classified as non-retryable, so unknown failure
    modes are never retried silently.

    Args:
        exc: The exception to classify.

    Returns:
        The classification with the matched failure reason.

    Example:
        >>> classify_transport_error(requests.ConnectTimeout()).retryable
        True
        >>> classify_transport_error(ValueError("boom")).retryable
        False
    """
    reason = _transport_failure_of(exc)
    return TransportErrorClassification(
        retryable=reason in RETRYABLE_TRANSPORT_FAILURES,
        reason=reason,
    )


def _transport_failure_of(exc: BaseException) -> TransportFailure:
    if isinstance(exc, requests.exceptions.SSLError):
        return TransportFailure.TLS_FAILURE
    if isinstance(exc, requests.Timeout):
        return TransportFailure.TIMEOUT
    if isinstance(exc, requests.exceptions.ChunkedEncodingError):
        return TransportFailure.CONNECTION_RESET

    if isinstance(exc, requests.ConnectionError):
        for cause in _iter_causes(exc):
            if _is_name_resolution_error(cause):
                return TransportFailure.DNS_FAILURE
            if isinstance(cause, ConnectionRefusedError):
                return TransportFailure.CONNECTION_REFUSED
            if isinstance(cause, ConnectionResetError):
                return TransportFailure.CONNECTION_RESET
            if isinstance(cause, (socket.timeout, TimeoutError)):
                return TransportFailure.TIMEOUT
        return TransportFailure.CONNECTION_FAILED

    # Bare OS-level errors raised by custom HttpClient implementations
    if _is_name_resolution_error(exc):
        return TransportFailure.DNS_FAILURE
    if isinstance(exc, ConnectionRefusedError):
        return TransportFailure.CONNECTION_REFUSED
    if isinstance(exc, ConnectionResetError):
        return TransportFailure.CONNECTION_RESET
    if isinstance(exc, TimeoutError):
        return TransportFailure.TIMEOUT

    return TransportFailure.UNRECOGNIZED


# =============================================================================
# Abstract Base Class
# =============================================================================


class HttpClient(ABC):
    """
    Abstract base class for HTTP clients.

    Implementations handle authentication; callers pass absolute URLs and a
    JSON-serializable body.

    Example:
        >>> class MyHttpClient(HttpClient):
        ...     def request(self, method, url, data=None, headers=None, timeout=30):
        ...         return requests.request(method, url, json=data, headers=headers, timeout=timeout)
    """

    @abstractmethod
    def request(
        self,
        method: str,
        url: str,
        data: Any = None,
        headers: dict[str, str] | None = None,
        timeout: int = 30,
    ) -> requests.Response:
        """
        Execute an authenticated HTTP request.

        Args:
            method: HTTP method (GET, POST, PATCH, ...).
            url: The full URL to request.
            data: JSON-serializable body. None sends no body.
            headers: Additional headers (merged over the auth headers).
            timeout: Request timeout in seconds.

        Returns:
            The HTTP response, whatever its status code.

        Raises:
            requests.RequestException: If the HTTP call itself fails.
        """
        pass

    def get(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: int = 30,
    ) -> requests.Response:
        return self.request("GET", url, headers=headers, timeout=timeout)

    def post(
        self,
        url: str,
        data: Any = None,
        headers: dict[str, str] | None = None,
        timeout: int = 30,
    ) -> requests.Response:
        return self.request("POST", url, data=data, headers=headers, timeout=timeout)

    def put(
        self,
        url: str,
        data: Any = None,
        headers: dict[str, str] | None = None,
        timeout: int = 30,
    ) -> requests.Response:
        return self.request("PUT", url, data=data, headers=headers, timeout=timeout)

    def patch(
        self,
        url: str,
        data: Any = None,
        headers: dict[str, str] | None = None,
        timeout: int = 30,
    ) -> requests.Response:
        return self.request("PATCH", url, data=data, headers=headers, timeout=timeout)

    def delete(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: int = 30,
    ) -> requests.Response:
        return self.request("DELETE", url, headers=headers, timeout=timeout)


# =============================================================================
# Standalone Implementation
# =============================================================================


class StandaloneHttpClient(HttpClient):
    """
    HTTP client using an AuthProvider and the `requests` library.

    The body is serialized to JSON here (not by `requests`) so the caller's
    Content-Type header is sent exactly as given.

    Example:
        >>> from relaycord._auth import BotTokenAuthProvider
        >>> client = StandaloneHttpClient(auth_provider=BotTokenAuthProvider("token"))
        >>> response = client.post("https://discord.com/api/v10/channels/1/messages", data={"content": "hi"})

    Args:
        auth_provider: Provider for the Authorization header.
    """

    def __init__(self, auth_provider: "AuthProvider"):
        from relaycord._auth import AuthProvider

        assert auth_provider is not None, "auth_provider cannot be None"
        assert isinstance(auth_provider, AuthProvider), "auth_provider must be an AuthProvider instance"

        self._auth = auth_provider

    @override
    def request(
        self,
        method: str,
        url: str,
        data: Any = None,
        headers: dict[str, str] | None = None,
        timeout: int = 30,
    ) -> requests.Response:
        """
        Execute an authenticated request.

        Raises:
            AssertionError: If url or method is empty or timeout is invalid.
            requests.RequestException: If the HTTP call fails.
            AuthenticationError: If no credential is available.
        """
        assert method, "Method cannot be empty."
        assert url, "URL cannot be empty."
        assert timeout is not None, "Timeout cannot be None."
        assert timeout > 0, "Timeout must be greater than 0."

        merged_headers = {**self._auth.get_auth_headers(), **(headers or {})}
        body = json.dumps(data) if data is not None else None

        return requests.request(
            method.upper(),
            url,
            data=body,
            headers=merged_headers,
            timeout=timeout,
        )
