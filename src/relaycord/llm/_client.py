"""
Client for OpenAI-compatible chat completion providers.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import requests

from relaycord._http import HttpClient, classify_transport_error
from relaycord._retry import RetryableError, Retrying, linear_backoff
from relaycord.llm._catalog import LlmSelection, ProviderInfo, SelectedModel
from relaycord.llm._ledger import UsageLedger
from relaycord.llm._models import CompletionRequest, CompletionResponse, CompletionStatus, TokenUsage

if TYPE_CHECKING:
    from relaycord._config import LlmConfig

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """
    Raised when a provider answers with a non-retryable error status.

    Attributes:
        provider: Display name of the provider.
        status: The HTTP status code.
    """

    def __init__(self, provider: str, status: int, detail: str):
        self.provider = provider
        self.status = status
        self.detail = detail
        super().__init__(f"{provider} API request failed with status {status}: {detail}")


class TransientProviderError(ProviderError, RetryableError):
    """Raised for 429 and 5xx provider responses, which are retried."""


def _error_detail(response: requests.Response) -> str:
    """Extract the most useful error message from a provider error response."""
    text = response.text or ""
    try:
        data = response.json()
    except ValueError:
        return text or "Unknown error"

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if data.get("message"):
            return str(data["message"])
    return text or "Unknown error"


def _extract_content(data: Any) -> str | None:
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return None
    return content.strip() if isinstance(content, str) else None


@dataclass(frozen=True)
class LlmClientOptions:
    """
    Configuration options for LlmClient.

    Fields set to None use values from global config (RELAYCORD.config.llm).
    """

    request_timeout: int | None = None
    retry_max_attempts: int | None = None
    retry_backoff: float | None = None
    temperature: float | None = None

    def with_defaults_from(self, cfg: "LlmConfig") -> "LlmClientOptions":
        return LlmClientOptions(
            request_timeout=self.request_timeout if self.request_timeout is not None else cfg.request_timeout,
            retry_max_attempts=self.retry_max_attempts if self.retry_max_attempts is not None else cfg.retry_max_attempts,
            retry_backoff=self.retry_backoff if self.retry_backoff is not None else cfg.retry_backoff,
            temperature=self.temperature if self.temperature is not None else cfg.temperature,
        )


class LlmClient:
    """
    Synchronous client that relays prompts to the selected LLM.

    The call never raises for remote failures: HTTP errors, timeouts and a
    missing API key all come back as an ERROR or TIMEOUT response.

    Example:
        >>> from relaycord.llm import LlmClient, CompletionRequest
        >>> client = LlmClient()
        >>> response = client.complete(CompletionRequest(prompt="What is a snowflake id?"))
        >>> if response.is_success():
        ...     print(response.content)

    Attributes:
        selection: The runtime provider/model choice.
        options: Resolved client options.
        ledger: Optional ledger charged with the cost of each successful call.
    """

    def __init__(
        self,
        selection: LlmSelection | None = None,
        options: LlmClientOptions | None = None,
        http_client: HttpClient | None = None,
        ledger: UsageLedger | None = None,
        sleep: Callable[[float], None] | None = None,
    ):
        """
        Initialize the LLM client.

        Args:
            selection: Provider/model selection. If None, built from RELAYCORD.config.llm.
            options: Client options; None fields fall back to RELAYCORD.config.llm.
            http_client: HTTP client for API calls. If None, a StandaloneHttpClient
                with a Bearer key is created per provider.
            ledger: Ledger charged with the cost of requests carrying a user_id.
            sleep: Callable used between retries (default: time.sleep).
        """
        from relaycord._config import RELAYCORD
        cfg = RELAYCORD.config.llm

        self.options = (options or LlmClientOptions()).with_defaults_from(cfg)
        self.selection = selection or LlmSelection.from_config()
        self.ledger = ledger
        self._endpoint_override = cfg.endpoint
        self._api_key_override = cfg.api_key
        self._http_client = http_client
        self._http_clients: dict[str, HttpClient] = {}
        self._sleep = sleep

    def _http_client_for(self, provider: ProviderInfo) -> HttpClient:
        if self._http_client is not None:
            return self._http_client

        client = self._http_clients.get(provider.key)
        if client is None:
            from relaycord._auth import BearerTokenAuthProvider
            from relaycord._http import StandaloneHttpClient
            client = StandaloneHttpClient(
                auth_provider=BearerTokenAuthProvider(
                    api_key=self._api_key_override,
                    api_key_env=provider.api_key_env,
                )
            )
            self._http_clients[provider.key] = client
        return client

    def complete(self, request: CompletionRequest) -> CompletionResponse:
        """
        Send the prompt to the currently selected model (blocking).

        Retries on 429, 5xx and transient transport failures with linear
        backoff. Never retries on other 4xx responses.

        Returns:
            CompletionResponse with the content, usage and cost, or the error.
        """
        assert request, "🌀 Sanity check | Completion-Request can not be None."
        assert self.options.retry_max_attempts is not None, \
            "🌀 Sanity check | retry_max_attempts must be set after with_defaults_from()"
        assert self.options.retry_backoff is not None, \
            "🌀 Sanity check | retry_backoff must be set after with_defaults_from()"

        selected = self.selection.current()
        logger_prefix = f"{request.id[:26]:<26} | LlmClient"

        try:
            for attempt in Retrying(
                max_attempts=self.options.retry_max_attempts,
                wait=linear_backoff(self.options.retry_backoff),
                retry_if=lambda e: classify_transport_error(e).retryable,
                sleep=self._sleep,
                logger_prefix=logger_prefix,
            ):
                with attempt as current:
                    logger.info(
                        f"{logger_prefix} | Calling {selected.provider.name} model '{selected.model.id}' "
                        f"(attempt {current.attempt_number}/{current.max_attempts})..."
                    )
                    response = self._do_complete(request, selected)
                    self._charge(request, response)
                    return response

            # Should never reach here - Retrying raises MaxRetriesExceededError
            raise RuntimeError("Unexpected end of retry loop while calling the LLM provider.")

        except Exception as e:
            error_msg = f"LLM call failed: {e}"
            logger.error(
                f"{logger_prefix} | ❌ {error_msg}",
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            return CompletionResponse(
                request=request,
                status=CompletionStatus.from_exception(e),
                provider=selected.provider.key,
                model=selected.model.id,
                error=error_msg,
            )

    def _do_complete(self, request: CompletionRequest, selected: SelectedModel) -> CompletionResponse:
        """
        Execute one completion call (without retry logic).

        Raises:
            TransientProviderError: On 429 and 5xx.
            ProviderError: On any other non-2xx status.
            AuthenticationError: If no API key is available.
            requests.RequestException: On transport failure.
        """
        assert self.options.request_timeout is not None

        provider, model = selected.provider, selected.model
        payload = {
            "model": model.id,
            "messages": [{"role": "user", "content": request.prompt}],
            "temperature": self.options.temperature if self.options.temperature is not None else provider.temperature,
        }

        http_response = self._http_client_for(provider).post(
            url=self._endpoint_override or provider.endpoint,
            data=payload,
            headers={"Content-Type": "application/json"},
            timeout=self.options.request_timeout,
        )

        status = http_response.status_code
        if status == 429 or status >= 500:
            raise TransientProviderError(provider.name, status, _error_detail(http_response))
        if not 200 <= status < 300:
            raise ProviderError(provider.name, status, _error_detail(http_response))

        data = http_response.json()
        usage = TokenUsage.from_api(data.get("usage") if isinstance(data, dict) else None)
        content = _extract_content(data) or f"No response content from {provider.name}."
        cost = model.cost.cost_of(usage) if model.cost is not None and usage is not None else None

        logger.info(
            f"{request.id[:26]:<26} | LlmClient | "
            f"✅ Response received (tokens: {usage.total if usage else 'N/A'})"
        )
        return CompletionResponse(
            request=request,
            status=CompletionStatus.SUCCESS,
            content=content,
            usage=usage,
            provider=provider.key,
            model=model.id,
            cost=cost,
        )

    def _charge(self, request: CompletionRequest, response: CompletionResponse) -> None:
        if self.ledger is not None and request.user_id:
            self.ledger.add(request.user_id, response.cost)
