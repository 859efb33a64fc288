"""
Data models for LLM completions.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ulid import ULID


class CompletionStatus(Enum):
    """
    Status of a completion response.

    Attributes:
        SUCCESS: Content received from the provider.
        ERROR: Client-side error (HTTP error, network issue, missing API key, parsing error).
        TIMEOUT: Request timed out waiting for the provider.
    """
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"
    TIMEOUT = "TIMEOUT"

    @classmethod
    def from_exception(cls, exc: Exception) -> "CompletionStatus":
        """Return TIMEOUT for timeout exceptions, ERROR for all others."""
        from relaycord._utils import is_timeout_exception
        return cls.TIMEOUT if is_timeout_exception(exc) else cls.ERROR


@dataclass(frozen=True)
class TokenUsage:
    """
    Token usage reported by the provider.

    Example:
        >>> usage = TokenUsage(prompt_tokens=100, completion_tokens=200)
        >>> usage.total
        300
    """
    prompt_tokens: int
    completion_tokens: int

    @property
    def total(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    @classmethod
    def from_api(cls, data: Any) -> "TokenUsage | None":
        """Parse the OpenAI-style `usage` object; None when absent or malformed."""
        if not isinstance(data, dict):
            return None
        try:
            return cls(
                prompt_tokens=int(data.get("prompt_tokens") or 0),
                completion_tokens=int(data.get("completion_tokens") or 0),
            )
        except (TypeError, ValueError):
            return None


@dataclass
class CompletionRequest:
    """
    A prompt to send to the selected model.

    Attributes:
        prompt: The user message.
        id: Unique identifier for this request. Auto-generated as ULID if not provided.
        user_id: Optional id of the user the cost is charged to.
    """
    prompt: str
    id: str = field(default_factory=lambda: str(ULID()))
    user_id: str | None = None

    def __post_init__(self) -> None:
        assert self.id, "Request ID cannot be empty."
        assert self.prompt, "Prompt cannot be empty."


@dataclass
class CompletionResponse:
    """
    Result of a completion call.

    Attributes:
        request: The original request.
        status: SUCCESS, ERROR or TIMEOUT.
        content: The model's reply (None on failure).
        usage: Token usage, when the provider reported it.
        provider: Key of the provider that was called.
        model: Id of the model that was called.
        cost: Price of the call; None when the price or usage is unknown.
        error: Error message if the call failed.
    """
    request: CompletionRequest
    status: CompletionStatus
    content: str | None = None
    usage: TokenUsage | None = None
    provider: str | None = None
    model: str | None = None
    cost: float | None = None
    error: str | None = None

    def __post_init__(self) -> None:
        assert self.request, "Request cannot be empty."
        assert self.status, "Status cannot be empty."

    def is_success(self) -> bool:
        return self.status == CompletionStatus.SUCCESS

    def is_error(self) -> bool:
        return self.status == CompletionStatus.ERROR

    def is_timeout(self) -> bool:
        return self.status == CompletionStatus.TIMEOUT
