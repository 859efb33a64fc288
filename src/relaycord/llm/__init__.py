"""
LLM relay for relaycord.

Relays prompts to an OpenAI-compatible chat completions provider, prices
each call from the model catalog and keeps a per-user running total.

Example:
    >>> from relaycord.llm import LlmClient, CompletionRequest, UsageLedger
    >>> ledger = UsageLedger()
    >>> client = LlmClient(ledger=ledger)
    >>> response = client.complete(CompletionRequest(prompt="Hello!", user_id="42"))
    >>> if response.is_success():
    ...     print(response.content)
    >>> ledger.total_for("42")

Switching models at runtime:
    >>> client.selection.select("siliconflow", "deepseek-ai/DeepSeek-V3")
"""

from relaycord.llm._catalog import (
    DEFAULT_PROVIDERS,
    LlmSelection,
    ModelCost,
    ModelInfo,
    ModelOption,
    ProviderInfo,
    SelectedModel,
    UnknownModelError,
    format_cost,
)
from relaycord.llm._client import (
    LlmClient,
    LlmClientOptions,
    ProviderError,
    TransientProviderError,
)
from relaycord.llm._ledger import UsageLedger
from relaycord.llm._models import (
    CompletionRequest,
    CompletionResponse,
    CompletionStatus,
    TokenUsage,
)

__all__ = [
    # Main client
    "LlmClient",
    # Options
    "LlmClientOptions",
    # Catalog
    "DEFAULT_PROVIDERS",
    "LlmSelection",
    "ModelCost",
    "ModelInfo",
    "ModelOption",
    "ProviderInfo",
    "SelectedModel",
    "format_cost",
    # Data models
    "CompletionRequest",
    "CompletionResponse",
    "CompletionStatus",
    "TokenUsage",
    # Usage
    "UsageLedger",
    # Exceptions
    "ProviderError",
    "TransientProviderError",
    "UnknownModelError",
]
