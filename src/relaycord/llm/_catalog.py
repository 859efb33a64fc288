"""
Catalog of LLM providers and models, plus the runtime model selection.

Prices are in yuan per million tokens, as published by the providers.
"""

import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass

from relaycord.llm._models import TokenUsage

logger = logging.getLogger(__name__)

# Discord caps the value of a select-menu option at 100 characters
MAX_OPTION_VALUE_LENGTH = 100
OPTION_SEPARATOR = "|"


class UnknownModelError(ValueError):
    """Raised when selecting a provider/model pair that is not in the catalog."""

    def __init__(self, provider: str, model: str):
        self.provider = provider
        self.model = model
        super().__init__(f"Unknown provider/model: {provider}/{model}")


@dataclass(frozen=True)
class ModelCost:
    """
    Price of a model, per million tokens.

    Attributes:
        input: Price per million prompt tokens.
        output: Price per million completion tokens.
    """

    input: float
    output: float

    def cost_of(self, usage: TokenUsage) -> float:
        """Return the price of a completion with the given token usage."""
        return (
            usage.prompt_tokens / 1_000_000 * self.input
            + usage.completion_tokens / 1_000_000 * self.output
        )


def format_cost(cost: ModelCost | None) -> str:
    """
    Format a model price for display.

    Example:
        >>> format_cost(ModelCost(input=2.0, output=8.0))
        '(input: ¥2.00/M, output: ¥8.00/M)'
        >>> format_cost(None)
        'price unknown'
    """
    if cost is None:
        return "price unknown"
    return f"(input: ¥{cost.input:.2f}/M, output: ¥{cost.output:.2f}/M)"


@dataclass(frozen=True)
class ModelInfo:
    """A model offered by a provider. `cost` is None when the price is unknown."""

    id: str
    cost: ModelCost | None = None


@dataclass(frozen=True)
class ProviderInfo:
    """
    An OpenAI-compatible chat completions provider.

    Attributes:
        key: Catalog key (e.g., "siliconflow").
        name: Display name.
        endpoint: Chat completions URL.
        models: Models offered; the first one is the default.
        api_key_env: Environment variable holding the API key.
        temperature: Default sampling temperature.
    """

    key: str
    name: str
    endpoint: str
    models: tuple[ModelInfo, ...]
    api_key_env: str
    temperature: float = 0.7

    def __post_init__(self) -> None:
        assert self.key, "Provider key cannot be empty."
        assert self.models, f"Provider '{self.key}' must offer at least one model."

    @property
    def default_model(self) -> ModelInfo:
        return self.models[0]

    def find_model(self, model_id: str) -> ModelInfo | None:
        return next((m for m in self.models if m.id == model_id), None)


DEFAULT_PROVIDERS: Mapping[str, ProviderInfo] = {
    "siliconflow": ProviderInfo(
        key="siliconflow",
        name="SiliconFlow",
        endpoint="https://api.siliconflow.cn/v1/chat/completions",
        api_key_env="SILICONFLOW_API_KEY",
        models=(
            ModelInfo("THUDM/GLM-Z1-9B-0414", ModelCost(input=0.0, output=0.0)),
            ModelInfo("deepseek-ai/DeepSeek-R1-Distill-Qwen-7B", ModelCost(input=0.0, output=0.0)),
            ModelInfo("Qwen/Qwen2.5-7B-Instruct", ModelCost(input=0.0, output=0.0)),
            ModelInfo("Qwen/Qwen2.5-Coder-7B-Instruct", ModelCost(input=0.0, output=0.0)),
            ModelInfo("deepseek-ai/DeepSeek-V3", ModelCost(input=2.0, output=8.0)),
        ),
    ),
}


@dataclass(frozen=True)
class SelectedModel:
    """The provider and model currently in use."""

    provider: ProviderInfo
    model: ModelInfo


@dataclass(frozen=True)
class ModelOption:
    """
    One entry of a model picker.

    Attributes:
        label: Text shown to the user.
        value: "provider|model", at most 100 characters.
        description: The formatted price.
    """

    label: str
    value: str
    description: str


class LlmSelection:
    """
    Thread-safe runtime choice of provider and model.

    Args:
        providers: The provider catalog (default: DEFAULT_PROVIDERS).
        provider: Initially selected provider key.
        model: Initially selected model id. If None, the provider's default.

    Example:
        >>> selection = LlmSelection()
        >>> selection.select("siliconflow", "deepseek-ai/DeepSeek-V3")
        >>> selection.current().model.id
        'deepseek-ai/DeepSeek-V3'
    """

    def __init__(
        self,
        providers: Mapping[str, ProviderInfo] | None = None,
        provider: str = "siliconflow",
        model: str | None = None,
    ):
        self.providers: Mapping[str, ProviderInfo] = dict(providers if providers is not None else DEFAULT_PROVIDERS)
        assert self.providers, "The provider catalog cannot be empty."

        self._lock = threading.Lock()
        self._current = self._resolve(provider, model)

    @classmethod
    def from_config(cls, providers: Mapping[str, ProviderInfo] | None = None) -> "LlmSelection":
        """Create a selection from RELAYCORD.config.llm (provider and model)."""
        from relaycord._config import RELAYCORD
        cfg = RELAYCORD.config.llm
        return cls(providers=providers, provider=cfg.provider, model=cfg.model)

    def _resolve(self, provider_key: str, model_id: str | None) -> SelectedModel:
        provider = self.providers.get(provider_key)
        if provider is None:
            raise UnknownModelError(provider_key, model_id or "")
        if model_id is None:
            return SelectedModel(provider=provider, model=provider.default_model)
        model = provider.find_model(model_id)
        if model is None:
            raise UnknownModelError(provider_key, model_id)
        return SelectedModel(provider=provider, model=model)

    def current(self) -> SelectedModel:
        with self._lock:
            return self._current

    def select(self, provider_key: str, model_id: str) -> SelectedModel:
        """
        Switch to another provider/model.

        Raises:
            UnknownModelError: If the pair is not in the catalog. The
                current selection is left unchanged.
        """
        try:
            selected = self._resolve(provider_key, model_id)
        except UnknownModelError:
            logger.error(f"LlmSelection | Invalid provider/model: {provider_key}/{model_id}")
            raise

        with self._lock:
            self._current = selected
        logger.info(f"LlmSelection | Selected provider={provider_key}, model={model_id}")
        return selected

    def select_option(self, value: str) -> SelectedModel:
        """Select from a picker value in the "provider|model" form."""
        provider_key, separator, model_id = value.partition(OPTION_SEPARATOR)
        if not separator:
            raise UnknownModelError(provider_key, "")
        return self.select(provider_key, model_id)

    def options(self) -> list[ModelOption]:
        """
        List every model as a picker option, sorted by label.

        Options whose value would exceed 100 characters are skipped.
        """
        result = []
        for provider in self.providers.values():
            for model in provider.models:
                value = f"{provider.key}{OPTION_SEPARATOR}{model.id}"
                if len(value) > MAX_OPTION_VALUE_LENGTH:
                    logger.warning(f"LlmSelection | Skipping option with a value longer than 100 chars: {value}")
                    continue
                result.append(ModelOption(
                    label=f"{provider.name} - {model.id}",
                    value=value,
                    description=format_cost(model.cost),
                ))
        return sorted(result, key=lambda option: option.label)
