"""
Global configuration for relaycord.

Convention over configuration: call RELAYCORD.configure() at application
startup to customize defaults. If not called, defaults plus environment
variables are used.

Hierarchy of precedence (highest to lowest):
1. Options passed to client constructors
2. Values set via RELAYCORD.configure()
3. Environment variables
4. Hardcoded defaults (in dataclass fields)

Example:
    >>> from relaycord import RELAYCORD
    >>> RELAYCORD.config.discord.base_url
    'https://discord.com/api/v10'
    >>> RELAYCORD.configure(
    ...     discord={"bot_token": "x", "retry_max_attempts": 5},
    ...     llm={"model": "deepseek-ai/DeepSeek-V3"},
    ... )
"""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass, field, fields, replace
from typing import Any, Self

# Fields whose values are masked by explain()
SENSITIVE_FIELDS = frozenset({"bot_token", "api_key"})

SECTIONS = ("discord", "llm")


# =============================================================================
# Exceptions
# =============================================================================


class ConfigEnvVarError(ValueError):
    """Raised when an environment variable has an invalid value."""

    def __init__(
        self,
        env_var: str,
        value: str,
        expected_type: str,
        cause: Exception | None = None,
    ):
        self.env_var = env_var
        self.value = value
        self.expected_type = expected_type
        super().__init__(f"Invalid value for {env_var}: '{value}' (expected {expected_type})")
        self.__cause__ = cause


class ConfigValidationError(ValueError):
    """Raised when a configuration value fails validation."""

    def __init__(
        self,
        field: str,
        value: Any,
        message: str,
        section: str | None = None,
    ):
        self.field = field
        self.value = value
        self.section = section
        prefix = f"[{section}] " if section else ""
        super().__init__(f"{prefix}Invalid value for '{field}': {value!r}. {message}")


# =============================================================================
# Environment Variables
# =============================================================================


class EnvVars:
    """
    Utility class for reading environment variables with type conversion.

    Example:
        >>> EnvVars.get("RELAYCORD_DISCORD_REQUEST_TIMEOUT", type_hint=int)
        30
        >>> EnvVars.get("UNDEFINED_VAR")
        None
    """

    @staticmethod
    def get(
        var_name: str,
        type_hint: Any = str,
        converter: Callable[[str], Any] | None = None,
    ) -> Any:
        """
        Read an environment variable with optional type conversion.

        Returns:
            The converted value, or None if env var is not set/empty.

        Raises:
            ConfigEnvVarError: If the value cannot be converted.
        """
        raw_value = os.environ.get(var_name)
        if not raw_value:
            return None

        actual_converter = converter or EnvVars._infer_converter(type_hint)
        try:
            return actual_converter(raw_value)
        except (ValueError, TypeError) as e:
            raise ConfigEnvVarError(
                env_var=var_name,
                value=raw_value,
                expected_type=type_hint.__name__ if hasattr(type_hint, "__name__") else str(type_hint),
                cause=e,
            ) from e

    @staticmethod
    def _infer_converter(type_hint: Any) -> Callable[[str], Any]:
        """
        Infer converter function from type hint.

        Handles both actual types and string annotations (PEP 563).
        """
        type_str = str(type_hint)

        if type_hint is int or type_str == "int":
            return int
        if type_hint is float or type_str == "float":
            return float
        if type_hint is bool or type_str == "bool":
            return lambda v: v.lower() in ("true", "1", "yes")
        return str


# =============================================================================
# Base Class
# =============================================================================


@dataclass(frozen=True)
class OverridableConfig:
    """
    Base class for immutable configuration sections.

    Provides `.with_overrides()` for partial updates with strict field-name
    checking, and `.with_env_vars()` driven by `field(metadata={"env": ...})`.
    """

    def with_overrides(self, overrides: dict[str, Any]) -> Self:
        """
        Return a new instance with specified fields overridden.

        None values are ignored.

        Raises:
            ValueError: If overrides contains unknown field names.
        """
        if not overrides:
            return self

        valid_fields = {f.name for f in fields(self)}
        invalid_fields = set(overrides.keys()) - valid_fields

        if invalid_fields:
            raise ValueError(
                f"Unknown config fields: {invalid_fields}. "
                f"Valid fields are: {valid_fields}"
            )

        filtered = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **filtered) if filtered else self

    def with_env_vars(self) -> Self:
        """
        Return new instance with environment variables applied.

        Raises:
            ConfigEnvVarError: If an env var has an invalid value.
        """
        return self.with_overrides(self.env_overrides())

    def env_overrides(self) -> dict[str, Any]:
        """Return the overrides currently provided by environment variables."""
        overrides: dict[str, Any] = {}
        for f in fields(self):
            env_var = f.metadata.get("env")
            if env_var:
                value = EnvVars.get(var_name=env_var, type_hint=f.type)
                if value is not None:
                    overrides[f.name] = value
        return overrides


def _require_http_url(section: str, name: str, value: str | None) -> None:
    if value and not (value.startswith("http://") or value.startswith("https://")):
        raise ConfigValidationError(
            name, value, "Must start with 'http://' or 'https://'.", section=section
        )


# =============================================================================
# Configuration Sections
# =============================================================================


@dataclass(frozen=True)
class DiscordConfig(OverridableConfig):
    """
    Configuration for the Discord REST client.

    Attributes:
        bot_token: Bot token sent as `Authorization: Bot <token>`.
            Env var: DISCORD_TOKEN
        base_url: Base URL of the REST API; routes are appended to it.
            Env var: RELAYCORD_DISCORD_BASE_URL
        user_agent: Fixed User-Agent sent with every request.
            Env var: RELAYCORD_DISCORD_USER_AGENT
        request_timeout: HTTP request timeout in seconds.
            Env var: RELAYCORD_DISCORD_REQUEST_TIMEOUT
        retry_max_attempts: Total attempts per request (first attempt included).
            Env var: RELAYCORD_DISCORD_RETRY_MAX_ATTEMPTS
        retry_backoff: Linear backoff step in seconds: the wait after failed
            attempt N is N * retry_backoff.
            Env var: RELAYCORD_DISCORD_RETRY_BACKOFF
    """

    bot_token: str | None = field(default=None, metadata={"env": "DISCORD_TOKEN"})
    base_url: str = field(default="https://discord.com/api/v10", metadata={"env": "RELAYCORD_DISCORD_BASE_URL"})
    user_agent: str = field(
        default="DiscordBot (https://github.com/relaycord/relaycord, 0.1.0)",
        metadata={"env": "RELAYCORD_DISCORD_USER_AGENT"},
    )
    request_timeout: int = field(default=30, metadata={"env": "RELAYCORD_DISCORD_REQUEST_TIMEOUT"})
    retry_max_attempts: int = field(default=3, metadata={"env": "RELAYCORD_DISCORD_RETRY_MAX_ATTEMPTS"})
    retry_backoff: float = field(default=1.0, metadata={"env": "RELAYCORD_DISCORD_RETRY_BACKOFF"})

    def has_token(self) -> bool:
        return bool(self.bot_token)

    def validate(self) -> Self:
        """Validate Discord configuration fields."""
        if self.bot_token is not None and self.bot_token == "":
            raise ConfigValidationError("bot_token", self.bot_token, "Must not be empty string.", section="discord")
        _require_http_url("discord", "base_url", self.base_url)
        if not self.user_agent:
            raise ConfigValidationError("user_agent", self.user_agent, "Must not be empty.", section="discord")
        if self.request_timeout <= 0:
            raise ConfigValidationError(
                "request_timeout", self.request_timeout, "Must be greater than 0.", section="discord"
            )
        if self.retry_max_attempts < 1:
            raise ConfigValidationError(
                "retry_max_attempts", self.retry_max_attempts, "Must be >= 1.", section="discord"
            )
        if self.retry_backoff < 0:
            raise ConfigValidationError(
                "retry_backoff", self.retry_backoff, "Must be >= 0.", section="discord"
            )
        return self


@dataclass(frozen=True)
class LlmConfig(OverridableConfig):
    """
    Configuration for the LLM relay.

    Attributes:
        provider: Key of the initially selected provider in the catalog.
            Env var: LLM_PROVIDER
        model: Initially selected model id. If None, the provider's default.
            Env var: LLM_MODEL
        endpoint: Chat completions URL override for the selected provider.
            Env var: LLM_ENDPOINT
        api_key: API key override. If None, the provider's own env var is read.
            Env var: LLM_API_KEY
        temperature: Sampling temperature sent with each completion.
            Env var: LLM_TEMPERATURE
        request_timeout: HTTP request timeout in seconds.
            Env var: LLM_REQUEST_TIMEOUT
        retry_max_attempts: Total attempts per completion call.
            Env var: LLM_RETRY_MAX_ATTEMPTS
        retry_backoff: Linear backoff step in seconds.
            Env var: LLM_RETRY_BACKOFF
    """

    provider: str = field(default="siliconflow", metadata={"env": "LLM_PROVIDER"})
    model: str | None = field(default=None, metadata={"env": "LLM_MODEL"})
    endpoint: str | None = field(default=None, metadata={"env": "LLM_ENDPOINT"})
    api_key: str | None = field(default=None, metadata={"env": "LLM_API_KEY"})
    temperature: float = field(default=0.7, metadata={"env": "LLM_TEMPERATURE"})
    request_timeout: int = field(default=120, metadata={"env": "LLM_REQUEST_TIMEOUT"})
    retry_max_attempts: int = field(default=3, metadata={"env": "LLM_RETRY_MAX_ATTEMPTS"})
    retry_backoff: float = field(default=1.0, metadata={"env": "LLM_RETRY_BACKOFF"})

    def validate(self) -> Self:
        """Validate LLM configuration fields."""
        if not self.provider:
            raise ConfigValidationError("provider", self.provider, "Must not be empty.", section="llm")
        _require_http_url("llm", "endpoint", self.endpoint)
        if not 0 <= self.temperature <= 2:
            raise ConfigValidationError(
                "temperature", self.temperature, "Must be between 0 and 2.", section="llm"
            )
        if self.request_timeout <= 0:
            raise ConfigValidationError(
                "request_timeout", self.request_timeout, "Must be greater than 0.", section="llm"
            )
        if self.retry_max_attempts < 1:
            raise ConfigValidationError(
                "retry_max_attempts", self.retry_max_attempts, "Must be >= 1.", section="llm"
            )
        if self.retry_backoff < 0:
            raise ConfigValidationError(
                "retry_backoff", self.retry_backoff, "Must be >= 0.", section="llm"
            )
        return self


@dataclass(frozen=True)
class ConfigEntry:
    """
    A configuration field with its resolved value and source.

    Attributes:
        name: The field name (e.g., "request_timeout").
        value: The resolved value.
        source: "default", "env:VAR_NAME" or "user".
    """

    name: str
    value: Any
    source: str

    @property
    def formatted_value(self) -> str:
        """
        Return value formatted for display.

        Secrets show only their last 4 characters; long strings are truncated.
        """
        if self.value is None:
            return "None"

        if self.name in SENSITIVE_FIELDS:
            secret = str(self.value)
            return f"********{secret[-4:]}" if len(secret) >= 12 else "********"

        str_value = str(self.value)
        max_length = 50
        if len(str_value) > max_length:
            return str_value[: max_length - 3] + "..."
        return str_value


@dataclass(frozen=True)
class RelaycordConfig:
    """
    Root configuration aggregating every section.

    Attributes:
        discord: Discord REST client configuration.
        llm: LLM relay configuration.
        sources: Where each non-default value came from,
            as {"section": {"field": "env:VAR" | "user"}}.
    """

    discord: DiscordConfig = field(default_factory=DiscordConfig)
    llm: LlmConfig = field(default_factory=LlmConfig)
    sources: dict[str, dict[str, str]] = field(default_factory=dict, repr=False, compare=False)

    def with_env_vars(self) -> RelaycordConfig:
        """Return a new config with environment variables applied on top."""
        sources = self._copy_sources()
        sections: dict[str, Any] = {}
        for section_name in SECTIONS:
            section = getattr(self, section_name)
            overrides = section.env_overrides()
            sections[section_name] = section.with_overrides(overrides)
            env_names = {f.name: f.metadata.get("env") for f in fields(section)}
            for name in overrides:
                sources.setdefault(section_name, {})[name] = f"env:{env_names[name]}"
        return RelaycordConfig(**sections, sources=sources)

    def with_section_overrides(
        self,
        *,
        discord: dict[str, Any] | None = None,
        llm: dict[str, Any] | None = None,
    ) -> RelaycordConfig:
        """Return a new config with user overrides merged into each section."""
        sources = self._copy_sources()
        for section_name, overrides in (("discord", discord), ("llm", llm)):
            for name, value in (overrides or {}).items():
                if value is not None:
                    sources.setdefault(section_name, {})[name] = "user"
        return RelaycordConfig(
            discord=self.discord.with_overrides(discord or {}),
            llm=self.llm.with_overrides(llm or {}),
            sources=sources,
        )

    def explain_data(self) -> dict[str, list[ConfigEntry]]:
        """Return every config value with its source, grouped by section."""
        result: dict[str, list[ConfigEntry]] = {}
        for section_name in SECTIONS:
            section = getattr(self, section_name)
            section_sources = self.sources.get(section_name, {})
            result[section_name] = [
                ConfigEntry(
                    name=f.name,
                    value=getattr(section, f.name),
                    source=section_sources.get(f.name, "default"),
                )
                for f in fields(section)
            ]
        return result

    def _copy_sources(self) -> dict[str, dict[str, str]]:
        return {section: dict(flds) for section, flds in self.sources.items()}


# =============================================================================
# Global Configuration Singleton
# =============================================================================


class _Relaycord:
    """
    Singleton holding the process-wide configuration.

    Use `RELAYCORD.configure()` to customize settings and `RELAYCORD.config`
    to read them.
    """

    def __init__(self) -> None:
        self._config: RelaycordConfig = RelaycordConfig().with_env_vars()

    def configure(
        self,
        *,
        discord: dict[str, Any] | None = None,
        llm: dict[str, Any] | None = None,
        allow_env_override: bool = True,
    ) -> RelaycordConfig:
        """
        Configure relaycord settings.

        Args:
            discord: Discord client overrides (bot_token, base_url, retries...).
            llm: LLM relay overrides (provider, model, api_key...).
            allow_env_override: If True (default), env vars fill the fields
                not provided here. If False, env vars are ignored entirely.

        Returns:
            The configured RelaycordConfig instance.

        Raises:
            ValueError: If any dict contains unknown field names.
            ConfigValidationError: If any config value fails validation.
        """
        base = RelaycordConfig()
        if allow_env_override:
            base = base.with_env_vars()

        self._config = base.with_section_overrides(discord=discord, llm=llm)
        return self.validate()

    @property
    def config(self) -> RelaycordConfig:
        """Current configuration (read-only)."""
        return self._config

    def reset(self) -> RelaycordConfig:
        """Reset configuration to defaults + env vars. Useful in tests."""
        self._config = RelaycordConfig().with_env_vars()
        return self.validate()

    def validate(self) -> RelaycordConfig:
        """
        Validate current configuration.

        Raises:
            ConfigValidationError: If any config value is invalid.
        """
        self._config.discord.validate()
        self._config.llm.validate()
        return self._config

    def explain(self, output: Callable[[str], None] = print) -> None:
        """
        Print current configuration with sources.

        Args:
            output: Callable receiving each line. Defaults to print;
                `RELAYCORD.explain(logger.info)` works too.
        """
        name_width = 22
        value_width = 50

        output("Relaycord Configuration:")
        output("=" * (name_width + value_width + 16))
        for section_name, entries in self._config.explain_data().items():
            output(f"[{section_name}]")
            for entry in entries:
                dots = "." * (name_width - len(entry.name))
                value_padded = entry.formatted_value.ljust(value_width)
                marker = "✎" if entry.source != "default" else " "
                output(f"  {entry.name} {dots} {value_padded} {marker} {entry.source}")
        output("=" * (name_width + value_width + 16))

    def __repr__(self) -> str:
        return f"Relaycord(config={self._config!r})"


RELAYCORD: _Relaycord = _Relaycord()
RELAYCORD.validate()
