"""
Authentication providers for relaycord.

This module provides the credentials attached to outbound requests:
- AuthProvider: Abstract base class for authentication providers.
- BotTokenAuthProvider: Discord bot token ("Bot <token>").
- BearerTokenAuthProvider: API key sent as a Bearer token (LLM providers).

Example:
    >>> from relaycord._auth import BotTokenAuthProvider
    >>> auth = BotTokenAuthProvider(token="my-bot-token")
    >>> auth.get_auth_headers()
    {'Authorization': 'Bot my-bot-token'}
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, override

if TYPE_CHECKING:
    from relaycord._config import DiscordConfig


class AuthenticationError(Exception):
    """
    Raised when a credential is missing or unusable.

    Attributes:
        message: Description of the authentication failure.
        cause: The underlying exception, if any.
    """

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class AuthProvider(ABC):
    """
    Abstract base class for authentication providers.

    Implementations must be thread-safe: a single provider is shared by every
    request issued through an HTTP client.
    """

    scheme: str = "Bearer"

    @abstractmethod
    def get_credential(self) -> str:
        """
        Return the raw credential (without the scheme prefix).

        Raises:
            AuthenticationError: If no credential is available.
        """
        pass

    def get_auth_headers(self) -> dict[str, str]:
        """Return the Authorization header for HTTP requests."""
        return {"Authorization": f"{self.scheme} {self.get_credential()}"}


class BotTokenAuthProvider(AuthProvider):
    """
    Discord bot token authentication.

    Args:
        token: The bot token issued by the Discord developer portal.
    """

    scheme = "Bot"

    def __init__(self, token: str):
        assert token, "Bot token cannot be empty."
        self._token = token

    @override
    def get_credential(self) -> str:
        return self._token


class BearerTokenAuthProvider(AuthProvider):
    """
    API key authentication sent as `Authorization: Bearer <key>`.

    The key can be given directly or read lazily from an environment
    variable, so a provider whose key is not configured only fails when
    it is actually used.

    Args:
        api_key: The API key. Takes precedence over `api_key_env`.
        api_key_env: Name of the environment variable holding the key.
    """

    def __init__(self, api_key: str | None = None, api_key_env: str | None = None):
        assert api_key or api_key_env, "Either api_key or api_key_env must be provided."
        self._api_key = api_key
        self._api_key_env = api_key_env

    @override
    def get_credential(self) -> str:
        if self._api_key:
            return self._api_key

        assert self._api_key_env is not None
        api_key = os.environ.get(self._api_key_env)
        if not api_key:
            raise AuthenticationError(
                f"API key not found: environment variable {self._api_key_env} is not set."
            )
        return api_key


def create_bot_auth(config: DiscordConfig | None = None) -> BotTokenAuthProvider:
    """
    Create a bot token provider from configuration.

    Args:
        config: Discord configuration. If None, uses RELAYCORD.config.discord.

    Raises:
        AuthenticationError: If no bot token is configured.
    """
    if config is None:
        from relaycord._config import RELAYCORD
        config = RELAYCORD.config.discord

    if not config.has_token():
        raise AuthenticationError(
            "No bot token available. Either:\n"
            "  1. Set the DISCORD_TOKEN environment variable\n"
            "  2. Call RELAYCORD.configure(discord={'bot_token': ...}) at startup"
        )
    return BotTokenAuthProvider(token=config.bot_token)
