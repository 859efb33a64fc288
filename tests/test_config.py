"""Tests for global configuration module."""

import os
import unittest
from unittest.mock import patch

from relaycord._config import (
    RELAYCORD,
    ConfigEntry,
    ConfigEnvVarError,
    ConfigValidationError,
    DiscordConfig,
    EnvVars,
    LlmConfig,
    RelaycordConfig,
)


class TestDefaults(unittest.TestCase):
    """Tests for default configuration values."""

    @patch.dict(os.environ, {}, clear=True)
    def test_discord_defaults(self):
        """Should return sensible defaults for the Discord section."""
        cfg = RELAYCORD.reset().discord

        self.assertIsNone(cfg.bot_token)
        self.assertFalse(cfg.has_token())
        self.assertEqual(cfg.base_url, "https://discord.com/api/v10")
        self.assertTrue(cfg.user_agent.startswith("DiscordBot ("))
        self.assertEqual(cfg.request_timeout, 30)
        self.assertEqual(cfg.retry_max_attempts, 3)
        self.assertEqual(cfg.retry_backoff, 1.0)

    @patch.dict(os.environ, {}, clear=True)
    def test_llm_defaults(self):
        """Should return sensible defaults for the LLM section."""
        cfg = RELAYCORD.reset().llm

        self.assertEqual(cfg.provider, "siliconflow")
        self.assertIsNone(cfg.model)
        self.assertIsNone(cfg.api_key)
        self.assertEqual(cfg.temperature, 0.7)
        self.assertEqual(cfg.request_timeout, 120)

    def tearDown(self):
        RELAYCORD.reset()


class TestEnvVars(unittest.TestCase):
    """Tests for environment variable loading."""

    def tearDown(self):
        RELAYCORD.reset()

    @patch.dict(os.environ, {
        "DISCORD_TOKEN": "env-token",
        "RELAYCORD_DISCORD_REQUEST_TIMEOUT": "45",
        "RELAYCORD_DISCORD_RETRY_BACKOFF": "0.25",
        "LLM_MODEL": "deepseek-ai/DeepSeek-V3",
    }, clear=True)
    def test_env_vars_are_applied_with_types(self):
        """Should read env vars converting to the field type."""
        cfg = RELAYCORD.reset()

        self.assertEqual(cfg.discord.bot_token, "env-token")
        self.assertEqual(cfg.discord.request_timeout, 45)
        self.assertEqual(cfg.discord.retry_backoff, 0.25)
        self.assertEqual(cfg.llm.model, "deepseek-ai/DeepSeek-V3")
        self.assertEqual(cfg.sources["discord"]["bot_token"], "env:DISCORD_TOKEN")

    @patch.dict(os.environ, {"RELAYCORD_DISCORD_REQUEST_TIMEOUT": "soon"}, clear=True)
    def test_invalid_env_var_raises(self):
        """Should raise ConfigEnvVarError for values that do not convert."""
        with self.assertRaises(ConfigEnvVarError) as ctx:
            DiscordConfig().with_env_vars()

        self.assertEqual(ctx.exception.env_var, "RELAYCORD_DISCORD_REQUEST_TIMEOUT")

    @patch.dict(os.environ, {"SOME_FLAG": "yes", "EMPTY": ""}, clear=True)
    def test_env_vars_get(self):
        """Should convert booleans and treat empty values as unset."""
        self.assertTrue(EnvVars.get("SOME_FLAG", type_hint=bool))
        self.assertIsNone(EnvVars.get("EMPTY"))
        self.assertIsNone(EnvVars.get("UNDEFINED_VAR"))


class TestConfigure(unittest.TestCase):
    """Tests for RELAYCORD.configure()."""

    def tearDown(self):
        RELAYCORD.reset()

    @patch.dict(os.environ, {"RELAYCORD_DISCORD_REQUEST_TIMEOUT": "45"}, clear=True)
    def test_user_values_override_env_vars(self):
        """Should apply user overrides on top of env vars."""
        cfg = RELAYCORD.configure(discord={"bot_token": "user-token"})

        self.assertEqual(cfg.discord.bot_token, "user-token")
        self.assertEqual(cfg.discord.request_timeout, 45)
        self.assertEqual(cfg.sources["discord"]["bot_token"], "user")
        self.assertIs(RELAYCORD.config, cfg)

    @patch.dict(os.environ, {"RELAYCORD_DISCORD_REQUEST_TIMEOUT": "45"}, clear=True)
    def test_env_vars_can_be_ignored(self):
        """Should ignore env vars when allow_env_override is False."""
        cfg = RELAYCORD.configure(llm={"temperature": 0.2}, allow_env_override=False)

        self.assertEqual(cfg.discord.request_timeout, 30)
        self.assertEqual(cfg.llm.temperature, 0.2)

    def test_unknown_field_raises(self):
        """Should reject unknown field names."""
        with self.assertRaises(ValueError):
            RELAYCORD.configure(discord={"token": "x"})

    def test_none_values_are_ignored(self):
        """Should keep defaults for None overrides."""
        cfg = RELAYCORD.configure(discord={"request_timeout": None}, allow_env_override=False)

        self.assertEqual(cfg.discord.request_timeout, 30)

    def test_invalid_value_raises_validation_error(self):
        """Should validate the resulting configuration."""
        with self.assertRaises(ConfigValidationError) as ctx:
            RELAYCORD.configure(discord={"retry_max_attempts": 0}, allow_env_override=False)

        self.assertEqual(ctx.exception.field, "retry_max_attempts")
        self.assertEqual(ctx.exception.section, "discord")


class TestValidation(unittest.TestCase):
    """Tests for section validation."""

    def test_discord_base_url_must_be_http(self):
        with self.assertRaises(ConfigValidationError):
            DiscordConfig(base_url="discord.com/api").validate()

    def test_discord_negative_backoff(self):
        with self.assertRaises(ConfigValidationError):
            DiscordConfig(retry_backoff=-1).validate()

    def test_llm_temperature_range(self):
        with self.assertRaises(ConfigValidationError):
            LlmConfig(temperature=2.5).validate()

    def test_llm_endpoint_must_be_http(self):
        with self.assertRaises(ConfigValidationError):
            LlmConfig(endpoint="ftp://llm").validate()

    def test_valid_sections_return_self(self):
        cfg = DiscordConfig(bot_token="t")
        self.assertIs(cfg.validate(), cfg)


class TestExplain(unittest.TestCase):
    """Tests for explain() and ConfigEntry."""

    def tearDown(self):
        RELAYCORD.reset()

    def test_secrets_are_masked(self):
        """Should show only the last 4 characters of long secrets."""
        self.assertEqual(ConfigEntry("bot_token", "abcdefghijkl1234", "user").formatted_value, "********1234")
        self.assertEqual(ConfigEntry("api_key", "short", "user").formatted_value, "********")

    def test_long_values_are_truncated(self):
        """Should truncate values longer than 50 characters."""
        formatted = ConfigEntry("base_url", "x" * 80, "default").formatted_value

        self.assertEqual(len(formatted), 50)
        self.assertTrue(formatted.endswith("..."))

    def test_none_value(self):
        self.assertEqual(ConfigEntry("model", None, "default").formatted_value, "None")

    def test_explain_outputs_every_section_without_secrets(self):
        """Should print each section with sources and mask the token."""
        RELAYCORD.configure(discord={"bot_token": "super-secret-token-9876"}, allow_env_override=False)
        lines: list[str] = []

        RELAYCORD.explain(output=lines.append)

        output = "\n".join(lines)
        self.assertIn("[discord]", output)
        self.assertIn("[llm]", output)
        self.assertIn("********9876", output)
        self.assertNotIn("super-secret-token-9876", output)
        self.assertIn("user", output)

    def test_explain_data_defaults(self):
        """Should report 'default' as the source of untouched fields."""
        data = RelaycordConfig().explain_data()

        self.assertEqual({entry.source for entry in data["llm"]}, {"default"})


if __name__ == "__main__":
    unittest.main()
