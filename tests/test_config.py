"""Tests for environment-driven configuration."""

import os
from unittest.mock import patch

import pytest

from horizon_mcp.core.config import DEFAULT_PORT, DEFAULT_REQUEST_TIMEOUT, ServerConfig


class TestServerConfigFromEnv:
    def test_defaults(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            config = ServerConfig.from_env(dotenv=False)

        assert config.exchange_url == ""
        assert config.exchange_org == ""
        assert config.exchange_credential is None
        assert config.port == DEFAULT_PORT
        assert config.request_timeout == DEFAULT_REQUEST_TIMEOUT
        assert config.session_idle_timeout is None
        assert config.log_level == "INFO"
        assert config.debug is False

    def test_reads_exchange_settings(self) -> None:
        env = {
            "EXCHANGE_URL": "https://exchange.example/v1/orgs/",
            "EXCHANGE_ORG": "myorg",
            "EXCHANGE_CREDENTIAL": "abc==",
            "EXCHANGE_TIMEOUT": "7.5",
            "PORT": "8080",
            "MCP_SESSION_IDLE_TIMEOUT": "600",
            "LOG_LEVEL": "debug",
            "HORIZON_MCP_DEBUG": "true",
        }
        with patch.dict(os.environ, env, clear=True):
            config = ServerConfig.from_env(dotenv=False)

        assert config.exchange_url == "https://exchange.example/v1/orgs"
        assert config.exchange_org == "myorg"
        assert config.exchange_credential == "abc=="
        assert config.request_timeout == 7.5
        assert config.port == 8080
        assert config.session_idle_timeout == 600.0
        assert config.log_level == "DEBUG"
        assert config.debug is True

    def test_empty_credential_is_none(self) -> None:
        with patch.dict(os.environ, {"EXCHANGE_CREDENTIAL": ""}, clear=True):
            config = ServerConfig.from_env(dotenv=False)

        assert config.exchange_credential is None

    def test_invalid_port_raises(self) -> None:
        with patch.dict(os.environ, {"PORT": "eighty"}, clear=True):
            with pytest.raises(ValueError, match="PORT"):
                ServerConfig.from_env(dotenv=False)

    def test_invalid_timeout_raises(self) -> None:
        with patch.dict(os.environ, {"EXCHANGE_TIMEOUT": "soon"}, clear=True):
            with pytest.raises(ValueError, match="EXCHANGE_TIMEOUT"):
                ServerConfig.from_env(dotenv=False)
