"""Tests for the tool server config file and runtime settings."""
import json

import pytest

from mcp_bridge._exceptions import ConfigurationError
from mcp_bridge.config import (
    LocalServerConfig,
    RemoteServerConfig,
    enabled_servers,
    load_server_configs,
    parse_server_configs,
    server_config,
    write_default_config,
)
from mcp_bridge.settings import Provider, Settings, get_api_key


class TestServerConfigs:
    def test_missing_file_means_no_servers(self, tmp_path):
        assert load_server_configs(tmp_path / "absent.json") == {}

    def test_loads_both_kinds(self, tmp_path):
        path = tmp_path / "mcp.json"
        path.write_text(
            json.dumps(
                {
                    "mcp": {
                        "time": {
                            "type": "local",
                            "command": ["python", "time_server.py", "--utc"],
                            "environment": {"TZ": "UTC"},
                        },
                        "search": {
                            "type": "remote",
                            "url": "https://tools.example.com/mcp",
                            "headers": {"Authorization": "Bearer x"},
                            "enabled": False,
                        },
                    }
                }
            )
        )
        configs = load_server_configs(path)
        local = configs["time"]
        assert isinstance(local, LocalServerConfig)
        assert local.command == "python"
        assert local.args == ("time_server.py", "--utc")
        assert local.argv == ["python", "time_server.py", "--utc"]
        assert local.enabled is True
        remote = configs["search"]
        assert isinstance(remote, RemoteServerConfig)
        assert remote.headers == {"Authorization": "Bearer x"}
        assert list(enabled_servers(configs)) == ["time"]

    def test_configs_are_frozen(self):
        config = server_config({"type": "local", "command": "python"})
        with pytest.raises(Exception):
            config.command = "ruby"

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "mcp.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError):
            load_server_configs(path)

    @pytest.mark.parametrize(
        "entry",
        [
            {"type": "local"},
            {"type": "remote"},
            {"type": "carrier-pigeon", "url": "x"},
            {"type": "local", "command": []},
            {"type": "local", "command": "python", "bogus": 1},
        ],
    )
    def test_invalid_entries(self, entry):
        with pytest.raises(ConfigurationError):
            parse_server_configs({"mcp": {"bad": entry}})

    def test_default_config_round_trips(self, tmp_path):
        path = write_default_config(tmp_path / "nested" / "mcp.json")
        configs = load_server_configs(path)
        assert set(configs) == {"example-local", "example-remote"}
        assert enabled_servers(configs) == {}


class TestSettings:
    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("LLM_PROVIDER", "Copilot")
        monkeypatch.setenv("LLM_MODEL", "gpt-4o")
        monkeypatch.setenv("MCP_CONFIG_PATH", "/etc/mcp.json")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        settings = Settings.from_env()
        assert settings.provider is Provider.COPILOT
        assert settings.model == "gpt-4o"
        assert settings.config_path == "/etc/mcp.json"
        assert settings.log_level_value == 10

    def test_defaults(self, monkeypatch):
        for var in ("LLM_PROVIDER", "LLM_MODEL", "OLLAMA_HOST", "MCP_CONFIG_PATH", "LOG_LEVEL"):
            monkeypatch.delenv(var, raising=False)
        settings = Settings.from_env()
        assert settings.provider is Provider.OLLAMA
        assert settings.model == "llama3.2"
        assert settings.ollama_host == "http://localhost:11434"

    def test_unknown_provider(self, monkeypatch):
        monkeypatch.setenv("LLM_PROVIDER", "carrier-pigeon")
        with pytest.raises(ConfigurationError):
            Settings.from_env()

    def test_api_keys(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "ghu_123")
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        assert get_api_key(Provider.COPILOT) == "ghu_123"
        with pytest.raises(ConfigurationError):
            get_api_key(Provider.OPENAI)
        with pytest.raises(ConfigurationError):
            get_api_key(Provider.OLLAMA)
