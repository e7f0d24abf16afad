"""Tests for the configuration system."""

from __future__ import annotations

import json
import stat
from pathlib import Path

import pytest
from pydantic import SecretStr, ValidationError

from mikrobot.config import load_config, save_config
from mikrobot.config.schema import AgentDefaults, GatewayConfig, MikrobotConfig


def test_defaults():
    config = MikrobotConfig()
    assert config.agents.defaults.max_tokens == 8192
    assert config.agents.defaults.max_tool_iterations == 20
    assert config.gateway.host == "127.0.0.1"
    assert config.gateway.port == 18790
    assert config.tools.exec.restrict_to_workspace is True
    assert config.tools.exec.timeout == 60
    assert config.channels.telegram.enabled is False


def test_gateway_http_defaults():
    gw = GatewayConfig()
    assert gw.rate_limit_rps == 5.0
    assert gw.rate_limit_burst == 10
    assert gw.max_body_bytes == 10 * 1024 * 1024
    assert gw.shutdown_timeout == 10.0


def test_validation_rejects_bad_values():
    with pytest.raises(ValidationError):
        AgentDefaults(max_tool_iterations=0)
    with pytest.raises(ValidationError):
        GatewayConfig(port=70000)


def test_missing_file_yields_defaults(tmp_path: Path):
    config = load_config(tmp_path / "absent.json")
    assert config.gateway.port == 18790


def test_load_from_file(tmp_path: Path):
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "agents": {"defaults": {"model": "openai/gpt-4", "max_tokens": 4096}},
                "gateway": {"port": 9999},
            }
        )
    )
    config = load_config(path)
    assert config.agents.defaults.model == "openai/gpt-4"
    assert config.agents.defaults.max_tokens == 4096
    assert config.gateway.port == 9999


def test_env_overrides_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"gateway": {"host": "10.0.0.1", "port": 9999}}))
    monkeypatch.setenv("MIKROBOT_GATEWAY__HOST", "0.0.0.0")
    monkeypatch.setenv("MIKROBOT_GATEWAY__PORT", "8080")

    config = load_config(path)
    assert config.gateway.host == "0.0.0.0"
    assert config.gateway.port == 8080


def test_invalid_json_raises(tmp_path: Path):
    path = tmp_path / "config.json"
    path.write_text("{broken")
    with pytest.raises(ValueError, match="Invalid JSON"):
        load_config(path)


def test_api_key_env_fallback(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("OPENROUTER_API_KEY", "or-key")
    assert load_config(tmp_path / "none.json").providers.openai.api_key.get_secret_value() == "or-key"

    monkeypatch.setenv("OPENAI_API_KEY", "oa-key")
    assert load_config(tmp_path / "none.json").providers.openai.api_key.get_secret_value() == "oa-key"


def test_configured_key_beats_env_fallback(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"providers": {"openai": {"api_key": "from-file"}}}))
    monkeypatch.setenv("OPENAI_API_KEY", "from-env")
    assert load_config(path).providers.openai.api_key.get_secret_value() == "from-file"


def test_save_roundtrip_with_owner_only_permissions(tmp_path: Path):
    config = MikrobotConfig()
    config.providers.openai.api_key = SecretStr("sk-test-1234567890")
    config.gateway.port = 12345

    path = save_config(config, tmp_path / "nested" / "config.json")
    assert stat.S_IMODE(path.stat().st_mode) == 0o600

    data = json.loads(path.read_text())
    assert data["providers"]["openai"]["api_key"] == "sk-test-1234567890"

    reloaded = load_config(path)
    assert reloaded.gateway.port == 12345
    assert reloaded.providers.openai.api_key.get_secret_value() == "sk-test-1234567890"


def test_secrets_hidden_in_repr():
    config = MikrobotConfig(providers={"openai": {"api_key": "sk-hidden-value"}})
    assert "sk-hidden-value" not in repr(config)
