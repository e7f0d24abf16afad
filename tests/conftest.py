"""Shared test fixtures for the mikrobot test suite.

The _isolate_mikrobot_config fixture (autouse) prevents MikrobotConfig from
reading the user's real ~/.mikrobot/config.json during tests. API key
environment variables are cleared for the same reason.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from mikrobot.config.schema import MikrobotConfig


@pytest.fixture(autouse=True)
def _isolate_mikrobot_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Point MikrobotConfig's json_file at an empty temp file for every test."""
    empty_config = tmp_path / "mikrobot_test_config.json"
    empty_config.write_text("{}", encoding="utf-8")
    monkeypatch.setitem(MikrobotConfig.model_config, "json_file", empty_config)
    for var in ("OPENAI_API_KEY", "OPENROUTER_API_KEY"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def tmp_workspace(tmp_path: Path) -> Path:
    """Create a temporary workspace directory with standard structure."""
    ws = tmp_path / "workspace"
    for dirname in ("sessions", "memory", "skills"):
        (ws / dirname).mkdir(parents=True)

    (ws / "AGENTS.md").write_text("# Test Agent\nYou are a test agent.")
    (ws / "memory" / "MEMORY.md").write_text("")
    return ws


@pytest.fixture
def config(tmp_workspace: Path) -> MikrobotConfig:
    """Create a test config pointing at the temporary workspace."""
    return MikrobotConfig(
        agents={"defaults": {"workspace": str(tmp_workspace), "max_tool_iterations": 5}},
        tools={"exec": {"restrict_to_workspace": True, "timeout": 10}},
    )


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    """Create a temporary config file path."""
    path = tmp_path / "config.json"
    path.write_text("{}", encoding="utf-8")
    return path
