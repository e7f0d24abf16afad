"""Config file I/O: load from JSON with env overrides, save back to disk."""

from __future__ import annotations

import json
import os
from pathlib import Path

from loguru import logger
from pydantic import SecretStr

from mikrobot.config.schema import MikrobotConfig, active_config_file

_DEFAULT_CONFIG_DIR = Path.home() / ".mikrobot"
_DEFAULT_CONFIG_FILE = _DEFAULT_CONFIG_DIR / "config.json"

# Checked in order when providers.openai.api_key is empty.
_API_KEY_ENV_FALLBACKS = ("OPENAI_API_KEY", "OPENROUTER_API_KEY")


def get_config_path() -> Path:
    return _DEFAULT_CONFIG_FILE


def get_workspace_path(config: MikrobotConfig | None = None) -> Path:
    if config is None:
        return _DEFAULT_CONFIG_DIR / "workspace"
    return config.agents.defaults.workspace.expanduser().resolve()


def load_config(path: Path | None = None) -> MikrobotConfig:
    """Load config with precedence environment > file > defaults.

    A missing file yields defaults. A malformed file raises ValueError so
    the CLI can report it instead of silently ignoring user settings.
    """
    config_path = (path or _DEFAULT_CONFIG_FILE).expanduser().resolve()

    if config_path.exists():
        try:
            json.loads(config_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON in {config_path}: {exc}") from exc
        logger.debug("Loading config from {}", config_path)

    token = active_config_file.set(config_path)
    try:
        config = MikrobotConfig()
    finally:
        active_config_file.reset(token)

    _apply_api_key_fallback(config)
    return config


def _apply_api_key_fallback(config: MikrobotConfig) -> None:
    entry = config.providers.openai
    if entry.api_key.get_secret_value():
        return
    for var in _API_KEY_ENV_FALLBACKS:
        value = os.environ.get(var, "")
        if value:
            entry.api_key = SecretStr(value)
            logger.debug("Using API key from {}", var)
            return


def save_config(config: MikrobotConfig, path: Path | None = None) -> Path:
    """Write config as JSON atomically with owner-only permissions."""
    config_path = (path or _DEFAULT_CONFIG_FILE).expanduser().resolve()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    data = config.model_dump(mode="json")

    tmp_path = config_path.with_suffix(".tmp")
    tmp_path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    tmp_path.chmod(0o600)
    tmp_path.replace(config_path)
    return config_path
