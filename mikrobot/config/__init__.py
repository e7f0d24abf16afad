"""Configuration schema and file loader."""

from mikrobot.config.loader import get_config_path, get_workspace_path, load_config, save_config
from mikrobot.config.schema import MikrobotConfig

__all__ = ["MikrobotConfig", "get_config_path", "get_workspace_path", "load_config", "save_config"]
