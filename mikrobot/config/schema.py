"""Pydantic configuration models for mikrobot.

All config is loaded from ~/.mikrobot/config.json and can be overridden
via MIKROBOT_ prefixed environment variables (nested keys use "__", e.g.
MIKROBOT_GATEWAY__PORT=9000).
"""

from __future__ import annotations

from contextvars import ContextVar
from pathlib import Path

from pydantic import BaseModel, Field, SecretStr, field_serializer
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.main import JsonConfigSettingsSource

# Set by config.loader.load_config() to read an explicit file instead of
# the default json_file.
active_config_file: ContextVar[Path | None] = ContextVar("active_config_file", default=None)


class AgentDefaults(BaseModel):
    """Default agent parameters applied to every run."""

    workspace: Path = Field(
        default=Path("~/.mikrobot/workspace"),
        description="Root workspace directory for bootstrap files, sessions, and memory.",
    )
    model: str = "gpt-4o"
    max_tokens: int = Field(default=8192, ge=1, le=200_000)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tool_iterations: int = Field(
        default=20,
        ge=1,
        le=500,
        description="Hard cap on LLM calls per turn.",
    )
    history_window: int = Field(default=50, ge=1, le=1000)


class AgentsConfig(BaseModel):
    defaults: AgentDefaults = Field(default_factory=AgentDefaults)


class ProviderEntry(BaseModel):
    """Connection details for the OpenAI-compatible LLM endpoint."""

    api_key: SecretStr = SecretStr("")
    api_base: str = "https://api.openai.com/v1"

    @field_serializer("api_key", when_used="json")
    @staticmethod
    def _serialize_api_key(v: SecretStr) -> str:
        return v.get_secret_value()


class ProvidersConfig(BaseModel):
    openai: ProviderEntry = Field(default_factory=ProviderEntry)


class ChannelEntry(BaseModel):
    """Configuration for a single chat channel."""

    enabled: bool = False
    token: SecretStr = SecretStr("")
    allow_from: list[str] = Field(
        default_factory=list,
        description="Sender IDs allowed to interact. Empty list allows everyone.",
    )

    @field_serializer("token", when_used="json")
    @staticmethod
    def _serialize_token(v: SecretStr) -> str:
        return v.get_secret_value()


class ChannelsConfig(BaseModel):
    telegram: ChannelEntry = Field(default_factory=ChannelEntry)


class ExecToolConfig(BaseModel):
    timeout: int = Field(default=60, ge=1, le=3600, description="Shell timeout in seconds.")
    restrict_to_workspace: bool = Field(
        default=True,
        description="Confine file tools and shell working directories to the workspace.",
    )


class ToolsConfig(BaseModel):
    exec: ExecToolConfig = Field(default_factory=ExecToolConfig)


class GatewayConfig(BaseModel):
    """HTTP boundary and bus settings for the gateway."""

    host: str = "127.0.0.1"
    port: int = Field(default=18790, ge=1, le=65535)
    rate_limit_rps: float = Field(default=5.0, gt=0, description="Tokens refilled per second.")
    rate_limit_burst: int = Field(default=10, ge=1, description="Bucket capacity per client.")
    max_body_bytes: int = Field(
        default=10 * 1024 * 1024,
        ge=0,
        description="Request body limit in bytes. 0 disables the limit.",
    )
    shutdown_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Seconds to wait for in-flight requests during shutdown.",
    )
    bus_queue_size: int = Field(default=256, ge=1)


class MikrobotConfig(BaseSettings):
    """Root configuration.

    Precedence is init kwargs, then MIKROBOT_ environment variables, then
    the JSON config file, then the defaults declared here.
    """

    model_config = SettingsConfigDict(
        env_prefix="MIKROBOT_",
        env_nested_delimiter="__",
        json_file=Path("~/.mikrobot/config.json").expanduser(),
        json_file_encoding="utf-8",
        extra="ignore",
    )

    agents: AgentsConfig = Field(default_factory=AgentsConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    channels: ChannelsConfig = Field(default_factory=ChannelsConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        """Read the JSON file below env vars and init kwargs.

        load_config() points active_config_file at an explicit path; otherwise
        the json_file from model_config is used.
        """
        json_file = active_config_file.get() or settings_cls.model_config.get("json_file")
        return (
            init_settings,
            env_settings,
            JsonConfigSettingsSource(settings_cls, json_file=json_file),
        )
