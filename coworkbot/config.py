"""Configuration management for Coworkbot."""

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Paths
DEFAULT_CONFIG_PATH = Path("~/.coworkbot/config.yaml").expanduser()
LOCAL_CONFIG_FILENAME = "config.yaml"


class ModelConfig(BaseModel):
    """Model/provider configuration."""

    provider: str = "anthropic"
    model: str = "claude-3-5-sonnet-20241022"
    api_key: str = ""
    base_url: str = "https://api.anthropic.com"
    max_tokens: int = 4096
    request_timeout: float = 120.0


class AgentConfig(BaseModel):
    """Agent loop limits and retry policy."""

    # Room for a request, one tool call, its result and the reply.
    max_history: int = Field(default=200, ge=4)
    max_iterations: int = 30
    max_sensitive_retries: int = 3
    backoff_base_ms: int = 1000
    backoff_max_ms: int = 5000
    max_rate_limit_retries: int = 8
    work_mode: Literal["chat", "code", "cowork"] = "cowork"
    todo_analysis_modes: list[str] = ["cowork"]


class AttachmentConfig(BaseModel):
    """Image attachment limits."""

    supported_types: list[str] = [
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
    ]
    max_images: int = 10
    max_image_bytes: int = 20 * 1024 * 1024


class StreamingConfig(BaseModel):
    """Token notification batching."""

    token_batch_size: int = 10
    token_flush_interval_ms: int = 50


class ShellToolConfig(BaseModel):
    """Shell tool configuration."""

    timeout: int = 60
    blocked: list[str] = [
        "rm -rf /",
        "mkfs",
        ":(){:|:&};:",
    ]


class ToolsConfig(BaseModel):
    """Tools configuration."""

    require_confirmation: list[str] = ["write_file", "run_command"]
    path_authorized_tools: list[str] = ["write_file"]
    authorized_folders: list[str] = []
    read_max_bytes: int = 100_000
    shell: ShellToolConfig = Field(default_factory=ShellToolConfig)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "console"


class Config(BaseSettings):
    """Main configuration for Coworkbot."""

    model: ModelConfig = Field(default_factory=ModelConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    attachments: AttachmentConfig = Field(default_factory=AttachmentConfig)
    streaming: StreamingConfig = Field(default_factory=StreamingConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="COWORKBOT_",
        env_file=".env",
        env_nested_delimiter="__",
    )

    @classmethod
    def resolve_default_config_path(cls) -> Path:
        """Resolve default config path with local-first precedence."""
        local_path = Path.cwd() / LOCAL_CONFIG_FILENAME
        if local_path.exists():
            return local_path
        return DEFAULT_CONFIG_PATH

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> "Config":
        """Load configuration from YAML file."""
        config_path = Path(path).expanduser() if path else cls.resolve_default_config_path()

        if not config_path.exists():
            return cls()

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from the local or home YAML file."""
        return cls.from_yaml()

    def save(self, path: Path | str | None = None) -> None:
        """Save configuration to YAML file."""
        config_path = Path(path) if path else DEFAULT_CONFIG_PATH
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(exclude_none=True)

        with open(config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
