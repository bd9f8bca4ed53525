"""Configuration settings using Pydantic for validation."""

import os
import re
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")
    output: str = Field(default="stderr", description="Log output: stdout, stderr or a file path")

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        if v.upper() not in ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']:
            raise ValueError(f"Unknown log level: {v}")
        return v.upper()

    @field_validator('format')
    @classmethod
    def validate_format(cls, v):
        if v.lower() not in ['json', 'text']:
            raise ValueError("Format must be 'json' or 'text'")
        return v.lower()


class ClientSettings(BaseSettings):
    """Real-time subscription client settings."""

    model_config = SettingsConfigDict(
        env_prefix="MARKET_STREAM_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    service_name: str = Field(default="market-stream", description="Name used in log context")
    url: str = Field(default="ws://localhost:5000/ws", description="WebSocket endpoint")
    symbol: Optional[str] = Field(default=None, description="Symbol to subscribe to on start")

    auto_reconnect: bool = Field(default=True, description="Reconnect after a dropped connection")
    reconnect_interval_seconds: float = Field(default=3.0, gt=0, description="Delay between reconnection attempts")
    max_reconnect_attempts: int = Field(default=10, ge=0, description="Attempts before giving up")
    heartbeat_interval_seconds: float = Field(default=30.0, gt=0, description="Ping period while connected")

    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        if not v.startswith(('ws://', 'wss://')):
            raise ValueError("URL must use the ws:// or wss:// scheme")
        return v


def substitute_env_vars(obj: Any) -> Any:
    """
    Recursively substitute environment variables in configuration objects.

    Supports syntax:
    - ${VAR_NAME} - Required variable (raises error if not found)
    - ${VAR_NAME:-default} - Optional variable with default value

    Raises:
        ValueError: If required environment variable is not found
    """
    if isinstance(obj, dict):
        return {key: substitute_env_vars(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [substitute_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        def replace_env_var(match):
            var_expr = match.group(1)

            if ':-' in var_expr:
                var_name, default_value = var_expr.split(':-', 1)
                return os.getenv(var_name.strip(), default_value)

            var_name = var_expr.strip()
            value = os.getenv(var_name)
            if value is None:
                raise ValueError(f"Required environment variable '{var_name}' is not set")
            return value

        return re.sub(r'\$\{([^}]+)\}', replace_env_var, obj)
    else:
        return obj


def load_settings(config_file: Optional[str] = None) -> ClientSettings:
    """
    Load settings from a YAML file and environment variables.

    Values given in the file win over the environment; ``${VAR}`` references
    inside the file are expanded first.

    Raises:
        ValueError: If required environment variables are missing
        FileNotFoundError: If config file doesn't exist
    """
    if config_file and os.path.exists(config_file):
        import yaml

        with open(config_file, 'r') as f:
            raw_config = yaml.safe_load(f) or {}

        config_data = substitute_env_vars(raw_config)
        return ClientSettings(**config_data)

    elif config_file:
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    return ClientSettings()
