"""
sockstun Configuration using Pydantic Settings.

Provides strongly typed configuration with environment variable support,
validation, and sensible defaults.

Environment variables use SOCKSTUN_ prefix:
- SOCKSTUN_PROXY_HOST, SOCKSTUN_PROXY_PORT (proxy location)
- SOCKSTUN_PROXY_USERNAME, SOCKSTUN_PROXY_PASSWORD (credentials)
- SOCKSTUN_LOG_LEVEL, SOCKSTUN_LOG_FORMAT (log settings)
"""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..config import ClientConfig
from ..protocol import DEFAULT_PROXY_PORT


def get_project_root() -> Path:
    """Get the project root directory."""
    # Check for environment override
    if env_home := os.getenv("SOCKSTUN_HOME"):
        return Path(env_home)

    # Default to current working directory
    return Path.cwd()


class ProxySettings(BaseSettings):
    """Proxy connection settings."""

    model_config = SettingsConfigDict(
        env_prefix="SOCKSTUN_PROXY_",
        extra="ignore",
    )

    host: str = Field(
        default="127.0.0.1",
        description="Proxy hostname or IP address"
    )
    port: int = Field(
        default=DEFAULT_PROXY_PORT,
        ge=1,
        le=65535,
        description="Proxy port"
    )
    username: Optional[str] = Field(
        default=None,
        description="Username for proxy authentication"
    )
    password: Optional[str] = Field(
        default=None,
        repr=False,
        description="Password for proxy authentication"
    )


class LogSettings(BaseSettings):
    """Logging configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="SOCKSTUN_LOG_",
        extra="ignore",
    )

    level: str = Field(
        default="WARNING",
        description="Log level"
    )
    format: str = Field(
        default="console",
        description="Log format (json, console)"
    )
    file: Optional[str] = Field(
        default=None,
        description="Log file path"
    )

    @field_validator('level')
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper

    @field_validator('format')
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format."""
        if v not in {"json", "console"}:
            raise ValueError(f"Invalid log format: {v}. Must be 'json' or 'console'")
        return v


class Settings(BaseSettings):
    """
    Main application settings.

    Loads configuration from:
    1. YAML config file (config/config.yaml)
    2. Environment variables (SOCKSTUN_* prefix)
    3. Default values

    Values set in the YAML file take precedence over the environment.
    """

    model_config = SettingsConfigDict(
        env_prefix="SOCKSTUN_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    proxy: ProxySettings = Field(default_factory=ProxySettings)
    log: LogSettings = Field(default_factory=LogSettings)

    @classmethod
    def load_from_yaml(cls, config_file: Path) -> "Settings":
        """Load settings from YAML file with environment overrides."""
        data = {}

        if config_file.exists():
            with open(config_file, 'r') as f:
                data = yaml.safe_load(f) or {}

        # Create nested settings from YAML data
        settings_dict = {}

        if 'proxy' in data:
            settings_dict['proxy'] = ProxySettings(**data['proxy'])
        if 'log' in data:
            settings_dict['log'] = LogSettings(**data['log'])

        return cls(**settings_dict)

    def save_to_yaml(self, config_file: Path) -> None:
        """Save settings to YAML file."""
        config_file.parent.mkdir(parents=True, exist_ok=True)

        data = {
            'proxy': {
                'host': self.proxy.host,
                'port': self.proxy.port,
                'username': self.proxy.username,
                # Note: the password is not saved, use SOCKSTUN_PROXY_PASSWORD
            },
            'log': {
                'level': self.log.level,
                'format': self.log.format,
                'file': self.log.file,
            },
        }

        with open(config_file, 'w') as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)

    def to_client_config(self) -> ClientConfig:
        """
        Build the immutable client configuration.

        Raises:
            ValueError: If only one of username and password is set
        """
        return ClientConfig.from_credentials(
            self.proxy.host,
            self.proxy.port,
            username=self.proxy.username,
            password=self.proxy.password,
        )


def get_settings(config_file: Optional[Path] = None) -> Settings:
    """
    Get application settings.

    Loads config_file (default: config/config.yaml under the project root)
    when it exists, then applies environment variable overrides.
    """
    if config_file is None:
        config_file = get_project_root() / "config" / "config.yaml"

    if config_file.exists():
        return Settings.load_from_yaml(config_file)

    return Settings()
