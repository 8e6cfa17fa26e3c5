"""
Configuration Loader

Handles loading and validating YAML/JSON configuration files for generation
runs. Supports environment variable substitution for sensitive values.
"""

import os
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from dotenv import load_dotenv

from sn_typings.core.schema.classifier import RenderMode


# Load environment variables from .env file if present
load_dotenv()


class InstanceConfig(BaseModel):
    """Remote instance connection configuration."""

    url: str = Field(..., description="Instance URL")
    username: str = Field(..., description="User name for authentication")
    password: str = Field(..., description="Password")
    client_id: str | None = Field(default=None, description="OAuth client ID")
    client_secret: str | None = Field(default=None, description="OAuth client secret")
    timeout: int = Field(default=60, ge=5, le=600)
    retry_attempts: int = Field(default=3, ge=1, le=10, description="Retry attempts on failure")
    retry_delay: float = Field(default=2.0, ge=0.0, le=60.0, description="Delay between retries")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Ensure URL is valid and normalize."""
        v = v.strip().rstrip("/")
        if not v.startswith(("http://", "https://")):
            v = f"https://{v}"
        return v

    @model_validator(mode="after")
    def check_oauth_pair(self) -> "InstanceConfig":
        """Client ID and secret must be given together."""
        if bool(self.client_id) != bool(self.client_secret):
            raise ValueError("client_id and client_secret must both be set for OAuth")
        return self

    @property
    def uses_oauth(self) -> bool:
        return bool(self.client_id and self.client_secret)


class RenderConfig(BaseModel):
    """Rendering settings."""

    mode: Literal["global", "scoped"] = Field(default="global", description="Client object model")
    output: str = Field(default="types.d.ts", description="Output file")
    force: bool = Field(default=False, description="Overwrite an existing output file")
    include_referenced_tables: bool = Field(
        default=False,
        description="Also render tables that columns reference",
    )
    compare_comments: bool = Field(
        default=False,
        description="Treat comment, max length and default value changes as overrides",
    )

    @field_validator("mode", mode="before")
    @classmethod
    def normalize_mode(cls, v: Any) -> str:
        """Accept 'g' and 's' abbreviations."""
        try:
            return RenderMode.from_string(v if v is None else str(v)).value
        except ValueError as e:
            raise ValueError(str(e)) from e

    @property
    def render_mode(self) -> RenderMode:
        return RenderMode(self.mode)


class CacheConfig(BaseModel):
    """Entity cache snapshot settings."""

    enabled: bool = Field(default=True, description="Load and save the cache snapshot")
    path: str = Field(default=".sn_typings_cache", description="Snapshot directory")
    ttl_hours: int | None = Field(default=24, ge=1, description="Snapshot TTL (None = never expires)")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    output_dir: str = Field(default="./logs", description="Log output directory")
    export_json: bool = Field(default=False, description="Export diagnostics as JSON and CSV")
    console_output: bool = Field(default=True, description="Show console output")

    @field_validator("level", mode="before")
    @classmethod
    def upper_level(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class GeneratorConfig(BaseModel):
    """Root configuration for a generation run."""

    model_config = ConfigDict(populate_by_name=True)

    instance: InstanceConfig = Field(..., description="Instance connection settings")
    render: RenderConfig = Field(default_factory=RenderConfig, description="Render settings")
    cache: CacheConfig = Field(default_factory=CacheConfig, description="Cache settings")
    logging: LoggingConfig = Field(default_factory=LoggingConfig, description="Logging settings")
    tables: list[str] = Field(default_factory=list, description="Tables to render")
    max_workers: int = Field(default=4, ge=1, le=16, description="Concurrent type fetches")

    @field_validator("tables")
    @classmethod
    def dedupe_tables(cls, v: list[str]) -> list[str]:
        """Drop blanks and case-insensitive duplicates, keeping order."""
        seen: set[str] = set()
        result: list[str] = []
        for name in v:
            name = name.strip()
            if name and name.lower() not in seen:
                seen.add(name.lower())
                result.append(name)
        return result


class ConfigLoader:
    """
    Loads and validates generator configuration from YAML/JSON files.

    Supports environment variable substitution using ${VAR_NAME} syntax.

    Example:
        >>> loader = ConfigLoader()
        >>> config = loader.load("sn_typings.yaml")
        >>> print(config.instance.url)
    """

    # Pattern for environment variable substitution
    ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")

    def __init__(self, env_file: Path | None = None):
        """
        Initialize config loader.

        Args:
            env_file: Optional path to .env file
        """
        if env_file:
            load_dotenv(env_file)

    def load(self, config_path: str | Path) -> GeneratorConfig:
        """
        Load configuration from file.

        Args:
            config_path: Path to YAML or JSON config file

        Returns:
            Validated GeneratorConfig object

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        path = Path(config_path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        content = path.read_text(encoding="utf-8")
        return self.loads(content)

    def loads(self, content: str) -> GeneratorConfig:
        """Parse and validate configuration text."""
        content = self._substitute_env_vars(content)

        # Parse YAML (also handles JSON as subset of YAML)
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ValueError(f"Failed to parse configuration: {e}") from e

        if not isinstance(data, dict):
            raise ValueError("Configuration must be a dictionary")

        try:
            return GeneratorConfig.model_validate(data)
        except Exception as e:
            raise ValueError(f"Configuration validation failed: {e}") from e

    def _substitute_env_vars(self, content: str) -> str:
        """
        Replace ${VAR_NAME} with environment variable values.

        Args:
            content: Configuration content string

        Returns:
            Content with substituted values
        """
        def replace(match: re.Match[str]) -> str:
            var_name = match.group(1)
            value = os.environ.get(var_name)
            if value is None:
                raise ValueError(
                    f"Environment variable '{var_name}' is not set. "
                    f"Please set it or update the configuration."
                )
            return value

        return self.ENV_PATTERN.sub(replace, content)

    def validate_file(self, config_path: str | Path) -> list[str]:
        """
        Validate a configuration file and return any errors.

        Args:
            config_path: Path to config file

        Returns:
            List of error messages (empty if valid)
        """
        errors: list[str] = []

        try:
            self.load(config_path)
        except (FileNotFoundError, ValueError) as e:
            errors.append(str(e))

        return errors

    @staticmethod
    def create_example_config(output_path: str | Path) -> None:
        """
        Create an example configuration file.

        Args:
            output_path: Where to write the example config
        """
        example = {
            "instance": {
                "url": "${SN_URL}",
                "username": "${SN_USERNAME}",
                "password": "${SN_PASSWORD}",
                "timeout": 60,
                "retry_attempts": 3,
                "retry_delay": 2.0,
            },
            "render": {
                "mode": "global",
                "output": "types/incident.d.ts",
                "force": False,
                "include_referenced_tables": False,
                "compare_comments": False,
            },
            "cache": {
                "enabled": True,
                "path": ".sn_typings_cache",
                "ttl_hours": 24,
            },
            "logging": {
                "level": "INFO",
                "output_dir": "./logs",
                "export_json": False,
            },
            "max_workers": 4,
            "tables": [
                "incident",
                "problem",
                "change_request",
            ],
        }

        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(example, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
