"""Configuration loading and validation."""

import json
import re
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from .errors import ConfigError


_CONSTANT_PATTERN = re.compile(r"^[A-Z0-9_]+$")


class BrowserConfig(BaseModel):
    """Playwright backend settings."""
    headless: bool = Field(default=True)
    user_data_dir: str = Field(default="./data/browser")
    default_timeout_ms: int = Field(default=30000, ge=100)
    viewport_width: int = Field(default=1280, ge=320)
    viewport_height: int = Field(default=720, ge=240)
    screenshot_on_error: bool = Field(default=True)

    # Pauses after each successful action so the page can settle
    navigate_settle_ms: int = Field(default=2000, ge=0)
    fill_settle_ms: int = Field(default=500, ge=0)
    click_settle_ms: int = Field(default=1000, ge=0)
    upload_settle_ms: int = Field(default=1000, ge=0)


class ResolverConfig(BaseModel):
    """Template and selector resolution settings."""
    # Exact-key lookup only unless enabled
    dotted_paths: bool = Field(default=False)
    selectors: dict[str, str] = Field(default_factory=dict)

    @field_validator("selectors")
    @classmethod
    def _check_selector_constants(cls, value: dict[str, str]) -> dict[str, str]:
        for constant in value:
            if not _CONSTANT_PATTERN.match(constant):
                raise ValueError(
                    f"selector constant must be uppercase letters, digits and underscores: {constant!r}"
                )
        return value


class LoggingConfig(BaseModel):
    """Logging output settings."""
    level: str = Field(default="INFO")
    format: str = Field(default="console")
    log_dir: Optional[str] = Field(default=None)

    @field_validator("level")
    @classmethod
    def _check_level(cls, value: str) -> str:
        value = value.upper()
        if value not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level: {value}")
        return value

    @field_validator("format")
    @classmethod
    def _check_format(cls, value: str) -> str:
        if value not in ("console", "json"):
            raise ValueError(f"log format must be 'console' or 'json', got {value!r}")
        return value


class EngineConfig(BaseModel):
    """Main engine configuration."""
    name: str = Field(default="rpa-dfs-engine")
    version: str = Field(default="0.1.0")

    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    resolver: ResolverConfig = Field(default_factory=ResolverConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    # Run history database; disabled when unset
    results_db: Optional[str] = Field(default=None)


class ConfigLoader:
    """Loads and validates YAML/JSON engine configuration."""

    def __init__(self, config_dir: str = "./config"):
        self.config_dir = Path(config_dir)

    def load_engine_config(self, path: Optional[str] = None) -> EngineConfig:
        """
        Load engine configuration.

        Without an explicit path, ``<config_dir>/engine.yaml`` is used when it
        exists; otherwise defaults are returned.
        """
        if path is None:
            default_path = self.config_dir / "engine.yaml"
            if not default_path.exists():
                return EngineConfig()
            file_path = default_path
        else:
            file_path = Path(path)

        data = self._load_file(file_path)
        try:
            return EngineConfig(**data)
        except Exception as e:
            raise ConfigError(f"Invalid engine config: {e}", config_path=str(file_path))

    def _load_file(self, path: Path) -> dict[str, Any]:
        """Load YAML or JSON file."""
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}", config_path=str(path))

        try:
            content = path.read_text()
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(content) or {}
            elif path.suffix == ".json":
                data = json.loads(content)
            else:
                raise ConfigError(
                    f"Unsupported config format: {path.suffix}",
                    config_path=str(path)
                )
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML: {e}", config_path=str(path))
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON: {e}", config_path=str(path))

        if not isinstance(data, dict):
            raise ConfigError(
                f"Config root must be a mapping, got {type(data).__name__}",
                config_path=str(path),
            )
        return data
