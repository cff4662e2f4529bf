"""Configuration management for tabswitch."""

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from loguru import logger
from pydantic import BaseModel, Field, ValidationError, field_validator

from ..errors import ConfigError


DEFAULT_SOCKET = Path.home() / ".cache" / "tabswitch" / "daemon.sock"


class ServerConfig(BaseModel):
    socket_path: Path = DEFAULT_SOCKET

    @field_validator("socket_path")
    @classmethod
    def expand_socket_path(cls, v: Path) -> Path:
        return Path(v).expanduser()


class RecencyConfig(BaseModel):
    compaction_interval: float = 1.0

    @field_validator("compaction_interval")
    @classmethod
    def validate_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("compaction_interval must be positive")
        return v


class SearchConfig(BaseModel):
    min_score: float = 0.0

    @field_validator("min_score")
    @classmethod
    def validate_min_score(cls, v: float) -> float:
        if not 0 <= v <= 1:
            raise ValueError("min_score must be between 0 and 1")
        return v


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_dir: Optional[Path] = None


class ProviderConfig(BaseModel):
    factory: str = "tabswitch.daemon.providers:InMemoryTabProvider"
    tabs: List[Dict[str, Any]] = Field(default_factory=list)


class Config(BaseModel):
    """Main configuration for the tabswitch daemon and CLI."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    recency: RecencyConfig = Field(default_factory=RecencyConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    provider: ProviderConfig = Field(default_factory=ProviderConfig)

    @classmethod
    def candidates(cls) -> List[Path]:
        return [
            Path("tabswitch.yaml"),
            Path.home() / ".config" / "tabswitch" / "config.yaml",
            Path("/etc/tabswitch/config.yaml"),
        ]

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Config":
        """
        Load configuration from YAML.

        Without an explicit path the default locations are searched and the
        built-in defaults are used when none exists.
        """
        if config_path is None:
            for candidate in cls.candidates():
                if candidate.exists():
                    config_path = candidate
                    break
            else:
                logger.debug("No config file found, using defaults")
                return cls()

        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")

        logger.info(f"Loading config from: {config_path}")
        try:
            with open(config_path, "r") as f:
                data = yaml.safe_load(f) or {}
            return cls(**data)
        except (yaml.YAMLError, ValidationError, TypeError) as e:
            raise ConfigError(f"Invalid config {config_path}: {e}") from e

    def save(self, config_path: Path) -> None:
        """Save configuration to YAML file."""
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            yaml.safe_dump(self.model_dump(mode="json"), f, default_flow_style=False)
