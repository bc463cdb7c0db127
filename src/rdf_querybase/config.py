"""
Configuration for RDF-QueryBase.

Provides:
- Binding, storage and logging sections
- JSON persistence
- Environment overrides
- Configuration validation
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

ENV_CONFIG = "RDFQUERYBASE_CONFIG"
ENV_QUERIES_DIR = "RDFQUERYBASE_QUERIES_DIR"
ENV_LOG_LEVEL = "RDFQUERYBASE_LOG_LEVEL"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigValidationError(Exception):
    """Configuration validation error."""
    pass


@dataclass
class BindingConfig:
    """How runtime bindings are accepted."""
    accept_results_format: bool = True  # SPARQL-JSON results.bindings as a binding set

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accept_results_format": self.accept_results_format
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BindingConfig":
        return cls(
            accept_results_format=data.get("accept_results_format", True)
        )


@dataclass
class StorageConfig:
    """Stored-query persistence."""
    queries_dir: str = "./data/queries"
    history_limit: int = 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "queries_dir": self.queries_dir,
            "history_limit": self.history_limit
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StorageConfig":
        return cls(
            queries_dir=data.get("queries_dir", "./data/queries"),
            history_limit=data.get("history_limit", 1000)
        )


@dataclass
class LoggingConfig:
    """Log level for the rdf_querybase package logger."""
    level: str = "INFO"

    def to_dict(self) -> Dict[str, Any]:
        return {"level": self.level}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoggingConfig":
        return cls(level=data.get("level", "INFO"))

    def apply(self) -> None:
        """Set the package logger level. Handlers are left to the application."""
        logging.getLogger("rdf_querybase").setLevel(self.level.upper())


@dataclass
class QueryBaseConfig:
    """Complete configuration."""
    binding: BindingConfig = field(default_factory=BindingConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "binding": self.binding.to_dict(),
            "storage": self.storage.to_dict(),
            "logging": self.logging.to_dict()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueryBaseConfig":
        config = cls(
            binding=BindingConfig.from_dict(data.get("binding", {})),
            storage=StorageConfig.from_dict(data.get("storage", {})),
            logging=LoggingConfig.from_dict(data.get("logging", {}))
        )
        ConfigValidator.validate_or_raise(config)
        return config

    def save(self, path: Path) -> None:
        """Save configuration to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: Path) -> "QueryBaseConfig":
        """Load configuration from a JSON file; defaults if it does not exist."""
        path = Path(path)
        if path.exists():
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return cls.from_dict(data)
        logger.debug(f"No config file at {path}, using defaults")
        return cls()

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "QueryBaseConfig":
        """
        Build configuration from the environment.

        RDFQUERYBASE_CONFIG names a JSON file to start from;
        RDFQUERYBASE_QUERIES_DIR and RDFQUERYBASE_LOG_LEVEL override
        single settings.
        """
        environ = os.environ if environ is None else environ

        config_path = environ.get(ENV_CONFIG)
        config = cls.load(Path(config_path)) if config_path else cls()

        if environ.get(ENV_QUERIES_DIR):
            config.storage.queries_dir = environ[ENV_QUERIES_DIR]
        if environ.get(ENV_LOG_LEVEL):
            config.logging.level = environ[ENV_LOG_LEVEL].upper()

        ConfigValidator.validate_or_raise(config)
        return config


class ConfigValidator:
    """Validates configuration."""

    @staticmethod
    def validate(config: QueryBaseConfig) -> List[str]:
        """
        Validate configuration.

        Returns list of error messages (empty if valid).
        """
        errors = []

        if not isinstance(config.binding.accept_results_format, bool):
            errors.append("accept_results_format must be a boolean")

        if not config.storage.queries_dir:
            errors.append("queries_dir must not be empty")

        if isinstance(config.storage.history_limit, bool) or not isinstance(config.storage.history_limit, int):
            errors.append("history_limit must be an integer")
        elif config.storage.history_limit < 0:
            errors.append("history_limit cannot be negative")

        if str(config.logging.level).upper() not in LOG_LEVELS:
            errors.append(f"Invalid log level: {config.logging.level}")

        return errors

    @staticmethod
    def validate_or_raise(config: QueryBaseConfig) -> None:
        """Validate configuration, raising on errors."""
        errors = ConfigValidator.validate(config)
        if errors:
            raise ConfigValidationError("; ".join(errors))
