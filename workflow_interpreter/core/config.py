"""
Centralized Configuration Module

Provides a unified interface for interpreter and service settings, resolved
from environment variables (optionally seeded from a local .env file).

Configuration resolution order:
1. Environment variables (including values loaded from .env)
2. Default values

Usage:
    from workflow_interpreter.core.config import config

    # Access values
    allow_code = config.WORKFLOW_ALLOW_UNSAFE_CODE_EXECUTION
    port = config.PORT
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_TRUE_VALUES = ("1", "true", "yes", "on")


def _to_bool(value: str) -> bool:
    return value.strip().lower() in _TRUE_VALUES


def _to_int(value: str, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(f"[Config] Invalid integer value {value!r}, using {default}")
        return default


@dataclass
class InterpreterConfig:
    """Centralized configuration for the workflow interpreter service."""

    # Server settings
    PORT: int = 8080
    HOST: str = "0.0.0.0"
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "text"

    # Runner defaults
    WORKFLOW_ALLOW_UNSAFE_CODE_EXECUTION: bool = False
    WORKFLOW_MAX_TOOL_ROUND_TRIPS: int = 50
    WORKFLOW_MODEL: str | None = None
    WORKFLOW_WRAP_AGENT_RESULT: bool = False

    # Tracks whether a .env file contributed values
    _loaded_dotenv: bool = field(default=False, repr=False)

    def load(self) -> None:
        """Load configuration from .env (if present), then env vars."""
        self._loaded_dotenv = load_dotenv(override=False)
        self._apply_values()
        logger.info(
            f"[Config] Loaded (dotenv={self._loaded_dotenv}): "
            f"LOG_LEVEL={self.LOG_LEVEL}, "
            f"WORKFLOW_ALLOW_UNSAFE_CODE_EXECUTION={self.WORKFLOW_ALLOW_UNSAFE_CODE_EXECUTION}, "
            f"WORKFLOW_MAX_TOOL_ROUND_TRIPS={self.WORKFLOW_MAX_TOOL_ROUND_TRIPS}"
        )

    def _apply_values(self) -> None:
        """Fill fields from env vars, falling back to defaults."""
        # Map of config field -> (env var name, default)
        field_map: dict[str, tuple[str, str]] = {
            "PORT": ("PORT", "8080"),
            "HOST": ("HOST", "0.0.0.0"),
            "LOG_LEVEL": ("LOG_LEVEL", "INFO"),
            "LOG_FORMAT": ("LOG_FORMAT", "text"),
            "WORKFLOW_ALLOW_UNSAFE_CODE_EXECUTION": ("WORKFLOW_ALLOW_UNSAFE_CODE_EXECUTION", "false"),
            "WORKFLOW_MAX_TOOL_ROUND_TRIPS": ("WORKFLOW_MAX_TOOL_ROUND_TRIPS", "50"),
            "WORKFLOW_MODEL": ("WORKFLOW_MODEL", ""),
            "WORKFLOW_WRAP_AGENT_RESULT": ("WORKFLOW_WRAP_AGENT_RESULT", "false"),
        }

        for attr, (env_var, default) in field_map.items():
            value = os.environ.get(env_var, default)
            if attr == "PORT":
                setattr(self, attr, _to_int(value, 8080))
            elif attr == "WORKFLOW_MAX_TOOL_ROUND_TRIPS":
                setattr(self, attr, _to_int(value, 50))
            elif attr in ("WORKFLOW_ALLOW_UNSAFE_CODE_EXECUTION", "WORKFLOW_WRAP_AGENT_RESULT"):
                setattr(self, attr, _to_bool(value))
            elif attr == "WORKFLOW_MODEL":
                setattr(self, attr, value or None)
            else:
                setattr(self, attr, value)


# Singleton instance - loaded once at import time
config = InterpreterConfig()
config.load()
