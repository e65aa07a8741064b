"""
Base configuration management for cfmm-sync.

Settings are dataclass fields whose defaults are read from the environment
(a local .env file is loaded first). Parse failures and out-of-range values
raise ConfigError when the config class is defined or instantiated.
"""

import os
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from eth_utils import is_address, to_checksum_address

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

ENVIRONMENTS = ("local", "dev", "test", "staging", "production")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_TRUE = ("true", "1", "yes", "on")
_FALSE = ("false", "0", "no", "off", "")


class ConfigError(Exception):
    """Exception raised for configuration-related errors."""
    pass


@dataclass
class BaseConfig:
    """Shared settings and environment parsing for every config section."""

    DATA_DIR: Path = Path(os.getenv("CFMM_DATA_DIR", "data"))
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "local")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    def __post_init__(self):
        self._validate_config()
        self._setup_logging()

    def _setup_logging(self):
        logging.basicConfig(
            level=getattr(logging, self.LOG_LEVEL.upper()),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    def _validate_config(self):
        """Validate configuration values."""
        if self.ENVIRONMENT not in ENVIRONMENTS:
            raise ConfigError(f"Invalid environment: {self.ENVIRONMENT}")
        if self.LOG_LEVEL.upper() not in LOG_LEVELS:
            raise ConfigError(f"Invalid LOG_LEVEL: {self.LOG_LEVEL}")

    @staticmethod
    def get_env(key: str, default: Optional[str] = None, required: bool = False) -> Optional[str]:
        """
        Get environment variable with validation.

        Args:
            key: Environment variable name
            default: Default value if not found
            required: Whether the variable is required

        Raises:
            ConfigError: If required variable is missing
        """
        value = os.getenv(key, default)
        if required and value is None:
            raise ConfigError(f"Required environment variable '{key}' is not set")
        return value

    @staticmethod
    def get_env_int(key: str, default: int, minimum: Optional[int] = None) -> int:
        """Get environment variable as an integer, optionally bounded below."""
        raw = os.getenv(key)
        if raw is None:
            return default
        try:
            value = int(raw)
        except ValueError:
            raise ConfigError(f"Environment variable '{key}' must be an integer, got: {raw}")
        if minimum is not None and value < minimum:
            raise ConfigError(f"Environment variable '{key}' must be >= {minimum}, got: {value}")
        return value

    @staticmethod
    def get_env_float(key: str, default: float, minimum: Optional[float] = None) -> float:
        """Get environment variable as a float, optionally bounded below."""
        raw = os.getenv(key)
        if raw is None:
            return default
        try:
            value = float(raw)
        except ValueError:
            raise ConfigError(f"Environment variable '{key}' must be a number, got: {raw}")
        if minimum is not None and value < minimum:
            raise ConfigError(f"Environment variable '{key}' must be >= {minimum}, got: {value}")
        return value

    @staticmethod
    def get_env_bool(key: str, default: bool = False) -> bool:
        """Get environment variable as boolean; unrecognised values are an error."""
        raw = os.getenv(key)
        if raw is None:
            return default
        value = raw.strip().lower()
        if value in _TRUE:
            return True
        if value in _FALSE:
            return False
        raise ConfigError(f"Environment variable '{key}' must be a boolean, got: {raw}")

    @staticmethod
    def get_env_address(key: str, default: str) -> str:
        """Get environment variable as a checksummed contract address."""
        value = os.getenv(key, default)
        if not is_address(value):
            raise ConfigError(f"Environment variable '{key}' is not a valid address: {value}")
        return to_checksum_address(value)

    def to_dict(self) -> Dict[str, Any]:
        """Settings as a plain dictionary (paths rendered as strings)."""
        return {
            f.name: str(getattr(self, f.name)) if isinstance(getattr(self, f.name), Path) else getattr(self, f.name)
            for f in fields(self)
        }
