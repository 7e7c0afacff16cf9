"""Configuration for the payment backend, loaded from the environment."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field

from dotenv import load_dotenv

_UNSIGNED = re.compile(r"\+?[0-9]+")


class ConfigError(ValueError):
    """Raised when the configuration is missing or invalid."""


def _parse_unsigned(name: str, text: str, bits: int) -> int:
    if not _UNSIGNED.fullmatch(text):
        raise ConfigError(f"Invalid {name}: {text!r} is not an unsigned integer")
    value = int(text)
    if value >= 1 << bits:
        raise ConfigError(f"Invalid {name}: {value} is out of range")
    return value


def _parse_bool(name: str, text: str) -> bool:
    if text == "true":
        return True
    if text == "false":
        return False
    raise ConfigError(f"Invalid {name} (expected true/false): {text!r}")


@dataclass(frozen=True, kw_only=True)
class Config:
    """Settings for the payment backend service."""

    redis_url: str = "redis://localhost:6379"
    api_host: str = "0.0.0.0"
    api_port: int = 8081
    polling_interval_secs: int = 60
    mock_mode: bool = True
    payment_address: str = "u1test_mock_address"
    zcash_node_url: str | None = None
    zcash_node_user: str | None = None
    zcash_node_password: str | None = field(default=None, repr=False)

    @classmethod
    def from_env(cls) -> "Config":
        """Build a configuration from environment variables (and a .env file)."""
        load_dotenv()
        env = os.environ
        config = cls(
            redis_url=env.get("REDIS_URL", "redis://localhost:6379"),
            api_host=env.get("API_HOST", "0.0.0.0"),
            api_port=_parse_unsigned("API_PORT", env.get("API_PORT", "8081"), 16),
            polling_interval_secs=_parse_unsigned(
                "POLLING_INTERVAL_SECS", env.get("POLLING_INTERVAL_SECS", "60"), 64
            ),
            mock_mode=_parse_bool("MOCK_MODE", env.get("MOCK_MODE", "true")),
            zcash_node_url=env.get("ZCASH_NODE_URL"),
            zcash_node_user=env.get("ZCASH_NODE_USER"),
            zcash_node_password=env.get("ZCASH_NODE_PASSWORD"),
            payment_address=env.get("PAYMENT_ADDRESS", "u1test_mock_address"),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Raise ConfigError if the settings are inconsistent."""
        if self.api_port == 0:
            raise ConfigError("API_PORT must be greater than 0")
        if self.polling_interval_secs == 0:
            raise ConfigError("POLLING_INTERVAL_SECS must be greater than 0")
        if not self.mock_mode and self.zcash_node_url is None:
            raise ConfigError("ZCASH_NODE_URL is required when MOCK_MODE=false")

    def api_address(self) -> str:
        """Return the host:port the API server binds to."""
        return f"{self.api_host}:{self.api_port}"