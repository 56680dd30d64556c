"""Relay configuration from the environment or a versioned JSON file."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping

from turnrelay.session.exceptions import RelayError

RELAY_CONFIG_VERSION = 1

LOG_LEVEL_ENV = "TURNRELAY_LOG_LEVEL"
REQUEST_TIMEOUT_ENV = "TURNRELAY_REQUEST_TIMEOUT_SECONDS"
INTERRUPT_TIMEOUT_ENV = "TURNRELAY_INTERRUPT_TIMEOUT_SECONDS"
FORWARD_URL_ENV = "TURNRELAY_FORWARD_URL"

DEFAULT_LOG_LEVEL = "WARNING"
DEFAULT_REQUEST_TIMEOUT_SECONDS = 600.0
DEFAULT_INTERRUPT_TIMEOUT_SECONDS = 30.0
DEFAULT_CLIENT_NAME = "turnrelay-client"

_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")
_SUPPORTED_KEYS = {
    "config_version",
    "log_level",
    "request_timeout_seconds",
    "interrupt_timeout_seconds",
    "client_name",
    "client_version",
    "forward_url",
    "developer_instructions",
}


class ConfigError(RelayError):
    """Raised when relay configuration is malformed."""


def _default_client_version() -> str:
    from turnrelay import __version__

    return __version__


@dataclass(frozen=True, slots=True)
class RelayConfig:
    log_level: str = DEFAULT_LOG_LEVEL
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    interrupt_timeout_seconds: float = DEFAULT_INTERRUPT_TIMEOUT_SECONDS
    client_name: str = DEFAULT_CLIENT_NAME
    client_version: str | None = None
    forward_url: str | None = None
    developer_instructions: str | None = None

    def __post_init__(self) -> None:
        level = self.log_level.strip().upper()
        if level not in _LOG_LEVELS:
            raise ConfigError(
                f"Unsupported log level {self.log_level!r}; expected one of {', '.join(_LOG_LEVELS)}."
            )
        object.__setattr__(self, "log_level", level)
        for name in ("request_timeout_seconds", "interrupt_timeout_seconds"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be greater than zero.")
        if self.client_version is None:
            object.__setattr__(self, "client_version", _default_client_version())

    @property
    def logging_level(self) -> int:
        return getattr(logging, self.log_level)

    def client_info(self) -> dict[str, str]:
        return {"name": self.client_name, "version": str(self.client_version)}

    def to_dict(self) -> dict[str, Any]:
        return {
            "config_version": RELAY_CONFIG_VERSION,
            "log_level": self.log_level,
            "request_timeout_seconds": self.request_timeout_seconds,
            "interrupt_timeout_seconds": self.interrupt_timeout_seconds,
            "client_name": self.client_name,
            "client_version": self.client_version,
            "forward_url": self.forward_url,
            "developer_instructions": self.developer_instructions,
        }

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "RelayConfig":
        """Build a config from ``TURNRELAY_*`` variables.

        Unparseable or non-positive timeouts fall back to their defaults.
        """
        env = os.environ if environ is None else environ
        return cls(
            log_level=env.get(LOG_LEVEL_ENV, "").strip() or DEFAULT_LOG_LEVEL,
            request_timeout_seconds=_env_seconds(env, REQUEST_TIMEOUT_ENV, DEFAULT_REQUEST_TIMEOUT_SECONDS),
            interrupt_timeout_seconds=_env_seconds(
                env, INTERRUPT_TIMEOUT_ENV, DEFAULT_INTERRUPT_TIMEOUT_SECONDS
            ),
            forward_url=env.get(FORWARD_URL_ENV, "").strip() or None,
        )

    def with_overrides(self, **changes: Any) -> "RelayConfig":
        return replace(self, **{key: value for key, value in changes.items() if value is not None})


def _env_seconds(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None:
        return default
    try:
        parsed = float(raw)
    except ValueError:
        return default
    if parsed <= 0:
        return default
    return parsed


def load_relay_config(path: str | Path) -> RelayConfig:
    """Load a relay config from JSON."""
    config_path = Path(path)
    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise
    except json.JSONDecodeError as error:
        raise ConfigError(f"Invalid relay config JSON ({config_path}): {error}") from error

    if not isinstance(raw, dict):
        raise ConfigError(f"Relay config must be a JSON object ({config_path}).")

    version = raw.get("config_version")
    if version != RELAY_CONFIG_VERSION:
        raise ConfigError(
            f"Unsupported relay config version {version!r}; expected {RELAY_CONFIG_VERSION}."
        )

    unknown = sorted(set(raw) - _SUPPORTED_KEYS)
    if unknown:
        raise ConfigError(f"Relay config contains unsupported keys: {', '.join(unknown)}")

    values = {key: value for key, value in raw.items() if key != "config_version"}
    for key in ("request_timeout_seconds", "interrupt_timeout_seconds"):
        if key in values and (isinstance(values[key], bool) or not isinstance(values[key], (int, float))):
            raise ConfigError(f"Relay config key '{key}' must be a number.")
    for key in ("log_level", "client_name", "client_version", "forward_url", "developer_instructions"):
        if key in values and values[key] is not None and not isinstance(values[key], str):
            raise ConfigError(f"Relay config key '{key}' must be a string.")
    if values.get("log_level") is None:
        values.pop("log_level", None)
    if values.get("client_name") is None:
        values.pop("client_name", None)
    return RelayConfig(**values)
