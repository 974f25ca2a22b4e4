"""Centralized configuration for the xlsvc client.

Defaults match the hosted service. Values can be overridden from a YAML file
and from environment variables, and are validated before use.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional

import yaml

from xlsvc.utils.result import ConfigError, Err, Ok, Result

DEV_API_BASE = "http://127.0.0.1:5000/api"
PROD_API_BASE = "https://api.xlsvc.jsilverman.ca/api"


def api_base(dev: bool = False) -> str:
    """Return the API base URL for the development or production backend."""
    return DEV_API_BASE if dev else PROD_API_BASE


@dataclass
class ApiConfig:
    """Remote API settings."""

    base_url: str = PROD_API_BASE
    token: Optional[str] = None


@dataclass
class TimeoutConfig:
    """Per-request timeouts in seconds."""

    submit_request: float = 10.0
    status_request: float = 10.0
    history_request: float = 30.0
    download_request: float = 300.0


@dataclass
class PollingConfig:
    """Job status polling and backoff settings."""

    interval: float = 5.0
    max_interval: float = 30.0
    backoff_factor: float = 1.5
    max_attempts: int = 60
    max_consecutive_errors: int = 3
    heartbeat_every: int = 6


@dataclass
class LoggingConfig:
    """Logging settings."""

    level: str = "info"
    format: str = "json"


@dataclass
class ClientConfig:
    """Complete client configuration."""

    api: ApiConfig = field(default_factory=ApiConfig)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> Result["ClientConfig", ConfigError]:
        """
        Load configuration from a YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            Result with loaded config or error
        """
        path = Path(path)

        if not path.exists():
            return Err(ConfigError(
                field="path",
                message=f"Configuration file not found: {path}",
            ))

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            return Err(ConfigError(
                field="yaml",
                message=f"Failed to parse YAML: {e}",
            ))
        except OSError as e:
            return Err(ConfigError(
                field="file",
                message=f"Failed to read config file: {e}",
            ))

        if not isinstance(data, dict):
            return Err(ConfigError(
                field="yaml",
                message="Top-level YAML value must be a mapping",
            ))

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Result["ClientConfig", ConfigError]:
        """
        Create configuration from a dictionary.

        Args:
            data: Configuration dictionary

        Returns:
            Result with loaded config or error
        """
        try:
            api_data = data.get("api", {})
            api = ApiConfig(
                base_url=api_data.get("base_url", PROD_API_BASE),
                token=api_data.get("token"),
            )

            timeouts_data = data.get("timeouts", {})
            timeouts = TimeoutConfig(
                submit_request=float(timeouts_data.get("submit_request", 10.0)),
                status_request=float(timeouts_data.get("status_request", 10.0)),
                history_request=float(timeouts_data.get("history_request", 30.0)),
                download_request=float(timeouts_data.get("download_request", 300.0)),
            )

            polling_data = data.get("polling", {})
            polling = PollingConfig(
                interval=float(polling_data.get("interval", 5.0)),
                max_interval=float(polling_data.get("max_interval", 30.0)),
                backoff_factor=float(polling_data.get("backoff_factor", 1.5)),
                max_attempts=int(polling_data.get("max_attempts", 60)),
                max_consecutive_errors=int(polling_data.get("max_consecutive_errors", 3)),
                heartbeat_every=int(polling_data.get("heartbeat_every", 6)),
            )

            logging_data = data.get("logging", {})
            logging_config = LoggingConfig(
                level=logging_data.get("level", "info"),
                format=logging_data.get("format", "json"),
            )

        except (AttributeError, TypeError, ValueError) as e:
            return Err(ConfigError(
                field="unknown",
                message=f"Failed to parse configuration: {e}",
            ))

        return Ok(cls(
            api=api,
            timeouts=timeouts,
            polling=polling,
            logging=logging_config,
        ))

    def validate(self) -> Result[None, ConfigError]:
        """
        Validate configuration values.

        Returns:
            Result indicating success or validation error
        """
        if not self.api.base_url.startswith(("http://", "https://")):
            return Err(ConfigError(
                field="api.base_url",
                message=f"Must be an http(s) URL, got {self.api.base_url!r}",
            ))

        for name, value in [
            ("submit_request", self.timeouts.submit_request),
            ("status_request", self.timeouts.status_request),
            ("history_request", self.timeouts.history_request),
            ("download_request", self.timeouts.download_request),
        ]:
            if value <= 0:
                return Err(ConfigError(
                    field=f"timeouts.{name}",
                    message=f"Must be positive, got {value}",
                ))

        if self.polling.interval <= 0:
            return Err(ConfigError(
                field="polling.interval",
                message=f"Must be positive, got {self.polling.interval}",
            ))
        if self.polling.max_interval < self.polling.interval:
            return Err(ConfigError(
                field="polling.max_interval",
                message=(
                    f"Must be at least polling.interval ({self.polling.interval}), "
                    f"got {self.polling.max_interval}"
                ),
            ))
        if self.polling.backoff_factor < 1.0:
            return Err(ConfigError(
                field="polling.backoff_factor",
                message=f"Must be at least 1.0, got {self.polling.backoff_factor}",
            ))
        if self.polling.max_attempts < 1:
            return Err(ConfigError(
                field="polling.max_attempts",
                message=f"Must be at least 1, got {self.polling.max_attempts}",
            ))
        if self.polling.max_consecutive_errors < 1:
            return Err(ConfigError(
                field="polling.max_consecutive_errors",
                message=f"Must be at least 1, got {self.polling.max_consecutive_errors}",
            ))
        if self.polling.heartbeat_every < 1:
            return Err(ConfigError(
                field="polling.heartbeat_every",
                message=f"Must be at least 1, got {self.polling.heartbeat_every}",
            ))

        return Ok(None)

    def with_env(self, environ: Optional[dict[str, str]] = None) -> "ClientConfig":
        """
        Return a new config with XLSVC_TOKEN / XLSVC_API_BASE applied.

        Args:
            environ: Environment mapping (defaults to os.environ)

        Returns:
            New ClientConfig
        """
        if environ is None:
            environ = dict(os.environ)

        api = replace(
            self.api,
            base_url=environ.get("XLSVC_API_BASE") or self.api.base_url,
            token=environ.get("XLSVC_TOKEN") or self.api.token,
        )
        return replace(self, api=api)


def load_config(config_dir: Path = None) -> Result[ClientConfig, ConfigError]:
    """
    Load configuration from the standard location.

    Reads config/defaults.yaml when present, then applies environment
    overrides and validates the result.

    Args:
        config_dir: Configuration directory (defaults to ./config)

    Returns:
        Result with loaded config or error
    """
    if config_dir is None:
        config_dir = Path("./config")

    defaults_path = Path(config_dir) / "defaults.yaml"
    if defaults_path.exists():
        result = ClientConfig.from_yaml(defaults_path)
        if result.is_err():
            return result
        config = result.unwrap()
    else:
        config = ClientConfig()

    config = config.with_env()

    validation_result = config.validate()
    if validation_result.is_err():
        return Err(validation_result.unwrap_err())

    return Ok(config)
