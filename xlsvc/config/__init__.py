"""Configuration module for xlsvc."""

from xlsvc.config.settings import ClientConfig, PollingConfig, api_base, load_config

__all__ = ["ClientConfig", "PollingConfig", "api_base", "load_config"]
