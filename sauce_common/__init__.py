"""Shared helpers for sauce-ondemand-ci."""

from sauce_common.api import (
    ConfigurationError,
    ExecutionError,
    ExternalServiceError,
    JobSettings,
    PluginSettings,
    SauceError,
    configure_logging,
)

__all__ = [
    "configure_logging",
    "ConfigurationError",
    "ExecutionError",
    "ExternalServiceError",
    "JobSettings",
    "PluginSettings",
    "SauceError",
]
