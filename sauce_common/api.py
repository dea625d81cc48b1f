"""Public API surface for sauce_common."""

from sauce_common.config import (
    InlineCredentials,
    JobSettings,
    PluginSettings,
    load_job_settings,
    load_plugin_settings,
)
from sauce_common.errors import (
    ConfigurationError,
    DecodingError,
    ExecutionError,
    ExternalServiceError,
    SauceError,
)
from sauce_common.logging import configure_logging
from sauce_common.rest_client import SauceRestClient
from sauce_common.variables import replace_macros, resolve_reference, sanitise_build_number

__all__ = [
    "ConfigurationError",
    "DecodingError",
    "ExecutionError",
    "ExternalServiceError",
    "InlineCredentials",
    "JobSettings",
    "PluginSettings",
    "SauceError",
    "SauceRestClient",
    "configure_logging",
    "load_job_settings",
    "load_plugin_settings",
    "replace_macros",
    "resolve_reference",
    "sanitise_build_number",
]
