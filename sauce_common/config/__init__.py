"""Settings models and loaders."""

from sauce_common.config.loader import load_job_settings, load_plugin_settings
from sauce_common.config.settings import InlineCredentials, JobSettings, PluginSettings

__all__ = [
    "InlineCredentials",
    "JobSettings",
    "PluginSettings",
    "load_job_settings",
    "load_plugin_settings",
]
