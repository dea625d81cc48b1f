"""Load settings snapshots from YAML files with environment overrides."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import ValidationError

from sauce_common.config.env import parse_bool_env, parse_int_env, parse_str_env
from sauce_common.config.settings import JobSettings, PluginSettings
from sauce_common.errors import ConfigurationError

logger = logging.getLogger(__name__)

_PLUGIN_ENV_OVERRIDES = {
    "SAUCE_CONNECT_OPTIONS": "sauce_connect_options",
    "SAUCE_CONNECT_DIR": "sauce_connect_directory",
    "SAUCE_REST_URL": "rest_url",
}


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigurationError(
            f"Settings file not found: {path}", context={"path": path}, cause=exc
        ) from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(
            f"Settings file is not valid YAML: {path}", context={"path": path}, cause=exc
        ) from exc
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigurationError(
            f"Settings file must contain a mapping: {path}", context={"path": path}
        )
    return raw


def _plugin_env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for env_name, field_name in _PLUGIN_ENV_OVERRIDES.items():
        value = parse_str_env(environ.get(env_name))
        if value is not None:
            overrides[field_name] = value
    usage = parse_bool_env(environ.get("SAUCE_SEND_USAGE_DATA"))
    if usage is not None:
        overrides["send_usage_data"] = usage
    retries = parse_int_env(environ.get("SAUCE_HTTP_MAX_RETRIES"))
    if retries is not None:
        overrides["http_max_retries"] = retries
    return overrides


def load_plugin_settings(
    path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> PluginSettings:
    """Build a :class:`PluginSettings` snapshot from YAML plus env overrides."""
    data = _read_yaml(path) if path is not None else {}
    overrides = _plugin_env_overrides(os.environ if environ is None else environ)
    if overrides:
        logger.debug("Applying plugin settings overrides from environment: %s", sorted(overrides))
        data.update(overrides)
    try:
        return PluginSettings.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(
            "Invalid plugin settings", context={"path": path, "errors": exc.errors()}, cause=exc
        ) from exc


def load_job_settings(path: Path) -> JobSettings:
    """Build a :class:`JobSettings` snapshot from a YAML job file."""
    data = _read_yaml(path)
    try:
        return JobSettings.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(
            "Invalid job settings", context={"path": path, "errors": exc.errors()}, cause=exc
        ) from exc
