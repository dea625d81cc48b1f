"""Immutable settings snapshots for the plugin and for individual jobs."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

DEFAULT_REST_URL = "https://saucelabs.com/rest/v1"


class InlineCredentials(BaseModel):
    """Username/access key pair stored directly in a settings file."""

    model_config = ConfigDict(frozen=True)

    username: str = Field(default="", description="Sauce Labs username")
    access_key: SecretStr = Field(default=SecretStr(""), description="Sauce Labs access key")

    def is_blank(self) -> bool:
        return not self.username.strip() and not self.access_key.get_secret_value().strip()


class PluginSettings(BaseModel):
    """Plugin-wide defaults shared by every job on the build host."""

    model_config = ConfigDict(frozen=True)

    credentials: Optional[InlineCredentials] = Field(
        default=None, description="Default credentials used when a job names none"
    )
    credential_store: Dict[str, InlineCredentials] = Field(
        default_factory=dict, description="Named credentials, keyed by credential id"
    )
    sauce_connect_options: str = Field(
        default="", description="Command-line options appended to every job's options"
    )
    sauce_connect_directory: Optional[Path] = Field(
        default=None, description="Working directory for the Sauce Connect process"
    )
    rest_url: str = Field(default=DEFAULT_REST_URL, description="Base URL of the Sauce REST API")
    send_usage_data: bool = Field(default=False, description="Report CI usage to Sauce Labs")
    public_jobs: bool = Field(default=False, description="Visibility flag set on reconciled jobs")
    host_version: str = Field(default="unknown", description="Version reported with usage data")
    http_timeout_seconds: float = Field(default=10.0, gt=0, description="REST request timeout")
    http_max_retries: int = Field(default=3, ge=0, description="Retries on 5xx/connection errors")
    tunnel_ready_timeout_seconds: float = Field(
        default=120.0, gt=0, description="How long to wait for Sauce Connect to come up"
    )

    @field_validator("rest_url")
    @classmethod
    def _http_rest_url(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError(f"rest_url must be an http(s) URL, got: {value}")
        return value.rstrip("/")


class JobSettings(BaseModel):
    """Per-job configuration of the Sauce build wrapper."""

    model_config = ConfigDict(frozen=True)

    enable_sauce_connect: bool = Field(default=False, description="Start a tunnel for each build")
    credential_id: Optional[str] = Field(default=None, description="Credential store id")
    credentials: Optional[InlineCredentials] = Field(
        default=None, description="Legacy inline credentials (migrated on load)"
    )
    selenium_host: Optional[str] = Field(default=None, description="Literal host or $VARIABLE")
    selenium_port: Optional[str] = Field(default=None, description="Literal port or $VARIABLE")
    options: Optional[str] = Field(default=None, description="Job Sauce Connect options")
    sauce_connect_path: Optional[str] = Field(default=None, description="Sauce Connect binary")
    sauce_connect_jar: Optional[str] = Field(default=None, description="Legacy Sauce Connect jar")
    launch_sauce_connect_on_slave: bool = Field(
        default=True, description="Launch the tunnel on the node executing the build"
    )
    verbose_logging: bool = Field(default=True, description="Echo variables to the build console")
    use_latest_version: bool = Field(default=False, description="Pick newest browser versions")
    webdriver_browsers: List[str] = Field(default_factory=list, description="WebDriver browser keys")
    appium_browsers: List[str] = Field(default_factory=list, description="Appium browser keys")
    starting_url: Optional[str] = Field(default=None, description="SELENIUM_STARTING_URL value")
    native_app_package: Optional[str] = Field(default=None, description="SAUCE_NATIVE_APP value")
    use_chrome_for_android: bool = Field(default=False, description="SAUCE_USE_CHROME value")
    use_generated_tunnel_identifier: bool = Field(
        default=False, description="Generate a tunnel identifier and port per build"
    )

    @field_validator("webdriver_browsers", "appium_browsers", mode="before")
    @classmethod
    def _none_as_empty(cls, value: object) -> object:
        return [] if value is None else value
