"""Environment variables exposed to a build's test processes."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Mapping, MutableMapping, Optional, Sequence, Tuple

from sauce_build.browsers import Browser, BrowserCatalog, DriverType
from sauce_common.config.settings import JobSettings
from sauce_common.errors import SauceError
from sauce_common.host import BuildListener
from sauce_common.variables import resolve_reference, sanitise_build_number
from sauce_tunnel.credentials import CredentialRef

logger = logging.getLogger(__name__)

SAUCE_USERNAME = "SAUCE_USERNAME"
SAUCE_USER_NAME = "SAUCE_USER_NAME"
SAUCE_ACCESS_KEY = "SAUCE_ACCESS_KEY"
SAUCE_API_KEY = "SAUCE_API_KEY"
SELENIUM_HOST = "SELENIUM_HOST"
SELENIUM_PORT = "SELENIUM_PORT"
SELENIUM_DRIVER = "SELENIUM_DRIVER"
SELENIUM_BROWSER = "SELENIUM_BROWSER"
SELENIUM_PLATFORM = "SELENIUM_PLATFORM"
SELENIUM_VERSION = "SELENIUM_VERSION"
SELENIUM_DEVICE = "SELENIUM_DEVICE"
SELENIUM_DEVICE_TYPE = "SELENIUM_DEVICE_TYPE"
SELENIUM_DEVICE_ORIENTATION = "SELENIUM_DEVICE_ORIENTATION"
SELENIUM_STARTING_URL = "SELENIUM_STARTING_URL"
SAUCE_ONDEMAND_BROWSERS = "SAUCE_ONDEMAND_BROWSERS"
SAUCE_NATIVE_APP = "SAUCE_NATIVE_APP"
SAUCE_USE_CHROME = "SAUCE_USE_CHROME"
TUNNEL_IDENTIFIER = "TUNNEL_IDENTIFIER"
JENKINS_BUILD_NUMBER = "JENKINS_BUILD_NUMBER"

DEFAULT_PUBLIC_HOST = "ondemand.saucelabs.com"

# Build variables that take precedence over values computed from selections.
OVERRIDABLE_KEYS = (SELENIUM_BROWSER, SELENIUM_VERSION, SELENIUM_PLATFORM)

_MASK = "****"


class EnvironmentMap:
    """Ordered ``(key, value)`` pairs where the first write of a key wins."""

    def __init__(self) -> None:
        self._entries: Dict[str, str] = {}

    def set(self, key: str, value: Optional[str]) -> bool:
        """Record ``value`` for ``key``; returns False if dropped.

        None values are omitted and later writes of an existing key are
        ignored.
        """
        if value is None or key in self._entries:
            return False
        self._entries[key] = value
        return True

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self._entries.get(key, default)

    def items(self) -> List[Tuple[str, str]]:
        return list(self._entries.items())

    def keys(self) -> List[str]:
        return list(self._entries)

    def to_dict(self) -> Dict[str, str]:
        return dict(self._entries)

    def apply_to(self, env: MutableMapping[str, str]) -> None:
        env.update(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EnvironmentMap):
            return NotImplemented
        return self.items() == other.items()

    def __repr__(self) -> str:
        return f"EnvironmentMap({self.keys()!r})"


@dataclass(frozen=True)
class BrowserSelection:
    """Browser keys chosen for a build, partitioned by driver type."""

    webdriver: Tuple[str, ...] = ()
    appium: Tuple[str, ...] = ()
    use_latest: bool = False

    @classmethod
    def from_job(cls, job: JobSettings) -> "BrowserSelection":
        return cls(
            webdriver=tuple(job.webdriver_browsers),
            appium=tuple(job.appium_browsers),
            use_latest=job.use_latest_version,
        )

    def keys(self) -> List[Tuple[DriverType, str]]:
        return [(DriverType.WEBDRIVER, k) for k in self.webdriver] + [
            (DriverType.APPIUM, k) for k in self.appium
        ]

    def __bool__(self) -> bool:
        return bool(self.webdriver or self.appium)


def resolve_host(
    configured: Optional[str],
    *,
    tunnel_enabled: bool,
    local_hostname: Optional[str],
) -> Optional[str]:
    """Host the build's tests should point their drivers at.

    A configured value that is a single variable reference is looked up in
    the process environment only; an unset variable yields None.
    """
    if configured and configured.strip():
        return resolve_reference(configured.strip())
    if tunnel_enabled:
        return local_hostname or "localhost"
    return DEFAULT_PUBLIC_HOST


def format_port(port: Optional[int]) -> Optional[str]:
    """Port as a string, or None when no port could be resolved."""
    if port is None:
        return None
    return str(int(port))


@dataclass
class SynthesisRequest:
    """Everything the synthesizer needs for one build."""

    selection: BrowserSelection
    credentials: Optional[CredentialRef]
    tunnel_port: Optional[int]
    build_number: str
    tunnel_identifier: Optional[str] = None
    host: Optional[str] = None
    native_app: Optional[str] = None
    starting_url: Optional[str] = None
    use_chrome_for_android: bool = False
    build_variables: Mapping[str, str] = field(default_factory=dict)


class EnvironmentSynthesizer:
    """Compute a build's :class:`EnvironmentMap` from resolved inputs."""

    def __init__(self, catalog: BrowserCatalog) -> None:
        self._catalog = catalog

    def resolve_browsers(
        self,
        selection: BrowserSelection,
        listener: Optional[BuildListener] = None,
    ) -> List[Browser]:
        browsers = []
        for driver, key in selection.keys():
            try:
                browsers.append(self._catalog.browser_for_key(driver, key, selection.use_latest))
            except SauceError as exc:
                logger.warning("Unable to resolve %s browser %s: %s", driver.value, key, exc)
                if listener is not None:
                    listener.log(f"Unable to resolve browser {key}: {exc}")
        return browsers

    def synthesize(
        self,
        request: SynthesisRequest,
        *,
        listener: Optional[BuildListener] = None,
        verbose: bool = False,
    ) -> EnvironmentMap:
        env = EnvironmentMap()
        username = request.credentials.username if request.credentials else ""
        access_key = request.credentials.access_key if request.credentials else ""

        for key in OVERRIDABLE_KEYS:
            env.set(key, request.build_variables.get(key))

        browsers = self.resolve_browsers(request.selection, listener)
        self._emit_browsers(env, browsers, username, access_key)

        env.set(JENKINS_BUILD_NUMBER, sanitise_build_number(request.build_number))
        if request.credentials is not None:
            env.set(SAUCE_USER_NAME, username)
            env.set(SAUCE_USERNAME, username)
            env.set(SAUCE_API_KEY, access_key)
            env.set(SAUCE_ACCESS_KEY, access_key)
        env.set(SELENIUM_HOST, request.host)
        if request.starting_url:
            env.set(SELENIUM_STARTING_URL, request.starting_url)
        if request.native_app and request.native_app.strip():
            env.set(SAUCE_NATIVE_APP, request.native_app)
        if request.tunnel_identifier:
            env.set(TUNNEL_IDENTIFIER, request.tunnel_identifier)
        env.set(SAUCE_USE_CHROME, "true" if request.use_chrome_for_android else "false")
        env.set(SELENIUM_PORT, format_port(request.tunnel_port))

        if verbose and listener is not None:
            self._echo(env, listener, access_key)
        return env

    @staticmethod
    def _emit_browsers(
        env: EnvironmentMap,
        browsers: Sequence[Browser],
        username: str,
        access_key: str,
    ) -> None:
        if len(browsers) == 1:
            browser = browsers[0]
            env.set(SELENIUM_PLATFORM, browser.platform)
            env.set(SELENIUM_BROWSER, browser.browser_name)
            env.set(SELENIUM_VERSION, browser.version)
            env.set(SELENIUM_DRIVER, browser.uri(username, access_key))
            env.set(SELENIUM_DEVICE, browser.device)
            env.set(SELENIUM_DEVICE_TYPE, browser.device_type)
            env.set(SELENIUM_DEVICE_ORIENTATION, browser.device_orientation)
        if browsers:
            env.set(
                SAUCE_ONDEMAND_BROWSERS,
                json.dumps([b.describe(username, access_key) for b in browsers]),
            )

    @staticmethod
    def _echo(env: EnvironmentMap, listener: BuildListener, access_key: str) -> None:
        listener.log("The Sauce plugin has set the following environment variables:")
        for key, value in env.items():
            if access_key:
                value = value.replace(access_key, _MASK)
            listener.log(f"    {key}={value}")
