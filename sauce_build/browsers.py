"""Browser catalog: resolve opaque browser keys into driver parameters."""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from sauce_common.errors import ConfigurationError, ExternalServiceError
from sauce_common.rest_client import SauceRestClient

logger = logging.getLogger(__name__)

_KEY_STRIP = re.compile(r"[^A-Za-z0-9.]")


class DriverType(str, Enum):
    """Test driver categories a browser key belongs to."""

    WEBDRIVER = "webdriver"
    APPIUM = "appium"


@dataclass(frozen=True)
class Browser:
    """A resolved browser/platform combination."""

    key: str
    os: str
    browser_name: str
    version: str
    long_name: str = ""
    long_version: str = ""
    device: Optional[str] = None
    device_type: Optional[str] = None
    device_orientation: Optional[str] = None

    @property
    def platform(self) -> str:
        return self.os

    def uri(self, username: str, access_key: str) -> str:
        """Driver URI understood by the Sauce OnDemand client libraries."""
        parts = [
            f"os={self.os}",
            f"browser={self.browser_name}",
            f"browser-version={self.version}",
            f"username={username}",
            f"access-key={access_key}",
        ]
        if self.device:
            parts.append(f"device={self.device}")
        if self.device_type:
            parts.append(f"device-type={self.device_type}")
        if self.device_orientation:
            parts.append(f"device-orientation={self.device_orientation}")
        return "sauce-ondemand:?" + "&".join(parts)

    def describe(self, username: str, access_key: str) -> Dict[str, str]:
        """Entry of the ``SAUCE_ONDEMAND_BROWSERS`` array."""
        entry = {
            "platform": self.platform,
            "os": self.os,
            "browser": self.browser_name,
            "browser-version": self.version,
            "long-name": self.long_name,
            "long-version": self.long_version,
            "url": self.uri(username, access_key),
        }
        if self.device:
            entry["device"] = self.device
        if self.device_type:
            entry["device-type"] = self.device_type
        if self.device_orientation:
            entry["device-orientation"] = self.device_orientation
        return entry


def browser_key(os_name: str, browser_name: str, version: str, device: Optional[str] = None) -> str:
    """Stable key for a platform record, e.g. ``Windows2012chrome48``."""
    return _KEY_STRIP.sub("", f"{device or os_name}{browser_name}{version}")


def _version_key(version: str) -> Tuple[Tuple[int, Any], ...]:
    parts = []
    for token in re.split(r"[.\-]", version):
        if token.isdigit():
            parts.append((1, int(token)))
        else:
            parts.append((0, token))
    return tuple(parts)


def browser_from_record(record: Mapping[str, Any]) -> Browser:
    """Build a Browser from one REST platform listing entry."""
    os_name = str(record.get("os", "")).strip()
    name = str(record.get("api_name", "")).strip()
    version = str(record.get("short_version", "")).strip()
    if not os_name or not name:
        raise ConfigurationError("Platform record lacks os or api_name", context={"record": dict(record)})
    device = record.get("device") or None
    return Browser(
        key=browser_key(os_name, name, version, device),
        os=os_name,
        browser_name=name,
        version=version,
        long_name=str(record.get("long_name", "")),
        long_version=str(record.get("long_version", "")),
        device=device,
        device_type=record.get("device_type") or None,
        device_orientation=record.get("device_orientation") or None,
    )


class BrowserCatalog:
    """Lookup table from browser key to :class:`Browser`, per driver type."""

    def __init__(
        self,
        webdriver: Iterable[Browser] = (),
        appium: Iterable[Browser] = (),
    ) -> None:
        self._lock = threading.Lock()
        self._browsers: Dict[DriverType, Dict[str, Browser]] = {
            DriverType.WEBDRIVER: {b.key: b for b in webdriver},
            DriverType.APPIUM: {b.key: b for b in appium},
        }

    @classmethod
    def from_records(
        cls,
        webdriver: Iterable[Mapping[str, Any]] = (),
        appium: Iterable[Mapping[str, Any]] = (),
    ) -> "BrowserCatalog":
        return cls(
            webdriver=cls._parse_records(webdriver, DriverType.WEBDRIVER),
            appium=cls._parse_records(appium, DriverType.APPIUM),
        )

    @classmethod
    def from_rest(cls, client: SauceRestClient) -> "BrowserCatalog":
        """Load both platform listings; an unavailable listing yields no browsers."""
        listings: Dict[DriverType, List[Dict[str, Any]]] = {}
        for driver in DriverType:
            try:
                listings[driver] = client.get_platforms(driver.value)
            except ExternalServiceError as exc:
                logger.warning("Unable to load %s platforms: %s", driver.value, exc)
                listings[driver] = []
        return cls.from_records(
            webdriver=listings[DriverType.WEBDRIVER],
            appium=listings[DriverType.APPIUM],
        )

    @staticmethod
    def _parse_records(records: Iterable[Mapping[str, Any]], driver: DriverType) -> List[Browser]:
        browsers = []
        for record in records:
            try:
                browsers.append(browser_from_record(record))
            except ConfigurationError as exc:
                logger.debug("Skipping %s platform record: %s", driver.value, exc)
        return browsers

    def keys(self, driver: DriverType) -> List[str]:
        with self._lock:
            return sorted(self._browsers[driver])

    def webdriver_browser_for_key(self, key: str, use_latest: bool = False) -> Browser:
        browser = self._lookup(DriverType.WEBDRIVER, key)
        if use_latest:
            browser = self._latest(DriverType.WEBDRIVER, browser)
        return browser

    def appium_browser_for_key(self, key: str) -> Browser:
        return self._lookup(DriverType.APPIUM, key)

    def browser_for_key(self, driver: DriverType, key: str, use_latest: bool = False) -> Browser:
        if driver is DriverType.WEBDRIVER:
            return self.webdriver_browser_for_key(key, use_latest)
        return self.appium_browser_for_key(key)

    def _lookup(self, driver: DriverType, key: str) -> Browser:
        with self._lock:
            browser = self._browsers[driver].get(key)
        if browser is None:
            raise ConfigurationError(
                f"Unknown {driver.value} browser key: {key}",
                context={"key": key, "driver": driver.value},
            )
        return browser

    def _latest(self, driver: DriverType, browser: Browser) -> Browser:
        with self._lock:
            candidates = [
                b
                for b in self._browsers[driver].values()
                if b.os == browser.os and b.browser_name == browser.browser_name
            ]
        return max(candidates, key=lambda b: _version_key(b.version), default=browser)
