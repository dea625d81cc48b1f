"""Tests for the browser catalog."""

from __future__ import annotations

import pytest

from sauce_build.browsers import BrowserCatalog, DriverType, browser_from_record
from sauce_common.errors import ConfigurationError, ExternalServiceError


pytestmark = pytest.mark.unit_build

WEBDRIVER_RECORDS = [
    {"os": "Windows 10", "api_name": "chrome", "short_version": "118", "long_name": "Google Chrome", "long_version": "118.0."},
    {"os": "Windows 10", "api_name": "chrome", "short_version": "120", "long_name": "Google Chrome", "long_version": "120.0."},
    {"os": "Windows 10", "api_name": "chrome", "short_version": "9", "long_name": "Google Chrome", "long_version": "9.0."},
    {"os": "Linux", "api_name": "firefox", "short_version": "45", "long_name": "Firefox", "long_version": "45.0."},
    {"api_name": "broken"},
]

APPIUM_RECORDS = [
    {
        "os": "Android",
        "api_name": "android",
        "short_version": "12.0",
        "long_name": "Android",
        "device": "Google Pixel 6",
        "device_type": "phone",
        "device_orientation": "portrait",
    }
]


@pytest.fixture
def catalog() -> BrowserCatalog:
    return BrowserCatalog.from_records(WEBDRIVER_RECORDS, APPIUM_RECORDS)


def test_keys_are_built_from_platform_records(catalog) -> None:
    assert catalog.keys(DriverType.WEBDRIVER) == [
        "Linuxfirefox45",
        "Windows10chrome118",
        "Windows10chrome120",
        "Windows10chrome9",
    ]
    assert catalog.keys(DriverType.APPIUM) == ["GooglePixel6android12.0"]


def test_webdriver_lookup(catalog) -> None:
    browser = catalog.webdriver_browser_for_key("Linuxfirefox45")
    assert (browser.os, browser.browser_name, browser.version) == ("Linux", "firefox", "45")


def test_use_latest_picks_highest_version(catalog) -> None:
    browser = catalog.webdriver_browser_for_key("Windows10chrome9", use_latest=True)
    assert browser.version == "120"


def test_unknown_key_is_configuration_error(catalog) -> None:
    with pytest.raises(ConfigurationError):
        catalog.webdriver_browser_for_key("Amigachrome1")
    with pytest.raises(ConfigurationError):
        catalog.appium_browser_for_key("Linuxfirefox45")


def test_uri_and_description_include_device_fields(catalog) -> None:
    browser = catalog.appium_browser_for_key("GooglePixel6android12.0")
    uri = browser.uri("alice", "key")
    assert uri.startswith("sauce-ondemand:?os=Android&browser=android&browser-version=12.0")
    assert "username=alice&access-key=key" in uri
    assert "device=Google Pixel 6" in uri
    described = browser.describe("alice", "key")
    assert described["device-orientation"] == "portrait"
    assert described["url"] == uri


def test_record_without_os_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        browser_from_record({"api_name": "chrome"})


def test_from_rest_tolerates_unavailable_listing() -> None:
    class Client:
        def get_platforms(self, api: str):
            if api == "appium":
                raise ExternalServiceError("down")
            return WEBDRIVER_RECORDS

    catalog = BrowserCatalog.from_rest(Client())
    assert "Linuxfirefox45" in catalog.keys(DriverType.WEBDRIVER)
    assert catalog.keys(DriverType.APPIUM) == []
