"""Tests for the Sauce REST client."""

from __future__ import annotations

import io
import json
from urllib import error

import pytest

from sauce_common.errors import ConfigurationError, ExternalServiceError
from sauce_common.rest_client import SauceRestClient


pytestmark = pytest.mark.unit_common


class _Response:
    def __init__(self, status: int, body: object) -> None:
        self.status = status
        self._body = json.dumps(body).encode("utf-8")

    def read(self) -> bytes:
        return self._body

    def __enter__(self) -> "_Response":
        return self

    def __exit__(self, *exc: object) -> None:
        return None


def _client() -> SauceRestClient:
    return SauceRestClient(username="alice", access_key="secret", backoff_base=0.0, max_retries=2)


def test_get_job_info_uses_basic_auth(monkeypatch) -> None:
    seen = {}

    def fake_urlopen(req, timeout):
        seen["url"] = req.full_url
        seen["auth"] = req.get_header("Authorization")
        seen["method"] = req.get_method()
        return _Response(200, {"id": "abc", "passed": None})

    monkeypatch.setattr("sauce_common.rest_client.request.urlopen", fake_urlopen)
    info = _client().get_job_info("abc")
    assert info == {"id": "abc", "passed": None}
    assert seen["url"].endswith("/alice/jobs/abc")
    assert seen["auth"].startswith("Basic ")
    assert seen["method"] == "GET"


def test_update_job_info_sends_json(monkeypatch) -> None:
    seen = {}

    def fake_urlopen(req, timeout):
        seen["body"] = json.loads(req.data.decode("utf-8"))
        seen["method"] = req.get_method()
        return _Response(200, {"id": "abc"})

    monkeypatch.setattr("sauce_common.rest_client.request.urlopen", fake_urlopen)
    _client().update_job_info("abc", {"build": "job_42", "public": False})
    assert seen["method"] == "PUT"
    assert seen["body"] == {"build": "job_42", "public": False}


def test_retries_on_server_errors(monkeypatch) -> None:
    calls = []

    def fake_urlopen(req, timeout):
        calls.append(req.full_url)
        if len(calls) < 3:
            raise error.HTTPError(req.full_url, 503, "unavailable", {}, io.BytesIO(b""))
        return _Response(200, [{"os": "Linux", "api_name": "firefox"}])

    monkeypatch.setattr("sauce_common.rest_client.request.urlopen", fake_urlopen)
    platforms = _client().get_platforms("webdriver")
    assert len(calls) == 3
    assert platforms == [{"os": "Linux", "api_name": "firefox"}]


def test_client_error_is_not_retried(monkeypatch) -> None:
    calls = []

    def fake_urlopen(req, timeout):
        calls.append(req.full_url)
        raise error.HTTPError(req.full_url, 404, "missing", {}, io.BytesIO(b"{}"))

    monkeypatch.setattr("sauce_common.rest_client.request.urlopen", fake_urlopen)
    with pytest.raises(ExternalServiceError) as excinfo:
        _client().get_job_info("nope")
    assert len(calls) == 1
    assert excinfo.value.context["status"] == 404


def test_connection_failure_raises_after_retries(monkeypatch) -> None:
    def fake_urlopen(req, timeout):
        raise error.URLError("connection refused")

    monkeypatch.setattr("sauce_common.rest_client.request.urlopen", fake_urlopen)
    with pytest.raises(ExternalServiceError):
        _client().record_ci("jenkins", "2.0")


def test_malformed_job_info_is_rejected(monkeypatch) -> None:
    monkeypatch.setattr(
        "sauce_common.rest_client.request.urlopen",
        lambda req, timeout: _Response(200, ["not", "a", "dict"]),
    )
    with pytest.raises(ExternalServiceError):
        _client().get_job_info("abc")


def test_rejects_non_http_base_url() -> None:
    with pytest.raises(ConfigurationError):
        SauceRestClient(username="a", access_key="b", base_url="ftp://example.com")
