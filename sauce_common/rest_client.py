"""Sauce Labs REST API client used for job reconciliation and browser listings."""

from __future__ import annotations

import base64
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Mapping
from urllib import error, parse, request

from sauce_common.config.settings import DEFAULT_REST_URL
from sauce_common.errors import ConfigurationError, ExternalServiceError

logger = logging.getLogger(__name__)


def _validate_http_url(url: str, label: str) -> str:
    parsed = parse.urlparse(url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ConfigurationError(
            f"{label} must be an http(s) URL, got: {url}", context={"url": url}
        )
    return url


@dataclass
class SauceRestClient:
    """Lightweight Sauce REST client with retry support."""

    username: str
    access_key: str = field(repr=False)
    base_url: str = DEFAULT_REST_URL
    timeout_seconds: float = 10.0
    max_retries: int = 3
    backoff_base: float = 0.5
    backoff_factor: float = 2.0

    def __post_init__(self) -> None:
        self.base_url = _validate_http_url(self.base_url.rstrip("/"), "Sauce REST base_url")

    def get_job_info(self, job_id: str) -> dict[str, Any]:
        """Fetch the job record for ``job_id``."""
        _, data = self._request("GET", self._job_path(job_id), expected_statuses={200})
        if not isinstance(data, dict):
            raise ExternalServiceError(
                f"Malformed job info for {job_id}", context={"job_id": job_id}
            )
        return data

    def update_job_info(self, job_id: str, updates: Mapping[str, Any]) -> dict[str, Any] | None:
        """Apply ``updates`` to the job record for ``job_id``."""
        _, data = self._request(
            "PUT",
            self._job_path(job_id),
            payload=dict(updates),
            expected_statuses={200},
        )
        return data if isinstance(data, dict) else None

    def record_ci(self, platform: str, platform_version: str) -> None:
        """Report which CI platform is driving the account's tests."""
        self._request(
            "POST",
            "/stats/ci",
            payload={"platform": platform, "platform_version": platform_version},
            expected_statuses={200, 201, 204},
        )

    def get_platforms(self, automation_api: str) -> list[dict[str, Any]]:
        """Return the supported platform records for ``webdriver`` or ``appium``."""
        safe_api = parse.quote(automation_api, safe="")
        _, data = self._request(
            "GET", f"/info/platforms/{safe_api}", expected_statuses={200}
        )
        if not isinstance(data, list):
            raise ExternalServiceError(
                f"Malformed platform listing for {automation_api}",
                context={"automation_api": automation_api},
            )
        return [item for item in data if isinstance(item, dict)]

    def _job_path(self, job_id: str) -> str:
        user = parse.quote(self.username, safe="")
        return f"/{user}/jobs/{parse.quote(job_id, safe='')}"

    def _request(
        self,
        method: str,
        path: str,
        payload: Mapping[str, Any] | None = None,
        expected_statuses: set[int] | None = None,
    ) -> tuple[int, Any]:
        expected = expected_statuses or {200}
        url = f"{self.base_url}{path}"
        token = base64.b64encode(
            f"{self.username}:{self.access_key}".encode("utf-8")
        ).decode("ascii")
        headers = {"Accept": "application/json", "Authorization": f"Basic {token}"}
        data = None
        if payload is not None:
            data = json.dumps(payload).encode("utf-8")
            headers["Content-Type"] = "application/json"

        for attempt in range(self.max_retries + 1):
            try:
                req = request.Request(url, data=data, headers=headers, method=method)
                with request.urlopen(  # nosec B310
                    req, timeout=self.timeout_seconds
                ) as resp:
                    status = resp.status
                    body = resp.read().decode("utf-8") if resp is not None else ""
                parsed = self._parse_json(body)
                if status in expected:
                    return status, parsed
                if status >= 500 and attempt < self.max_retries:
                    self._sleep_backoff(attempt)
                    continue
                raise ExternalServiceError(
                    f"Sauce API error {status}: {body}",
                    context={"method": method, "path": path, "status": status},
                )
            except error.HTTPError as exc:
                status = exc.code
                body = exc.read().decode("utf-8") if exc.fp else ""
                parsed = self._parse_json(body)
                if status in expected:
                    return status, parsed
                if status >= 500 and attempt < self.max_retries:
                    self._sleep_backoff(attempt)
                    continue
                raise ExternalServiceError(
                    f"Sauce API error {status}: {body}",
                    context={"method": method, "path": path, "status": status},
                    cause=exc,
                ) from exc
            except (error.URLError, TimeoutError, OSError) as exc:
                if attempt < self.max_retries:
                    logger.debug("Sauce API %s %s failed (attempt %d): %s", method, path, attempt + 1, exc)
                    self._sleep_backoff(attempt)
                    continue
                raise ExternalServiceError(
                    f"Sauce API request failed: {exc}",
                    context={"method": method, "path": path},
                    cause=exc,
                ) from exc
        raise ExternalServiceError("Sauce API request failed after retries.")

    @staticmethod
    def _parse_json(body: str) -> Any:
        if not body:
            return None
        try:
            return json.loads(body)
        except json.JSONDecodeError:
            return None

    def _sleep_backoff(self, attempt: int) -> None:
        delay = self.backoff_base * (self.backoff_factor ** attempt)
        if delay > 0:
            time.sleep(delay)
