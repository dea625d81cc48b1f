"""Tests for the build-scoped capture registry."""

from __future__ import annotations

import io
import logging
import threading

import pytest

from sauce_build.capture import LogCapture
from sauce_build.registry import CaptureRegistry


pytestmark = pytest.mark.unit_build


def _capture() -> LogCapture:
    return LogCapture(io.BytesIO(), "utf-8")


def test_lookup_and_remove_hands_off_once() -> None:
    registry = CaptureRegistry()
    capture = _capture()
    registry.register("job #1", capture)
    assert "job #1" in registry
    assert registry.lookup_and_remove("job #1") is capture
    assert registry.lookup_and_remove("job #1") is None
    assert len(registry) == 0


def test_double_registration_overwrites_orphan(caplog) -> None:
    registry = CaptureRegistry()
    first, second = _capture(), _capture()
    registry.register("job #1", first)
    with caplog.at_level(logging.WARNING, logger="sauce_build.registry"):
        registry.register("job #1", second)
    assert registry.lookup_and_remove("job #1") is second
    assert "orphaned" in caplog.text


def test_concurrent_builds_do_not_interfere() -> None:
    registry = CaptureRegistry()
    results = {}
    errors = []

    def run_build(idx: int) -> None:
        build_id = f"job #{idx}"
        capture = _capture()
        try:
            registry.register(build_id, capture)
            capture.write(f"output of {idx}\n".encode())
            results[build_id] = registry.lookup_and_remove(build_id)
        except Exception as exc:  # pragma: no cover - surfaced via assertion below
            errors.append(exc)

    threads = [threading.Thread(target=run_build, args=(i,)) for i in range(64)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert len(registry) == 0
    for idx in range(64):
        assert results[f"job #{idx}"].lines == (f"output of {idx}",)
