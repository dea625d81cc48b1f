"""Tests for session extraction and remote reconciliation."""

from __future__ import annotations

from typing import Any, Dict, List

import pytest

from sauce_build.correlator import SessionCorrelator, SessionRecord, extract_session
from sauce_common.errors import ExternalServiceError


pytestmark = pytest.mark.unit_build


class FakeJobs:
    def __init__(self, jobs: Dict[str, Dict[str, Any]], failing: tuple = ()) -> None:
        self.jobs = jobs
        self.failing = set(failing)
        self.updates: List[tuple] = []

    def get_job_info(self, job_id: str) -> Dict[str, Any]:
        if job_id in self.failing:
            raise ExternalServiceError(f"job {job_id} unavailable")
        return dict(self.jobs.get(job_id, {}))

    def update_job_info(self, job_id: str, updates: Dict[str, Any]) -> None:
        self.updates.append((job_id, updates))


def test_extract_session_default_pattern() -> None:
    assert extract_session("SauceOnDemandSessionID=abc123 job-name=Login works") == ("abc123", "Login works")
    assert extract_session("[INFO] nothing to see") is None


def test_two_sessions_and_a_noise_line() -> None:
    lines = [
        "SauceOnDemandSessionID=s1 job-name=checkout",
        "Tests run: 2, Failures: 0",
        "SauceOnDemandSessionID=s2 job-name=search",
    ]
    records = SessionCorrelator().extract(lines)
    assert records == [SessionRecord("s1", "checkout"), SessionRecord("s2", "search")]


def test_repeated_session_keeps_order_last_name_wins() -> None:
    lines = [
        "SauceOnDemandSessionID=s1 job-name=first",
        "SauceOnDemandSessionID=s2 job-name=other",
        "SauceOnDemandSessionID=s1 job-name=renamed",
    ]
    records = SessionCorrelator().extract(lines)
    assert records == [SessionRecord("s1", "renamed"), SessionRecord("s2", "other")]


def test_custom_extractor_is_used() -> None:
    def extractor(line: str):
        if line.startswith("session:"):
            return line.split(":", 1)[1], "custom"
        return None

    assert SessionCorrelator(extractor).extract(["session:xyz", "noise"]) == [SessionRecord("xyz", "custom")]


def test_reconcile_updates_only_unset_fields() -> None:
    client = FakeJobs(
        {
            "s1": {"passed": None, "name": None},
            "s2": {"passed": False, "name": "already named"},
        }
    )
    report = SessionCorrelator().reconcile(
        [SessionRecord("s1", "checkout"), SessionRecord("s2", "search")],
        client,
        build_number="job #42",
        succeeded=True,
        public=True,
    )
    assert client.updates == [
        ("s1", {"passed": True, "name": "checkout", "build": "job__42", "public": True}),
        ("s2", {"build": "job__42", "public": True}),
    ]
    assert report.session_ids == ["s1", "s2"]
    assert report.failures == []


def test_one_failing_session_does_not_stop_others(listener) -> None:
    client = FakeJobs({"s2": {}}, failing=("s1",))
    report = SessionCorrelator().reconcile(
        [SessionRecord("s1", "a"), SessionRecord("s2", "b")],
        client,
        build_number="7",
        succeeded=False,
        public=False,
        listener=listener,
    )
    assert [job_id for job_id, _ in client.updates] == ["s2"]
    assert [o.session_id for o in report.failures] == ["s1"]
    assert any("s1" in m for m in listener.messages)


def test_unknown_outcome_leaves_passed_alone() -> None:
    client = FakeJobs({"s1": {}})
    SessionCorrelator().reconcile(
        [SessionRecord("s1", "x")], client, build_number="1", succeeded=None, public=False
    )
    assert "passed" not in client.updates[0][1]
