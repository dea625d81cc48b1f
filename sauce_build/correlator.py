"""Join captured session ids with the remote job-status API."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Tuple

from sauce_common.errors import ExternalServiceError
from sauce_common.host import BuildListener
from sauce_common.variables import sanitise_build_number

logger = logging.getLogger(__name__)

SESSION_PATTERN = re.compile(r"SauceOnDemandSessionID=(\S+)\s+job-name=(.*)")

SessionExtractor = Callable[[str], Optional[Tuple[str, str]]]


def extract_session(line: str) -> Optional[Tuple[str, str]]:
    """Default extractor for ``SauceOnDemandSessionID=<id> job-name=<name>`` lines."""
    match = SESSION_PATTERN.search(line)
    if match is None:
        return None
    return match.group(1), match.group(2).strip()


class JobStatusClient(Protocol):
    def get_job_info(self, job_id: str) -> Dict[str, Any]:
        raise NotImplementedError

    def update_job_info(self, job_id: str, updates: Dict[str, Any]) -> Any:
        raise NotImplementedError


@dataclass(frozen=True)
class SessionRecord:
    session_id: str
    job_name: str


@dataclass(frozen=True)
class SessionOutcome:
    """Result of reconciling one session."""

    session_id: str
    job_name: str
    updates: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class ReconcileReport:
    outcomes: Tuple[SessionOutcome, ...] = ()

    @property
    def session_ids(self) -> List[str]:
        return [o.session_id for o in self.outcomes]

    @property
    def failures(self) -> List[SessionOutcome]:
        return [o for o in self.outcomes if not o.ok]


class SessionCorrelator:
    """Extract session records from console lines and reconcile them remotely."""

    def __init__(self, extractor: SessionExtractor = extract_session) -> None:
        self._extractor = extractor

    def extract(self, lines: Iterable[str]) -> List[SessionRecord]:
        """Scan ``lines`` once, in order.

        Records keep first-discovery order; a repeated session id keeps its
        original position but takes the last job name seen.
        """
        found: Dict[str, str] = {}
        for line in lines:
            pair = self._extractor(line)
            if pair is None:
                continue
            session_id, job_name = pair
            found[session_id] = job_name
        return [SessionRecord(session_id=s, job_name=n) for s, n in found.items()]

    def reconcile(
        self,
        records: Iterable[SessionRecord],
        client: JobStatusClient,
        *,
        build_number: str,
        succeeded: Optional[bool],
        public: bool,
        listener: Optional[BuildListener] = None,
    ) -> ReconcileReport:
        """Update each session's remote job; one failure never stops the rest."""
        outcomes = []
        build_value = sanitise_build_number(build_number)
        for record in records:
            try:
                info = client.get_job_info(record.session_id)
                updates = self._updates_for(info, record, build_value, succeeded, public)
                client.update_job_info(record.session_id, updates)
            except ExternalServiceError as exc:
                logger.warning("Unable to reconcile session %s: %s", record.session_id, exc)
                if listener is not None:
                    listener.log(f"Error updating Sauce job {record.session_id}: {exc}")
                outcomes.append(
                    SessionOutcome(record.session_id, record.job_name, error=str(exc))
                )
                continue
            logger.debug("Reconciled session %s with %s", record.session_id, updates)
            outcomes.append(SessionOutcome(record.session_id, record.job_name, updates=updates))
        return ReconcileReport(outcomes=tuple(outcomes))

    @staticmethod
    def _updates_for(
        info: Dict[str, Any],
        record: SessionRecord,
        build_value: str,
        succeeded: Optional[bool],
        public: bool,
    ) -> Dict[str, Any]:
        updates: Dict[str, Any] = {}
        if info.get("passed") is None and succeeded is not None:
            updates["passed"] = succeeded
        if not info.get("name") and record.job_name:
            updates["name"] = record.job_name
        updates["build"] = build_value
        updates["public"] = public
        return updates
