"""Interfaces the build-orchestration host provides to the wrapper."""

from __future__ import annotations

import sys
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Protocol, TextIO

if TYPE_CHECKING:
    from sauce_remote.types import AgentChannel


class BuildListener(Protocol):
    """Build console for user-facing progress messages."""

    def log(self, message: str) -> None:
        raise NotImplementedError


class BuildContext(Protocol):
    """Identity and environment of the build being wrapped."""

    identity: str
    job_name: str
    number: str
    charset: Optional[str]
    build_variables: Mapping[str, str]
    executor_hostname: Optional[str]
    channel: Optional["AgentChannel"]
    succeeded: Optional[bool]

    def environment(self) -> Mapping[str, str]:
        raise NotImplementedError


class RunCondition(Protocol):
    """Gating predicate deciding whether the tunnel runs for a build."""

    def run_perform(self, build: BuildContext, listener: BuildListener) -> bool:
        raise NotImplementedError


class StreamListener:
    """BuildListener writing one line per message to a text stream."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self._stream = stream or sys.stdout
        self._lock = threading.Lock()

    def log(self, message: str) -> None:
        with self._lock:
            self._stream.write(message + "\n")
            self._stream.flush()


@dataclass
class BuildInfo:
    """Plain-data BuildContext for hosts that do not have their own type."""

    job_name: str
    number: str
    charset: Optional[str] = "utf-8"
    build_variables: Dict[str, str] = field(default_factory=dict)
    env: Dict[str, str] = field(default_factory=dict)
    executor_hostname: Optional[str] = None
    channel: Optional[Any] = None
    succeeded: Optional[bool] = None

    @property
    def identity(self) -> str:
        return f"{self.job_name} #{self.number}"

    def environment(self) -> Mapping[str, str]:
        merged = dict(self.env)
        merged.update(self.build_variables)
        return merged
