"""Shared dispatcher types and protocols."""

from __future__ import annotations

import socket
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Protocol, TypeVar, TYPE_CHECKING

if TYPE_CHECKING:
    from sauce_remote.work import WorkUnit

R = TypeVar("R")


class ExecutionTarget(str, Enum):
    """Where a unit of work runs relative to the coordinating process."""

    LOCAL = "local"
    REMOTE = "remote"


class AgentChannel(Protocol):
    """Transport to a designated build agent.

    Implementations block until the agent replies or the transport fails
    and return the raw JSON-compatible result of the unit of work.
    """

    def call(self, work: "WorkUnit[Any]") -> Any:
        """Run ``work`` on the agent and return its serialised result."""
        raise NotImplementedError


@dataclass
class ExecutorContext:
    """Process-local facilities available to work units on the executing node."""

    hostname: str = field(default_factory=socket.gethostname)
    _resources: Dict[str, Any] = field(default_factory=dict, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def resource(self, name: str, factory: Callable[[], R]) -> R:
        """Return the named per-process resource, creating it on first use."""
        with self._lock:
            if name not in self._resources:
                self._resources[name] = factory()
            return self._resources[name]
