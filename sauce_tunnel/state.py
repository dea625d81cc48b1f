"""Tunnel lifecycle state machine primitives."""

from __future__ import annotations

import threading
from enum import Enum
from typing import Callable, Optional


class TunnelState(str, Enum):
    """Lifecycle of a single build's tunnel."""

    NOT_STARTED = "not_started"
    STARTING = "starting"
    RUNNING = "running"
    CLOSING = "closing"
    CLOSED = "closed"
    FAILED = "failed"


_TERMINAL_STATES = {TunnelState.CLOSED, TunnelState.FAILED}


_ALLOWED_TRANSITIONS = {
    TunnelState.NOT_STARTED: {TunnelState.STARTING},
    TunnelState.STARTING: {TunnelState.RUNNING, TunnelState.CLOSING},
    TunnelState.RUNNING: {TunnelState.CLOSING},
    TunnelState.CLOSING: {TunnelState.CLOSED},
    TunnelState.CLOSED: set(),
    TunnelState.FAILED: set(),
}


class TunnelStateMachine:
    """Tracks the state of one tunnel; any live state may fail."""

    def __init__(self) -> None:
        self._state = TunnelState.NOT_STARTED
        self._lock = threading.RLock()
        self._reason: Optional[str] = None
        self._callbacks: list[Callable[[TunnelState, Optional[str]], None]] = []

    @property
    def state(self) -> TunnelState:
        with self._lock:
            return self._state

    @property
    def reason(self) -> Optional[str]:
        with self._lock:
            return self._reason

    def is_terminal(self) -> bool:
        with self._lock:
            return self._state in _TERMINAL_STATES

    def register_callback(
        self, callback: Callable[[TunnelState, Optional[str]], None]
    ) -> None:
        """Register a callback invoked on every transition."""
        self._callbacks.append(callback)

    def transition(
        self, new_state: TunnelState, reason: Optional[str] = None
    ) -> TunnelState:
        """Attempt a state transition; raise ValueError if invalid."""
        with self._lock:
            allowed = _ALLOWED_TRANSITIONS.get(self._state, set())
            failing = (
                new_state is TunnelState.FAILED and self._state not in _TERMINAL_STATES
            )
            if new_state not in allowed and not failing:
                raise ValueError(f"Invalid transition {self._state} -> {new_state}")
            self._state = new_state
            self._reason = reason
            for cb in list(self._callbacks):
                try:
                    cb(self._state, self._reason)
                except Exception:
                    continue
            return self._state

    def snapshot(self) -> tuple[TunnelState, Optional[str]]:
        with self._lock:
            return self._state, self._reason
