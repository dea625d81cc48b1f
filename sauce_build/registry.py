"""Process-wide mapping from build identity to its log capture."""

from __future__ import annotations

import logging
import threading
from typing import Dict, Optional

from sauce_build.capture import LogCapture

logger = logging.getLogger(__name__)


class CaptureRegistry:
    """Concurrency-safe build id -> :class:`LogCapture` table.

    Only insertion and lookup-and-remove are offered; nothing iterates the
    table under the lock.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._captures: Dict[str, LogCapture] = {}

    def register(self, build_id: str, capture: LogCapture) -> None:
        with self._lock:
            orphan = self._captures.get(build_id)
            self._captures[build_id] = capture
        if orphan is not None and orphan is not capture:
            logger.warning("Replacing orphaned log capture for %s", build_id)

    def lookup_and_remove(self, build_id: str) -> Optional[LogCapture]:
        with self._lock:
            return self._captures.pop(build_id, None)

    def __contains__(self, build_id: object) -> bool:
        with self._lock:
            return build_id in self._captures

    def __len__(self) -> int:
        with self._lock:
            return len(self._captures)
