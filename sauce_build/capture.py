"""Pass-through capture of a build's console output."""

from __future__ import annotations

import codecs
import logging
import threading
from typing import BinaryIO, List, Optional, Tuple

from sauce_common.errors import DecodingError

logger = logging.getLogger(__name__)


class LogCapture:
    """Decorate a binary output sink, recording every decoded line.

    Bytes are forwarded to the wrapped sink unchanged before any decoding
    happens. Lines that fail to decode are left out of :attr:`lines` and
    reported in :attr:`decode_errors`. Once frozen the line sequence no
    longer changes, although writes keep reaching the sink.
    """

    def __init__(self, sink: BinaryIO, charset: Optional[str] = "utf-8", *, build_id: str = "") -> None:
        self._sink = sink
        self._charset = self._check_charset(charset)
        self._build_id = build_id
        self._lock = threading.Lock()
        self._pending = bytearray()
        self._lines: List[str] = []
        self._decode_errors: List[DecodingError] = []
        self._frozen = False
        self._closed = False

    @staticmethod
    def _check_charset(charset: Optional[str]) -> Optional[str]:
        if not charset:
            return None
        try:
            return codecs.lookup(charset).name
        except LookupError:
            logger.warning("Unknown build charset %s; output will not be scanned", charset)
            return None

    @property
    def build_id(self) -> str:
        return self._build_id

    @property
    def lines(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(self._lines)

    @property
    def decode_errors(self) -> Tuple[DecodingError, ...]:
        with self._lock:
            return tuple(self._decode_errors)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def write(self, data: bytes) -> int:
        with self._lock:
            written = self._sink.write(data)
            if not self._frozen:
                self._pending.extend(data)
                self._drain_complete_lines()
        return len(data) if written is None else written

    def flush(self) -> None:
        self._sink.flush()

    def close(self) -> None:
        """Record any trailing partial line, then close the wrapped sink."""
        if self._closed:
            return
        self.freeze()
        self._closed = True
        self._sink.close()

    def freeze(self) -> Tuple[str, ...]:
        """Stop recording and return the final line sequence."""
        with self._lock:
            if not self._frozen:
                if self._pending:
                    self._record(bytes(self._pending))
                    self._pending.clear()
                self._frozen = True
            return tuple(self._lines)

    def _drain_complete_lines(self) -> None:
        while True:
            newline = self._pending.find(b"\n")
            if newline < 0:
                return
            raw = bytes(self._pending[: newline + 1])
            del self._pending[: newline + 1]
            self._record(raw)

    def _record(self, raw: bytes) -> None:
        if self._charset is None:
            return
        try:
            text = raw.decode(self._charset)
        except UnicodeDecodeError as exc:
            self._decode_errors.append(
                DecodingError(
                    "Undecodable build output line",
                    context={"build": self._build_id, "charset": self._charset, "line": len(self._lines)},
                    cause=exc,
                )
            )
            logger.debug("Dropping undecodable line from %s capture", self._build_id)
            return
        self._lines.append(text.rstrip("\r\n"))
