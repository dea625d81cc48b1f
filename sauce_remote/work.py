"""Value-type units of work that can cross process and node boundaries.

A unit of work carries only plain data (credentials, ports, options,
paths). It is serialised to JSON for remote agents and rebuilt there from
its ``kind`` discriminator, so it must never capture live objects.
"""

from __future__ import annotations

import logging
import socket
from typing import Any, ClassVar, Dict, Generic, Type, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError

from sauce_common.errors import ExecutionError
from sauce_remote.types import ExecutorContext

logger = logging.getLogger(__name__)

R = TypeVar("R")

_WORK_KINDS: Dict[str, Type["WorkUnit[Any]"]] = {}


class WorkUnit(BaseModel, Generic[R]):
    """Base class for dispatchable work."""

    model_config = ConfigDict(frozen=True)

    kind: ClassVar[str] = ""

    def run(self, context: ExecutorContext) -> R:
        raise NotImplementedError

    def encode_result(self, result: R) -> Any:
        """Turn a local result into JSON-compatible data."""
        if isinstance(result, BaseModel):
            return result.model_dump(mode="json")
        return result

    def decode_result(self, raw: Any) -> R:
        """Rebuild a result returned by a remote agent."""
        return raw

    def to_request(self) -> dict[str, Any]:
        return {"kind": self.kind, "payload": self.model_dump(mode="json")}


W = TypeVar("W", bound=Type[WorkUnit[Any]])


def register_work(cls: W) -> W:
    """Class decorator making a work unit decodable on agents."""
    if not cls.kind:
        raise ValueError(f"{cls.__name__} must define a non-empty 'kind'")
    existing = _WORK_KINDS.get(cls.kind)
    if existing is not None and existing is not cls:
        raise ValueError(f"Work kind {cls.kind!r} already registered by {existing.__name__}")
    _WORK_KINDS[cls.kind] = cls
    return cls


def decode_work(request: Any) -> WorkUnit[Any]:
    """Rebuild a work unit from :meth:`WorkUnit.to_request` output."""
    if not isinstance(request, dict):
        raise ExecutionError("Work request must be a JSON object")
    kind = request.get("kind")
    cls = _WORK_KINDS.get(str(kind))
    if cls is None:
        raise ExecutionError(f"Unknown work kind: {kind!r}", context={"kind": kind})
    try:
        return cls.model_validate(request.get("payload") or {})
    except ValidationError as exc:
        raise ExecutionError(
            f"Malformed {kind} request", context={"kind": kind}, cause=exc
        ) from exc


@register_work
class FreePortWork(WorkUnit[int]):
    """Ask the executing node for an OS-assigned ephemeral port."""

    kind: ClassVar[str] = "free_port"

    def run(self, context: ExecutorContext) -> int:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("", 0))
            port = sock.getsockname()[1]
        logger.debug("Found free port %d on %s", port, context.hostname)
        return int(port)

    def decode_result(self, raw: Any) -> int:
        try:
            return int(raw)
        except (TypeError, ValueError) as exc:
            raise ExecutionError(f"Agent returned a non-integer port: {raw!r}", cause=exc) from exc
