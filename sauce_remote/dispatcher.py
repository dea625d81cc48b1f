"""Run work units in-process or on a designated agent with uniform failures."""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol, TypeVar

from sauce_common.errors import ExecutionError, SauceError
from sauce_remote.types import AgentChannel, ExecutionTarget, ExecutorContext
from sauce_remote.work import WorkUnit

logger = logging.getLogger(__name__)

R = TypeVar("R")


class Dispatcher(Protocol):
    """Executes a unit of work and returns its result.

    Any failure, wherever it happens, is raised as :class:`ExecutionError`.
    There are no retries at this layer.
    """

    target: ExecutionTarget

    def execute(self, work: WorkUnit[R]) -> R:
        raise NotImplementedError


def _as_execution_error(work: WorkUnit[Any], exc: Exception, where: str) -> ExecutionError:
    if isinstance(exc, ExecutionError):
        return exc
    context: dict[str, Any] = {"kind": work.kind, "target": where}
    if isinstance(exc, SauceError):
        context["error_type"] = exc.error_type
        context.update(exc.context)
    return ExecutionError(f"{work.kind} failed on {where}: {exc}", context=context, cause=exc)


class LocalDispatcher:
    """Synchronous in-process execution."""

    target = ExecutionTarget.LOCAL

    def __init__(self, context: Optional[ExecutorContext] = None) -> None:
        self._context = context or ExecutorContext()

    @property
    def context(self) -> ExecutorContext:
        return self._context

    def execute(self, work: WorkUnit[R]) -> R:
        logger.debug("Executing %s locally", work.kind)
        try:
            return work.run(self._context)
        except Exception as exc:
            raise _as_execution_error(work, exc, "local") from exc


class RemoteDispatcher:
    """Blocking execution on an agent reached through an :class:`AgentChannel`."""

    target = ExecutionTarget.REMOTE

    def __init__(self, channel: AgentChannel) -> None:
        self._channel = channel

    def execute(self, work: WorkUnit[R]) -> R:
        logger.debug("Dispatching %s to remote agent", work.kind)
        try:
            raw = self._channel.call(work)
            return work.decode_result(raw)
        except Exception as exc:
            raise _as_execution_error(work, exc, "remote") from exc


def select_dispatcher(
    target: ExecutionTarget,
    *,
    channel: Optional[AgentChannel] = None,
    context: Optional[ExecutorContext] = None,
) -> Dispatcher:
    """Pick the dispatcher implementation for ``target``.

    A remote target without a channel means the build runs on the
    coordinating node itself, so the work is executed locally.
    """
    if target is ExecutionTarget.REMOTE and channel is not None:
        return RemoteDispatcher(channel)
    return LocalDispatcher(context)


def execute(
    target: ExecutionTarget,
    work: WorkUnit[R],
    *,
    channel: Optional[AgentChannel] = None,
    context: Optional[ExecutorContext] = None,
) -> R:
    """Run ``work`` on ``target`` and return its result or raise ExecutionError."""
    return select_dispatcher(target, channel=channel, context=context).execute(work)
