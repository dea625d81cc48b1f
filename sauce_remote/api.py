"""Public API surface for sauce_remote."""

from sauce_remote.channels import LoopbackChannel, SubprocessChannel
from sauce_remote.dispatcher import (
    Dispatcher,
    LocalDispatcher,
    RemoteDispatcher,
    execute,
    select_dispatcher,
)
from sauce_remote.types import AgentChannel, ExecutionTarget, ExecutorContext
from sauce_remote.work import FreePortWork, WorkUnit, decode_work, register_work

__all__ = [
    "AgentChannel",
    "Dispatcher",
    "ExecutionTarget",
    "ExecutorContext",
    "FreePortWork",
    "LocalDispatcher",
    "LoopbackChannel",
    "RemoteDispatcher",
    "SubprocessChannel",
    "WorkUnit",
    "decode_work",
    "execute",
    "register_work",
    "select_dispatcher",
]
