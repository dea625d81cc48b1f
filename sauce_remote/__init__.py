"""Remote execution dispatcher: run work units locally or on a build agent."""

from sauce_remote.api import (
    AgentChannel,
    ExecutionTarget,
    LocalDispatcher,
    RemoteDispatcher,
    execute,
    select_dispatcher,
)

__all__ = [
    "AgentChannel",
    "ExecutionTarget",
    "LocalDispatcher",
    "RemoteDispatcher",
    "execute",
    "select_dispatcher",
]
