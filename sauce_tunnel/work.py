"""Tunnel start/stop requests dispatched to the executing node."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, ClassVar, List, Optional

from pydantic import BaseModel, Field

from sauce_remote.types import ExecutorContext
from sauce_remote.work import WorkUnit, register_work
from sauce_tunnel.identifiers import tunnel_identifier_from_options
from sauce_tunnel.manager import SauceConnectManager

logger = logging.getLogger(__name__)

MANAGER_RESOURCE = "sauce_connect_manager"


def _manager(context: ExecutorContext) -> SauceConnectManager:
    return context.resource(MANAGER_RESOURCE, SauceConnectManager)


class StartTunnelResult(BaseModel):
    started: bool
    identifier: str
    port: int
    pid: Optional[int] = None
    reused: bool = False
    log_file: Optional[str] = None
    messages: List[str] = Field(default_factory=list)


class StopTunnelResult(BaseModel):
    stopped: bool
    identifier: str
    messages: List[str] = Field(default_factory=list)


@register_work
class StartTunnelWork(WorkUnit[StartTunnelResult]):
    """Launch Sauce Connect with fully resolved parameters."""

    kind: ClassVar[str] = "start_tunnel"

    username: str
    access_key: str = Field(repr=False)
    port: int
    options: str = ""
    working_directory: Optional[str] = None
    sauce_connect_path: Optional[str] = None
    jar_path: Optional[str] = None
    ready_timeout: float = 120.0

    def run(self, context: ExecutorContext) -> StartTunnelResult:
        identifier = tunnel_identifier_from_options(self.options)
        messages = [f"Launching Sauce Connect on {context.hostname}"]
        if not self.username.strip():
            messages.append("Username not set, not starting Sauce Connect")
            return StartTunnelResult(started=False, identifier=identifier, port=self.port, messages=messages)
        if not self.access_key.strip():
            messages.append("Access key not set, not starting Sauce Connect")
            return StartTunnelResult(started=False, identifier=identifier, port=self.port, messages=messages)
        process = _manager(context).open_connection(
            self.username,
            self.access_key,
            self.port,
            self.options,
            working_directory=Path(self.working_directory) if self.working_directory else None,
            sauce_connect_path=self.sauce_connect_path,
            jar_path=self.jar_path,
            ready_timeout=self.ready_timeout,
        )
        if process.reused:
            messages.append(f"Reusing running Sauce Connect tunnel {process.identifier}")
        else:
            messages.append(f"Sauce Connect tunnel {process.identifier} started (pid {process.pid})")
        return StartTunnelResult(
            started=True,
            identifier=process.identifier,
            port=process.port,
            pid=process.pid,
            reused=process.reused,
            log_file=str(process.log_file),
            messages=messages,
        )

    def decode_result(self, raw: Any) -> StartTunnelResult:
        return StartTunnelResult.model_validate(raw)


@register_work
class StopTunnelWork(WorkUnit[StopTunnelResult]):
    """Release the build's use of its tunnel."""

    kind: ClassVar[str] = "stop_tunnel"

    username: str
    options: str = ""
    working_directory: Optional[str] = None

    def run(self, context: ExecutorContext) -> StopTunnelResult:
        identifier = tunnel_identifier_from_options(self.options)
        if not self.username.strip():
            return StopTunnelResult(stopped=False, identifier=identifier)
        stopped = _manager(context).close_tunnels_for_plan(
            self.username,
            self.options,
            working_directory=Path(self.working_directory) if self.working_directory else None,
        )
        message = (
            f"Sauce Connect tunnel {identifier} closed"
            if stopped
            else f"Sauce Connect tunnel {identifier} was not running or is still in use"
        )
        return StopTunnelResult(stopped=stopped, identifier=identifier, messages=[message])

    def decode_result(self, raw: Any) -> StopTunnelResult:
        return StopTunnelResult.model_validate(raw)
