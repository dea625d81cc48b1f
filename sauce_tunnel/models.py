"""Tunnel value types."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from sauce_tunnel.credentials import CredentialRef
from sauce_tunnel.state import TunnelState


@dataclass(frozen=True)
class TunnelConfig:
    """Launch parameters of a build's tunnel; fixed once the tunnel starts."""

    identifier: str
    port: int
    command_line_options: str
    working_directory: Optional[Path]
    credentials: CredentialRef
    launch_on_remote: bool
    sauce_connect_path: Optional[str] = None
    jar_path: Optional[str] = None


@dataclass(frozen=True)
class TunnelHandle:
    """What the build learns about its tunnel after ``start``."""

    state: TunnelState
    config: Optional[TunnelConfig] = None
    port: Optional[int] = None
    pid: Optional[int] = None
    reason: Optional[str] = None

    @property
    def running(self) -> bool:
        return self.state is TunnelState.RUNNING
