"""Public API surface for sauce_tunnel."""

from sauce_tunnel.coordinator import TunnelCoordinator
from sauce_tunnel.credentials import (
    CredentialRef,
    CredentialStore,
    migrate_credentials,
    resolve_credentials,
)
from sauce_tunnel.identifiers import generate_tunnel_identifier, tunnel_identifier_from_options
from sauce_tunnel.manager import SauceConnectManager
from sauce_tunnel.models import TunnelConfig, TunnelHandle
from sauce_tunnel.ports import DEFAULT_SELENIUM_PORT, DEFAULT_TUNNEL_PORT, resolve_port
from sauce_tunnel.state import TunnelState, TunnelStateMachine
from sauce_tunnel.work import StartTunnelResult, StartTunnelWork, StopTunnelResult, StopTunnelWork

__all__ = [
    "CredentialRef",
    "CredentialStore",
    "DEFAULT_SELENIUM_PORT",
    "DEFAULT_TUNNEL_PORT",
    "SauceConnectManager",
    "StartTunnelResult",
    "StartTunnelWork",
    "StopTunnelResult",
    "StopTunnelWork",
    "TunnelConfig",
    "TunnelCoordinator",
    "TunnelHandle",
    "TunnelState",
    "TunnelStateMachine",
    "generate_tunnel_identifier",
    "migrate_credentials",
    "resolve_credentials",
    "resolve_port",
    "tunnel_identifier_from_options",
]
