"""Tunnel lifecycle coordination for Sauce Connect."""

from sauce_tunnel.api import (
    CredentialRef,
    TunnelCoordinator,
    TunnelHandle,
    TunnelState,
    resolve_credentials,
)

__all__ = [
    "CredentialRef",
    "TunnelCoordinator",
    "TunnelHandle",
    "TunnelState",
    "resolve_credentials",
]
