"""Selenium/tunnel port resolution policy."""

from __future__ import annotations

from typing import Callable, Mapping, Optional

from sauce_common.errors import ConfigurationError
from sauce_common.variables import resolve_reference

DEFAULT_SELENIUM_PORT = 4444
DEFAULT_TUNNEL_PORT = 4445


def resolve_port(
    configured: Optional[str],
    *,
    tunnel_enabled: bool,
    generated_identifier: bool,
    build_env: Mapping[str, str],
    free_port: Callable[[], int],
) -> int:
    """Return the canonical port for a build.

    An explicit setting (literal or variable reference resolved against
    the build then the process environment) wins; ``"0"`` counts as unset.
    Without one, a tunnel with generated identifiers gets an ephemeral port
    from ``free_port``, any other tunnel the tunnel default, and no tunnel
    the public Selenium default.
    """
    value = (configured or "").strip()
    if value and value != "0":
        resolved = resolve_reference(value, build_env)
        if resolved is None:
            resolved = "0"
        try:
            return int(resolved)
        except ValueError as exc:
            raise ConfigurationError(
                f"Invalid selenium port: {value!r}",
                context={"configured": value, "resolved": resolved},
                cause=exc,
            ) from exc
    if tunnel_enabled:
        if generated_identifier:
            return free_port()
        return DEFAULT_TUNNEL_PORT
    return DEFAULT_SELENIUM_PORT
