"""Tunnel identifier helpers."""

from __future__ import annotations

import re
import secrets
import shlex

DEFAULT_TUNNEL_IDENTIFIER = "default"
_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


def generate_tunnel_identifier(job_name: str) -> str:
    """Return ``<job-name>-<random>``, unique across concurrent builds."""
    base = _UNSAFE.sub("_", job_name.strip()) or "build"
    return f"{base}-{secrets.token_hex(8)}"


def tunnel_identifier_from_options(options: str, default: str = DEFAULT_TUNNEL_IDENTIFIER) -> str:
    """Extract the tunnel identifier named in Sauce Connect options."""
    try:
        tokens = shlex.split(options or "")
    except ValueError:
        tokens = (options or "").split()
    for idx, token in enumerate(tokens):
        if token in {"--tunnel-identifier", "-i"} and idx + 1 < len(tokens):
            return tokens[idx + 1]
        if token.startswith("--tunnel-identifier="):
            value = token.split("=", 1)[1]
            if value:
                return value
    return default
