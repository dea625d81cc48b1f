"""Variable references in user-supplied settings.

Two flavours are supported:

* a *whole-value* reference (``$NAME``, ``${NAME}``, ``%NAME%``-style
  prefixes) used by the selenium host and port settings, where the entire
  setting names a single variable;
* embedded ``$NAME`` / ``${NAME}`` macros inside free text such as the
  Sauce Connect command-line options, which are substituted in place.
"""

from __future__ import annotations

import os
import re
from typing import Mapping, Optional

VARIABLE_REFERENCE_PATTERN = re.compile(r"[$%]\{?([A-Za-z_][A-Za-z0-9_]*)\}?")
_MACRO_PATTERN = re.compile(r"\$(?:\{([A-Za-z0-9_.]+)\}|([A-Za-z0-9_]+))")
_NON_ALPHANUMERIC = re.compile(r"[^A-Za-z0-9]")


def variable_reference(value: str) -> Optional[str]:
    """Return the referenced variable name when ``value`` is a single reference."""
    match = VARIABLE_REFERENCE_PATTERN.fullmatch(value.strip())
    if match is None:
        return None
    return match.group(1)


def resolve_reference(
    value: str,
    *lookups: Mapping[str, str],
    use_process_env: bool = True,
) -> Optional[str]:
    """Resolve a whole-value reference against ``lookups`` then ``os.environ``.

    Literal values are returned unchanged. A reference that cannot be
    resolved yields None.
    """
    name = variable_reference(value)
    if name is None:
        return value
    for mapping in lookups:
        if name in mapping:
            return mapping[name]
    if use_process_env:
        return os.environ.get(name)
    return None


def replace_macros(text: Optional[str], variables: Mapping[str, str]) -> str:
    """Substitute ``$NAME`` and ``${NAME}`` macros; unknown names are left as-is."""
    if not text:
        return ""

    def _substitute(match: re.Match[str]) -> str:
        name = match.group(1) or match.group(2)
        if name in variables:
            return variables[name]
        return match.group(0)

    return _MACRO_PATTERN.sub(_substitute, text)


def sanitise_build_number(build_number: str) -> str:
    """Replace every character outside ``[A-Za-z0-9]`` with ``_``."""
    return _NON_ALPHANUMERIC.sub("_", build_number)
