"""structlog-backed logging for the build wrapper and the agent CLI.

Library code only ever calls ``logging.getLogger(__name__)``; this module
decides where those records go. Inside a CI host the host owns the root
logger and we only install the structlog processors. The ``sauce-agent``
CLI forces its own stderr handler so its stdout stays a clean reply.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Mapping

import structlog

from sauce_common.config.env import parse_bool_env, parse_str_env

_PRE_CHAIN: tuple[structlog.types.Processor, ...] = (
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
)


def _level(value: str | int | None, debug: bool) -> int:
    if debug:
        return logging.DEBUG
    if isinstance(value, int):
        return value
    if not value:
        return logging.INFO
    if value.isdigit():
        return int(value)
    level = logging.getLevelName(value.upper())
    return level if isinstance(level, int) else logging.INFO


def _install_structlog() -> None:
    structlog.configure(
        processors=[*_PRE_CHAIN, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def configure_logging(
    *,
    level: str | int | None = None,
    debug: bool = False,
    log_file: str | None = None,
    json: bool | None = None,
    force: bool = False,
    environ: Mapping[str, str] | None = None,
) -> None:
    """Route stdlib records through structlog's ``ProcessorFormatter``.

    Explicit arguments win over ``SAUCE_CI_LOG_LEVEL``, ``SAUCE_CI_LOG_JSON``
    and ``SAUCE_CI_LOG_FILE``. Existing root handlers are left alone unless
    ``force`` is set.
    """
    env = os.environ if environ is None else environ
    root = logging.getLogger()
    if root.handlers and not force:
        _install_structlog()
        return

    as_json = parse_bool_env(env.get("SAUCE_CI_LOG_JSON")) if json is None else json
    renderer = structlog.processors.JSONRenderer() if as_json else structlog.dev.ConsoleRenderer()
    formatter = structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=_PRE_CHAIN)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    target = log_file if log_file is not None else parse_str_env(env.get("SAUCE_CI_LOG_FILE"))
    if target:
        handlers.append(logging.FileHandler(target))

    if force:
        root.handlers.clear()
    root.setLevel(_level(level or parse_str_env(env.get("SAUCE_CI_LOG_LEVEL")), debug))
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    _install_structlog()


def bind_build_context(**values: object) -> None:
    """Attach build identity to every log line emitted on this thread."""
    structlog.contextvars.bind_contextvars(**values)


def clear_build_context() -> None:
    structlog.contextvars.clear_contextvars()
