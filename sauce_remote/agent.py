"""Agent-side entry point: execute one serialised work request.

The coordinating node reaches an agent through a transport of its choice
(``ssh``, a container exec, a local subprocess) and runs ``sauce-agent run``
there; the request arrives as JSON on stdin and the reply envelope is
written as a single JSON document on stdout.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Optional

import typer

from sauce_common.errors import ExecutionError, SauceError, error_to_payload
from sauce_common.logging import configure_logging
from sauce_remote.types import ExecutorContext
from sauce_remote.work import FreePortWork, decode_work

logger = logging.getLogger(__name__)

app = typer.Typer(help="Execute Sauce build work units on this agent.", no_args_is_help=True)


def _load_work_modules() -> None:
    # Registers the tunnel work kinds with the decoder.
    import sauce_tunnel.work  # noqa: F401


def handle_request(raw: str, context: Optional[ExecutorContext] = None) -> dict[str, Any]:
    """Execute a JSON request and return the reply envelope."""
    _load_work_modules()
    ctx = context or ExecutorContext()
    try:
        request = json.loads(raw)
    except json.JSONDecodeError as exc:
        err = ExecutionError(f"Request is not valid JSON: {exc}", cause=exc)
        return {"ok": False, "error": error_to_payload(err)}
    try:
        work = decode_work(request)
        result = work.run(ctx)
        return {"ok": True, "result": work.encode_result(result)}
    except SauceError as exc:
        logger.warning("Work request failed: %s", exc)
        return {"ok": False, "error": error_to_payload(exc)}
    except Exception as exc:
        logger.exception("Work request crashed")
        err = ExecutionError(
            str(exc) or exc.__class__.__name__,
            context={"kind": request.get("kind"), "error_type": exc.__class__.__name__},
            cause=exc,
        )
        return {"ok": False, "error": error_to_payload(err)}


@app.command("run")
def run_command(
    debug: bool = typer.Option(False, "--debug", help="Log at DEBUG level to stderr."),
) -> None:
    """Read one work request from stdin and print the reply envelope."""
    configure_logging(debug=debug, force=True)
    reply = handle_request(sys.stdin.read())
    typer.echo(json.dumps(reply))
    if not reply.get("ok"):
        raise typer.Exit(code=1)


@app.command("free-port")
def free_port_command() -> None:
    """Print an OS-assigned ephemeral port."""
    typer.echo(str(FreePortWork().run(ExecutorContext())))


def main() -> None:
    """Invoke the agent Typer application."""
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
