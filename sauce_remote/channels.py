"""Agent channel implementations."""

from __future__ import annotations

import json
import logging
import subprocess
from typing import Any, List, Mapping, Optional, Sequence

from sauce_common.errors import ExecutionError, error_from_payload
from sauce_remote.types import ExecutorContext
from sauce_remote.work import WorkUnit

logger = logging.getLogger(__name__)

DEFAULT_AGENT_COMMAND = ("sauce-agent", "run")


def _unwrap_reply(reply: Any, kind: str) -> Any:
    if not isinstance(reply, dict) or "ok" not in reply:
        raise ExecutionError(f"Malformed agent reply for {kind}", context={"kind": kind})
    if reply["ok"]:
        return reply.get("result")
    error_payload = reply.get("error")
    if isinstance(error_payload, Mapping):
        raise error_from_payload(error_payload)
    raise ExecutionError(f"Agent reported failure for {kind}", context={"kind": kind})


class SubprocessChannel:
    """Reach an agent by running a command that speaks the agent protocol.

    ``command`` is typically a remote shell wrapper such as
    ``["ssh", "build-agent-1", "sauce-agent", "run"]``. The request is
    written on stdin; the reply envelope is read from stdout.
    """

    def __init__(
        self,
        command: Sequence[str] = DEFAULT_AGENT_COMMAND,
        *,
        timeout_seconds: Optional[float] = 300.0,
        env: Optional[Mapping[str, str]] = None,
    ) -> None:
        if not command:
            raise ValueError("Agent command must not be empty")
        self._command: List[str] = list(command)
        self._timeout = timeout_seconds
        self._env = dict(env) if env is not None else None

    @property
    def command(self) -> List[str]:
        return list(self._command)

    def call(self, work: WorkUnit[Any]) -> Any:
        request = json.dumps(work.to_request())
        logger.debug("Running agent command %s for %s", self._command, work.kind)
        try:
            proc = subprocess.run(
                self._command,
                input=request,
                capture_output=True,
                text=True,
                timeout=self._timeout,
                env=self._env,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise ExecutionError(
                f"Agent did not answer {work.kind} within {self._timeout}s",
                context={"kind": work.kind, "command": self._command},
                cause=exc,
            ) from exc
        except OSError as exc:
            raise ExecutionError(
                f"Unable to start agent command: {exc}",
                context={"kind": work.kind, "command": self._command},
                cause=exc,
            ) from exc

        reply = self._parse_reply(proc.stdout)
        if reply is None:
            stderr = (proc.stderr or "").strip()
            raise ExecutionError(
                f"Agent exited with {proc.returncode} without a reply for {work.kind}",
                context={"kind": work.kind, "returncode": proc.returncode, "stderr": stderr[-2000:]},
            )
        return _unwrap_reply(reply, work.kind)

    @staticmethod
    def _parse_reply(stdout: str) -> Any:
        # The envelope is the last JSON line; anything before it is agent noise.
        for line in reversed((stdout or "").splitlines()):
            line = line.strip()
            if not line.startswith("{"):
                continue
            try:
                return json.loads(line)
            except json.JSONDecodeError:
                continue
        return None


class LoopbackChannel:
    """Serialise work and run it through the agent handler in this process.

    Exercises the same encode/decode path as a real agent without a
    transport; handy for single-host setups and tests.
    """

    def __init__(self, context: Optional[ExecutorContext] = None) -> None:
        self._context = context or ExecutorContext()

    def call(self, work: WorkUnit[Any]) -> Any:
        from sauce_remote.agent import handle_request

        reply = handle_request(json.dumps(work.to_request()), self._context)
        return _unwrap_reply(json.loads(json.dumps(reply)), work.kind)
