"""Launch and stop the external Sauce Connect process on the executing node.

Tunnels are reference counted per ``(username, tunnel identifier)`` so
that builds sharing an identifier share one process. The count and the
process id live in a small JSON state file inside the working directory;
a stop issued by a separate agent invocation therefore finds the process
started by an earlier one.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import re
import shlex
import shutil
import signal
import subprocess
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from sauce_common.errors import ExecutionError
from sauce_tunnel.identifiers import tunnel_identifier_from_options

logger = logging.getLogger(__name__)

DEFAULT_WORKING_DIRECTORY = Path.home() / ".sauce-connect"
SAUCE_CONNECT_BINARY = "sc"
_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


@dataclass
class TunnelProcess:
    """A running (or reused) Sauce Connect process."""

    identifier: str
    pid: int
    port: int
    log_file: Path
    reused: bool = False


def _pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


class SauceConnectManager:
    """Start/stop Sauce Connect processes for a working directory."""

    def __init__(
        self,
        *,
        poll_interval: float = 0.5,
        stop_grace_seconds: float = 10.0,
    ) -> None:
        self._poll_interval = poll_interval
        self._stop_grace = stop_grace_seconds
        self._children: Dict[int, subprocess.Popen] = {}
        self._lock = threading.Lock()

    def open_connection(
        self,
        username: str,
        access_key: str,
        port: int,
        options: str,
        *,
        working_directory: Optional[Path] = None,
        sauce_connect_path: Optional[str] = None,
        jar_path: Optional[str] = None,
        ready_timeout: float = 120.0,
    ) -> TunnelProcess:
        """Start a tunnel, or reuse the live one with the same identifier.

        The state lock is held only while the state file is read or
        written; waiting for the tunnel to come up happens outside it.
        """
        workdir = self._working_directory(working_directory)
        identifier = tunnel_identifier_from_options(options)
        reused: Optional[TunnelProcess] = None
        starting = False
        with self._state_lock(workdir):
            state = self._read_state(workdir, username, identifier)
            if state:
                self._reap(int(state.get("pid", 0)))
            if state and _pid_alive(int(state.get("pid", 0))):
                state["count"] = int(state.get("count", 1)) + 1
                self._write_state(workdir, username, identifier, state)
                logger.info(
                    "Reusing Sauce Connect %s (pid %s), now used by %d build(s)",
                    identifier,
                    state["pid"],
                    state["count"],
                )
                reused = TunnelProcess(
                    identifier=identifier,
                    pid=int(state["pid"]),
                    port=int(state.get("port", port)),
                    log_file=Path(state.get("log_file", "")),
                    reused=True,
                )
                starting = not state.get("ready", True)
            else:
                stem = self._stem(username, identifier)
                ready_file = workdir / f"{stem}.ready"
                log_file = workdir / f"{stem}.log"
                ready_file.unlink(missing_ok=True)
                command = self._build_command(
                    username,
                    access_key,
                    port,
                    options,
                    ready_file=ready_file,
                    log_file=log_file,
                    sauce_connect_path=sauce_connect_path,
                    jar_path=jar_path,
                    workdir=workdir,
                )
                process = self._spawn(command, workdir, log_file)
                self._write_state(
                    workdir,
                    username,
                    identifier,
                    {
                        "pid": process.pid,
                        "port": port,
                        "count": 1,
                        "log_file": str(log_file),
                        "ready": False,
                    },
                )

        if reused is not None:
            if starting:
                self._wait_for_other_start(workdir, username, reused, ready_timeout)
            return reused

        try:
            self._wait_until_ready(process, ready_file, log_file, ready_timeout)
        except ExecutionError:
            with self._state_lock(workdir):
                self._remove_state(workdir, username, identifier)
            self._terminate(process.pid)
            raise
        with self._state_lock(workdir):
            state = self._read_state(workdir, username, identifier) or {
                "pid": process.pid,
                "port": port,
                "count": 1,
                "log_file": str(log_file),
            }
            state["ready"] = True
            self._write_state(workdir, username, identifier, state)
        logger.info("Sauce Connect %s is up (pid %d, port %d)", identifier, process.pid, port)
        return TunnelProcess(identifier=identifier, pid=process.pid, port=port, log_file=log_file)

    def _wait_for_other_start(
        self, workdir: Path, username: str, tunnel: TunnelProcess, timeout: float
    ) -> None:
        # Another build launched this process and is still waiting for it.
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            with self._state_lock(workdir):
                state = self._read_state(workdir, username, tunnel.identifier)
            if not state or int(state.get("pid", 0)) != tunnel.pid:
                raise ExecutionError(
                    f"Sauce Connect {tunnel.identifier} failed to start",
                    context={"pid": tunnel.pid, "log_tail": self._log_tail(tunnel.log_file)},
                )
            if state.get("ready", True):
                return
            time.sleep(self._poll_interval)
        raise ExecutionError(
            f"Sauce Connect {tunnel.identifier} not ready after {timeout}s",
            context={"pid": tunnel.pid, "log_tail": self._log_tail(tunnel.log_file)},
        )

    def close_tunnels_for_plan(
        self,
        username: str,
        options: str,
        *,
        working_directory: Optional[Path] = None,
    ) -> bool:
        """Release one use of the tunnel; return True when a process was stopped.

        A tunnel that is unknown or already gone is not an error.
        """
        workdir = self._working_directory(working_directory)
        identifier = tunnel_identifier_from_options(options)
        with self._state_lock(workdir):
            state = self._read_state(workdir, username, identifier)
            if not state:
                logger.info("No Sauce Connect process recorded for %s", identifier)
                return False
            pid = int(state.get("pid", 0))
            self._reap(pid)
            count = int(state.get("count", 1)) - 1
            if count > 0 and _pid_alive(pid):
                state["count"] = count
                self._write_state(workdir, username, identifier, state)
                logger.info("Sauce Connect %s still used by %d build(s)", identifier, count)
                return False
            self._remove_state(workdir, username, identifier)
        if not _pid_alive(pid):
            logger.info("Sauce Connect %s (pid %d) already exited", identifier, pid)
            return False
        self._terminate(pid)
        logger.info("Stopped Sauce Connect %s (pid %d)", identifier, pid)
        return True

    def _working_directory(self, working_directory: Optional[Path]) -> Path:
        workdir = Path(working_directory) if working_directory else DEFAULT_WORKING_DIRECTORY
        workdir.mkdir(parents=True, exist_ok=True)
        return workdir

    @staticmethod
    def _stem(username: str, identifier: str) -> str:
        return f"sc-{_UNSAFE.sub('_', username)}-{_UNSAFE.sub('_', identifier)}"

    def _state_path(self, workdir: Path, username: str, identifier: str) -> Path:
        return workdir / f"{self._stem(username, identifier)}.json"

    @contextmanager
    def _state_lock(self, workdir: Path) -> Iterator[None]:
        lock_path = workdir / ".sc-state.lock"
        with self._lock, lock_path.open("a") as handle:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    def _read_state(self, workdir: Path, username: str, identifier: str) -> Optional[dict]:
        path = self._state_path(workdir, username, identifier)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable tunnel state %s: %s", path, exc)
            return None
        return data if isinstance(data, dict) else None

    def _write_state(self, workdir: Path, username: str, identifier: str, state: dict) -> None:
        path = self._state_path(workdir, username, identifier)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(state), encoding="utf-8")
        tmp.replace(path)

    def _remove_state(self, workdir: Path, username: str, identifier: str) -> None:
        self._state_path(workdir, username, identifier).unlink(missing_ok=True)

    def _build_command(
        self,
        username: str,
        access_key: str,
        port: int,
        options: str,
        *,
        ready_file: Path,
        log_file: Path,
        sauce_connect_path: Optional[str],
        jar_path: Optional[str],
        workdir: Path,
    ) -> List[str]:
        extra = shlex.split(options or "")
        files = ["--readyfile", str(ready_file), "--logfile", str(log_file)]
        if jar_path:
            # The legacy jar takes the credentials positionally.
            return ["java", "-jar", jar_path, username, access_key, "-P", str(port), *files, *extra]
        binary = self._locate_binary(sauce_connect_path, workdir)
        return [binary, "-u", username, "-k", access_key, "-P", str(port), *files, *extra]

    @staticmethod
    def _locate_binary(sauce_connect_path: Optional[str], workdir: Path) -> str:
        candidates = [sauce_connect_path] if sauce_connect_path else []
        candidates.append(shutil.which(SAUCE_CONNECT_BINARY))
        candidates.append(str(workdir / "bin" / SAUCE_CONNECT_BINARY))
        for candidate in candidates:
            if candidate and Path(candidate).is_file():
                return candidate
        raise ExecutionError(
            "Sauce Connect binary not found",
            context={"configured": sauce_connect_path, "working_directory": workdir},
        )

    def _spawn(self, command: List[str], workdir: Path, log_file: Path) -> subprocess.Popen:
        logger.debug("Launching Sauce Connect: %s", " ".join(shlex.quote(part) for part in command[:2]))
        try:
            with log_file.open("ab") as output:
                process = subprocess.Popen(
                    command,
                    cwd=str(workdir),
                    stdin=subprocess.DEVNULL,
                    stdout=output,
                    stderr=subprocess.STDOUT,
                    start_new_session=True,
                )
        except OSError as exc:
            raise ExecutionError(
                f"Unable to launch Sauce Connect: {exc}", context={"binary": command[0]}, cause=exc
            ) from exc
        self._children[process.pid] = process
        return process

    def _wait_until_ready(
        self,
        process: subprocess.Popen,
        ready_file: Path,
        log_file: Path,
        timeout: float,
    ) -> None:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if ready_file.exists():
                return
            code = process.poll()
            if code is not None:
                raise ExecutionError(
                    f"Sauce Connect exited with code {code} before becoming ready",
                    context={"returncode": code, "log_tail": self._log_tail(log_file)},
                )
            time.sleep(self._poll_interval)
        raise ExecutionError(
            f"Sauce Connect not ready after {timeout}s",
            context={"log_tail": self._log_tail(log_file)},
        )

    @staticmethod
    def _log_tail(log_file: Path, lines: int = 20) -> str:
        try:
            content = log_file.read_text(encoding="utf-8", errors="replace")
        except OSError:
            return ""
        return "\n".join(content.splitlines()[-lines:])

    def _terminate(self, pid: int) -> None:
        try:
            os.kill(pid, signal.SIGTERM)
        except ProcessLookupError:
            self._reap(pid)
            return
        deadline = time.monotonic() + self._stop_grace
        while time.monotonic() < deadline:
            self._reap(pid)
            if not _pid_alive(pid):
                return
            time.sleep(self._poll_interval)
        logger.warning("Sauce Connect pid %d ignored SIGTERM; killing", pid)
        try:
            os.kill(pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        self._reap(pid)

    def _reap(self, pid: int) -> None:
        if pid <= 0:
            return
        process = self._children.get(pid)
        if process is not None:
            if process.poll() is not None:
                self._children.pop(pid, None)
            return
        # Started by another manager in this process; collect it if it exited.
        try:
            os.waitpid(pid, os.WNOHANG)
        except ChildProcessError:
            pass
