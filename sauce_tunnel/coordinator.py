"""Per-build tunnel lifecycle: decide, launch, track and stop.

One coordinator exists per build. ``start`` and ``stop`` are issued from
the build's own thread, never concurrently, so the only synchronisation
is the state machine's own lock.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from sauce_common.config.settings import JobSettings, PluginSettings
from sauce_common.errors import ConfigurationError, ExecutionError, SauceError
from sauce_common.host import BuildContext, BuildListener, RunCondition
from sauce_common.variables import replace_macros
from sauce_remote.dispatcher import Dispatcher, select_dispatcher
from sauce_remote.types import AgentChannel, ExecutionTarget, ExecutorContext
from sauce_remote.work import FreePortWork
from sauce_tunnel.credentials import CredentialRef
from sauce_tunnel.identifiers import generate_tunnel_identifier, tunnel_identifier_from_options
from sauce_tunnel.models import TunnelConfig, TunnelHandle
from sauce_tunnel.ports import resolve_port
from sauce_tunnel.state import TunnelState, TunnelStateMachine
from sauce_tunnel.work import StartTunnelWork, StopTunnelWork

logger = logging.getLogger(__name__)

DispatcherFactory = Callable[[ExecutionTarget, Optional[AgentChannel]], Dispatcher]

# Shared by every local dispatch so start and stop see the same manager.
PROCESS_CONTEXT = ExecutorContext()


def default_dispatcher_factory(
    target: ExecutionTarget, channel: Optional[AgentChannel]
) -> Dispatcher:
    return select_dispatcher(target, channel=channel, context=PROCESS_CONTEXT)


class TunnelCoordinator:
    """Drive one build's tunnel through its lifecycle."""

    def __init__(
        self,
        job: JobSettings,
        plugin: PluginSettings,
        *,
        credentials: Optional[CredentialRef],
        condition: Optional[RunCondition] = None,
        dispatcher_factory: DispatcherFactory = default_dispatcher_factory,
        identifier_factory: Callable[[str], str] = generate_tunnel_identifier,
    ) -> None:
        self._job = job
        self._plugin = plugin
        self._credentials = credentials
        self._condition = condition
        self._dispatcher_factory = dispatcher_factory
        self._identifier_factory = identifier_factory
        self._machine = TunnelStateMachine()
        self._generated_identifier: Optional[str] = None
        self._port: Optional[int] = None
        self._config: Optional[TunnelConfig] = None
        self._start_dispatched = False
        self._stop_attempted = False

    @property
    def state(self) -> TunnelState:
        return self._machine.state

    @property
    def state_machine(self) -> TunnelStateMachine:
        return self._machine

    @property
    def enabled(self) -> bool:
        return self._job.enable_sauce_connect

    @property
    def uses_generated_identifier(self) -> bool:
        return self._job.enable_sauce_connect and self._job.use_generated_tunnel_identifier

    @property
    def config(self) -> Optional[TunnelConfig]:
        return self._config

    @property
    def target(self) -> ExecutionTarget:
        if self._job.launch_sauce_connect_on_slave:
            return ExecutionTarget.REMOTE
        return ExecutionTarget.LOCAL

    def generated_identifier(self, build: BuildContext) -> str:
        """Identifier generated for this build; computed once, reused at stop."""
        if self._generated_identifier is None:
            self._generated_identifier = self._identifier_factory(build.job_name)
        return self._generated_identifier

    def command_line_options(self, build: BuildContext) -> str:
        """Job options then plugin-wide options, macros resolved from the build.

        Derived from build state on every call so that ``stop`` can rebuild
        exactly what ``start`` used.
        """
        variables = build.environment()
        parts = [
            replace_macros(self._job.options, variables).strip(),
            replace_macros(self._plugin.sauce_connect_options, variables).strip(),
        ]
        options = " ".join(part for part in parts if part)
        if self.uses_generated_identifier:
            identifier = self.generated_identifier(build)
            options = f"--tunnel-identifier {identifier} {options}".strip()
        return options

    def resolve_port(self, build: BuildContext) -> int:
        """Canonical port for the build, evaluated once.

        May raise ConfigurationError for a malformed port setting, or
        ExecutionError when no ephemeral port could be obtained.
        """
        if self._port is None:
            self._port = resolve_port(
                self._job.selenium_port,
                tunnel_enabled=self._job.enable_sauce_connect,
                generated_identifier=self._job.use_generated_tunnel_identifier,
                build_env=build.environment(),
                free_port=lambda: self._free_port(build),
            )
        return self._port

    def fallback_port(self, build: BuildContext) -> int:
        """Port to expose when the tunnel failed: the non-tunnel policy."""
        return resolve_port(
            self._job.selenium_port,
            tunnel_enabled=False,
            generated_identifier=False,
            build_env=build.environment(),
            free_port=lambda: 0,
        )

    def handle(self) -> TunnelHandle:
        state, reason = self._machine.snapshot()
        return TunnelHandle(
            state=state,
            config=self._config,
            port=self._config.port if self._config else None,
            reason=reason,
        )

    def start(self, build: BuildContext, listener: BuildListener) -> TunnelHandle:
        """Launch the tunnel for ``build`` when enabled and allowed."""
        if self.state is not TunnelState.NOT_STARTED:
            logger.warning("Tunnel start requested in state %s; ignoring", self.state.value)
            return self.handle()
        if not self._job.enable_sauce_connect:
            return self.handle()
        if not self._gate_open(build, listener):
            listener.log("Sauce Connect launch skipped due to run condition")
            return self.handle()
        if not self._credentials_usable(listener):
            return self.handle()

        try:
            config = self._resolve_config(build)
        except (ConfigurationError, ExecutionError) as exc:
            listener.log(f"Sauce Connect not started: {exc}")
            logger.warning("Tunnel configuration unavailable for %s: %s", build.identity, exc)
            self._machine.transition(TunnelState.FAILED, reason=str(exc))
            return self.handle()

        self._config = config
        if config.launch_on_remote and build.channel is not None:
            listener.log(
                f"Starting Sauce Connect on slave node using tunnel identifier: {config.identifier}"
            )
        else:
            listener.log(
                f"Starting Sauce Connect on master node using identifier: {config.identifier}"
            )

        self._machine.transition(TunnelState.STARTING)
        work = StartTunnelWork(
            username=config.credentials.username,
            access_key=config.credentials.access_key,
            port=config.port,
            options=config.command_line_options,
            working_directory=str(config.working_directory) if config.working_directory else None,
            sauce_connect_path=config.sauce_connect_path,
            jar_path=config.jar_path,
            ready_timeout=self._plugin.tunnel_ready_timeout_seconds,
        )
        self._start_dispatched = True
        try:
            result = self._dispatcher(build).execute(work)
        except ExecutionError as exc:
            listener.log(f"Error launching Sauce Connect: {exc}")
            logger.error("Tunnel start failed for %s: %s", build.identity, exc)
            self._machine.transition(TunnelState.FAILED, reason=str(exc))
            return self.handle()

        for message in result.messages:
            listener.log(message)
        if not result.started:
            self._machine.transition(TunnelState.FAILED, reason="tunnel declined to start")
            return self.handle()
        if result.port and result.port != config.port:
            self._config = TunnelConfig(
                identifier=config.identifier,
                port=result.port,
                command_line_options=config.command_line_options,
                working_directory=config.working_directory,
                credentials=config.credentials,
                launch_on_remote=config.launch_on_remote,
                sauce_connect_path=config.sauce_connect_path,
                jar_path=config.jar_path,
            )
        self._machine.transition(TunnelState.RUNNING)
        handle = self.handle()
        return TunnelHandle(
            state=handle.state,
            config=handle.config,
            port=handle.port,
            pid=result.pid,
            reason=handle.reason,
        )

    def stop(self, build: BuildContext, listener: BuildListener) -> None:
        """Release the tunnel; repeated calls are no-ops."""
        state = self.state
        if state in {TunnelState.NOT_STARTED, TunnelState.CLOSED}:
            return
        if self._stop_attempted:
            return
        if state is TunnelState.FAILED and not self._start_dispatched:
            return
        if not self._gate_open(build, listener):
            listener.log("Sauce Connect shutdown skipped due to run condition")
            return

        self._stop_attempted = True
        listener.log("Shutting down Sauce Connect")
        options = self.command_line_options(build)
        if state in {TunnelState.STARTING, TunnelState.RUNNING}:
            self._machine.transition(TunnelState.CLOSING)
        username = self._credentials.username if self._credentials else ""
        working_directory = self._plugin.sauce_connect_directory
        work = StopTunnelWork(
            username=username,
            options=options,
            working_directory=str(working_directory) if working_directory else None,
        )
        try:
            result = self._dispatcher(build).execute(work)
        except ExecutionError as exc:
            listener.log(f"Error shutting down Sauce Connect: {exc}")
            logger.error("Tunnel stop failed for %s: %s", build.identity, exc)
            if not self._machine.is_terminal():
                self._machine.transition(TunnelState.FAILED, reason=str(exc))
            return
        for message in result.messages:
            listener.log(message)
        if self.state is TunnelState.CLOSING:
            self._machine.transition(TunnelState.CLOSED)

    def _resolve_config(self, build: BuildContext) -> TunnelConfig:
        assert self._credentials is not None
        options = self.command_line_options(build)
        if self.uses_generated_identifier:
            identifier = self.generated_identifier(build)
        else:
            identifier = tunnel_identifier_from_options(options)
        return TunnelConfig(
            identifier=identifier,
            port=self.resolve_port(build),
            command_line_options=options,
            working_directory=self._plugin.sauce_connect_directory,
            credentials=self._credentials,
            launch_on_remote=self._job.launch_sauce_connect_on_slave,
            sauce_connect_path=self._job.sauce_connect_path,
            jar_path=self._job.sauce_connect_jar,
        )

    def _dispatcher(self, build: BuildContext) -> Dispatcher:
        return self._dispatcher_factory(self.target, build.channel)

    def _free_port(self, build: BuildContext) -> int:
        port = self._dispatcher(build).execute(FreePortWork())
        if not port:
            raise ExecutionError("No free port reported for the tunnel", context={"port": port})
        return port

    def _credentials_usable(self, listener: BuildListener) -> bool:
        if self._credentials is None or not self._credentials.username:
            listener.log("Username not set, not starting Sauce Connect")
            return False
        if not self._credentials.access_key:
            listener.log("Access key not set, not starting Sauce Connect")
            return False
        return True

    def _gate_open(self, build: BuildContext, listener: BuildListener) -> bool:
        if self._condition is None:
            return True
        try:
            return bool(self._condition.run_perform(build, listener))
        except SauceError as exc:
            listener.log(f"Error checking Sauce Connect run condition: {exc}")
        except Exception as exc:
            listener.log("Error checking Sauce Connect run condition")
            logger.warning("Run condition raised for %s: %s", build.identity, exc, exc_info=True)
        return False
