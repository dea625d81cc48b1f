"""Build wrapper tying tunnel, environment and reporting to a build's lifetime."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import BinaryIO, Callable, List, MutableMapping, Optional

from sauce_build.browsers import BrowserCatalog
from sauce_build.capture import LogCapture
from sauce_build.correlator import (
    JobStatusClient,
    ReconcileReport,
    SessionCorrelator,
    SessionRecord,
)
from sauce_build.environment import (
    BrowserSelection,
    EnvironmentMap,
    EnvironmentSynthesizer,
    SynthesisRequest,
    resolve_host,
)
from sauce_build.registry import CaptureRegistry
from sauce_common.config.settings import JobSettings, PluginSettings
from sauce_common.errors import ConfigurationError, ExecutionError, ExternalServiceError, SauceError
from sauce_common.host import BuildContext, BuildListener, RunCondition
from sauce_common.logging import bind_build_context, clear_build_context
from sauce_common.rest_client import SauceRestClient
from sauce_tunnel.coordinator import DispatcherFactory, TunnelCoordinator, default_dispatcher_factory
from sauce_tunnel.credentials import (
    CredentialRef,
    CredentialStore,
    migrate_credentials,
    resolve_credentials,
)
from sauce_tunnel.identifiers import generate_tunnel_identifier
from sauce_tunnel.models import TunnelHandle
from sauce_tunnel.state import TunnelState

logger = logging.getLogger(__name__)

USAGE_PLATFORM = "jenkins"

PluginSettingsProvider = Callable[[], PluginSettings]
RestClientFactory = Callable[[PluginSettings, CredentialRef], JobStatusClient]
CatalogFactory = Callable[[PluginSettings, Optional[CredentialRef]], BrowserCatalog]


def default_rest_client(plugin: PluginSettings, credentials: CredentialRef) -> SauceRestClient:
    return SauceRestClient(
        username=credentials.username,
        access_key=credentials.access_key,
        base_url=plugin.rest_url,
        timeout_seconds=plugin.http_timeout_seconds,
        max_retries=plugin.http_max_retries,
    )


def default_catalog(plugin: PluginSettings, credentials: Optional[CredentialRef]) -> BrowserCatalog:
    if credentials is None:
        return BrowserCatalog()
    return BrowserCatalog.from_rest(default_rest_client(plugin, credentials))


@dataclass(frozen=True)
class BuildReport:
    """What happened at teardown."""

    build_id: str
    tunnel_state: TunnelState
    sessions: List[SessionRecord] = field(default_factory=list)
    reconciliation: Optional[ReconcileReport] = None
    decode_errors: int = 0


class BuildEnvironment:
    """Per-build state returned by :meth:`SauceBuildWrapper.set_up`."""

    def __init__(
        self,
        wrapper: "SauceBuildWrapper",
        build: BuildContext,
        plugin: PluginSettings,
        credentials: Optional[CredentialRef],
        coordinator: TunnelCoordinator,
        handle: TunnelHandle,
    ) -> None:
        self._wrapper = wrapper
        self._build = build
        self._plugin = plugin
        self._credentials = credentials
        self._coordinator = coordinator
        self._handle = handle
        self._catalog: Optional[BrowserCatalog] = None
        self._torn_down: Optional[BuildReport] = None

    @property
    def plugin(self) -> PluginSettings:
        return self._plugin

    @property
    def credentials(self) -> Optional[CredentialRef]:
        return self._credentials

    @property
    def coordinator(self) -> TunnelCoordinator:
        return self._coordinator

    @property
    def handle(self) -> TunnelHandle:
        return self._handle

    def build_env_vars(
        self,
        env: MutableMapping[str, str],
        listener: Optional[BuildListener] = None,
    ) -> EnvironmentMap:
        """Synthesize the build's variables and write them into ``env``."""
        job = self._wrapper.job
        build = self._build
        tunnel_failed = self._coordinator.state is TunnelState.FAILED
        tunnel_enabled = job.enable_sauce_connect and not tunnel_failed

        identifier = None
        if self._coordinator.uses_generated_identifier and not tunnel_failed:
            identifier = self._coordinator.generated_identifier(build)

        request = SynthesisRequest(
            selection=BrowserSelection.from_job(job),
            credentials=self._credentials,
            tunnel_port=self._port(listener, tunnel_failed),
            build_number=build.identity,
            tunnel_identifier=identifier,
            host=resolve_host(
                job.selenium_host,
                tunnel_enabled=tunnel_enabled,
                local_hostname=build.executor_hostname,
            ),
            native_app=job.native_app_package,
            starting_url=job.starting_url,
            use_chrome_for_android=job.use_chrome_for_android,
            build_variables=build.build_variables,
        )
        synthesizer = EnvironmentSynthesizer(self._browser_catalog(request.selection))
        env_map = synthesizer.synthesize(request, listener=listener, verbose=job.verbose_logging)
        env_map.apply_to(env)
        return env_map

    def tear_down(self, build: BuildContext, listener: BuildListener) -> BuildReport:
        """Stop the tunnel and reconcile captured sessions; safe to call twice."""
        if self._torn_down is not None:
            return self._torn_down
        try:
            self._coordinator.stop(build, listener)
            report = self._process_output(build, listener)
            listener.log("Finished post-build for Sauce Labs plugin")
        finally:
            clear_build_context()
        self._torn_down = report
        return report

    def _port(self, listener: Optional[BuildListener], tunnel_failed: bool) -> Optional[int]:
        if self._handle.running and self._handle.port:
            return self._handle.port
        try:
            if tunnel_failed:
                return self._coordinator.fallback_port(self._build)
            return self._coordinator.resolve_port(self._build)
        except (ConfigurationError, ExecutionError) as exc:
            logger.warning("Selenium port unavailable for %s: %s", self._build.identity, exc)
            if listener is not None:
                listener.log(f"SELENIUM_PORT not set: {exc}")
            return None

    def _browser_catalog(self, selection: BrowserSelection) -> BrowserCatalog:
        if not selection:
            return BrowserCatalog()
        if self._catalog is None:
            try:
                self._catalog = self._wrapper.catalog_factory(self._plugin, self._credentials)
            except SauceError as exc:
                logger.warning("Browser catalog unavailable for %s: %s", self._build.identity, exc)
                self._catalog = BrowserCatalog()
        return self._catalog

    def _process_output(self, build: BuildContext, listener: BuildListener) -> BuildReport:
        capture = self._wrapper.registry.lookup_and_remove(build.identity)
        state = self._coordinator.state
        if capture is None:
            return BuildReport(build_id=build.identity, tunnel_state=state)
        lines = capture.freeze()
        correlator = self._wrapper.correlator
        records = correlator.extract(lines)
        reconciliation = None
        if records and self._credentials is None:
            logger.info("Skipping reconciliation for %s: no credentials", build.identity)
        elif records:
            client = self._wrapper.client_for(self._plugin, self._credentials)
            if client is not None:
                reconciliation = correlator.reconcile(
                    records,
                    client,
                    build_number=build.identity,
                    succeeded=build.succeeded,
                    public=self._plugin.public_jobs,
                    listener=listener,
                )
            else:
                listener.log("Sauce job status not updated: REST client unavailable")
        return BuildReport(
            build_id=build.identity,
            tunnel_state=state,
            sessions=records,
            reconciliation=reconciliation,
            decode_errors=len(capture.decode_errors),
        )


class SauceBuildWrapper:
    """Entry point the host calls around every build of one job."""

    def __init__(
        self,
        job: JobSettings,
        plugin_settings: PluginSettingsProvider,
        *,
        registry: Optional[CaptureRegistry] = None,
        credential_store: Optional[CredentialStore] = None,
        condition: Optional[RunCondition] = None,
        correlator: Optional[SessionCorrelator] = None,
        catalog_factory: CatalogFactory = default_catalog,
        rest_client_factory: RestClientFactory = default_rest_client,
        dispatcher_factory: DispatcherFactory = default_dispatcher_factory,
        identifier_factory: Callable[[str], str] = generate_tunnel_identifier,
    ) -> None:
        self._job = job
        self._plugin_settings = plugin_settings
        self.registry = registry or CaptureRegistry()
        self._credential_store = credential_store
        self._condition = condition
        self.correlator = correlator or SessionCorrelator()
        self.catalog_factory = catalog_factory
        self.rest_client_factory = rest_client_factory
        self._dispatcher_factory = dispatcher_factory
        self._identifier_factory = identifier_factory

    @property
    def job(self) -> JobSettings:
        return self._job

    def migrate_credentials(self, store: CredentialStore, project_name: Optional[str] = None) -> bool:
        """Move legacy inline credentials into ``store``; call when loading the job."""
        migrated = migrate_credentials(self._job, store, project_name)
        if migrated is self._job:
            return False
        self._job = migrated
        self._credential_store = store
        return True

    def decorate_logger(self, build: BuildContext, sink: BinaryIO) -> LogCapture:
        """Wrap the build's console sink and register the capture."""
        capture = LogCapture(sink, build.charset, build_id=build.identity)
        self.registry.register(build.identity, capture)
        return capture

    def set_up(self, build: BuildContext, listener: BuildListener) -> BuildEnvironment:
        listener.log("Starting pre-build for Sauce Labs plugin")
        bind_build_context(build=build.identity)
        plugin = self._plugin_settings()
        store = self._credential_store or CredentialStore.from_settings(plugin)

        credentials: Optional[CredentialRef]
        try:
            credentials = resolve_credentials(self._job, plugin, store)
        except ConfigurationError as exc:
            listener.log(f"Sauce Labs credentials not available: {exc}")
            logger.warning("Credential resolution failed for %s: %s", build.identity, exc)
            credentials = None

        coordinator = TunnelCoordinator(
            self._job,
            plugin,
            credentials=credentials,
            condition=self._condition,
            dispatcher_factory=self._dispatcher_factory,
            identifier_factory=self._identifier_factory,
        )
        handle = coordinator.start(build, listener)
        if plugin.send_usage_data and credentials is not None:
            self._record_usage(plugin, credentials)
        listener.log("Finished pre-build for Sauce Labs plugin")
        return BuildEnvironment(self, build, plugin, credentials, coordinator, handle)

    def client_for(
        self, plugin: PluginSettings, credentials: CredentialRef
    ) -> Optional[JobStatusClient]:
        """REST client for ``credentials``, or None when it cannot be built."""
        try:
            return self.rest_client_factory(plugin, credentials)
        except ConfigurationError as exc:
            logger.warning("Sauce REST client unavailable: %s", exc)
            return None

    def _record_usage(self, plugin: PluginSettings, credentials: CredentialRef) -> None:
        client = self.client_for(plugin, credentials)
        record_ci = getattr(client, "record_ci", None)
        if record_ci is None:
            return
        try:
            record_ci(USAGE_PLATFORM, plugin.host_version)
        except ExternalServiceError as exc:
            logger.debug("Usage data not recorded: %s", exc)
