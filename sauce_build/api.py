"""Public API surface for sauce_build."""

from sauce_build.browsers import Browser, BrowserCatalog, DriverType
from sauce_build.capture import LogCapture
from sauce_build.correlator import (
    ReconcileReport,
    SessionCorrelator,
    SessionOutcome,
    SessionRecord,
    extract_session,
)
from sauce_build.environment import (
    DEFAULT_PUBLIC_HOST,
    BrowserSelection,
    EnvironmentMap,
    EnvironmentSynthesizer,
    SynthesisRequest,
    resolve_host,
)
from sauce_build.registry import CaptureRegistry
from sauce_build.wrapper import BuildEnvironment, BuildReport, SauceBuildWrapper

__all__ = [
    "Browser",
    "BrowserCatalog",
    "BrowserSelection",
    "BuildEnvironment",
    "BuildReport",
    "CaptureRegistry",
    "DEFAULT_PUBLIC_HOST",
    "DriverType",
    "EnvironmentMap",
    "EnvironmentSynthesizer",
    "LogCapture",
    "ReconcileReport",
    "SauceBuildWrapper",
    "SessionCorrelator",
    "SessionOutcome",
    "SessionRecord",
    "SynthesisRequest",
    "extract_session",
    "resolve_host",
]
