"""Build-level integration: environment, log capture and session reporting."""

from sauce_build.api import (
    BuildEnvironment,
    BuildReport,
    CaptureRegistry,
    EnvironmentMap,
    SauceBuildWrapper,
)

__all__ = [
    "BuildEnvironment",
    "BuildReport",
    "CaptureRegistry",
    "EnvironmentMap",
    "SauceBuildWrapper",
]
