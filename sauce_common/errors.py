"""Error taxonomy shared by the tunnel, environment and reporting layers.

None of these errors is meant to abort a build: callers catch them at the
component boundary, report through the build listener and carry on. The
agent protocol ships them across process boundaries as plain payloads.
"""

from __future__ import annotations

from typing import Any, Mapping


def _json_friendly(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(key): _json_friendly(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_friendly(item) for item in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


class SauceError(Exception):
    """Base error; ``context`` is always JSON-serialisable."""

    def __init__(
        self,
        message: str,
        *,
        context: Mapping[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.context: dict[str, Any] = _json_friendly(context or {})
        if cause is not None:
            self.__cause__ = cause

    @property
    def error_type(self) -> str:
        return self.__class__.__name__


class ConfigurationError(SauceError):
    """Missing or blank credentials, malformed port or browser settings."""


class ExecutionError(SauceError):
    """Dispatch, transport or process spawn failure, local or remote."""


class ExternalServiceError(SauceError):
    """The job-status API was unreachable or returned malformed data."""


class DecodingError(SauceError):
    """A captured console line could not be decoded."""


_BY_NAME: dict[str, type[SauceError]] = {
    cls.__name__: cls
    for cls in (SauceError, ConfigurationError, ExecutionError, ExternalServiceError, DecodingError)
}


def error_to_payload(error: SauceError) -> dict[str, Any]:
    """Agent reply form of ``error``."""
    return {
        "error_type": error.error_type,
        "error": str(error),
        "error_context": error.context,
    }


def error_from_payload(payload: Mapping[str, Any]) -> SauceError:
    """Rebuild a typed error from :func:`error_to_payload` output.

    Unknown type names come back as the base :class:`SauceError`.
    """
    error_cls = _BY_NAME.get(str(payload.get("error_type")), SauceError)
    context = payload.get("error_context")
    return error_cls(
        str(payload.get("error") or "unknown error"),
        context=context if isinstance(context, Mapping) else None,
    )
