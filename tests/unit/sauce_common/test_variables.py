import pytest

from sauce_common.variables import (
    replace_macros,
    resolve_reference,
    sanitise_build_number,
    variable_reference,
)


pytestmark = pytest.mark.unit_common


def test_sanitise_build_number_replaces_every_non_alphanumeric() -> None:
    assert sanitise_build_number("build #42 (retry)") == "build__42__retry_"
    assert sanitise_build_number("abc123") == "abc123"


@pytest.mark.parametrize(
    "value, expected",
    [("$HOST", "HOST"), ("${HOST}", "HOST"), ("%HOST", "HOST"), ("host.example", None), ("x$HOST", None)],
)
def test_variable_reference(value, expected) -> None:
    assert variable_reference(value) == expected


def test_resolve_reference_prefers_build_values(monkeypatch) -> None:
    monkeypatch.setenv("SAUCE_PORT_VAR", "5000")
    assert resolve_reference("$SAUCE_PORT_VAR", {"SAUCE_PORT_VAR": "6000"}) == "6000"
    assert resolve_reference("$SAUCE_PORT_VAR", {}) == "5000"


def test_resolve_reference_unknown_variable(monkeypatch) -> None:
    monkeypatch.delenv("SAUCE_MISSING_VAR", raising=False)
    assert resolve_reference("${SAUCE_MISSING_VAR}") is None
    assert resolve_reference("literal") == "literal"


def test_replace_macros_leaves_unknown_names() -> None:
    text = "--tunnel-identifier ${JOB_NAME} -v $UNKNOWN"
    assert replace_macros(text, {"JOB_NAME": "nightly"}) == "--tunnel-identifier nightly -v $UNKNOWN"
    assert replace_macros(None, {}) == ""
