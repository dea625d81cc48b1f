import pytest

from sauce_common.errors import ConfigurationError
from sauce_tunnel.ports import DEFAULT_SELENIUM_PORT, DEFAULT_TUNNEL_PORT, resolve_port


pytestmark = pytest.mark.unit_tunnel


def _no_free_port() -> int:
    raise AssertionError("free port must not be requested")


def _resolve(configured, *, tunnel_enabled=False, generated=False, env=None, free_port=_no_free_port):
    return resolve_port(
        configured,
        tunnel_enabled=tunnel_enabled,
        generated_identifier=generated,
        build_env=env or {},
        free_port=free_port,
    )


def test_defaults_differ_by_tunnel_mode():
    assert _resolve(None) == DEFAULT_SELENIUM_PORT == 4444
    assert _resolve(None, tunnel_enabled=True) == DEFAULT_TUNNEL_PORT == 4445


def test_zero_counts_as_unset():
    assert _resolve("0") == DEFAULT_SELENIUM_PORT


def test_generated_identifier_requests_free_port():
    assert _resolve("", tunnel_enabled=True, generated=True, free_port=lambda: 50123) == 50123


def test_explicit_port_wins():
    assert _resolve(" 5555 ", tunnel_enabled=True, generated=True) == 5555


def test_variable_reference_resolves_build_then_process(monkeypatch):
    monkeypatch.setenv("SAUCE_TEST_PORT", "6001")
    assert _resolve("${SAUCE_TEST_PORT}", env={"SAUCE_TEST_PORT": "6000"}) == 6000
    assert _resolve("$SAUCE_TEST_PORT") == 6001


def test_unresolved_reference_becomes_zero(monkeypatch):
    monkeypatch.delenv("SAUCE_UNSET_PORT", raising=False)
    assert _resolve("$SAUCE_UNSET_PORT") == 0


def test_malformed_port_is_configuration_error():
    with pytest.raises(ConfigurationError):
        _resolve("forty-four")
