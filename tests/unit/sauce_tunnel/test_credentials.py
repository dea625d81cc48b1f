"""Tests for credential precedence and migration."""

from __future__ import annotations

import pytest

from sauce_common.config import InlineCredentials, JobSettings, PluginSettings
from sauce_common.errors import ConfigurationError
from sauce_tunnel.credentials import CredentialStore, migrate_credentials, resolve_credentials


pytestmark = pytest.mark.unit_tunnel


def _inline(user: str, key: str) -> InlineCredentials:
    return InlineCredentials(username=user, access_key=key)


def test_credential_id_takes_precedence() -> None:
    plugin = PluginSettings(
        credentials=_inline("global", "g-key"),
        credential_store={"ci-bot": _inline("bot", "b-key")},
    )
    job = JobSettings(credential_id="ci-bot", credentials=_inline("legacy", "l-key"))
    creds = resolve_credentials(job, plugin, CredentialStore.from_settings(plugin))
    assert (creds.username, creds.access_key, creds.source) == ("bot", "b-key", "store:ci-bot")


def test_global_default_beats_legacy_inline() -> None:
    plugin = PluginSettings(credentials=_inline("global", "g-key"))
    job = JobSettings(credentials=_inline("legacy", "l-key"))
    assert resolve_credentials(job, plugin).username == "global"


def test_legacy_inline_used_last() -> None:
    job = JobSettings(credentials=_inline(" legacy ", "l-key"))
    creds = resolve_credentials(job, PluginSettings())
    assert creds.username == "legacy"
    assert creds.source == "legacy"


def test_unknown_credential_id_is_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        resolve_credentials(JobSettings(credential_id="missing"), PluginSettings(), CredentialStore())


def test_nothing_configured_is_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        resolve_credentials(JobSettings(), PluginSettings())


def test_access_key_hidden_from_repr() -> None:
    creds = resolve_credentials(JobSettings(credentials=_inline("u", "top-secret")), PluginSettings())
    assert "top-secret" not in repr(creds)


def test_migrate_credentials_moves_inline_pair() -> None:
    store = CredentialStore()
    job = JobSettings(credentials=_inline("legacy", "l-key"))
    migrated = migrate_credentials(job, store, "nightly")
    assert migrated.credentials is None
    assert migrated.credential_id is not None
    stored = store.get(migrated.credential_id)
    assert stored is not None
    assert (stored.username, stored.access_key) == ("legacy", "l-key")
    assert job.credentials is not None


def test_migrate_credentials_noop_when_already_referenced() -> None:
    store = CredentialStore()
    job = JobSettings(credential_id="x", credentials=_inline("legacy", "l-key"))
    assert migrate_credentials(job, store) is job
    assert list(store.items()) == []
