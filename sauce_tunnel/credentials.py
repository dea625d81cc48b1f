"""Credential resolution for a build."""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional, Tuple

from sauce_common.config.settings import InlineCredentials, JobSettings, PluginSettings
from sauce_common.errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CredentialRef:
    """Resolved Sauce Labs username and access key."""

    username: str
    access_key: str = field(repr=False)
    source: str = "unknown"

    @classmethod
    def from_inline(cls, inline: InlineCredentials, source: str) -> "CredentialRef":
        return cls(
            username=inline.username.strip(),
            access_key=inline.access_key.get_secret_value().strip(),
            source=source,
        )

    def is_complete(self) -> bool:
        return bool(self.username) and bool(self.access_key)


class CredentialStore:
    """Thread-safe credential lookup keyed by credential id."""

    def __init__(self, entries: Optional[Dict[str, CredentialRef]] = None) -> None:
        self._entries: Dict[str, CredentialRef] = dict(entries or {})
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: PluginSettings) -> "CredentialStore":
        return cls(
            {
                cred_id: CredentialRef.from_inline(inline, source=f"store:{cred_id}")
                for cred_id, inline in settings.credential_store.items()
            }
        )

    def get(self, credential_id: str) -> Optional[CredentialRef]:
        with self._lock:
            return self._entries.get(credential_id)

    def add(self, username: str, access_key: str, description: str = "") -> str:
        """Store a credential and return its generated id."""
        credential_id = str(uuid.uuid4())
        with self._lock:
            self._entries[credential_id] = CredentialRef(
                username=username, access_key=access_key, source=f"store:{credential_id}"
            )
        logger.info("Stored credential %s (%s)", credential_id, description or username)
        return credential_id

    def items(self) -> Iterator[Tuple[str, CredentialRef]]:
        with self._lock:
            snapshot = list(self._entries.items())
        return iter(snapshot)


def resolve_credentials(
    job: JobSettings,
    plugin: PluginSettings,
    store: Optional[CredentialStore] = None,
) -> CredentialRef:
    """Pick exactly one credential source.

    Precedence: the job's credential id, then the plugin-wide default, then
    the job's legacy inline pair. Raises ConfigurationError when the chosen
    source cannot be resolved or no source is configured.
    """
    if job.credential_id:
        found = store.get(job.credential_id) if store is not None else None
        if found is None:
            raise ConfigurationError(
                f"Credential id {job.credential_id} not found",
                context={"credential_id": job.credential_id},
            )
        return found
    if plugin.credentials is not None and not plugin.credentials.is_blank():
        return CredentialRef.from_inline(plugin.credentials, source="plugin")
    if job.credentials is not None and not job.credentials.is_blank():
        return CredentialRef.from_inline(job.credentials, source="legacy")
    raise ConfigurationError("No Sauce Labs credentials configured")


def migrate_credentials(
    job: JobSettings,
    store: CredentialStore,
    project_name: Optional[str] = None,
) -> JobSettings:
    """Move legacy inline credentials into ``store``.

    Returns a copy of ``job`` referencing the new credential id with the
    inline pair cleared, or ``job`` unchanged when there is nothing to do.
    """
    if job.credential_id or job.credentials is None or job.credentials.is_blank():
        return job
    inline = job.credentials
    credential_id = store.add(
        inline.username,
        inline.access_key.get_secret_value(),
        description=f"migrated from {project_name or 'Unknown'}",
    )
    return job.model_copy(update={"credential_id": credential_id, "credentials": None})
