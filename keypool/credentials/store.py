"""
Credential store for multiple Gemini API keys.

The store keeps an ordered collection of named keys plus an "active index"
in a small key/value backend (see :mod:`keypool.credentials.backend`). It is
instantiated once per process and passed to consumers such as the
:class:`~keypool.failover.invoker.FailoverInvoker`.

Persistence Model:
    Two records live in the backend: the collection as a JSON array and the
    active index as a decimal string. Storage failures never propagate out of
    the store; they are logged and replaced by safe defaults (empty
    collection, index 0). Writes are not transactional: two writers racing
    each other clobber one another and the last write wins.

Validation:
    ``test_one`` calls the model-listing endpoint with the key as a query
    parameter. ``test_all`` checks one key at a time so a rate-limited
    endpoint never sees a burst of concurrent requests.

Round-Robin:
    ``next_valid`` scans circularly from the active index and treats keys
    that were never tested as usable; only keys whose last validation
    explicitly failed are skipped.

Example:
    >>> store = CredentialStore(MemoryBackend())
    >>> store.add(CredentialEntry(id="1", secret="AIza...", display_name="Main"))
    >>> store.next_valid()
    'AIza...'
"""

import json
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from keypool.config.settings import DEFAULT_API_BASE_URL, KeypoolSettings
from keypool.credentials.backend import StorageBackend
from keypool.credentials.factory import create_storage_backend
from keypool.credentials.models import CredentialCollection, CredentialEntry, CredentialPatch, collection_adapter
from keypool.exceptions import StorageError
from keypool.utils.logging_config import mask_secret

log = structlog.get_logger(__name__)

DEFAULT_COLLECTION_KEY = "gemini-api-keys"
DEFAULT_ACTIVE_INDEX_KEY = "gemini-active-api-key-index"
DEFAULT_VALIDATION_URL = f"{DEFAULT_API_BASE_URL}/v1beta/models"


class CredentialStore:
    """Ordered, persisted collection of API keys with an active index."""

    def __init__(
        self,
        backend: StorageBackend,
        *,
        environment_secret: str | None = None,
        collection_key: str = DEFAULT_COLLECTION_KEY,
        active_index_key: str = DEFAULT_ACTIVE_INDEX_KEY,
        validation_url: str = DEFAULT_VALIDATION_URL,
        http_client: httpx.AsyncClient | None = None,
        validation_timeout: float = 10.0,
    ) -> None:
        """Initialize the store.

        Args:
            backend: Key/value backend holding the two records
            environment_secret: Fallback key from process configuration
            collection_key: Record name for the key collection
            active_index_key: Record name for the active index
            validation_url: Model-listing endpoint used by ``test_one``
            http_client: Client for validation requests; created lazily if omitted
            validation_timeout: Timeout in seconds for the lazily created client
        """
        self.backend = backend
        self.collection_key = collection_key
        self.active_index_key = active_index_key
        self.validation_url = validation_url
        self.validation_timeout = validation_timeout
        self._environment_secret = environment_secret
        self._http_client = http_client
        self._owns_client = http_client is None

    @classmethod
    def from_settings(cls, settings: KeypoolSettings, backend: StorageBackend | None = None) -> "CredentialStore":
        """Build a store from settings, creating the configured backend if none is given."""
        return cls(
            backend or create_storage_backend(settings.storage),
            environment_secret=settings.environment_secret,
            collection_key=settings.storage.collection_key,
            active_index_key=settings.storage.active_index_key,
            validation_url=settings.provider.models_url,
            validation_timeout=settings.provider.validation_timeout,
        )

    # ------------------------------------------------------------------
    # Collection
    # ------------------------------------------------------------------

    def get_all(self) -> CredentialCollection:
        """Return the persisted collection, or an empty one if missing or unreadable."""
        try:
            raw = self.backend.get(self.collection_key)
        except StorageError as e:
            log.error("credentials_load_failed", backend=self.backend.name, error=e.message)
            return []

        if not raw:
            return []

        try:
            return collection_adapter.validate_json(raw)
        except ValidationError as e:
            log.error(
                "credentials_parse_failed",
                backend=self.backend.name,
                errors=e.error_count(),
                error=str(e).splitlines()[0],
            )
            return []

    def save_all(self, collection: CredentialCollection) -> None:
        """Overwrite the persisted collection.

        Failures are logged only; callers must not assume durability.
        """
        payload = json.dumps([entry.to_record() for entry in collection], ensure_ascii=False)
        try:
            self.backend.set(self.collection_key, payload)
        except StorageError as e:
            log.error("credentials_save_failed", backend=self.backend.name, error=e.message)
            return

        log.debug("credentials_saved", count=len(collection))

    def add(self, entry: CredentialEntry) -> None:
        """Append an entry; no duplicate-id check is made."""
        collection = self.get_all()
        collection.append(entry)
        self.save_all(collection)
        log.info("credential_added", key_id=entry.id, name=entry.display_name)

    def update(self, entry_id: str, patch: CredentialPatch | Mapping[str, Any]) -> None:
        """Merge the set fields of ``patch`` into the entry with ``entry_id``.

        Unknown ids are ignored.
        """
        if not isinstance(patch, CredentialPatch):
            patch = CredentialPatch.model_validate(patch)

        collection = self.get_all()
        for position, entry in enumerate(collection):
            if entry.id == entry_id:
                collection[position] = patch.apply(entry)
                self.save_all(collection)
                log.info("credential_updated", key_id=entry_id, fields=sorted(patch.model_fields_set))
                return

        log.debug("credential_update_skipped", key_id=entry_id, reason="not_found")

    def remove(self, entry_id: str) -> None:
        """Remove the entry with ``entry_id`` and keep the active index in range."""
        remaining = [entry for entry in self.get_all() if entry.id != entry_id]
        self.save_all(remaining)

        if self.get_active_index() >= len(remaining):
            self.set_active_index(0)

        log.info("credential_removed", key_id=entry_id, remaining=len(remaining))

    # ------------------------------------------------------------------
    # Active index
    # ------------------------------------------------------------------

    def get_active_index(self) -> int:
        """Return the persisted active index, 0 if unset or unparseable."""
        try:
            raw = self.backend.get(self.active_index_key)
        except StorageError as e:
            log.error("active_index_load_failed", backend=self.backend.name, error=e.message)
            return 0

        if raw is None or not raw.strip():
            return 0

        try:
            return int(raw.strip())
        except ValueError:
            log.warning("active_index_unparseable", value=raw)
            return 0

    def set_active_index(self, index: int) -> None:
        """Persist ``index`` verbatim; bounds are the caller's concern."""
        try:
            self.backend.set(self.active_index_key, str(index))
        except StorageError as e:
            log.error("active_index_save_failed", backend=self.backend.name, error=e.message)

    def get_active_secret(self) -> str | None:
        """Secret at the active index, or None when out of range or blank."""
        collection = self.get_all()
        if not collection:
            return None

        index = self.get_active_index()
        if not 0 <= index < len(collection):
            return None

        secret = collection[index].secret
        return secret or None

    def next_valid(self) -> str | None:
        """Round-robin lookup of a usable key.

        Scans circularly from the active index for the first entry with a
        non-empty secret whose last validation did not fail. Moves the
        active index there if it differs.

        Returns:
            The secret, or None if no entry qualifies
        """
        collection = self.get_all()
        if not collection:
            return None

        active_index = self.get_active_index()
        size = len(collection)

        for offset in range(size):
            index = (active_index + offset) % size
            entry = collection[index]

            if entry.secret and entry.last_validated is not False:
                if index != active_index:
                    self.set_active_index(index)
                    log.info("active_credential_rotated", from_index=active_index, to_index=index)
                return entry.secret

        log.warning("no_valid_credential", total=size)
        return None

    # ------------------------------------------------------------------
    # Environment fallback
    # ------------------------------------------------------------------

    def get_environment_secret(self) -> str | None:
        """Fallback key supplied by process configuration, if any."""
        return self._environment_secret or None

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @property
    def http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.validation_timeout)
        return self._http_client

    async def test_one(self, secret: str) -> bool:
        """Call the model-listing endpoint with ``secret``.

        Never raises; any failure (network, invalid URL, non-2xx) is False.
        """
        try:
            response = await self.http_client.get(self.validation_url, params={"key": secret})
        except Exception as e:
            log.warning("credential_check_failed", key=mask_secret(secret), error=str(e))
            return False

        if not response.is_success:
            log.info("credential_check_rejected", key=mask_secret(secret), status_code=response.status_code)
        return response.is_success

    async def test_all(self) -> CredentialCollection:
        """Validate every non-blank key, one at a time, and persist the results.

        Entries with a blank secret are passed through unchanged.
        """
        updated: CredentialCollection = []

        for entry in self.get_all():
            if not entry.has_secret:
                updated.append(entry)
                continue

            is_valid = await self.test_one(entry.secret)
            updated.append(
                entry.model_copy(update={"last_validated": is_valid, "last_validated_at": datetime.now(UTC)})
            )

        self.save_all(updated)
        log.info(
            "credentials_tested",
            total=len(updated),
            valid=sum(1 for entry in updated if entry.last_validated is True),
            invalid=sum(1 for entry in updated if entry.last_validated is False),
        )
        return updated

    async def aclose(self) -> None:
        """Close the validation client if the store created it."""
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
