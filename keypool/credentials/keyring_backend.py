"""OS-level keyring backend using system credential stores.

Platform Support:
- Linux: Secret Service API (GNOME Keyring, KWallet)
- macOS: Keychain
- Windows: Windows Credential Locker

Each record is stored as one password entry under the service name
``keypool/<namespace>`` with the record name as the username.
"""

from typing import cast

import keyring
import structlog
from keyring.backends.fail import Keyring as FailKeyring
from keyring.errors import KeyringError, PasswordDeleteError

from keypool.exceptions import BackendNotAvailableError, StorageError

log = structlog.get_logger(__name__)


class KeyringBackend:
    """Key/value records in the OS keyring.

    Example:
        >>> backend = KeyringBackend(namespace="default")
        >>> backend.set("gemini-active-api-key-index", "0")
        >>> backend.get("gemini-active-api-key-index")
        '0'
    """

    def __init__(self, namespace: str = "default") -> None:
        self.namespace = namespace

    @property
    def name(self) -> str:
        return "keyring"

    @property
    def service(self) -> str:
        """Keyring service name the records live under."""
        return f"keypool/{self.namespace}"

    @property
    def available(self) -> bool:
        """Check if a functional keyring is configured.

        Returns False on headless systems where keyring falls back to its
        "fail" backend, or when the backend cannot be initialized.
        """
        try:
            return not isinstance(keyring.get_keyring(), FailKeyring)
        except Exception as e:
            log.debug("keyring_not_available", error=str(e))
            return False

    def _require_available(self) -> None:
        if not self.available:
            raise BackendNotAvailableError(
                "Keyring backend is not available",
                backend=self.name,
                suggestion="Use the file backend: export KEYPOOL_STORAGE__BACKEND=file",
            )

    def get(self, key: str) -> str | None:
        self._require_available()

        try:
            return cast(str | None, keyring.get_password(self.service, key))
        except KeyringError as e:
            raise StorageError(f"Keyring read failed for {key}: {e}", backend=self.name) from e

    def set(self, key: str, value: str) -> None:
        self._require_available()

        try:
            keyring.set_password(self.service, key, value)
            log.debug("keyring_record_stored", service=self.service, key=key)
        except KeyringError as e:
            raise StorageError(f"Keyring write failed for {key}: {e}", backend=self.name) from e

    def delete(self, key: str) -> bool:
        self._require_available()

        try:
            keyring.delete_password(self.service, key)
            log.debug("keyring_record_deleted", service=self.service, key=key)
            return True
        except PasswordDeleteError:
            return False
        except KeyringError as e:
            raise StorageError(f"Keyring delete failed for {key}: {e}", backend=self.name) from e
