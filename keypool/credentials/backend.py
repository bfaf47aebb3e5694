"""Abstract backend protocol for the local key/value store."""

from typing import Protocol


class StorageBackend(Protocol):
    """Protocol for the key/value stores behind the CredentialStore.

    Values are opaque strings; the store serializes its records to JSON
    before handing them over.
    """

    @property
    def name(self) -> str:
        """Backend identifier (e.g., 'file', 'keyring')."""
        ...

    @property
    def available(self) -> bool:
        """Check if this backend is usable on the current system."""
        ...

    def get(self, key: str) -> str | None:
        """Retrieve a value.

        Args:
            key: Record name (e.g., 'gemini-api-keys')

        Returns:
            Stored value or None if not set

        Raises:
            StorageError: If the backend cannot be read
        """
        ...

    def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one.

        Raises:
            StorageError: If the backend cannot be written
        """
        ...

    def delete(self, key: str) -> bool:
        """Delete a value.

        Returns:
            True if the record was deleted, False if it did not exist

        Raises:
            StorageError: If the backend cannot be written
        """
        ...
