"""Local persistence and validation of Gemini API keys.

This package provides:
- A key/value backend protocol with memory, JSON file, OS keyring and
  encrypted file implementations
- The CredentialStore holding the ordered key collection and active index
- Pydantic models for the persisted records

Example usage:

    from keypool.credentials import CredentialStore, JsonFileBackend, new_entry

    store = CredentialStore(JsonFileBackend(Path("~/.keypool/storage.json").expanduser()))
    store.add(new_entry(secret="AIza..."))
    key = store.next_valid()
"""

from .backend import StorageBackend
from .encrypted_backend import EncryptedFileBackend
from .factory import create_storage_backend
from .file_backend import JsonFileBackend
from .keyring_backend import KeyringBackend
from .memory_backend import MemoryBackend
from .models import CredentialCollection, CredentialEntry, CredentialPatch, new_entry, prune_drafts
from .store import CredentialStore

__all__ = [
    # Backends
    "StorageBackend",
    "MemoryBackend",
    "JsonFileBackend",
    "KeyringBackend",
    "EncryptedFileBackend",
    "create_storage_backend",
    # Models
    "CredentialCollection",
    "CredentialEntry",
    "CredentialPatch",
    "new_entry",
    "prune_drafts",
    # Store
    "CredentialStore",
]
