"""Backend selection from configuration."""

import structlog

from keypool.config.settings import StorageConfig
from keypool.credentials.backend import StorageBackend
from keypool.credentials.encrypted_backend import EncryptedFileBackend
from keypool.credentials.file_backend import JsonFileBackend
from keypool.credentials.keyring_backend import KeyringBackend
from keypool.credentials.memory_backend import MemoryBackend
from keypool.exceptions import BackendNotAvailableError, ConfigurationError

log = structlog.get_logger(__name__)


def create_storage_backend(config: StorageConfig) -> StorageBackend:
    """Create the storage backend named by ``config.backend``.

    Args:
        config: Storage section of the settings

    Returns:
        A ready-to-use backend

    Raises:
        ConfigurationError: If the encrypted backend has no master password
        BackendNotAvailableError: If the keyring backend is not usable here
    """
    backend: StorageBackend

    if config.backend == "memory":
        backend = MemoryBackend()
    elif config.backend == "keyring":
        backend = KeyringBackend(namespace=config.namespace)
        if not backend.available:
            raise BackendNotAvailableError(
                "Keyring backend is not available on this system",
                backend="keyring",
                suggestion="Use the file or encrypted backend instead",
            )
    elif config.backend == "encrypted":
        if not config.master_password:
            raise ConfigurationError(
                "The encrypted storage backend requires storage.master_password "
                "(or KEYPOOL_STORAGE__MASTER_PASSWORD)"
            )
        backend = EncryptedFileBackend(
            file_path=config.resolved_path.with_suffix(".enc"),
            master_password=config.master_password,
        )
    else:
        backend = JsonFileBackend(config.resolved_path)

    log.debug("storage_backend_created", backend=backend.name)
    return backend
