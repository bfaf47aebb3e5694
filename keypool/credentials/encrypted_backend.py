"""Encrypted file backend using Fernet symmetric encryption.

Security Model:
- Key derived from a master password with PBKDF2-HMAC-SHA256
- Records encrypted with Fernet (AES-128-CBC + HMAC)
- Salt stored next to the data file as ``<name>.salt``
- Suitable for headless systems without keyring support
"""

import base64
import json
import secrets
from pathlib import Path
from typing import cast

import structlog
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from keypool.exceptions import EncryptionError, StorageError

log = structlog.get_logger(__name__)

# OWASP recommendation for PBKDF2-HMAC-SHA256
KDF_ITERATIONS = 480_000


class EncryptedFileBackend:
    """Key/value records in a Fernet-encrypted JSON file.

    Example:
        >>> backend = EncryptedFileBackend(
        ...     file_path=Path("~/.keypool/storage.enc").expanduser(),
        ...     master_password="secure-password",
        ... )
        >>> backend.set("gemini-active-api-key-index", "0")
    """

    def __init__(
        self,
        file_path: Path,
        master_password: str | None = None,
        salt: bytes | None = None,
    ) -> None:
        """Initialize encrypted file backend.

        Args:
            file_path: Path to the encrypted storage file
            master_password: Password for encryption; reads and writes fail without it
            salt: Cryptographic salt (loaded or generated if not provided)
        """
        self.file_path = file_path
        self._salt = salt
        self.fernet: Fernet | None = None
        if master_password:
            self.fernet = self._create_fernet(master_password, self.salt)

    @property
    def name(self) -> str:
        return "encrypted"

    @property
    def available(self) -> bool:
        return self.fernet is not None

    @property
    def salt(self) -> bytes:
        if self._salt is None:
            self._salt = self._load_or_generate_salt()
        return self._salt

    @staticmethod
    def _create_fernet(password: str, salt: bytes) -> Fernet:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=KDF_ITERATIONS,
        )
        key = kdf.derive(password.encode("utf-8"))
        return Fernet(base64.urlsafe_b64encode(key))

    def _load_or_generate_salt(self) -> bytes:
        salt_file = self.file_path.with_suffix(".salt")

        if salt_file.exists():
            return salt_file.read_bytes()

        salt = secrets.token_bytes(16)
        salt_file.parent.mkdir(parents=True, exist_ok=True)
        salt_file.write_bytes(salt)

        try:
            salt_file.chmod(0o600)
        except OSError as e:
            log.warning("salt_chmod_failed", path=str(salt_file), error=str(e))

        return salt

    def _require_fernet(self) -> Fernet:
        if self.fernet is None:
            raise EncryptionError(
                "Master password not provided",
                backend=self.name,
                suggestion="Set KEYPOOL_STORAGE__MASTER_PASSWORD",
            )
        return self.fernet

    def _load(self) -> dict[str, str]:
        """Load and decrypt all records.

        Raises:
            EncryptionError: If decryption fails
        """
        if not self.file_path.exists():
            return {}

        fernet = self._require_fernet()

        try:
            decrypted = fernet.decrypt(self.file_path.read_bytes())
        except InvalidToken as e:
            raise EncryptionError(
                "Invalid master password or corrupted storage file",
                backend=self.name,
                suggestion="Verify your master password",
            ) from e
        except OSError as e:
            raise StorageError(f"Cannot read storage file {self.file_path}: {e}", backend=self.name) from e

        try:
            data = json.loads(decrypted.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise EncryptionError("Storage file is corrupted", backend=self.name) from e

        if not isinstance(data, dict):
            raise EncryptionError("Storage file must contain a JSON object", backend=self.name)

        return cast(dict[str, str], data)

    def _save(self, data: dict[str, str]) -> None:
        fernet = self._require_fernet()

        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            encrypted = fernet.encrypt(json.dumps(data).encode("utf-8"))

            temp_file = self.file_path.with_suffix(".tmp")
            temp_file.write_bytes(encrypted)
            try:
                temp_file.chmod(0o600)
            except OSError as e:
                log.warning("storage_chmod_failed", path=str(temp_file), error=str(e))
            temp_file.replace(self.file_path)
        except OSError as e:
            raise StorageError(f"Cannot write storage file {self.file_path}: {e}", backend=self.name) from e

        log.debug("encrypted_storage_saved", path=str(self.file_path), records=len(data))

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def delete(self, key: str) -> bool:
        data = self._load()
        if key not in data:
            return False
        del data[key]
        self._save(data)
        return True
