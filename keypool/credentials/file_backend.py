"""Plain JSON file backend, the default local store.

The file holds a single JSON object mapping record names to string values::

    {
        "gemini-api-keys": "[{\"id\": \"1718000000000\", ...}]",
        "gemini-active-api-key-index": "0"
    }

The file is re-read on every access so that a second process (or a manual
edit) is picked up; there is no locking and the last writer wins.
"""

import json
from pathlib import Path
from typing import cast

import structlog

from keypool.exceptions import StorageError

log = structlog.get_logger(__name__)


class JsonFileBackend:
    """Key/value records in a JSON file with atomic writes.

    Example:
        >>> backend = JsonFileBackend(Path("~/.keypool/storage.json").expanduser())
        >>> backend.set("gemini-active-api-key-index", "1")
        >>> backend.get("gemini-active-api-key-index")
        '1'
    """

    def __init__(self, file_path: Path) -> None:
        self.file_path = file_path

    @property
    def name(self) -> str:
        return "file"

    @property
    def available(self) -> bool:
        """Available when the file or its nearest existing parent is writable."""
        parent = self.file_path.parent
        while not parent.exists() and parent != parent.parent:
            parent = parent.parent
        return parent.is_dir()

    def _load(self) -> dict[str, str]:
        """Read all records.

        Raises:
            StorageError: If the file cannot be read or is not a JSON object
        """
        if not self.file_path.exists():
            return {}

        try:
            raw = self.file_path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Cannot read storage file {self.file_path}: {e}", backend=self.name) from e
        except UnicodeDecodeError as e:
            raise StorageError(
                f"Storage file is not valid UTF-8: {self.file_path}",
                backend=self.name,
                suggestion="Delete the file to start over",
            ) from e

        if not raw.strip():
            return {}

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageError(
                f"Storage file is corrupted: {self.file_path}",
                backend=self.name,
                suggestion="Delete the file to start over",
            ) from e

        if not isinstance(data, dict):
            raise StorageError(f"Storage file must contain a JSON object: {self.file_path}", backend=self.name)

        return cast(dict[str, str], data)

    def _save(self, data: dict[str, str]) -> None:
        """Write all records atomically (temp file + rename)."""
        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)

            temp_file = self.file_path.with_suffix(".tmp")
            temp_file.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")

            # Keys are secrets
            try:
                temp_file.chmod(0o600)
            except OSError as e:
                log.warning("storage_chmod_failed", path=str(temp_file), error=str(e))

            temp_file.replace(self.file_path)
        except OSError as e:
            raise StorageError(f"Cannot write storage file {self.file_path}: {e}", backend=self.name) from e

        log.debug("storage_file_saved", path=str(self.file_path), records=len(data))

    def get(self, key: str) -> str | None:
        value = self._load().get(key)
        if value is not None and not isinstance(value, str):
            # Hand-edited files may hold raw JSON instead of a string
            return json.dumps(value)
        return value

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
