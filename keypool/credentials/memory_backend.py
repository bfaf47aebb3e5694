"""In-memory backend, mostly for tests and throwaway sessions."""


class MemoryBackend:
    """Dict-backed key/value store that lives as long as the process.

    Example:
        >>> backend = MemoryBackend({"gemini-active-api-key-index": "2"})
        >>> backend.get("gemini-active-api-key-index")
        '2'
    """

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    @property
    def name(self) -> str:
        return "memory"

    @property
    def available(self) -> bool:
        return True

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None
