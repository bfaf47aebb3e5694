"""Tests for the in-memory backend."""

from keypool.credentials import MemoryBackend


class TestMemoryBackend:
    def test_name_and_availability(self):
        backend = MemoryBackend()

        assert backend.name == "memory"
        assert backend.available is True

    def test_initial_data_is_copied(self):
        initial = {"a": "1"}
        backend = MemoryBackend(initial)
        backend.set("a", "2")

        assert initial == {"a": "1"}
        assert backend.get("a") == "2"

    def test_delete(self):
        backend = MemoryBackend({"a": "1"})

        assert backend.delete("a") is True
        assert backend.delete("a") is False
        assert backend.get("a") is None
