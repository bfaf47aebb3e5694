"""Pytest configuration and shared fixtures."""

from collections.abc import Callable
from datetime import UTC, datetime

import httpx
import pytest
import structlog

from keypool.credentials import CredentialEntry, CredentialStore, MemoryBackend


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo any logging configuration a test (or the CLI) installed."""
    yield
    structlog.reset_defaults()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep a developer's real Gemini key out of the tests."""
    for var in ("GEMINI_API_KEY", "VITE_GEMINI_API_KEY", "KEYPOOL_CONFIG"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def memory_backend() -> MemoryBackend:
    """Empty in-memory backend."""
    return MemoryBackend()


@pytest.fixture
def store(memory_backend: MemoryBackend) -> CredentialStore:
    """CredentialStore over an empty in-memory backend, no environment key."""
    return CredentialStore(memory_backend)


@pytest.fixture
def sample_entries() -> list[CredentialEntry]:
    """Three stored keys: untested, valid, and known-invalid."""
    return [
        CredentialEntry(id="1718000000001", secret="AIza-first-key-0001", display_name="First"),
        CredentialEntry(
            id="1718000000002",
            secret="AIza-second-key-0002",
            display_name="Second",
            last_validated=True,
            last_validated_at=datetime(2025, 3, 1, 12, 0, tzinfo=UTC),
        ),
        CredentialEntry(
            id="1718000000003",
            secret="AIza-third-key-0003",
            display_name="Third",
            last_validated=False,
            last_validated_at=datetime(2025, 3, 1, 12, 5, tzinfo=UTC),
        ),
    ]


@pytest.fixture
def populated_store(store: CredentialStore, sample_entries: list[CredentialEntry]) -> CredentialStore:
    """Store holding the sample entries."""
    store.save_all(sample_entries)
    return store


@pytest.fixture
def mock_http_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Factory for httpx clients backed by a handler function."""

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return factory
