"""Tests for the OS keyring backend."""

from unittest.mock import Mock, patch

import pytest
from keyring.backends.fail import Keyring as FailKeyring
from keyring.errors import KeyringError, PasswordDeleteError

from keypool.credentials import KeyringBackend
from keypool.exceptions import BackendNotAvailableError, StorageError


@pytest.fixture
def mock_keyring():
    """Patch the keyring module used by the backend with a working keyring."""
    with patch("keypool.credentials.keyring_backend.keyring") as mock:
        mock.get_keyring.return_value = Mock()
        yield mock


class TestKeyringBackend:
    """Test KeyringBackend functionality."""

    def test_backend_name(self):
        assert KeyringBackend().name == "keyring"

    def test_service_includes_namespace(self):
        assert KeyringBackend(namespace="work").service == "keypool/work"

    def test_available(self, mock_keyring):
        assert KeyringBackend().available is True

    def test_not_available_with_fail_backend(self, mock_keyring):
        mock_keyring.get_keyring.return_value = FailKeyring()

        assert KeyringBackend().available is False

    def test_not_available_when_init_fails(self, mock_keyring):
        mock_keyring.get_keyring.side_effect = RuntimeError("no dbus")

        assert KeyringBackend().available is False

    def test_get(self, mock_keyring):
        mock_keyring.get_password.return_value = "1"

        assert KeyringBackend().get("gemini-active-api-key-index") == "1"
        mock_keyring.get_password.assert_called_once_with("keypool/default", "gemini-active-api-key-index")

    def test_get_missing(self, mock_keyring):
        mock_keyring.get_password.return_value = None

        assert KeyringBackend().get("a") is None

    def test_set(self, mock_keyring):
        KeyringBackend(namespace="ns").set("a", "value")

        mock_keyring.set_password.assert_called_once_with("keypool/ns", "a", "value")

    def test_read_error_wrapped(self, mock_keyring):
        mock_keyring.get_password.side_effect = KeyringError("locked")

        with pytest.raises(StorageError, match="Keyring read failed"):
            KeyringBackend().get("a")

    def test_write_error_wrapped(self, mock_keyring):
        mock_keyring.set_password.side_effect = KeyringError("locked")

        with pytest.raises(StorageError, match="Keyring write failed"):
            KeyringBackend().set("a", "b")

    def test_delete(self, mock_keyring):
        assert KeyringBackend().delete("a") is True
        mock_keyring.delete_password.assert_called_once_with("keypool/default", "a")

    def test_delete_missing(self, mock_keyring):
        mock_keyring.delete_password.side_effect = PasswordDeleteError("not found")

        assert KeyringBackend().delete("a") is False

    def test_operations_require_available_keyring(self, mock_keyring):
        mock_keyring.get_keyring.return_value = FailKeyring()
        backend = KeyringBackend()

        with pytest.raises(BackendNotAvailableError):
            backend.get("a")
        with pytest.raises(BackendNotAvailableError):
            backend.set("a", "b")
        with pytest.raises(BackendNotAvailableError):
            backend.delete("a")
