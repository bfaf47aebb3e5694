"""Unit tests for keypool/credentials/store.py - collection, active index, round-robin."""

import json
from unittest.mock import Mock

import pytest

from keypool.credentials import CredentialEntry, CredentialPatch, CredentialStore, JsonFileBackend, MemoryBackend
from keypool.credentials.store import DEFAULT_ACTIVE_INDEX_KEY, DEFAULT_COLLECTION_KEY
from keypool.exceptions import StorageError


@pytest.fixture
def failing_backend():
    """Backend whose every operation raises StorageError."""
    backend = Mock()
    backend.name = "broken"
    backend.get.side_effect = StorageError("disk unreadable", backend="broken")
    backend.set.side_effect = StorageError("quota exceeded", backend="broken")
    return backend


class TestGetAllAndSaveAll:
    """Tests for loading and saving the collection."""

    def test_empty_when_nothing_persisted(self, store):
        """Should return an empty collection when no record exists."""
        assert store.get_all() == []

    def test_round_trip(self, store, sample_entries):
        """Saved collection should load back field-for-field."""
        store.save_all(sample_entries)

        assert store.get_all() == sample_entries

    def test_persists_form_field_names(self, store, memory_backend, sample_entries):
        """Records should use the key form's field names."""
        store.save_all(sample_entries[1:2])

        records = json.loads(memory_backend.get(DEFAULT_COLLECTION_KEY))
        assert records[0]["id"] == "1718000000002"
        assert records[0]["secret"] == "AIza-second-key-0002"
        assert records[0]["displayName"] == "Second"
        assert records[0]["isValid"] is True
        assert "lastTested" in records[0]

    def test_untested_entries_omit_validation_fields(self, store, memory_backend):
        """Never-tested entries should not carry isValid/lastTested."""
        store.save_all([CredentialEntry(id="1", secret="k", display_name="A")])

        record = json.loads(memory_backend.get(DEFAULT_COLLECTION_KEY))[0]
        assert "isValid" not in record
        assert "lastTested" not in record

    def test_loads_records_from_web_app(self):
        """Should read records written by the web app (key/name, epoch millis)."""
        legacy = [
            {"id": "1718000000000", "key": "AIza-legacy", "name": "Old", "isValid": True, "lastTested": 1718000000000}
        ]
        store = CredentialStore(MemoryBackend({DEFAULT_COLLECTION_KEY: json.dumps(legacy)}))

        entries = store.get_all()

        assert len(entries) == 1
        assert entries[0].secret == "AIza-legacy"
        assert entries[0].display_name == "Old"
        assert entries[0].last_validated is True
        assert entries[0].last_validated_at is not None
        assert entries[0].last_validated_at.year == 2024

    @pytest.mark.parametrize(
        "raw",
        [
            "{not json",
            '{"id": "1"}',
            '"just a string"',
            '[{"secret": "missing-id"}]',
        ],
    )
    def test_unparseable_data_yields_empty(self, raw):
        """Corrupt data should be swallowed and reported as an empty collection."""
        store = CredentialStore(MemoryBackend({DEFAULT_COLLECTION_KEY: raw}))

        assert store.get_all() == []

    def test_backend_read_failure_yields_empty(self, failing_backend):
        """Storage errors should not escape get_all."""
        store = CredentialStore(failing_backend)

        assert store.get_all() == []

    def test_backend_write_failure_is_swallowed(self, failing_backend, sample_entries):
        """save_all should log and return on storage errors."""
        store = CredentialStore(failing_backend)

        store.save_all(sample_entries)

        failing_backend.set.assert_called_once()

    def test_custom_record_names(self, memory_backend, sample_entries):
        """Should use the configured record names."""
        store = CredentialStore(memory_backend, collection_key="keys", active_index_key="active")

        store.save_all(sample_entries)
        store.set_active_index(2)

        assert memory_backend.get("keys") is not None
        assert memory_backend.get("active") == "2"
        assert memory_backend.get(DEFAULT_COLLECTION_KEY) is None


class TestActiveIndex:
    """Tests for the persisted active index."""

    def test_defaults_to_zero(self, store):
        """Unset index should read as 0."""
        assert store.get_active_index() == 0

    def test_set_and_get(self, store, memory_backend):
        """Index should be stored as a decimal string."""
        store.set_active_index(2)

        assert store.get_active_index() == 2
        assert memory_backend.get(DEFAULT_ACTIVE_INDEX_KEY) == "2"

    def test_set_does_not_validate_bounds(self, store):
        """Out-of-range indices are persisted verbatim."""
        store.set_active_index(42)

        assert store.get_active_index() == 42

    @pytest.mark.parametrize("raw", ["abc", "", "   ", "1.5"])
    def test_unparseable_defaults_to_zero(self, raw):
        """Garbage in the index record should read as 0."""
        store = CredentialStore(MemoryBackend({DEFAULT_ACTIVE_INDEX_KEY: raw}))

        assert store.get_active_index() == 0

    def test_backend_failure_defaults_to_zero(self, failing_backend):
        """Storage errors should not escape the index accessors."""
        store = CredentialStore(failing_backend)

        assert store.get_active_index() == 0
        store.set_active_index(3)


class TestGetActiveSecret:
    """Tests for get_active_secret."""

    def test_none_when_empty(self, store):
        assert store.get_active_secret() is None

    def test_returns_secret_at_active_index(self, populated_store):
        populated_store.set_active_index(1)

        assert populated_store.get_active_secret() == "AIza-second-key-0002"

    def test_none_for_blank_secret(self, store):
        store.save_all([CredentialEntry(id="1", secret="", display_name="Draft")])

        assert store.get_active_secret() is None

    @pytest.mark.parametrize("index", [3, 99, -1])
    def test_none_when_index_out_of_range(self, populated_store, index):
        """Out-of-range (including negative) indices should not wrap around."""
        populated_store.set_active_index(index)

        assert populated_store.get_active_secret() is None


class TestAddUpdateRemove:
    """Tests for CRUD operations."""

    def test_add_appends(self, populated_store):
        entry = CredentialEntry(id="9", secret="AIza-new", display_name="New")

        populated_store.add(entry)

        entries = populated_store.get_all()
        assert len(entries) == 4
        assert entries[-1] == entry

    def test_add_allows_blank_secret(self, store):
        """The store itself does not enforce non-empty secrets."""
        store.add(CredentialEntry(id="1", secret="", display_name="Draft"))

        assert store.get_all()[0].secret == ""

    def test_update_merges_only_set_fields(self, populated_store):
        populated_store.update("1718000000002", CredentialPatch(display_name="Renamed"))

        entry = populated_store.get_all()[1]
        assert entry.display_name == "Renamed"
        assert entry.secret == "AIza-second-key-0002"
        assert entry.last_validated is True

    def test_update_accepts_mapping(self, populated_store):
        """Mappings in the form's field names should be accepted as patches."""
        populated_store.update("1718000000001", {"isValid": False, "displayName": "Broken"})

        entry = populated_store.get_all()[0]
        assert entry.last_validated is False
        assert entry.display_name == "Broken"

    def test_update_can_clear_validation(self, populated_store):
        """Explicit None should reset the validation status."""
        populated_store.update("1718000000003", CredentialPatch(last_validated=None, last_validated_at=None))

        entry = populated_store.get_all()[2]
        assert entry.last_validated is None
        assert entry.last_validated_at is None

    def test_update_ignores_id(self, populated_store):
        """The id is immutable."""
        populated_store.update("1718000000001", {"id": "other", "name": "X"})

        assert populated_store.get_all()[0].id == "1718000000001"

    def test_update_unknown_id_is_noop(self, populated_store, sample_entries):
        populated_store.update("does-not-exist", CredentialPatch(display_name="X"))

        assert populated_store.get_all() == sample_entries

    def test_remove_drops_entry(self, populated_store):
        populated_store.remove("1718000000002")

        assert [entry.id for entry in populated_store.get_all()] == ["1718000000001", "1718000000003"]

    def test_remove_resets_out_of_range_index(self, populated_store):
        """Active index past the end after removal should reset to 0."""
        populated_store.set_active_index(2)

        populated_store.remove("1718000000003")

        assert populated_store.get_active_index() == 0

    def test_remove_keeps_in_range_index(self, populated_store):
        populated_store.set_active_index(1)

        populated_store.remove("1718000000003")

        assert populated_store.get_active_index() == 1

    @pytest.mark.parametrize("active", [0, 1, 2])
    @pytest.mark.parametrize("removed", ["1718000000001", "1718000000002", "1718000000003"])
    def test_remove_never_leaves_index_out_of_range(self, populated_store, active, removed):
        populated_store.set_active_index(active)

        populated_store.remove(removed)

        assert populated_store.get_active_index() < len(populated_store.get_all())

    def test_remove_unknown_id(self, populated_store, sample_entries):
        populated_store.remove("does-not-exist")

        assert populated_store.get_all() == sample_entries


class TestNextValid:
    """Tests for round-robin lookup."""

    def test_none_when_empty(self, store):
        assert store.next_valid() is None

    def test_skips_blank_and_moves_active_index(self, store):
        """Blank first entry should be skipped and the index advanced."""
        store.save_all(
            [
                CredentialEntry(id="1", secret="", display_name="A"),
                CredentialEntry(id="2", secret="sk-valid", display_name="B"),
            ]
        )
        store.set_active_index(0)

        assert store.next_valid() == "sk-valid"
        assert store.get_active_index() == 1

    def test_untested_counts_as_usable(self, populated_store):
        """Entries never tested should be eligible."""
        assert populated_store.next_valid() == "AIza-first-key-0001"
        assert populated_store.get_active_index() == 0

    def test_skips_invalid_and_wraps(self, populated_store):
        """Known-invalid entry at the active index should wrap to the start."""
        populated_store.set_active_index(2)

        assert populated_store.next_valid() == "AIza-first-key-0001"
        assert populated_store.get_active_index() == 0

    def test_does_not_rewrite_unchanged_index(self, sample_entries):
        """No write should happen when the active entry is usable."""
        backend = Mock(wraps=MemoryBackend())
        backend.name = "memory"
        store = CredentialStore(backend)
        store.save_all(sample_entries)
        store.set_active_index(1)
        backend.set.reset_mock()

        assert store.next_valid() == "AIza-second-key-0002"
        backend.set.assert_not_called()

    def test_none_when_all_invalid(self, store):
        store.save_all(
            [
                CredentialEntry(id="1", secret="a", display_name="A", last_validated=False),
                CredentialEntry(id="2", secret="", display_name="B"),
            ]
        )

        assert store.next_valid() is None

    def test_out_of_range_index_starts_modulo(self, populated_store):
        """An index past the end should start the scan at index % len."""
        populated_store.set_active_index(4)

        assert populated_store.next_valid() == "AIza-second-key-0002"
        assert populated_store.get_active_index() == 1

    def test_cycles_through_eligible_entries(self, store):
        """Advancing past each winner should visit every eligible entry before repeating."""
        store.save_all(
            [
                CredentialEntry(id="1", secret="k1", display_name="A"),
                CredentialEntry(id="2", secret="k2", display_name="B", last_validated=False),
                CredentialEntry(id="3", secret="k3", display_name="C", last_validated=True),
                CredentialEntry(id="4", secret="", display_name="D"),
                CredentialEntry(id="5", secret="k5", display_name="E"),
            ]
        )

        seen = []
        for _ in range(3):
            seen.append(store.next_valid())
            store.set_active_index(store.get_active_index() + 1)

        assert seen == ["k1", "k3", "k5"]
        assert store.next_valid() == "k1"


class TestEnvironmentSecret:
    """Tests for the environment fallback key."""

    def test_none_by_default(self, store):
        assert store.get_environment_secret() is None

    def test_returns_configured_secret(self, memory_backend):
        store = CredentialStore(memory_backend, environment_secret="AIza-env")

        assert store.get_environment_secret() == "AIza-env"

    def test_empty_string_is_none(self, memory_backend):
        store = CredentialStore(memory_backend, environment_secret="")

        assert store.get_environment_secret() is None


class TestUnreadableStorageFile:
    """A storage file that is not valid UTF-8 must never escape the store."""

    @pytest.fixture
    def garbled_store(self, tmp_path):
        path = tmp_path / "storage.json"
        path.write_bytes(b"\xff\xfe\x00garbage")
        return CredentialStore(JsonFileBackend(path))

    def test_get_all_is_empty(self, garbled_store):
        assert garbled_store.get_all() == []

    def test_active_index_is_zero(self, garbled_store):
        assert garbled_store.get_active_index() == 0
        assert garbled_store.get_active_secret() is None

    def test_writes_are_swallowed(self, garbled_store, sample_entries):
        garbled_store.save_all(sample_entries)
        garbled_store.set_active_index(1)

        assert garbled_store.next_valid() is None
