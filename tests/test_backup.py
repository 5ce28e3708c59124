"""Tests for kanjou.backup.BackupController."""

import json
import threading

import pytest

from kanjou.backup import (
    BACKUP_FORMAT_VERSION,
    BACKUP_TYPE,
    DEFAULT_CREATOR,
    BackupController,
)
from kanjou.database import BACKUP_TABLES
from kanjou.storage import (
    CURRENT_COUNSELOR_KEY,
    CURRENT_USER_KEY,
    DIARY_ENTRIES_KEY,
    LAST_SYNC_TIME_KEY,
)
from kanjou.types import InvalidBackupError, RemoteRestoreNotSupportedError


@pytest.fixture
def controller(settings, store, gateway):
    return BackupController(settings, store, gateway)


def _seed(store):
    store.set(
        DIARY_ENTRIES_KEY,
        json.dumps([{"id": "d1", "date": "2025-06-01", "event": "散歩", "selfEsteemScore": 60}]),
    )
    store.set(CURRENT_USER_KEY, "alice")
    store.set(LAST_SYNC_TIME_KEY, "2025-06-29T12:00:00+00:00")


class TestExport:
    def test_document_shape(self, controller, store):
        _seed(store)

        document = controller.export_backup()

        metadata = document["metadata"]
        assert metadata["version"] == BACKUP_FORMAT_VERSION
        assert metadata["type"] == BACKUP_TYPE
        assert metadata["creator"] == DEFAULT_CREATOR
        assert metadata["timestamp"]
        # JSON values are embedded as structures, plain strings stay strings
        assert document["localStorage"][DIARY_ENTRIES_KEY][0]["id"] == "d1"
        assert document["localStorage"][CURRENT_USER_KEY] == "alice"

    def test_creator_from_current_counselor(self, controller, store):
        store.set(CURRENT_COUNSELOR_KEY, "仁")
        assert controller.export_backup()["metadata"]["creator"] == "仁"

    def test_empty_values_skipped(self, controller, store):
        store.set("blank", "")
        assert "blank" not in controller.export_backup()["localStorage"]

    def test_remote_snapshot(self, controller, fake_client):
        fake_client.tables["users"] = [{"id": "u1", "line_username": "alice"}]

        remote = controller.export_backup()["supabaseData"]

        assert set(remote) == set(BACKUP_TABLES)
        assert remote["users"] == [{"id": "u1", "line_username": "alice"}]

    def test_failed_relation_omitted(self, controller, fake_client):
        fake_client.fail_when("messages", "select")
        remote = controller.export_backup()["supabaseData"]
        assert "messages" not in remote
        assert "users" in remote

    def test_local_mode_has_no_remote_snapshot(self, local_settings, store, gateway, fake_client):
        controller = BackupController(local_settings, store, gateway)
        assert controller.export_backup()["supabaseData"] is None
        assert fake_client.calls == []

    def test_write_backup_file(self, controller, store, tmp_path):
        _seed(store)
        path = controller.write_backup_file(controller.export_backup(), tmp_path / "out")

        assert path.name.startswith("kanjou-nikki-full-backup-")
        assert path.suffix == ".json"
        loaded = BackupController.load_backup_file(path)
        assert loaded["localStorage"][DIARY_ENTRIES_KEY][0]["event"] == "散歩"


class TestRestore:
    def test_round_trip_restores_journal(self, controller, store):
        _seed(store)
        before = json.loads(store.get(DIARY_ENTRIES_KEY))
        document = controller.export_backup()
        store.clear()

        report = controller.restore_backup(document)

        assert json.loads(store.get(DIARY_ENTRIES_KEY)) == before
        assert store.get(CURRENT_USER_KEY) == "alice"
        assert DIARY_ENTRIES_KEY in report.restored_keys

    def test_replaces_existing_keys(self, controller, store):
        store.set("stale", "x")
        controller.restore_backup(
            {"metadata": {"version": "1.0"}, "localStorage": {"fresh": "y"}}
        )
        assert store.get("stale") is None
        assert store.get("fresh") == "y"

    def test_current_counselor_preserved(self, controller, store):
        store.set(CURRENT_COUNSELOR_KEY, "X")
        store.set("stale", "x")
        document = {
            "metadata": {"version": "1.0"},
            "localStorage": {DIARY_ENTRIES_KEY: []},
        }

        report = controller.restore_backup(document)

        assert store.get(CURRENT_COUNSELOR_KEY) == "X"
        assert store.get("stale") is None
        assert report.preserved_keys == [CURRENT_COUNSELOR_KEY]
        assert store.get(DIARY_ENTRIES_KEY) == "[]"

    def test_backup_counselor_value_wins(self, controller, store):
        store.set(CURRENT_COUNSELOR_KEY, "X")
        document = {
            "metadata": {"version": "1.0"},
            "localStorage": {CURRENT_COUNSELOR_KEY: "Y"},
        }

        report = controller.restore_backup(document)

        assert store.get(CURRENT_COUNSELOR_KEY) == "Y"
        assert CURRENT_COUNSELOR_KEY in report.restored_keys

    def test_empty_local_namespace_clears_store(self, controller, store):
        _seed(store)
        store.set(CURRENT_COUNSELOR_KEY, "X")

        report = controller.restore_backup({"metadata": {"version": "1.0"}, "localStorage": {}})

        assert store.items() == {CURRENT_COUNSELOR_KEY: "X"}
        assert report.restored_keys == []

    def test_missing_local_namespace_leaves_store(self, controller, store):
        _seed(store)
        before = store.items()

        controller.restore_backup({"metadata": {"version": "1.0"}})

        assert store.items() == before

    def test_missing_version_rejected_without_mutation(self, controller, store):
        _seed(store)
        before = store.items()

        with pytest.raises(InvalidBackupError):
            controller.restore_backup({"metadata": {}, "localStorage": {"x": "y"}})

        assert store.items() == before

    @pytest.mark.parametrize("document", [None, [], "backup", {"localStorage": {}}])
    def test_not_a_backup(self, controller, document):
        with pytest.raises(InvalidBackupError):
            controller.restore_backup(document)

    def test_remote_rows_counted_not_written(self, controller, store, fake_client):
        document = {
            "metadata": {"version": "1.0"},
            "localStorage": {"k": "v"},
            "supabaseData": {"users": [{"id": "u1"}, {"id": "u2"}], "diary_entries": []},
        }

        report = controller.restore_backup(document)

        assert report.remote_rows_skipped == {"users": 2, "diary_entries": 0}
        assert fake_client.calls == []

    def test_remote_restore_refused_before_mutation(self, controller, store):
        store.set("k", "original")
        document = {
            "metadata": {"version": "1.0"},
            "localStorage": {"k": "new"},
            "supabaseData": {"users": [{"id": "u1"}]},
        }

        with pytest.raises(RemoteRestoreNotSupportedError) as excinfo:
            controller.restore_backup(document, restore_remote=True)

        assert excinfo.value.row_counts == {"users": 1}
        assert store.get("k") == "original"

    def test_invalid_json_file(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(InvalidBackupError):
            BackupController.load_backup_file(path)

    def test_reload_scheduled_after_restore(self, settings, store, gateway):
        reloaded = threading.Event()
        controller = BackupController(settings, store, gateway, on_reload=reloaded.set)

        controller.restore_backup({"metadata": {"version": "1.0"}, "localStorage": {}})

        assert controller.pending_reload is not None
        assert reloaded.wait(timeout=5)

    def test_no_reload_when_validation_fails(self, settings, store, gateway):
        reloaded = threading.Event()
        controller = BackupController(settings, store, gateway, on_reload=reloaded.set)

        with pytest.raises(InvalidBackupError):
            controller.restore_backup({})

        assert controller.pending_reload is None
