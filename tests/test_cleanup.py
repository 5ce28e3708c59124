"""Tests for kanjou.cleanup."""

import json

from kanjou.cleanup import cleanup_test_data, is_test_record
from kanjou.storage import DIARY_ENTRIES_KEY, DiaryStore
from kanjou.types import DiaryRecord, RecordOrigin


def _seed(store, entries):
    store.set(DIARY_ENTRIES_KEY, json.dumps(entries, ensure_ascii=False))


class TestIsTestRecord:
    def test_tag_decides(self):
        assert is_test_record(DiaryRecord(id="a", event="散歩", origin="sample"))
        # a real entry that mentions a test is kept
        assert not is_test_record(DiaryRecord(id="b", event="数学のテスト", origin="user"))

    def test_untagged_uses_keywords(self):
        assert is_test_record(DiaryRecord(id="a", event="これはテストです"))
        assert is_test_record(DiaryRecord(id="b", event="an example entry"))
        assert is_test_record(DiaryRecord(id="c", realization="サンプルの気づき"))
        assert not is_test_record(DiaryRecord(id="d", event="友達と話した"))

    def test_english_keyword_only_checked_in_event(self):
        assert not is_test_record(DiaryRecord(id="a", realization="a test of patience"))


class TestCleanup:
    def test_local_only(self, local_settings, store, gateway, fake_client):
        _seed(
            store,
            [
                {"id": "keep", "event": "友達と話した", "origin": RecordOrigin.USER.value},
                {"id": "sample", "event": "散歩", "origin": RecordOrigin.SAMPLE.value},
                {"id": "legacy", "event": "テスト日記"},
            ],
        )

        report = cleanup_test_data(local_settings, store, gateway)

        assert report.success
        assert report.local_removed == 2
        assert [r.id for r in DiaryStore(store).load()] == ["keep"]
        assert fake_client.calls == []

    def test_remote_deleted_by_id(self, settings, store, gateway, fake_client):
        _seed(store, [{"id": "keep", "event": "x"}, {"id": "t1", "event": "test"}])
        fake_client.tables["diary_entries"] = [
            {"id": "keep", "event": "x"},
            {"id": "t1", "event": "test"},
            {"id": "remote-only", "event": "サンプル"},
        ]

        report = cleanup_test_data(settings, store, gateway)

        assert report.remote_removed == 1
        assert {r["id"] for r in fake_client.tables["diary_entries"]} == {"keep", "remote-only"}

    def test_remote_keyword_match(self, settings, store, gateway, fake_client):
        fake_client.tables["diary_entries"] = [
            {"id": "keep", "event": "x", "realization": "y"},
            {"id": "remote-only", "event": "サンプル", "realization": ""},
        ]

        report = cleanup_test_data(settings, store, gateway, include_remote_keyword_match=True)

        assert report.remote_removed == 1
        assert [r["id"] for r in fake_client.tables["diary_entries"]] == ["keep"]

    def test_remote_failure_reported(self, settings, store, gateway, fake_client):
        _seed(store, [{"id": "t1", "event": "test"}])
        fake_client.fail_when("diary_entries", "delete")

        report = cleanup_test_data(settings, store, gateway)

        assert not report.success
        assert report.local_removed == 1
