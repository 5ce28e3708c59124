"""Tests for the local key-value store and the diary/consent collections."""

import json

import pytest

from kanjou.storage import (
    CONSENT_HISTORIES_KEY,
    DIARY_ENTRIES_KEY,
    ConsentStore,
    DiaryStore,
    LocalStore,
)
from kanjou.types import ConsentRecord, RecordOrigin


class TestLocalStore:
    def test_get_set_remove(self, store):
        assert store.get("missing") is None
        store.set("k", "v")
        assert store.get("k") == "v"
        assert "k" in store
        store.remove("k")
        assert store.get("k") is None

    def test_set_overwrites(self, store):
        store.set("k", "1")
        store.set("k", "2")
        assert store.get("k") == "2"
        assert len(store) == 1

    def test_rejects_non_string(self, store):
        with pytest.raises(TypeError):
            store.set("k", 1)

    def test_items_and_clear(self, store):
        store.set("b", "2")
        store.set("a", "1")
        assert store.keys() == ["a", "b"]
        assert store.items() == {"a": "1", "b": "2"}
        store.clear()
        assert store.keys() == []

    def test_persists_across_instances(self, settings):
        LocalStore(settings.db_path).set("k", "v")
        assert LocalStore(settings.db_path).get("k") == "v"

    def test_get_json_invalid_returns_default(self, store):
        store.set("k", "{not json")
        assert store.get_json("k", default=[]) == []

    def test_set_json_keeps_unicode(self, store):
        store.set_json("k", {"emotion": "悲しい"})
        assert "悲しい" in store.get("k")


class TestDiaryStore:
    def test_empty_when_absent(self, store):
        assert DiaryStore(store).load() == []

    def test_non_list_ignored(self, store):
        store.set(DIARY_ENTRIES_KEY, json.dumps({"id": "x"}))
        assert DiaryStore(store).load() == []

    def test_legacy_records_normalized_on_read(self, store):
        store.set(
            DIARY_ENTRIES_KEY,
            json.dumps([{"id": "d1", "selfEsteemScore": 70}, {"id": "d2"}, "garbage"]),
        )
        records = DiaryStore(store).load()
        assert [r.id for r in records] == ["d1", "d2"]
        assert records[0].self_esteem_score == 70
        assert records[1].worthlessness_score == 50

    def test_generated_id_and_timestamp_saved_back(self, store):
        store.set(DIARY_ENTRIES_KEY, json.dumps([{"date": "2025-06-01", "selfEsteemScore": 40}]))
        diaries = DiaryStore(store)

        first = diaries.load()
        second = diaries.load()

        assert first[0].id == second[0].id
        assert first[0].created_at == second[0].created_at
        assert json.loads(store.get(DIARY_ENTRIES_KEY))[0]["id"] == first[0].id

    def test_complete_records_not_rewritten(self, store):
        raw = json.dumps([{"id": "d1", "created_at": "2025-06-01T00:00:00+00:00"}])
        store.set(DIARY_ENTRIES_KEY, raw)
        DiaryStore(store).load()
        assert store.get(DIARY_ENTRIES_KEY) == raw

    def test_add_tags_origin_and_persists_both_spellings(self, store):
        diaries = DiaryStore(store)
        record = diaries.add("2025-06-01", "不安", "event", "realization", self_esteem_score=40)
        assert record.origin == RecordOrigin.USER.value

        raw = json.loads(store.get(DIARY_ENTRIES_KEY))
        assert raw[0]["selfEsteemScore"] == raw[0]["self_esteem_score"] == 40
        assert diaries.get(record.id).event == "event"
        assert diaries.count() == 1


class TestConsentStore:
    def test_append_and_load(self, store):
        consents = ConsentStore(store)
        consents.append(
            ConsentRecord(
                id="c1",
                line_username="alice",
                consent_given=True,
                consent_date="2025-06-01T00:00:00+00:00",
                ip_address="127.0.0.1",
                user_agent="pytest",
            )
        )
        loaded = consents.load()
        assert len(loaded) == 1
        assert loaded[0].line_username == "alice"
        assert json.loads(store.get(CONSENT_HISTORIES_KEY))[0]["id"] == "c1"
