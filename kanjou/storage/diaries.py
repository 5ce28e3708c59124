"""Diary and consent collections over the local store."""

import logging
import uuid
from typing import Any, Dict, List, Optional

from kanjou.types import ConsentRecord, DiaryRecord, RecordOrigin, utc_now

from .local import CONSENT_HISTORIES_KEY, DIARY_ENTRIES_KEY, LocalStore

logger = logging.getLogger(__name__)


class DiaryStore:
    """The local diary collection, stored as one JSON array.

    Every read runs each element through ``DiaryRecord.from_local``, so
    callers never see legacy field spellings or unnormalized scores.
    """

    def __init__(self, store: LocalStore):
        self._store = store

    def load_raw(self) -> List[Dict[str, Any]]:
        """The persisted array as-is (non-dict elements dropped)."""
        data = self._store.get_json(DIARY_ENTRIES_KEY, default=None)
        if data is None:
            return []
        if not isinstance(data, list):
            logger.warning(f"{DIARY_ENTRIES_KEY} is not a list, ignoring it")
            return []
        return [item for item in data if isinstance(item, dict)]

    def load(self) -> List[DiaryRecord]:
        """Normalized records.

        Records that were missing an id or creation time are saved back once
        filled in, so the generated values stay stable across reads.
        """
        raw = self.load_raw()
        records = [DiaryRecord.from_local(item) for item in raw]
        if any(not item.get("id") or not item.get("created_at") for item in raw):
            logger.info("Persisting generated ids/timestamps for legacy diary records")
            self.save(records)
        return records

    def save(self, records: List[DiaryRecord]) -> None:
        self._store.set_json(DIARY_ENTRIES_KEY, [r.to_local_dict() for r in records])

    def get(self, record_id: str) -> Optional[DiaryRecord]:
        for record in self.load():
            if record.id == record_id:
                return record
        return None

    def add(
        self,
        date: str,
        emotion: str,
        event: str,
        realization: str,
        self_esteem_score: int = 50,
        worthlessness_score: int = 50,
        origin: RecordOrigin = RecordOrigin.USER,
        record_id: Optional[str] = None,
    ) -> DiaryRecord:
        """Create a diary record and append it to the collection."""
        record = DiaryRecord.from_local(
            {
                "id": record_id or str(uuid.uuid4()),
                "date": date,
                "emotion": emotion,
                "event": event,
                "realization": realization,
                "self_esteem_score": self_esteem_score,
                "worthlessness_score": worthlessness_score,
                "created_at": utc_now(),
                "origin": RecordOrigin(origin).value,
            }
        )
        records = self.load()
        records.append(record)
        self.save(records)
        return record

    def count(self) -> int:
        return len(self.load_raw())


class ConsentStore:
    """The local consent-history collection. Append-only."""

    def __init__(self, store: LocalStore):
        self._store = store

    def load_raw(self) -> List[Dict[str, Any]]:
        data = self._store.get_json(CONSENT_HISTORIES_KEY, default=None)
        if not isinstance(data, list):
            return []
        return [item for item in data if isinstance(item, dict)]

    def load(self) -> List[ConsentRecord]:
        return [ConsentRecord.from_row(item) for item in self.load_raw()]

    def append(self, record: ConsentRecord) -> None:
        histories = self.load_raw()
        histories.append(record.to_dict())
        self._store.set_json(CONSENT_HISTORIES_KEY, histories)

    def replace(self, rows: List[Dict[str, Any]]) -> None:
        self._store.set_json(CONSENT_HISTORIES_KEY, rows)
