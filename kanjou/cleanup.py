"""Removal of sample/test diary records.

Records carry an ``origin`` tag from creation on, and a tagged record is
judged by its tag alone. Records written before tagging existed have no tag;
for those the old keyword match on their text is the only signal.
"""

import logging
from typing import Sequence

from kanjou.config import Settings
from kanjou.gateway import RemoteGateway
from kanjou.storage import DiaryStore, LocalStore
from kanjou.types import CleanupReport, DiaryRecord, RecordOrigin

logger = logging.getLogger(__name__)

EVENT_KEYWORDS: Sequence[str] = ("テスト", "サンプル", "example", "test")
REALIZATION_KEYWORDS: Sequence[str] = ("テスト", "サンプル")


def looks_like_test_text(record: DiaryRecord) -> bool:
    """Keyword match used for records without an origin tag."""
    event = record.event or ""
    realization = record.realization or ""
    return any(kw in event for kw in EVENT_KEYWORDS) or any(
        kw in realization for kw in REALIZATION_KEYWORDS
    )


def is_test_record(record: DiaryRecord) -> bool:
    if record.origin is not None:
        return record.origin == RecordOrigin.SAMPLE.value
    return looks_like_test_text(record)


def cleanup_test_data(
    settings: Settings,
    store: LocalStore,
    gateway: RemoteGateway,
    include_remote_keyword_match: bool = False,
) -> CleanupReport:
    """Remove test records locally and, when the remote is enabled, remotely.

    Remote rows are deleted by the ids removed locally. With
    ``include_remote_keyword_match`` the keyword match is also run on the
    remote relation, which catches rows that no longer exist locally.
    """
    report = CleanupReport()
    diaries = DiaryStore(store)

    try:
        records = diaries.load()
        kept = [r for r in records if not is_test_record(r)]
        removed_ids = [r.id for r in records if is_test_record(r)]
        report.local_removed = len(removed_ids)
        if removed_ids:
            diaries.save(kept)
            logger.info(f"Removed {len(removed_ids)} test records locally")
    except Exception as e:
        logger.error(f"Local test data cleanup failed: {e}", exc_info=True)
        report.success = False
        return report

    if settings.remote_enabled and gateway.is_configured:
        deleted = gateway.delete_diaries(removed_ids)
        if deleted.ok:
            report.remote_removed += deleted.value
        else:
            report.success = False
        if include_remote_keyword_match:
            matched = gateway.delete_diaries_matching(EVENT_KEYWORDS, REALIZATION_KEYWORDS)
            if matched.ok:
                report.remote_removed += matched.value
            else:
                report.success = False

    return report
