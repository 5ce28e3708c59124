"""kanjou local storage.

The client-side persisted namespace and the diary/consent collections
stored in it.
"""

from .diaries import ConsentStore, DiaryStore
from .local import (
    AUTO_SYNC_ENABLED_KEY,
    CONSENT_HISTORIES_KEY,
    CURRENT_COUNSELOR_KEY,
    CURRENT_USER_KEY,
    DIARY_ENTRIES_KEY,
    LAST_SYNC_TIME_KEY,
    LocalStore,
)

__all__ = [
    "LocalStore",
    "DiaryStore",
    "ConsentStore",
    # Keys
    "DIARY_ENTRIES_KEY",
    "CONSENT_HISTORIES_KEY",
    "AUTO_SYNC_ENABLED_KEY",
    "LAST_SYNC_TIME_KEY",
    "CURRENT_USER_KEY",
    "CURRENT_COUNSELOR_KEY",
]
