"""
Kanjou core.

The Kanjou class wires settings, the local store, the remote gateway and the
services built on them. It is the object the CLI works with; tests usually
build one with an explicit Settings and a fake Supabase client.
"""

import logging
from typing import Any, Dict, List, Optional

from kanjou.backup import BackupController
from kanjou.cleanup import cleanup_test_data
from kanjou.config import Settings, get_settings
from kanjou.consent import ConsentService
from kanjou.database import create_supabase_client
from kanjou.gateway import RemoteGateway
from kanjou.identity import IdentityResolver
from kanjou.storage import CURRENT_USER_KEY, DiaryStore, LocalStore
from kanjou.sync import AutoSyncScheduler, Synchronizer
from kanjou.types import CleanupReport, DiaryRecord, RecordOrigin, RestoreReport, SyncReport

logger = logging.getLogger(__name__)


class Kanjou:
    """Diary client: local collection, sync, consent and backup.

    Args:
        settings: Configuration; defaults to the cached environment settings.
        client: Supabase client. When omitted one is created from settings
            (or none, if the remote is disabled).
        store: Local store; defaults to the SQLite file under data_dir.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[Any] = None,
        store: Optional[LocalStore] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store or LocalStore(self.settings.db_path)
        if client is None and self.settings.remote_enabled:
            client = create_supabase_client(self.settings)
        self.gateway = RemoteGateway(client if self.settings.remote_enabled else None)
        self.diaries = DiaryStore(self.store)
        self.resolver = IdentityResolver(self.settings, self.gateway)
        self.synchronizer = Synchronizer(self.settings, self.store, self.gateway, self.resolver)
        self.consent = ConsentService(self.settings, self.store, self.gateway)
        self.backup = BackupController(
            self.settings, self.store, self.gateway, on_reload=self.synchronizer.reload_state
        )

    # === User ===

    @property
    def username(self) -> Optional[str]:
        return self.synchronizer.current_username()

    def set_username(self, line_username: str) -> None:
        line_username = line_username.strip()
        if not line_username:
            raise ValueError("Username must not be empty")
        self.store.set(CURRENT_USER_KEY, line_username)
        self.synchronizer.current_user = None

    # === Diaries ===

    def add_diary(
        self,
        date: str,
        emotion: str,
        event: str,
        realization: str,
        self_esteem_score: int = 50,
        worthlessness_score: int = 50,
        origin: RecordOrigin = RecordOrigin.USER,
    ) -> DiaryRecord:
        return self.diaries.add(
            date=date,
            emotion=emotion,
            event=event,
            realization=realization,
            self_esteem_score=self_esteem_score,
            worthlessness_score=worthlessness_score,
            origin=origin,
        )

    def list_diaries(self) -> List[DiaryRecord]:
        """Local diary records, newest date first."""
        return sorted(self.diaries.load(), key=lambda r: r.date or "", reverse=True)

    # === Sync ===

    def sync(self) -> SyncReport:
        return self.synchronizer.trigger_manual_sync()

    def sync_status(self) -> Dict[str, Any]:
        state = self.synchronizer.state
        return {
            "enabled": state.enabled,
            "in_progress": state.in_progress,
            "last_sync_time": state.last_sync_time,
            "error": state.error,
            "phase": state.phase.value,
            "remote_enabled": self.synchronizer.remote_enabled,
            "local_records": self.diaries.count(),
        }

    def scheduler(self) -> AutoSyncScheduler:
        return AutoSyncScheduler.from_settings(self.synchronizer, self.settings)

    # === Backup ===

    def export_backup(self, creator: Optional[str] = None) -> Dict[str, Any]:
        return self.backup.export_backup(creator=creator)

    def restore_backup(self, document: Any, restore_remote: bool = False) -> RestoreReport:
        return self.backup.restore_backup(document, restore_remote=restore_remote)

    # === Cleanup ===

    def cleanup_test_data(self, include_remote_keyword_match: bool = False) -> CleanupReport:
        return cleanup_test_data(
            self.settings,
            self.store,
            self.gateway,
            include_remote_keyword_match=include_remote_keyword_match,
        )
