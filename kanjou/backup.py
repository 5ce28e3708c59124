"""Full backup and restore of the local namespace plus a remote snapshot.

Backup document shape::

    {
        "metadata": {"version", "timestamp", "type", "creator"},
        "localStorage": {<key>: <value>},
        "supabaseData": {<relation>: [<row>, ...]} | null,
    }

Restore writes the local namespace back. The remote snapshot is only
counted and reported: writing it back is not supported, and asking for it
raises ``RemoteRestoreNotSupportedError``.
"""

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from kanjou.config import Settings
from kanjou.database import BACKUP_TABLES
from kanjou.gateway import RemoteGateway
from kanjou.logging_config import log_backup_event
from kanjou.storage import CURRENT_COUNSELOR_KEY, LocalStore
from kanjou.types import (
    InvalidBackupError,
    RemoteRestoreNotSupportedError,
    RestoreReport,
    utc_now,
)

logger = logging.getLogger(__name__)

BACKUP_FORMAT_VERSION = "1.0"
BACKUP_TYPE = "full-backup"
DEFAULT_CREATOR = "admin"
BACKUP_FILENAME_TEMPLATE = "kanjou-nikki-full-backup-{date}.json"

# Local keys kept across the clear of a restore; a backup value still replaces them
PRESERVED_KEYS: Tuple[str, ...] = (CURRENT_COUNSELOR_KEY,)


class BackupController:
    """Exports and restores the whole client state.

    Args:
        settings: Configuration (remote enablement, reload delay).
        store: The local key-value namespace.
        gateway: Remote data gateway used for the snapshot.
        on_reload: Called ``settings.reload_delay`` seconds after a
            successful restore so persisted state takes effect.
    """

    def __init__(
        self,
        settings: Settings,
        store: LocalStore,
        gateway: RemoteGateway,
        on_reload: Optional[Callable[[], Any]] = None,
    ):
        self._settings = settings
        self._store = store
        self._gateway = gateway
        self._on_reload = on_reload
        self.pending_reload: Optional[threading.Timer] = None

    @property
    def remote_enabled(self) -> bool:
        return self._settings.remote_enabled and self._gateway.is_configured

    # === Export ===

    def _snapshot_local(self) -> Dict[str, Any]:
        snapshot: Dict[str, Any] = {}
        for key, value in self._store.items().items():
            if not value:
                continue
            try:
                snapshot[key] = json.loads(value)
            except (json.JSONDecodeError, TypeError):
                snapshot[key] = value
        return snapshot

    def _snapshot_remote(self) -> Optional[Dict[str, Any]]:
        if not self.remote_enabled:
            return None
        data: Dict[str, Any] = {}
        for table in BACKUP_TABLES:
            result = self._gateway.fetch_table(table)
            if result.ok:
                data[table] = result.value
            else:
                logger.error(f"Backup could not read {table}: {result.error}")
        return data

    def export_backup(self, creator: Optional[str] = None) -> Dict[str, Any]:
        """Build a backup document of the local namespace and the remote relations."""
        document = {
            "metadata": {
                "version": BACKUP_FORMAT_VERSION,
                "timestamp": utc_now(),
                "type": BACKUP_TYPE,
                "creator": creator or self._store.get(CURRENT_COUNSELOR_KEY) or DEFAULT_CREATOR,
            },
            "localStorage": self._snapshot_local(),
            "supabaseData": self._snapshot_remote(),
        }
        remote = document["supabaseData"]
        log_backup_event(
            "export",
            {
                "local_keys": len(document["localStorage"]),
                "remote_tables": len(remote) if remote is not None else 0,
            },
        )
        return document

    def write_backup_file(self, document: Dict[str, Any], directory: Path) -> Path:
        """Write a backup document to a dated file in ``directory``."""
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        date = datetime.now(timezone.utc).date().isoformat()
        path = directory / BACKUP_FILENAME_TEMPLATE.format(date=date)
        path.write_text(json.dumps(document, ensure_ascii=False, indent=2), encoding="utf-8")
        log_backup_event("written", {"path": str(path)})
        return path

    # === Restore ===

    @staticmethod
    def load_backup_file(path: Path) -> Dict[str, Any]:
        """Read and parse a backup file (validation happens in ``restore_backup``)."""
        try:
            return json.loads(Path(path).read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise InvalidBackupError(f"Not a backup file: {e}") from e

    @staticmethod
    def validate(document: Any) -> None:
        """Raise InvalidBackupError unless ``document`` looks like a backup."""
        if not isinstance(document, dict):
            raise InvalidBackupError("Not a backup file: top level is not an object")
        metadata = document.get("metadata")
        if not isinstance(metadata, dict) or not metadata.get("version"):
            raise InvalidBackupError("Not a backup file: missing metadata.version")
        local = document.get("localStorage")
        if local is not None and not isinstance(local, dict):
            raise InvalidBackupError("Not a backup file: localStorage is not an object")

    @staticmethod
    def remote_row_counts(document: Dict[str, Any]) -> Dict[str, int]:
        remote = document.get("supabaseData")
        if not isinstance(remote, dict):
            return {}
        return {table: len(rows) for table, rows in remote.items() if isinstance(rows, list)}

    def restore_backup(self, document: Any, restore_remote: bool = False) -> RestoreReport:
        """Replace the local namespace with the backup's.

        Nothing is modified unless the document validates. Preserved keys
        keep their current value unless the backup carries its own.
        """
        self.validate(document)
        counts = self.remote_row_counts(document)
        if restore_remote and counts:
            raise RemoteRestoreNotSupportedError(counts)

        report = RestoreReport(remote_rows_skipped=counts)
        local = document.get("localStorage")
        if local is not None:
            preserved = {}
            for key in PRESERVED_KEYS:
                value = self._store.get(key)
                if value:
                    preserved[key] = value

            self._store.clear()
            for key, value in preserved.items():
                self._store.set(key, value)
            report.preserved_keys = sorted(preserved)

            # Backup values are written last and win over preserved ones
            for key, value in local.items():
                if isinstance(value, str):
                    self._store.set(key, value)
                else:
                    self._store.set(key, json.dumps(value, ensure_ascii=False))
                report.restored_keys.append(key)

        for table, count in counts.items():
            logger.warning(f"Remote restore not performed: {count} rows in {table} left as-is")

        log_backup_event(
            "restore",
            {"restored_keys": len(report.restored_keys), "preserved_keys": len(report.preserved_keys)},
        )
        self._schedule_reload()
        return report

    def _schedule_reload(self) -> None:
        if self._on_reload is None:
            return
        if self.pending_reload is not None:
            self.pending_reload.cancel()
        self.pending_reload = threading.Timer(self._settings.reload_delay, self._on_reload)
        self.pending_reload.daemon = True
        self.pending_reload.start()
