"""Reconciliation between the local diary collection and the remote backend.

The Synchronizer runs one pass at a time: a request that arrives while a
pass is running returns immediately with ``skipped="in_progress"`` instead
of waiting. The AutoSyncScheduler fires passes from timer threads: once
shortly after start, once more as a catch-up, then periodically.
"""

import logging
import threading
from typing import Callable, List, Optional

from kanjou.config import Settings
from kanjou.gateway import RemoteGateway
from kanjou.identity import IdentityResolver
from kanjou.logging_config import log_sync_operation
from kanjou.storage import (
    AUTO_SYNC_ENABLED_KEY,
    CURRENT_USER_KEY,
    LAST_SYNC_TIME_KEY,
    DiaryStore,
    LocalStore,
)
from kanjou.types import SyncPhase, SyncReport, SyncState, UserRecord, utc_now

logger = logging.getLogger(__name__)

SKIP_REMOTE_DISABLED = "remote_disabled"
SKIP_IN_PROGRESS = "in_progress"
SKIP_AUTO_SYNC_DISABLED = "auto_sync_disabled"


class Synchronizer:
    """Pushes the local diary collection to the remote diary relation.

    Args:
        settings: Configuration; decides whether the remote is enabled.
        store: The local key-value namespace.
        gateway: Remote data gateway.
        resolver: Identity resolver for the current username.
        clock: Returns the ISO timestamp recorded as the last sync time.
    """

    def __init__(
        self,
        settings: Settings,
        store: LocalStore,
        gateway: RemoteGateway,
        resolver: IdentityResolver,
        clock: Callable[[], str] = utc_now,
    ):
        self._settings = settings
        self._store = store
        self._diaries = DiaryStore(store)
        self._gateway = gateway
        self._resolver = resolver
        self._clock = clock

        self._lock = threading.Lock()
        self._in_progress = False
        self._error: Optional[str] = None
        self._phase = SyncPhase.IDLE
        self.current_user: Optional[UserRecord] = None

    # === State ===

    @property
    def remote_enabled(self) -> bool:
        return self._resolver.remote_enabled

    @property
    def enabled(self) -> bool:
        """Auto-sync flag; anything but an explicit "false" means enabled."""
        return self._store.get(AUTO_SYNC_ENABLED_KEY) != "false"

    def set_enabled(self, enabled: bool) -> None:
        self._store.set(AUTO_SYNC_ENABLED_KEY, "true" if enabled else "false")

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    @property
    def last_sync_time(self) -> Optional[str]:
        return self._store.get(LAST_SYNC_TIME_KEY)

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def state(self) -> SyncState:
        return SyncState(
            enabled=self.enabled,
            in_progress=self._in_progress,
            last_sync_time=self.last_sync_time,
            error=self._error,
            phase=self._phase,
        )

    def reload_state(self) -> SyncState:
        """Forget the cached current user and return a fresh state snapshot.

        Persisted fields (enabled flag, last sync time) are read from the
        store on every access and need no reload.
        """
        if not self._in_progress:
            self.current_user = None
        return self.state

    def current_username(self) -> Optional[str]:
        username = self._store.get(CURRENT_USER_KEY)
        return username.strip() if username and username.strip() else None

    def initialize_user(self) -> Optional[UserRecord]:
        """Resolve the current username to a user record and cache it."""
        username = self.current_username()
        if not username:
            logger.debug("No current user, skipping user initialization")
            return None
        user = self._resolver.resolve_user(username)
        if user is None:
            self._error = "User initialization failed"
            return None
        self.current_user = user
        logger.info(f"User initialized: {user.line_username}")
        return user

    # === Sync ===

    def trigger_manual_sync(self) -> SyncReport:
        """Run a pass now unless one is already running."""
        logger.debug("Manual sync requested")
        return self.sync()

    def sync(self) -> SyncReport:
        """Run one reconciliation pass."""
        if not self.remote_enabled:
            logger.debug("Remote disabled, sync skipped")
            return SyncReport(success=True, skipped=SKIP_REMOTE_DISABLED)

        if not self._lock.acquire(blocking=False):
            logger.info("Sync already in progress")
            return SyncReport(success=False, skipped=SKIP_IN_PROGRESS)

        self._in_progress = True
        self._phase = SyncPhase.SYNCING
        self._error = None
        report = SyncReport(success=False, error="Sync failed")
        try:
            report = self._run_pass()
        except Exception as e:
            logger.error(f"Sync failed: {e}", exc_info=True)
            report = SyncReport(success=False, error=str(e))
        finally:
            # Final state is written while the lock is still held
            if report.success:
                self._phase = SyncPhase.IDLE
            else:
                self._error = report.error or "Sync failed"
                self._phase = SyncPhase.IDLE_WITH_ERROR
            self._in_progress = False
            self._lock.release()
        return report

    def _resolve_user_id(self, username: str) -> Optional[str]:
        user = self.current_user
        if user is None or user.is_local or user.line_username != username:
            user = self._resolver.resolve_user(username)
            if user is None or user.is_local:
                return None
            self.current_user = user
        return user.id

    def _mark_synced(self) -> str:
        now = self._clock()
        self._store.set(LAST_SYNC_TIME_KEY, now)
        return now

    def _run_pass(self) -> SyncReport:
        username = self.current_username()
        if not username:
            logger.info("No current user, cannot sync")
            return SyncReport(success=False, error="No current user")

        user_id = self._resolve_user_id(username)
        if not user_id:
            return SyncReport(success=False, error="Failed to resolve remote user")

        records = self._diaries.load()
        if not records:
            self._mark_synced()
            logger.info("No diary records to sync")
            return SyncReport(success=True, message="Nothing to sync")

        logger.info(f"Syncing {len(records)} diary records")
        result = self._gateway.sync_diaries(user_id, records)
        if not result.success:
            return SyncReport(
                success=False,
                total=result.total,
                error=result.error or "Diary sync failed",
            )

        self._mark_synced()
        log_sync_operation("pass", result.synced, True, {"total": result.total})
        return SyncReport(
            success=True,
            synced=result.synced,
            total=result.total,
            message=result.message,
        )


class AutoSyncScheduler:
    """Fires Synchronizer passes on timers.

    Args:
        synchronizer: The synchronizer to drive.
        interval: Seconds between periodic passes.
        startup_delay: Seconds before the first pass.
        catch_up_delay: Seconds before the second, catch-up pass, which covers
            a first pass that ran before the user or network was ready.
    """

    def __init__(
        self,
        synchronizer: Synchronizer,
        interval: float = 300.0,
        startup_delay: float = 3.0,
        catch_up_delay: float = 30.0,
    ):
        self._sync = synchronizer
        self.interval = interval
        self.startup_delay = startup_delay
        self.catch_up_delay = catch_up_delay
        self._timers: List[threading.Timer] = []
        self._stop = threading.Event()
        self._loop: Optional[threading.Thread] = None

    @classmethod
    def from_settings(cls, synchronizer: Synchronizer, settings: Settings) -> "AutoSyncScheduler":
        return cls(
            synchronizer,
            interval=settings.sync_interval_seconds,
            startup_delay=settings.startup_sync_delay,
            catch_up_delay=settings.catch_up_sync_delay,
        )

    @property
    def running(self) -> bool:
        return self._loop is not None and self._loop.is_alive()

    def start(self) -> bool:
        """Schedule the startup, catch-up and periodic passes.

        Returns False (and schedules nothing) when the remote is disabled.
        """
        if not self._sync.remote_enabled:
            logger.info("Remote disabled, auto-sync not started")
            return False
        if self.running:
            return True

        self._stop.clear()
        for delay, label in ((self.startup_delay, "startup"), (self.catch_up_delay, "catch-up")):
            timer = threading.Timer(delay, self.fire, kwargs={"reason": label})
            timer.daemon = True
            timer.start()
            self._timers.append(timer)

        self._loop = threading.Thread(target=self._run_periodic, name="kanjou-auto-sync", daemon=True)
        self._loop.start()
        logger.info(f"Auto-sync started (every {self.interval}s)")
        return True

    def stop(self) -> None:
        self._stop.set()
        for timer in self._timers:
            timer.cancel()
        self._timers.clear()
        if self._loop is not None:
            self._loop.join(timeout=5)
            self._loop = None

    def _run_periodic(self) -> None:
        while not self._stop.wait(self.interval):
            self.fire(reason="periodic")

    def fire(self, reason: str = "periodic") -> SyncReport:
        """Run a pass if auto-sync is enabled and no pass is running."""
        if self._stop.is_set():
            return SyncReport(success=False, skipped="stopped")
        if not self._sync.enabled:
            logger.debug(f"Auto-sync disabled, skipping {reason} sync")
            return SyncReport(success=False, skipped=SKIP_AUTO_SYNC_DISABLED)
        if self._sync.in_progress:
            logger.debug(f"Sync in progress, skipping {reason} sync")
            return SyncReport(success=False, skipped=SKIP_IN_PROGRESS)
        logger.debug(f"Running {reason} sync")
        report = self._sync.sync()
        if not report.success and not report.skipped:
            logger.warning(f"{reason.capitalize()} sync failed: {report.error}")
        return report
