"""Consent history: recording consent events and syncing them both ways."""

import logging
import uuid

from kanjou.config import Settings
from kanjou.gateway import RemoteGateway
from kanjou.storage import ConsentStore, LocalStore
from kanjou.types import ConsentRecord, ErrorKind, Result, utc_now

logger = logging.getLogger(__name__)


class ConsentService:
    """Saves consent records locally or remotely and reconciles the two."""

    def __init__(self, settings: Settings, store: LocalStore, gateway: RemoteGateway):
        self._settings = settings
        self._local = ConsentStore(store)
        self._gateway = gateway

    @property
    def local_only(self) -> bool:
        return not (self._settings.remote_enabled and self._gateway.is_configured)

    def record_consent(
        self,
        line_username: str,
        consent_given: bool,
        ip_address: str,
        user_agent: str,
    ) -> Result:
        """Record a consent event now."""
        now = utc_now()
        record = ConsentRecord(
            id=str(uuid.uuid4()),
            line_username=line_username,
            consent_given=consent_given,
            consent_date=now,
            ip_address=ip_address,
            user_agent=user_agent,
            created_at=now,
        )
        return self.save(record)

    def save(self, record: ConsentRecord) -> Result:
        """Save to the local history in local-only mode, else to the remote."""
        if self.local_only:
            logger.debug("Local-only mode, saving consent history locally")
            self._local.append(record)
            return Result.success(record.to_dict())
        return self._gateway.save_consent_history(record)

    def sync_to_remote(self) -> Result:
        """Push the local consent history; rows already remote are left alone."""
        if self.local_only:
            logger.debug("Local-only mode, consent sync skipped")
            return Result.success(0)
        rows = self._local.load_raw()
        if not rows:
            return Result.success(0)
        return self._gateway.upsert_consent_histories(rows)

    def sync_to_local(self) -> Result:
        """Replace the local consent history with the remote one."""
        if self.local_only:
            logger.debug("Local-only mode, consent pull skipped")
            return Result.success(0)
        fetched = self._gateway.get_all_consent_histories()
        if not fetched.ok:
            return Result.failure(
                fetched.error_kind or ErrorKind.REMOTE_FAILURE, fetched.error, value=0
            )
        self._local.replace(fetched.value)
        return Result.success(len(fetched.value))

    def history(self):
        """The local consent history."""
        return self._local.load()
