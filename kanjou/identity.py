"""Maps a client-side username to a remote user id."""

import logging
from typing import Optional

from kanjou.config import Settings
from kanjou.gateway import RemoteGateway
from kanjou.types import LOCAL_USER_ID, ErrorKind, UserRecord

logger = logging.getLogger(__name__)


class IdentityResolver:
    """Search-then-insert resolution of remote users.

    There is no client-side locking: the unique constraint on
    ``users.line_username`` is what keeps concurrent first contacts from
    producing two rows.
    """

    def __init__(self, settings: Settings, gateway: RemoteGateway):
        self._settings = settings
        self._gateway = gateway

    @property
    def remote_enabled(self) -> bool:
        return self._settings.remote_enabled and self._gateway.is_configured

    def resolve_user(self, line_username: str) -> Optional[UserRecord]:
        """Return the remote user for ``line_username``, creating it on first contact.

        Returns a sentinel record when the remote is disabled, and None when
        the lookup fails for any reason other than "no such row".
        """
        if not self.remote_enabled:
            logger.debug(f"Remote disabled, using local user id for {line_username!r}")
            return UserRecord(id=LOCAL_USER_ID, line_username=line_username)

        found = self._gateway.find_user(line_username)
        if found.ok:
            return found.value
        if found.error_kind != ErrorKind.NOT_FOUND:
            logger.error(f"User lookup failed, not creating {line_username!r}: {found.error}")
            return None

        created = self._gateway.create_user(line_username)
        if not created.ok:
            # Lost a race with another first contact; the row exists now
            retry = self._gateway.find_user(line_username)
            if retry.ok:
                return retry.value
            logger.error(f"Could not create user {line_username!r}: {created.error}")
            return None
        logger.info(f"Created remote user for {line_username!r}")
        return created.value

    def resolve(self, line_username: str) -> Optional[str]:
        """Return the remote user id for ``line_username`` (see ``resolve_user``)."""
        user = self.resolve_user(line_username)
        return user.id if user else None

    def get_user_id(self, line_username: str) -> Optional[str]:
        """Lookup-only variant of ``resolve``: never creates a user."""
        if not self.remote_enabled:
            return LOCAL_USER_ID
        found = self._gateway.find_user(line_username)
        return found.value.id if found.ok else None
