"""Remote data gateway over the Supabase relations.

A thin CRUD facade. Each operation logs remote failures and returns an
explicit ``Result`` whose ``value`` is still a safe default, so callers can
branch on the outcome or simply use the value. ``sync_diaries`` returns a
``DiarySyncResult`` because the synchronizer has to act on partial success.
"""

import logging
import time
from typing import Any, Dict, List, Optional, Sequence

from postgrest.exceptions import APIError

from kanjou.database import (
    CHAT_ROOMS_TABLE,
    CONSENT_HISTORIES_TABLE,
    COUNSELORS_TABLE,
    DIARY_ENTRIES_TABLE,
    MESSAGES_TABLE,
    NO_ROWS_ERROR_CODE,
    USERS_TABLE,
)
from kanjou.logging_config import log_sync_operation
from kanjou.types import (
    LOCAL_USER_ID,
    ChatMessage,
    ChatRoom,
    ConsentRecord,
    Counselor,
    DiaryRecord,
    DiarySyncResult,
    ErrorKind,
    Result,
    UserRecord,
)

logger = logging.getLogger(__name__)

NOT_CONFIGURED_MESSAGE = "No Supabase connection configured"


def _error_text(error: Exception) -> str:
    """Readable message for a Supabase/PostgREST exception."""
    if isinstance(error, APIError):
        parts = [error.message or "API error"]
        if error.details:
            parts.append(f"details: {error.details}")
        if error.code:
            parts.append(f"code: {error.code}")
        return "; ".join(parts)
    return str(error)


class RemoteGateway:
    """CRUD operations against the remote relations.

    Args:
        client: A Supabase ``Client``, or None when no remote backend is
            configured. Every operation degrades to a safe default without a
            client.
    """

    def __init__(self, client: Optional[Any]):
        self._client = client

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    def _not_configured(self, value: Any = None) -> Result:
        return Result.failure(ErrorKind.NOT_CONFIGURED, NOT_CONFIGURED_MESSAGE, value=value)

    # === Connectivity ===

    def check_connection(self) -> Dict[str, Any]:
        """Test that the users relation is reachable.

        Returns:
            Dict with 'healthy', plus 'latency_ms' when healthy or 'error'
            when not.
        """
        if not self._client:
            return {"healthy": False, "error": NOT_CONFIGURED_MESSAGE}

        start = time.monotonic()
        try:
            self._client.table(USERS_TABLE).select("id").limit(1).execute()
        except Exception as e:
            logger.error(f"Supabase connection check failed: {_error_text(e)}")
            return {"healthy": False, "error": _error_text(e)}
        latency_ms = (time.monotonic() - start) * 1000
        return {"healthy": True, "latency_ms": round(latency_ms, 2)}

    # === Users ===

    def find_user(self, line_username: str) -> Result:
        """Look up a user by username.

        Returns NOT_FOUND (not REMOTE_FAILURE) when no row matches, so the
        caller can tell "create it" apart from "lookup broke".
        """
        if not self._client:
            return self._not_configured()
        try:
            response = (
                self._client.table(USERS_TABLE)
                .select("*")
                .eq("line_username", line_username)
                .single()
                .execute()
            )
        except APIError as e:
            if e.code == NO_ROWS_ERROR_CODE:
                return Result.failure(ErrorKind.NOT_FOUND, f"No user {line_username!r}")
            logger.error(f"User lookup failed for {line_username!r}: {_error_text(e)}")
            return Result.failure(ErrorKind.REMOTE_FAILURE, _error_text(e))
        except Exception as e:
            logger.error(f"User lookup failed for {line_username!r}: {e}")
            return Result.failure(ErrorKind.REMOTE_FAILURE, str(e))

        row = response.data if response is not None else None
        if isinstance(row, list):
            row = row[0] if row else None
        if not row:
            return Result.failure(ErrorKind.NOT_FOUND, f"No user {line_username!r}")
        return Result.success(UserRecord.from_row(row))

    def create_user(self, line_username: str) -> Result:
        if not self._client:
            return self._not_configured()
        try:
            response = (
                self._client.table(USERS_TABLE).insert({"line_username": line_username}).execute()
            )
        except Exception as e:
            logger.error(f"User creation failed for {line_username!r}: {_error_text(e)}")
            return Result.failure(ErrorKind.REMOTE_FAILURE, _error_text(e))

        if not response.data:
            return Result.failure(ErrorKind.REMOTE_FAILURE, "User insert returned no row")
        return Result.success(UserRecord.from_row(response.data[0]))

    # === Diaries ===

    def _upsert_diary_rows(self, rows: List[Dict[str, Any]]) -> Any:
        return (
            self._client.table(DIARY_ENTRIES_TABLE)
            .upsert(rows, on_conflict="id", ignore_duplicates=False)
            .execute()
        )

    def sync_diaries(self, user_id: str, diaries: Sequence[DiaryRecord]) -> DiarySyncResult:
        """Upsert a batch of diary records for a user.

        Tries one bulk upsert keyed on id. If the batch is rejected, each
        record is upserted on its own so a single bad record does not sink
        the rest; the result is a success if at least one record made it.
        """
        total = len(diaries)
        if not self._client:
            return DiarySyncResult(success=False, total=total, error=NOT_CONFIGURED_MESSAGE)
        if not user_id or user_id == LOCAL_USER_ID:
            logger.info(f"No remote user id, skipping sync of {total} records")
            return DiarySyncResult(
                success=False, total=total, error="Local-only user id, cannot sync"
            )

        rows = [diary.to_remote_row(user_id) for diary in diaries]
        logger.debug(f"Upserting {total} diary records for user {user_id}")

        try:
            self._upsert_diary_rows(rows)
        except Exception as bulk_error:
            logger.error(f"Bulk diary upsert failed: {_error_text(bulk_error)}")
            logger.info("Retrying diary upsert one record at a time")
            synced = 0
            for row in rows:
                try:
                    self._upsert_diary_rows([row])
                    synced += 1
                except Exception as e:
                    logger.error(f"Failed to upsert diary {row['id']}: {_error_text(e)}")

            if synced > 0:
                message = f"{synced}/{total} records synced"
                log_sync_operation("diaries", synced, True, {"partial": True, "total": total})
                return DiarySyncResult(
                    success=True, synced=synced, total=total, partial=True, message=message
                )

            error = f"Sync failed: {_error_text(bulk_error)}"
            log_sync_operation("diaries", 0, False, {"error": error, "total": total})
            return DiarySyncResult(success=False, total=total, partial=True, error=error)

        log_sync_operation("diaries", total, True, {"total": total})
        return DiarySyncResult(
            success=True, synced=total, total=total, message=f"{total}/{total} records synced"
        )

    def get_user_diaries(self, user_id: str) -> Result:
        """A user's diary rows, newest date first."""
        if not self._client:
            return self._not_configured(value=[])
        try:
            response = (
                self._client.table(DIARY_ENTRIES_TABLE)
                .select("*")
                .eq("user_id", user_id)
                .order("date", desc=True)
                .execute()
            )
        except Exception as e:
            logger.error(f"Diary fetch failed for user {user_id}: {_error_text(e)}")
            return Result.failure(ErrorKind.REMOTE_FAILURE, _error_text(e), value=[])
        return Result.success(response.data or [])

    def delete_diaries(self, ids: Sequence[str]) -> Result:
        """Delete diary rows by id. The value is the number of rows removed."""
        if not self._client:
            return self._not_configured(value=0)
        if not ids:
            return Result.success(0)
        try:
            response = (
                self._client.table(DIARY_ENTRIES_TABLE).delete().in_("id", list(ids)).execute()
            )
        except Exception as e:
            logger.error(f"Diary delete failed: {_error_text(e)}")
            return Result.failure(ErrorKind.REMOTE_FAILURE, _error_text(e), value=0)
        return Result.success(len(response.data or []))

    def delete_diaries_matching(
        self, event_keywords: Sequence[str], realization_keywords: Sequence[str] = ()
    ) -> Result:
        """Delete diary rows whose event or realization contains a keyword."""
        if not self._client:
            return self._not_configured(value=0)
        filters = [f"event.ilike.%{kw}%" for kw in event_keywords]
        filters += [f"realization.ilike.%{kw}%" for kw in realization_keywords]
        if not filters:
            return Result.failure(ErrorKind.INVALID_INPUT, "No keywords given", value=0)
        try:
            response = (
                self._client.table(DIARY_ENTRIES_TABLE).delete().or_(",".join(filters)).execute()
            )
        except Exception as e:
            logger.error(f"Diary keyword delete failed: {_error_text(e)}")
            return Result.failure(ErrorKind.REMOTE_FAILURE, _error_text(e), value=0)
        return Result.success(len(response.data or []))

    # === Chat ===

    def get_chat_rooms(self, user_id: Optional[str] = None) -> Result:
        """Chat rooms, newest first; only the user's rooms when ``user_id`` is given."""
        if not self._client:
            return self._not_configured(value=[])
        try:
            query = self._client.table(CHAT_ROOMS_TABLE).select("*")
            if user_id:
                query = query.eq("user_id", user_id)
            response = query.order("created_at", desc=True).execute()
            rooms = [ChatRoom.from_row(row) for row in response.data or []]
        except Exception as e:
            logger.error(f"Chat room fetch failed: {_error_text(e)}")
            return Result.failure(ErrorKind.REMOTE_FAILURE, _error_text(e), value=[])
        return Result.success(rooms)

    def get_counselors(self, active_only: bool = True) -> Result:
        if not self._client:
            return self._not_configured(value=[])
        try:
            query = self._client.table(COUNSELORS_TABLE).select("*")
            if active_only:
                query = query.eq("is_active", True)
            response = query.order("name", desc=False).execute()
            counselors = [Counselor.from_row(row) for row in response.data or []]
        except Exception as e:
            logger.error(f"Counselor fetch failed: {_error_text(e)}")
            return Result.failure(ErrorKind.REMOTE_FAILURE, _error_text(e), value=[])
        return Result.success(counselors)

    def get_chat_messages(self, chat_room_id: str) -> Result:
        """Messages in a chat room, oldest first."""
        if not self._client:
            return self._not_configured(value=[])
        try:
            response = (
                self._client.table(MESSAGES_TABLE)
                .select("*")
                .eq("chat_room_id", chat_room_id)
                .order("created_at", desc=False)
                .execute()
            )
            messages = [ChatMessage.from_row(row) for row in response.data or []]
        except Exception as e:
            logger.error(f"Message fetch failed for room {chat_room_id}: {_error_text(e)}")
            return Result.failure(ErrorKind.REMOTE_FAILURE, _error_text(e), value=[])
        return Result.success(messages)

    def send_message(
        self,
        chat_room_id: str,
        content: str,
        sender_id: Optional[str] = None,
        counselor_id: Optional[str] = None,
    ) -> Result:
        if not self._client:
            return self._not_configured()
        try:
            message = ChatMessage.outgoing(chat_room_id, content, sender_id, counselor_id)
        except ValueError as e:
            return Result.failure(ErrorKind.INVALID_INPUT, str(e))
        try:
            response = self._client.table(MESSAGES_TABLE).insert(message.to_insert_row()).execute()
        except Exception as e:
            logger.error(f"Message send failed for room {chat_room_id}: {_error_text(e)}")
            return Result.failure(ErrorKind.REMOTE_FAILURE, _error_text(e))
        if not response.data:
            return Result.failure(ErrorKind.REMOTE_FAILURE, "Message insert returned no row")
        return Result.success(ChatMessage.from_row(response.data[0]))

    # === Consent ===

    def save_consent_history(self, record: ConsentRecord) -> Result:
        if not self._client:
            return self._not_configured()
        try:
            response = self._client.table(CONSENT_HISTORIES_TABLE).insert(record.to_dict()).execute()
        except Exception as e:
            logger.error(f"Consent history save failed: {_error_text(e)}")
            return Result.failure(ErrorKind.REMOTE_FAILURE, _error_text(e))
        row = response.data[0] if response.data else record.to_dict()
        return Result.success(row)

    def upsert_consent_histories(self, rows: List[Dict[str, Any]]) -> Result:
        """Insert consent rows, leaving rows with an existing id untouched."""
        if not self._client:
            return self._not_configured(value=0)
        if not rows:
            return Result.success(0)
        try:
            (
                self._client.table(CONSENT_HISTORIES_TABLE)
                .upsert(rows, on_conflict="id", ignore_duplicates=True)
                .execute()
            )
        except Exception as e:
            logger.error(f"Consent history sync failed: {_error_text(e)}")
            return Result.failure(ErrorKind.REMOTE_FAILURE, _error_text(e), value=0)
        log_sync_operation("consent_histories", len(rows), True)
        return Result.success(len(rows))

    def get_all_consent_histories(self) -> Result:
        """Every consent row, newest consent first."""
        if not self._client:
            return self._not_configured(value=[])
        try:
            response = (
                self._client.table(CONSENT_HISTORIES_TABLE)
                .select("*")
                .order("consent_date", desc=True)
                .execute()
            )
        except Exception as e:
            logger.error(f"Consent history fetch failed: {_error_text(e)}")
            return Result.failure(ErrorKind.REMOTE_FAILURE, _error_text(e), value=[])
        return Result.success(response.data or [])

    # === Bulk reads ===

    def fetch_table(self, table: str) -> Result:
        """Unfiltered read of a whole relation."""
        if not self._client:
            return self._not_configured(value=[])
        if table not in (
            USERS_TABLE,
            DIARY_ENTRIES_TABLE,
            CONSENT_HISTORIES_TABLE,
            COUNSELORS_TABLE,
            CHAT_ROOMS_TABLE,
            MESSAGES_TABLE,
        ):
            return Result.failure(ErrorKind.INVALID_INPUT, f"Unknown table {table!r}", value=[])
        try:
            response = self._client.table(table).select("*").execute()
        except Exception as e:
            logger.error(f"Fetch of {table} failed: {_error_text(e)}")
            return Result.failure(ErrorKind.REMOTE_FAILURE, _error_text(e), value=[])
        return Result.success(response.data or [])
