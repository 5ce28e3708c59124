"""Supabase client factory and relation names."""

import logging
from typing import Optional

from supabase import Client, create_client

from .config import Settings

logger = logging.getLogger(__name__)


# =============================================================================
# Table Names
# =============================================================================

USERS_TABLE = "users"
DIARY_ENTRIES_TABLE = "diary_entries"
COUNSELORS_TABLE = "counselors"
CHAT_ROOMS_TABLE = "chat_rooms"
MESSAGES_TABLE = "messages"
CONSENT_HISTORIES_TABLE = "consent_histories"

# Relations captured by a full backup, in export order
BACKUP_TABLES = (
    USERS_TABLE,
    DIARY_ENTRIES_TABLE,
    CONSENT_HISTORIES_TABLE,
    COUNSELORS_TABLE,
    CHAT_ROOMS_TABLE,
    MESSAGES_TABLE,
)

# PostgREST error code for "single row requested, none returned"
NO_ROWS_ERROR_CODE = "PGRST116"


def create_supabase_client(settings: Settings) -> Optional[Client]:
    """Create a Supabase client, or None when the remote is disabled."""
    if not settings.remote_enabled:
        if settings.local_mode:
            logger.debug("Local-only mode: no Supabase client")
        else:
            logger.debug("SUPABASE_URL / SUPABASE_ANON_KEY not set: no Supabase client")
        return None
    return create_client(settings.supabase_url, settings.supabase_anon_key)
