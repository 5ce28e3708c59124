"""
Shared types for kanjou.

Diary, user, consent and chat records plus the result types returned by the
gateway and the synchronizer. Local diary records go through
``normalize_diary`` exactly once, when they are read; everything downstream
works with ``DiaryRecord``.
"""

import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

# === Shared Utility Functions ===


def utc_now() -> str:
    """Get current timestamp as ISO string in UTC."""
    return datetime.now(timezone.utc).isoformat()


def parse_datetime(s: Optional[str]) -> Optional[datetime]:
    """Parse ISO datetime string, returning None for empty or invalid input."""
    if not s:
        return None
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00"))
    except (TypeError, ValueError, AttributeError):
        return None


# === Constants ===

# Sentinel user id meaning "no remote identity yet"
LOCAL_USER_ID = "local-user-id"

DEFAULT_SCORE = 50
MIN_SCORE = 0
MAX_SCORE = 100

# (canonical, legacy) spellings of the score fields in the local form
SCORE_FIELDS = (
    ("self_esteem_score", "selfEsteemScore"),
    ("worthlessness_score", "worthlessnessScore"),
)

# Columns of the remote diary_entries relation
DIARY_REMOTE_COLUMNS = (
    "id",
    "date",
    "emotion",
    "event",
    "realization",
    "self_esteem_score",
    "worthlessness_score",
    "created_at",
    "counselor_memo",
    "is_visible_to_user",
    "counselor_name",
    "assigned_counselor",
    "urgency_level",
)


# === Enums ===


class UrgencyLevel(str, Enum):
    """Counselor-assigned urgency of a diary entry."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


VALID_URGENCY_VALUES = frozenset(u.value for u in UrgencyLevel)


class RecordOrigin(str, Enum):
    """Where a diary record came from."""

    USER = "user"  # Written by the end user
    SAMPLE = "sample"  # Generated sample/test content
    IMPORT = "import"  # Restored or imported from elsewhere


VALID_ORIGIN_VALUES = frozenset(o.value for o in RecordOrigin)


class SyncPhase(Enum):
    """Synchronizer state."""

    IDLE = "idle"
    SYNCING = "syncing"
    IDLE_WITH_ERROR = "idle_with_error"


class ErrorKind(str, Enum):
    """Why a gateway operation did not produce a value."""

    NOT_CONFIGURED = "not_configured"  # No remote backend (or local-only mode)
    NOT_FOUND = "not_found"  # Lookup found no row
    REMOTE_FAILURE = "remote_failure"  # Network or validation failure
    INVALID_INPUT = "invalid_input"  # Rejected before any remote call


# === Errors ===


class KanjouError(Exception):
    """Base class for kanjou errors."""


class InvalidBackupError(KanjouError):
    """Raised when a document is not a kanjou backup."""


class RemoteRestoreNotSupportedError(KanjouError):
    """Raised when a restore is asked to write remote relations back."""

    def __init__(self, row_counts: Dict[str, int]):
        self.row_counts = row_counts
        total = sum(row_counts.values())
        super().__init__(
            f"Remote restore is not supported ({total} rows across {len(row_counts)} relations)"
        )


# === Result Types ===


@dataclass
class Result:
    """Outcome of a gateway operation.

    ``value`` holds the safe default (empty list or None) when ``ok`` is
    False, so callers that do not care about the failure can use it directly.
    """

    ok: bool
    value: Any = None
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, value: Any = None) -> "Result":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, error: Optional[str] = None, value: Any = None) -> "Result":
        return cls(ok=False, value=value, error_kind=kind, error=error or kind.value)


@dataclass
class DiarySyncResult:
    """Result of pushing a batch of diary records."""

    success: bool
    synced: int = 0
    total: int = 0
    partial: bool = False  # True when the per-record fallback ran
    message: Optional[str] = None
    error: Optional[str] = None


@dataclass
class SyncReport:
    """Result of one synchronizer pass."""

    success: bool
    synced: int = 0
    total: int = 0
    skipped: Optional[str] = None  # Reason the pass did nothing, if it did nothing
    message: Optional[str] = None
    error: Optional[str] = None


@dataclass
class SyncState:
    """Snapshot of the synchronizer."""

    enabled: bool = True
    in_progress: bool = False
    last_sync_time: Optional[str] = None
    error: Optional[str] = None
    phase: SyncPhase = SyncPhase.IDLE


# === Record Migration ===


def _coerce_score(value: Any) -> Optional[int]:
    """Coerce a score to an int in [0, 100], or None if it is not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return max(MIN_SCORE, min(MAX_SCORE, int(round(number))))


def normalize_diary(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Migrate a locally persisted diary record to the current shape.

    Both score spellings are reconciled (canonical wins), coerced to int and
    defaulted to 50, and both are present in the result. Missing ids and
    creation timestamps are filled in. Unknown keys are kept.
    """
    record = dict(raw)

    for canonical, legacy in SCORE_FIELDS:
        score = _coerce_score(record.get(canonical))
        if score is None:
            score = _coerce_score(record.get(legacy))
        if score is None:
            score = DEFAULT_SCORE
        record[canonical] = score
        record[legacy] = score

    if not record.get("id"):
        record["id"] = str(uuid.uuid4())
    else:
        record["id"] = str(record["id"])
    if not record.get("created_at"):
        record["created_at"] = utc_now()

    urgency = record.get("urgency_level")
    record["urgency_level"] = urgency if urgency in VALID_URGENCY_VALUES else None

    origin = record.get("origin")
    record["origin"] = origin if origin in VALID_ORIGIN_VALUES else None

    record["is_visible_to_user"] = bool(record.get("is_visible_to_user") or False)
    return record


# === Records ===


@dataclass
class DiaryRecord:
    """An emotional diary entry."""

    id: str
    date: Optional[str] = None
    emotion: Optional[str] = None
    event: Optional[str] = None
    realization: Optional[str] = None
    self_esteem_score: int = DEFAULT_SCORE
    worthlessness_score: int = DEFAULT_SCORE
    created_at: Optional[str] = None
    # Counselor annotations
    counselor_memo: Optional[str] = None
    is_visible_to_user: bool = False
    counselor_name: Optional[str] = None
    assigned_counselor: Optional[str] = None
    urgency_level: Optional[str] = None
    # Provenance tag; None for records written before tagging existed
    origin: Optional[str] = None
    # Keys this version does not know about, carried through unchanged
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_local(cls, raw: Dict[str, Any]) -> "DiaryRecord":
        data = normalize_diary(raw)
        known = {name for name in cls.__dataclass_fields__ if name != "extra"}
        legacy = {legacy for _, legacy in SCORE_FIELDS}
        return cls(
            **{k: v for k, v in data.items() if k in known},
            extra={k: v for k, v in data.items() if k not in known and k not in legacy},
        )

    def to_local_dict(self) -> Dict[str, Any]:
        """Local persisted form, carrying both score spellings."""
        data = dict(self.extra)
        data.update(
            {
                "id": self.id,
                "date": self.date,
                "emotion": self.emotion,
                "event": self.event,
                "realization": self.realization,
                "self_esteem_score": self.self_esteem_score,
                "selfEsteemScore": self.self_esteem_score,
                "worthlessness_score": self.worthlessness_score,
                "worthlessnessScore": self.worthlessness_score,
                "created_at": self.created_at,
                "counselor_memo": self.counselor_memo,
                "is_visible_to_user": self.is_visible_to_user,
                "counselor_name": self.counselor_name,
                "assigned_counselor": self.assigned_counselor,
                "urgency_level": self.urgency_level,
            }
        )
        if self.origin is not None:
            data["origin"] = self.origin
        return data

    def to_remote_row(self, user_id: str) -> Dict[str, Any]:
        """Row for the remote diary_entries relation."""
        row = {column: getattr(self, column) for column in DIARY_REMOTE_COLUMNS}
        row["created_at"] = self.created_at or utc_now()
        row["user_id"] = user_id
        return row


@dataclass
class UserRecord:
    """A remote user, keyed by username."""

    id: str
    line_username: str
    created_at: Optional[str] = None

    @property
    def is_local(self) -> bool:
        return self.id == LOCAL_USER_ID

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "UserRecord":
        return cls(
            id=str(row.get("id")),
            line_username=row.get("line_username", ""),
            created_at=row.get("created_at"),
        )


@dataclass
class ConsentRecord:
    """A single consent event. Append-only."""

    id: str
    line_username: str
    consent_given: bool
    consent_date: str
    ip_address: str
    user_agent: str
    created_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "line_username": self.line_username,
            "consent_given": self.consent_given,
            "consent_date": self.consent_date,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "created_at": self.created_at,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ConsentRecord":
        return cls(
            id=str(row.get("id") or uuid.uuid4()),
            line_username=row.get("line_username", ""),
            consent_given=bool(row.get("consent_given")),
            consent_date=row.get("consent_date") or "",
            ip_address=row.get("ip_address") or "",
            user_agent=row.get("user_agent") or "",
            created_at=row.get("created_at"),
        )


@dataclass
class ChatMessage:
    """A chat message from either a user or a counselor, never both."""

    chat_room_id: str
    content: str
    sender_id: Optional[str] = None
    counselor_id: Optional[str] = None
    is_counselor: bool = False
    id: Optional[str] = None
    created_at: Optional[str] = None

    def __post_init__(self):
        if (self.sender_id is None) == (self.counselor_id is None):
            raise ValueError("Exactly one of sender_id or counselor_id must be set")
        if self.is_counselor != (self.counselor_id is not None):
            raise ValueError("is_counselor must match the counselor_id field")

    @classmethod
    def outgoing(
        cls,
        chat_room_id: str,
        content: str,
        sender_id: Optional[str] = None,
        counselor_id: Optional[str] = None,
    ) -> "ChatMessage":
        """Build a new message; a counselor id makes it a counselor message."""
        is_counselor = bool(counselor_id)
        return cls(
            chat_room_id=chat_room_id,
            content=content,
            sender_id=None if is_counselor else sender_id,
            counselor_id=counselor_id if is_counselor else None,
            is_counselor=is_counselor,
        )

    def to_insert_row(self) -> Dict[str, Any]:
        return {
            "chat_room_id": self.chat_room_id,
            "content": self.content,
            "sender_id": self.sender_id,
            "counselor_id": self.counselor_id,
            "is_counselor": self.is_counselor,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ChatMessage":
        return cls(
            id=row.get("id"),
            chat_room_id=row.get("chat_room_id", ""),
            content=row.get("content", ""),
            sender_id=row.get("sender_id"),
            counselor_id=row.get("counselor_id"),
            is_counselor=bool(row.get("is_counselor")),
            created_at=row.get("created_at"),
        )


@dataclass
class ChatRoom:
    """A conversation between a user and a counselor."""

    id: str
    user_id: Optional[str] = None
    counselor_id: Optional[str] = None
    status: str = "active"  # active | closed | waiting
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ChatRoom":
        return cls(
            id=str(row.get("id")),
            user_id=row.get("user_id"),
            counselor_id=row.get("counselor_id"),
            status=row.get("status") or "active",
            created_at=row.get("created_at"),
        )


@dataclass
class Counselor:
    """A counselor account."""

    id: str
    name: str
    email: str
    is_active: bool = True
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Counselor":
        return cls(
            id=str(row.get("id")),
            name=row.get("name", ""),
            email=row.get("email", ""),
            is_active=bool(row.get("is_active", True)),
            created_at=row.get("created_at"),
        )


@dataclass
class RestoreReport:
    """What a restore wrote back."""

    restored_keys: List[str] = field(default_factory=list)
    preserved_keys: List[str] = field(default_factory=list)
    remote_rows_skipped: Dict[str, int] = field(default_factory=dict)


@dataclass
class CleanupReport:
    """Result of removing sample/test diary records."""

    local_removed: int = 0
    remote_removed: int = 0
    success: bool = True
