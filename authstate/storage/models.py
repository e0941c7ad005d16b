from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Mapping, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Normalize a timestamp to tz-aware UTC; naive values are assumed UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class AccountStatus(str, Enum):
    """Account states known to the status gate.

    Stores may hold values outside this enum; anything that is not in
    ``USABLE_STATUSES`` is treated as disqualified.
    """

    ACTIVE = "active"
    TERMINATING = "terminating"
    SUSPENDED = "suspended"
    DELETED = "deleted"


USABLE_STATUSES = frozenset({AccountStatus.ACTIVE.value, AccountStatus.TERMINATING.value})


def is_usable_status(status: Optional[str]) -> bool:
    if status is None:
        return False
    if isinstance(status, AccountStatus):
        status = status.value
    return status in USABLE_STATUSES


@dataclass
class User:
    id: str
    email: Optional[str] = None
    status: str = AccountStatus.ACTIVE.value
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Session:
    token: str
    user_id: str
    expires_at: datetime
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class SessionRecord:
    """Session row joined with the owning account's status."""

    token: str
    user_id: str
    expires_at: datetime
    status: str

    def is_expired(self, now: datetime) -> bool:
        return as_utc(self.expires_at) <= now

    def is_usable(self) -> bool:
        return is_usable_status(self.status)


@dataclass(frozen=True)
class CachedSession:
    """Hash-map form of a session kept in the state cache.

    ``expires_at`` is stored as an absolute ISO timestamp so a cached entry can
    be checked for staleness after retrieval independently of the cache TTL.
    """

    user_id: str
    status: str
    expires_at: datetime

    def to_mapping(self) -> Dict[str, str]:
        return {
            "userId": self.user_id,
            "status": self.status,
            "expiresAt": as_utc(self.expires_at).isoformat(),
        }

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, str]]) -> Optional["CachedSession"]:
        """Parse a cached hash; returns ``None`` when required fields are missing.

        Raises ``ValueError`` when ``expiresAt`` is present but unparseable.
        """

        if not data:
            return None
        user_id = data.get("userId")
        raw_expiry = data.get("expiresAt")
        if not user_id or not raw_expiry:
            return None
        if raw_expiry.endswith("Z"):
            raw_expiry = raw_expiry[:-1] + "+00:00"
        expires_at = as_utc(datetime.fromisoformat(raw_expiry))
        return cls(user_id=user_id, status=data.get("status") or "", expires_at=expires_at)

    @classmethod
    def from_record(cls, record: SessionRecord) -> "CachedSession":
        return cls(user_id=record.user_id, status=record.status, expires_at=record.expires_at)


@dataclass(frozen=True)
class SessionVerdict:
    valid: bool
    user_id: Optional[str] = None

    @classmethod
    def invalid(cls) -> "SessionVerdict":
        return cls(valid=False, user_id=None)

    @classmethod
    def for_user(cls, user_id: str) -> "SessionVerdict":
        return cls(valid=True, user_id=user_id)
