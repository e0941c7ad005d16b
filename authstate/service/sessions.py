from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Dict, Mapping, Optional, Protocol

from authstate.logging import get_logger
from authstate.service.errors import ServiceError, StoreUnavailableError
from authstate.storage.models import (
    CachedSession,
    SessionRecord,
    SessionVerdict,
    as_utc,
    is_usable_status,
)

logger = get_logger(__name__)


class StateCache(Protocol):
    """Key-value cache with per-key TTL. Any call may raise."""

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def hgetall(self, key: str) -> Optional[Dict[str, str]]: ...

    async def hset(self, key: str, mapping: Mapping[str, str]) -> None: ...

    async def expire(self, key: str, ttl_seconds: int) -> None: ...

    async def hset_with_ttl(
        self, key: str, mapping: Mapping[str, str], ttl_seconds: int
    ) -> None: ...


class SessionStore(Protocol):
    """Authoritative lookups. Failures propagate to the caller."""

    def get_session_with_status(self, token: str) -> Optional[SessionRecord]: ...

    def get_user_status(self, user_id: str) -> Optional[str]: ...


def session_cache_key(token: str) -> str:
    return f"session:{token}"


def remaining_ttl_seconds(expires_at: datetime, now: datetime) -> int:
    """Whole seconds until ``expires_at``; zero or negative once it has passed."""

    return math.floor((as_utc(expires_at) - now).total_seconds())


def read_store(operation: str, call, *args):
    """Run a durable-store call, surfacing any failure as ``StoreUnavailableError``."""

    try:
        return call(*args)
    except ServiceError:
        raise
    except Exception as exc:
        logger.error(
            "durable_store_call_failed",
            operation=operation,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        raise StoreUnavailableError(
            "durable store unavailable", detail={"operation": operation}
        ) from exc


class SessionResolver:
    """Cache-aside resolution of session tokens into verdicts.

    The durable store is the source of truth. The cache is optional and
    best-effort: every cache failure degrades to the store path, and only valid
    sessions are ever written back, with a TTL equal to their remaining
    lifetime. A cached usable status is trusted until the cached session
    expires.
    """

    def __init__(self, store: SessionStore, cache: Optional[StateCache] = None) -> None:
        self.store = store
        self.cache = cache
        self.logger = logger

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    async def resolve(self, session_token: Optional[str]) -> SessionVerdict:
        if not session_token or not session_token.strip():
            return SessionVerdict.invalid()

        key = session_cache_key(session_token)
        if self.cache is not None:
            cached = await self._read_cached(key)
            if cached is not None:
                if cached.expires_at > self._now():
                    if is_usable_status(cached.status):
                        return SessionVerdict.for_user(cached.user_id)
                    return SessionVerdict.invalid()
                await self._drop_cached(key)

        record = read_store(
            "get_session_with_status", self.store.get_session_with_status, session_token
        )
        now = self._now()
        if not record or record.is_expired(now):
            return SessionVerdict.invalid()
        if not record.is_usable():
            return SessionVerdict.invalid()

        if self.cache is not None:
            ttl = remaining_ttl_seconds(record.expires_at, now)
            if ttl > 0:
                await self._write_cached(key, CachedSession.from_record(record), ttl)
        return SessionVerdict.for_user(record.user_id)

    async def verify_match(self, user_id: str, session_token: Optional[str]) -> bool:
        """Check that ``session_token`` is live and owned by ``user_id``.

        Reads the durable store directly so sensitive actions see the freshest
        state.
        """
        if not session_token or not session_token.strip():
            return False
        record = read_store(
            "get_session_with_status", self.store.get_session_with_status, session_token
        )
        if not record or record.is_expired(self._now()):
            return False
        if not record.is_usable():
            return False
        return record.user_id == user_id

    async def _read_cached(self, key: str) -> Optional[CachedSession]:
        try:
            data = await self.cache.hgetall(key)
        except Exception as exc:
            self.logger.warning("session_cache_read_failed", error=str(exc))
            return None
        try:
            return CachedSession.from_mapping(data)
        except (TypeError, ValueError, OverflowError) as exc:
            # Unparseable or out-of-range expiry: treat like an expired entry
            self.logger.warning("session_cache_entry_malformed", error=str(exc))
            await self._drop_cached(key)
            return None

    async def _drop_cached(self, key: str) -> None:
        try:
            await self.cache.delete(key)
        except Exception as exc:
            self.logger.warning("session_cache_delete_failed", error=str(exc))

    async def _write_cached(self, key: str, entry: CachedSession, ttl: int) -> None:
        try:
            await self.cache.hset_with_ttl(key, entry.to_mapping(), ttl)
        except Exception as exc:
            self.logger.warning("session_cache_write_failed", error=str(exc), ttl=ttl)
            # An entry without a TTL must not linger
            await self._drop_cached(key)
