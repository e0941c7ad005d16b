from __future__ import annotations

from typing import Optional

from authstate.logging import get_logger
from authstate.service.sessions import SessionStore, StateCache, read_store

logger = get_logger(__name__)

DEFAULT_STATUS_TTL_SECONDS = 3600


def user_status_cache_key(user_id: str) -> str:
    return f"users:{user_id}"


class UserStatusResolver:
    """Cache-aside lookup of an account's status without a session context.

    Cached values carry a fixed TTL and are returned without re-checking the
    store; negative lookups are never cached.
    """

    def __init__(
        self,
        store: SessionStore,
        cache: Optional[StateCache] = None,
        *,
        ttl_seconds: int = DEFAULT_STATUS_TTL_SECONDS,
    ) -> None:
        self.store = store
        self.cache = cache
        self.ttl_seconds = ttl_seconds
        self.logger = logger

    async def get_status(self, user_id: Optional[str]) -> Optional[str]:
        if not user_id:
            return None

        key = user_status_cache_key(user_id)
        if self.cache is not None:
            try:
                cached = await self.cache.get(key)
            except Exception as exc:
                self.logger.warning("user_status_cache_read_failed", user_id=user_id, error=str(exc))
                cached = None
            if cached:
                return cached

        status = read_store("get_user_status", self.store.get_user_status, user_id)
        if status is None:
            return None

        if self.cache is not None:
            try:
                await self.cache.set(key, status, self.ttl_seconds)
            except Exception as exc:
                self.logger.warning("user_status_cache_write_failed", user_id=user_id, error=str(exc))
        return status
