from __future__ import annotations

import asyncio
import threading
from typing import Optional, Union
from urllib.parse import urlparse, urlunparse

from authstate.config import get_settings, reset_settings_cache
from authstate.logging import get_logger
from authstate.service.credentials import CredentialVerifier
from authstate.service.sessions import SessionResolver
from authstate.service.user_status import UserStatusResolver
from authstate.storage.memory import MemoryStore
from authstate.storage.postgres import PostgresStore
from authstate.storage.redis_cache import RedisCache, SyncRedisCache

logger = get_logger(__name__)


def _mask_url_password(url: Optional[str]) -> Optional[str]:
    """Mask the password component of a URL for safe logging.

    Example: redis://:mypassword@localhost:6379 -> redis://:***@localhost:6379
    """
    if not url:
        return url
    try:
        parsed = urlparse(url)
        if parsed.password:
            netloc = parsed.hostname or ""
            if parsed.port:
                netloc = f"{netloc}:{parsed.port}"
            if parsed.username:
                netloc = f"{parsed.username}:***@{netloc}"
            else:
                netloc = f":***@{netloc}"
            return urlunparse((
                parsed.scheme,
                netloc,
                parsed.path,
                parsed.params,
                parsed.query,
                parsed.fragment,
            ))
        return url
    except ValueError:
        return "***url_parse_error***"


class Runtime:
    """Holds the store, the optional state cache and the services built on them."""

    def __init__(self):
        self.settings = get_settings()
        logger.info(
            "runtime_init_started",
            use_memory_store=self.settings.use_memory_store,
            test_mode=self.settings.test_mode,
        )
        self.store = self._build_store()
        self.cache = self._build_cache()

        self.sessions = SessionResolver(self.store, self.cache)
        self.user_status = UserStatusResolver(
            self.store,
            self.cache,
            ttl_seconds=self.settings.user_status_cache_ttl_seconds,
        )
        self.credentials = CredentialVerifier()
        logger.info(
            "runtime_init_complete",
            store_type=self.store_type,
            cache_enabled=self.cache is not None,
        )

    @property
    def store_type(self) -> str:
        return "memory" if self.settings.use_memory_store else "postgres"

    def _build_store(self) -> Union[MemoryStore, PostgresStore]:
        if self.settings.use_memory_store:
            store = MemoryStore()
        else:
            try:
                store = PostgresStore(
                    self.settings.database_url,
                    min_size=self.settings.db_pool_min_size,
                    max_size=self.settings.db_pool_max_size,
                )
            except Exception as exc:
                logger.error(
                    "runtime_store_init_failed",
                    store_type=self.store_type,
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
                raise
        logger.info("runtime_store_initialized", store_type=self.store_type)
        return store

    def _build_cache(self) -> Union[RedisCache, SyncRedisCache, None]:
        """Connect the state cache, or decide whether running without one is allowed."""

        settings = self.settings
        redis_error: Optional[Exception] = None
        if settings.redis_url:
            # Sync client under TEST_MODE so TestClient threads share no event loop
            cache_cls = SyncRedisCache if settings.test_mode else RedisCache
            try:
                cache = cache_cls(settings.redis_url, socket_timeout=settings.redis_socket_timeout)
                cache.verify_connection()
                return cache
            except Exception as exc:
                redis_error = exc

        if not settings.test_mode and not settings.allow_redis_fallback_dev:
            raise RuntimeError(
                "Redis is required for the session state cache; start Redis or set "
                "TEST_MODE=true/ALLOW_REDIS_FALLBACK_DEV=true to resolve from the store only."
            ) from redis_error

        mode = "TEST_MODE" if settings.test_mode else "ALLOW_REDIS_FALLBACK_DEV"
        logger.warning(
            "redis_disabled_fallback",
            redis_url=_mask_url_password(settings.redis_url),
            error=str(redis_error) if redis_error else "redis_url_missing",
            mode=mode,
        )
        return None

    async def close(self) -> None:
        if self.cache is not None:
            await self.cache.close()
        self.store.close()


runtime: Runtime | None = None
_runtime_lock = threading.Lock()


def get_runtime() -> Runtime:
    """Return the process-wide Runtime, creating it on first use."""
    global runtime
    if runtime is not None:
        return runtime
    with _runtime_lock:
        if runtime is None:
            runtime = Runtime()
        return runtime


def _discard(previous: Runtime) -> None:
    try:
        if isinstance(previous.cache, SyncRedisCache):
            previous.cache.client.close()
        elif previous.cache is not None:
            try:
                asyncio.get_running_loop().create_task(previous.cache.close())
            except RuntimeError:
                asyncio.run(previous.cache.close())
        previous.store.close()
    except Exception as exc:
        logger.debug("runtime_close_failed", error=str(exc))


def reset_runtime_for_tests() -> Runtime:
    """Rebuild the runtime from fresh settings for isolated test runs."""

    global runtime

    with _runtime_lock:
        if runtime is not None:
            _discard(runtime)
        reset_settings_cache()
        if not get_settings().test_mode:
            raise RuntimeError("runtime reset is only allowed in TEST_MODE")
        runtime = Runtime()
        return runtime
