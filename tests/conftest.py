import asyncio
import inspect
import os
import sys
import time
from pathlib import Path
from typing import Dict, Optional

# Configure the environment before any imports that might initialize runtime
os.environ.setdefault("TEST_MODE", "true")
os.environ.setdefault("USE_MEMORY_STORE", "true")
os.environ.setdefault("ALLOW_REDIS_FALLBACK_DEV", "true")
# Resolve from the store only unless a test wires in a cache explicitly
os.environ["REDIS_URL"] = ""

import pytest  # noqa: E402
from redis.exceptions import ConnectionError as RedisConnectionError  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from authstate.service.runtime import reset_runtime_for_tests  # noqa: E402
from authstate.storage.memory import MemoryStore  # noqa: E402


class FakeCache:
    """In-process stand-in for Redis that records TTLs and hit counts."""

    def __init__(self) -> None:
        self.values: Dict[str, object] = {}
        self.expiry: Dict[str, float] = {}
        self.ttls: Dict[str, int] = {}
        self.hits = 0
        self.misses = 0
        self.writes = 0
        self.deletes = 0
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise RedisConnectionError("cache offline")

    def _live(self, key: str):
        deadline = self.expiry.get(key)
        if deadline is not None and deadline <= time.monotonic():
            self.values.pop(key, None)
            self.expiry.pop(key, None)
        value = self.values.get(key)
        if value is None:
            self.misses += 1
        else:
            self.hits += 1
        return value

    async def get(self, key: str) -> Optional[str]:
        self._check()
        return self._live(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._check()
        self.writes += 1
        self.values[key] = value
        self.ttls[key] = ttl_seconds
        self.expiry[key] = time.monotonic() + ttl_seconds

    async def delete(self, key: str) -> None:
        self._check()
        self.deletes += 1
        self.values.pop(key, None)
        self.expiry.pop(key, None)
        self.ttls.pop(key, None)

    async def hgetall(self, key: str) -> Optional[Dict[str, str]]:
        self._check()
        value = self._live(key)
        return dict(value) if value else None

    async def hset(self, key: str, mapping) -> None:
        self._check()
        self.writes += 1
        current = dict(self.values.get(key) or {})
        current.update(mapping)
        self.values[key] = current

    async def expire(self, key: str, ttl_seconds: int) -> None:
        self._check()
        if key in self.values:
            self.ttls[key] = ttl_seconds
            self.expiry[key] = time.monotonic() + ttl_seconds

    async def hset_with_ttl(self, key: str, mapping, ttl_seconds: int) -> None:
        self._check()
        self.writes += 1
        current = dict(self.values.get(key) or {})
        current.update(mapping)
        self.values[key] = current
        self.ttls[key] = ttl_seconds
        self.expiry[key] = time.monotonic() + ttl_seconds


class CountingStore:
    """Wraps a MemoryStore, counting lookups and optionally failing them."""

    def __init__(self, inner: MemoryStore) -> None:
        self.inner = inner
        self.session_lookups = 0
        self.status_lookups = 0
        self.fail_with: Optional[Exception] = None

    def get_session_with_status(self, token: str):
        self.session_lookups += 1
        if self.fail_with:
            raise self.fail_with
        return self.inner.get_session_with_status(token)

    def get_user_status(self, user_id: str):
        self.status_lookups += 1
        if self.fail_with:
            raise self.fail_with
        return self.inner.get_user_status(user_id)


@pytest.fixture(autouse=True)
def reset_runtime_state():
    reset_runtime_for_tests()
    yield
    reset_runtime_for_tests()


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def store(memory_store):
    return CountingStore(memory_store)


@pytest.fixture
def cache():
    return FakeCache()


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None


def pytest_configure(config):
    config.addinivalue_line("markers", "asyncio: mark test as async")
