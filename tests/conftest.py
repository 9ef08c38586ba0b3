"""Shared fixtures: temporary SQLite database, in-memory Redis double, fixed clock."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from community_low.cache.price_cache import FILL_SCRIPT, INVALIDATE_SCRIPT, PriceCache
from community_low.db.models import Base
from community_low.ingest.anonymizer import ReporterAnonymizer
from community_low.ingest.pipeline import IngestionPipeline
from community_low.ingest.price_store import PriceStore
from community_low.ingest.report_history import ReportHistory
from community_low.ingest.trust import TrustScorer


class FakeRedis:
    """In-memory double for the redis.asyncio calls made by PriceCache."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.fail = False

    def _check(self):
        if self.fail:
            raise ConnectionError("redis down")

    async def get(self, key):
        self._check()
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self._check()
        self.data[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys):
        self._check()
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def eval(self, script, numkeys, *args):
        """Runs the cache's Lua scripts; each executes atomically as in Redis."""
        self._check()
        keys, argv = args[:numkeys], [str(arg) for arg in args[numkeys:]]
        if script == INVALIDATE_SCRIPT:
            self.data[keys[1]] = str(int(self.data.get(keys[1], "0")) + 1)
            self.ttls[keys[1]] = int(argv[0])
            return await self.delete(keys[0])
        if script == FILL_SCRIPT:
            if self.data.get(keys[1], "") != argv[0]:
                return 0
            await self.set(keys[0], argv[1], ex=int(argv[2]))
            return 1
        raise NotImplementedError(script)

    async def aclose(self):
        pass


class FixedClock:
    """Settable clock for deterministic trust windows."""

    def __init__(self, now: datetime):
        self.now = now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache(fake_redis):
    return PriceCache(enabled=True, client=fake_redis)


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 10, 19, 12, 0, 0))


@pytest.fixture
def anonymizer():
    return ReporterAnonymizer(salt="test-salt", fallback_identity="0.0.0.0")


@pytest.fixture
def scorer():
    return TrustScorer(window=timedelta(hours=24), min_reporters=2)


@pytest.fixture
def pipeline(cache, clock, anonymizer, scorer):
    return IngestionPipeline(
        store=PriceStore(),
        history=ReportHistory(),
        scorer=scorer,
        cache=cache,
        anonymizer=anonymizer,
        clock=clock,
        min_price=10,
        max_items=500,
    )
