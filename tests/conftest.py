"""
Test infrastructure for the Blog Content API.

Strategy
--------
- A file-backed SQLite database under ``tmp_path`` via aiosqlite replaces
  Postgres, keeping the suite self-contained.
- Each test builds its own engine, so the connection and its locks belong
  to that test's event loop.  The engine is disposed on teardown.
- NullPool gives every session its own connection to the same database
  file, so the detail aggregator and the interaction ledger can open their
  own sessions against the same data, and cancelling one session's task
  cannot wedge a connection shared with the others.
- ``get_db`` and ``get_session_factory`` are overridden so request-time
  code uses the test engine.
- Redis is disabled by setting ``cache._redis = None``; the CacheManager
  treats that as a permanent miss.
"""
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from blog_api.cache import cache
from blog_api.database import Base, get_db, get_session_factory, run_after_commit
from blog_api.main import app
from blog_api.middleware import install_query_counter



# ---------------------------------------------------------------------------
# Per-test engine and dependency overrides
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def session_factory(tmp_path) -> async_sessionmaker:
    """Create the schema on a fresh engine, wire the app to it, drop it after."""
    cache._redis = None

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path}/test.db",
        connect_args={"check_same_thread": False},
        poolclass=NullPool,
    )
    install_query_counter(engine)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            await run_after_commit(session)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: factory

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield factory
    finally:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()
        app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_session(session_factory: async_sessionmaker) -> AsyncSession:
    """
    Yield a live AsyncSession for tests that seed or inspect data directly.

    Tests that also go through ``session_factory`` must commit first: other
    sessions use their own connections and only see committed data.
    """
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
