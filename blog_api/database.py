from contextlib import asynccontextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from blog_api.config import settings
from blog_api.errors import Conflict, Unavailable
from blog_api.middleware import install_query_counter

# Module-level engine variable allows tests to override with a test engine.
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
)

# Register the per-request SQL query counter on the production engine.
install_query_counter(engine)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


_AFTER_COMMIT = "after_commit"


def after_commit(session: AsyncSession, callback) -> None:
    """
    Queue an async *callback* to run once the request session commits.

    Used for cache purges: purging before the commit would let a
    concurrent reader put the old rows back into the cache.
    """
    callbacks = session.info.setdefault(_AFTER_COMMIT, [])
    if callback not in callbacks:
        callbacks.append(callback)


async def run_after_commit(session: AsyncSession) -> None:
    for callback in session.info.pop(_AFTER_COMMIT, []):
        await callback()


async def get_db():
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        await run_after_commit(session)


def get_session_factory() -> async_sessionmaker:
    """
    Dependency for operations that manage their own sessions: the detail
    aggregator (one session per concurrent sub-fetch) and the interaction
    ledger (commit inside the per-key lock).
    """
    return async_session


@asynccontextmanager
async def session_scope(session_factory: async_sessionmaker, write: bool = False):
    """
    Open a session from *session_factory*, translating storage failures
    into domain errors.

    With ``write=True`` the body runs inside ``session.begin()`` and is
    committed on exit.
    """
    try:
        async with session_factory() as session:
            if write:
                async with session.begin():
                    yield session
            else:
                yield session
    except IntegrityError as exc:
        raise Conflict(f"Integrity violation: {exc.orig}") from exc
    except (SQLAlchemyError, OSError) as exc:
        raise Unavailable(f"Storage error: {exc.__class__.__name__}") from exc
