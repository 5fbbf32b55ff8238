"""
Interaction service: the like / bookmark ledger.

A toggle is a membership flip on the (user, post, kind) key.  The flip
runs under a per-key ``asyncio.Lock`` and inside one committed
transaction: ``DELETE`` the key and, if nothing was deleted, ``INSERT``
it.  The composite primary key on ``interactions`` turns a racing insert
from another process into an ``IntegrityError`` (surfaced as
``Conflict``) instead of a duplicate row.

Counts are re-read from the ledger after every flip.
"""
import logging

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from blog_api.cache import cache
from blog_api.database import session_scope
from blog_api.errors import InvalidKind, NotFound
from blog_api.identity import Viewer, can_view
from blog_api.locks import KeyedLock
from blog_api.models import INTERACTION_KINDS, Interaction, Post

logger = logging.getLogger(__name__)

_key_locks = KeyedLock()


def check_kind(kind: str) -> str:
    if kind not in INTERACTION_KINDS:
        raise InvalidKind(kind)
    return kind


async def count_active(db: AsyncSession, post_id: int, kind: str) -> int:
    q = (
        select(func.count())
        .select_from(Interaction)
        .where(Interaction.post_id == post_id, Interaction.kind == kind)
    )
    return (await db.execute(q)).scalar_one()


async def viewer_state(db: AsyncSession, post_id: int, user_id: int) -> dict:
    """Return ``{"liked": bool, "bookmarked": bool}`` for one user and post."""
    q = select(Interaction.kind).where(
        Interaction.post_id == post_id, Interaction.user_id == user_id
    )
    kinds = set((await db.execute(q)).scalars().all())
    return {"liked": "like" in kinds, "bookmarked": "bookmark" in kinds}


async def toggle(
    session_factory: async_sessionmaker,
    viewer: Viewer,
    post_id: int,
    kind: str,
) -> dict:
    """
    Flip *viewer*'s *kind* interaction on *post_id*.

    Returns ``{"active": bool, "count": int}`` where ``count`` is the
    number of active rows of that kind for the post after the flip.
    """
    kind = check_kind(kind)
    key = (viewer.user_id, post_id, kind)

    async with _key_locks.hold(key):
        async with session_scope(session_factory, write=True) as db:
            post = await db.get(Post, post_id)
            if post is None or not can_view(viewer, post):
                raise NotFound("Post not found")

            removed = await db.execute(
                delete(Interaction)
                .where(
                    Interaction.user_id == viewer.user_id,
                    Interaction.post_id == post_id,
                    Interaction.kind == kind,
                )
                .execution_options(synchronize_session=False)
            )
            active = removed.rowcount == 0
            if active:
                db.add(Interaction(user_id=viewer.user_id, post_id=post_id, kind=kind))
                await db.flush()

            count = await count_active(db, post_id, kind)

    logger.debug("Toggled %s user=%s post=%s active=%s count=%d", kind, viewer.user_id, post_id, active, count)
    # popular ordering and list counts depend on the ledger
    await cache.invalidate_lists()
    return {"active": active, "count": count}
