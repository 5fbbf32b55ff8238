"""
Detail service: composes a post's detail view from three retrievals.

The post, its comments and its related posts are fetched as three
concurrent tasks, each on its own session.  They do not share a failure
domain:

- the post fetch is load-bearing.  A missing or invisible post raises
  ``NotFound`` and cancels the other two tasks; any other failure
  propagates unchanged.
- the comments and related-posts fetches are best-effort.  Each runs
  under its own timeout, and any error or a timeout degrades that field
  to an empty list with a warning and traceback in the log.
"""
import asyncio
import logging

from sqlalchemy.ext.asyncio import async_sessionmaker

from blog_api.config import settings
from blog_api.database import session_scope
from blog_api.identity import Viewer
from blog_api.services import comment_service, interaction_service, post_service

logger = logging.getLogger(__name__)


async def _fetch_post(session_factory: async_sessionmaker, post_id: int, viewer: Viewer | None) -> dict:
    async with session_scope(session_factory) as db:
        post = await post_service.get_visible_post(db, post_id, viewer)
        data = post_service.post_detail_to_dict(post)
        if viewer is not None:
            data.update(await interaction_service.viewer_state(db, post_id, viewer.user_id))
        return data


async def _fetch_comments(session_factory: async_sessionmaker, post_id: int) -> list[dict]:
    async with session_scope(session_factory) as db:
        return await comment_service.list_comments(db, post_id)


async def _fetch_related(session_factory: async_sessionmaker, post_id: int) -> list[dict]:
    async with session_scope(session_factory) as db:
        return await post_service.get_related_posts(db, post_id, settings.RELATED_POSTS_LIMIT)


async def _best_effort(name: str, session_factory: async_sessionmaker, post_id: int, fetch) -> list[dict]:
    try:
        return await asyncio.wait_for(
            fetch(session_factory, post_id), timeout=settings.DETAIL_FETCH_TIMEOUT
        )
    except Exception as exc:
        # CancelledError is not an Exception and still propagates
        logger.warning(
            "Detail fetch %r degraded to empty for post id=%s: %s",
            name, post_id, exc.__class__.__name__,
            exc_info=True,
        )
        return []


async def get_post_detail(
    session_factory: async_sessionmaker,
    post_id: int,
    viewer: Viewer | None = None,
) -> dict:
    """
    Return ``{"post": ..., "comments": [...], "related_posts": [...]}``.

    Latency is bounded by the slowest single retrieval, not their sum.
    """
    post_task = asyncio.create_task(_fetch_post(session_factory, post_id, viewer))
    comments_task = asyncio.create_task(
        _best_effort("comments", session_factory, post_id, _fetch_comments)
    )
    related_task = asyncio.create_task(
        _best_effort("related_posts", session_factory, post_id, _fetch_related)
    )
    secondary = (comments_task, related_task)

    try:
        post = await post_task
    except BaseException:
        for task in secondary:
            task.cancel()
        await asyncio.gather(*secondary, return_exceptions=True)
        raise

    comments = await comments_task
    related = await related_task

    return {"post": post, "comments": comments, "related_posts": related}
