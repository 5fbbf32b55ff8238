"""
Comment service: append-only comments for the Post aggregate.

Comments cannot be edited or deleted.  The post's comment count is a
derived column, so appending a comment never touches the post row.
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from blog_api.cache import cache
from blog_api.database import after_commit
from blog_api.errors import ErrorCollector, NotFound
from blog_api.identity import Viewer
from blog_api.models import Comment, User
from blog_api.schemas import CommentCreate
from blog_api.services import post_service

logger = logging.getLogger(__name__)

COMMENT_MAX_LENGTH = 2000


def comment_to_dict(comment: Comment) -> dict:
    author = comment.author
    return {
        "id": comment.id,
        "post_id": comment.post_id,
        "author_id": comment.author_id,
        "author": {
            "id": author.id,
            "username": author.username,
            "display_name": author.display_name,
        } if author is not None else None,
        "text": comment.text,
        "created_at": comment.created_at.isoformat() if comment.created_at else None,
    }


async def list_comments(db: AsyncSession, post_id: int) -> list[dict]:
    """Return the comments of *post_id*, oldest first."""
    q = (
        select(Comment)
        .where(Comment.post_id == post_id)
        .options(joinedload(Comment.author))
        .order_by(Comment.created_at.asc(), Comment.id.asc())
    )
    result = await db.execute(q)
    return [comment_to_dict(c) for c in result.unique().scalars().all()]


async def add_comment(
    db: AsyncSession,
    viewer: Viewer,
    post_id: int,
    data: CommentCreate,
) -> dict:
    """
    Append a comment by *viewer* to the post identified by *post_id*.

    Raises ``ValidationError`` for blank or over-long text and
    ``NotFound`` when the post does not exist or is a draft the viewer
    cannot see.
    """
    text = data.text.strip()
    errors = ErrorCollector()
    if not text:
        errors.add("text", "Comment text is required")
    elif len(text) > COMMENT_MAX_LENGTH:
        errors.add("text", f"Comment cannot exceed {COMMENT_MAX_LENGTH} characters")
    errors.raise_if_any()

    await post_service.get_visible_post(db, post_id, viewer)

    author = await db.get(User, viewer.user_id)
    if author is None:
        raise NotFound("User not found")

    comment = Comment(text=text, post_id=post_id, author_id=author.id)
    comment.author = author
    db.add(comment)
    await db.flush()
    logger.debug("Comment id=%s added to post id=%s", comment.id, post_id)

    # Lists show comment_count
    after_commit(db, cache.invalidate_lists)
    return comment_to_dict(comment)
