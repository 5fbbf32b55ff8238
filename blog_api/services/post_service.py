"""
Post service: the Post Store and the Draft/Published state machine.

Design notes
------------
- Validation gathers every violated field into one ``ValidationError``
  so a client can fix the whole form in a single round trip.
- ``like_count``, ``bookmark_count`` and ``comment_count`` are column
  properties computed from the owning tables on every load; this module
  never writes a counter.
- Eager loading via ``joinedload`` (many-to-one: author) and
  ``selectinload`` (many-to-many: tags) is used throughout; relationships
  are ``lazy="noload"`` so a missing option shows up as empty data rather
  than an implicit query.
- Service functions flush but do not commit; the transaction boundary is
  owned by the ``get_db`` dependency in the router layer.  List-cache
  purges are queued with ``after_commit`` and run once that commit lands.
"""
import logging
import math
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from blog_api.cache import cache
from blog_api.database import after_commit
from blog_api.errors import ErrorCollector, NotFound, PermissionDenied
from blog_api.identity import Viewer, can_edit, can_view
from blog_api.models import Post, Tag, User, post_tags
from blog_api.schemas import PostCreate, PostUpdate

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 120
EXCERPT_MAX_LENGTH = 200
EXCERPT_AUTO_LENGTH = 160
EXCERPT_ELLIPSIS = "..."
MAX_TAGS = 5
TAG_MAX_LENGTH = 50
IMAGE_URL_MAX_LENGTH = 500
WORDS_PER_MINUTE = 200


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------

def derive_excerpt(content: str) -> str:
    """Return *content* if short enough, else its first 160 chars plus an ellipsis."""
    if len(content) <= EXCERPT_AUTO_LENGTH:
        return content
    return content[:EXCERPT_AUTO_LENGTH] + EXCERPT_ELLIPSIS


def normalize_tags(tags: list[str] | None) -> list[str]:
    """Trim, drop blanks and drop repeats, keeping first-seen order."""
    seen: list[str] = []
    for raw in tags or []:
        tag = raw.strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


def read_time(content: str) -> int:
    return max(1, math.ceil(len(content.split()) / WORDS_PER_MINUTE))


def validate_post(
    title: str | None,
    content: str | None,
    excerpt: str | None,
    tags: list[str] | None,
    image_url: str | None,
) -> dict:
    """
    Check a complete set of post fields and return them cleaned.

    Raises ``ValidationError`` listing every violation at once.  A blank
    excerpt is returned as ``None``, meaning "derive from content".
    """
    errors = ErrorCollector()

    title = (title or "").strip()
    if not title:
        errors.add("title", "Title is required")
    elif len(title) > TITLE_MAX_LENGTH:
        errors.add("title", f"Title cannot exceed {TITLE_MAX_LENGTH} characters")

    content = content or ""
    if not content.strip():
        errors.add("content", "Content is required")

    excerpt = (excerpt or "").strip() or None
    if excerpt is not None and len(excerpt) > EXCERPT_MAX_LENGTH:
        errors.add("excerpt", f"Excerpt cannot exceed {EXCERPT_MAX_LENGTH} characters")

    tags = normalize_tags(tags)
    if len(tags) > MAX_TAGS:
        errors.add("tags", f"A post can have at most {MAX_TAGS} tags")
    for tag in tags:
        if len(tag) > TAG_MAX_LENGTH:
            errors.add("tags", f"Tag {tag[:20]!r}... exceeds {TAG_MAX_LENGTH} characters")

    image_url = (image_url or "").strip() or None
    if image_url is not None:
        if not image_url.startswith(("http://", "https://")):
            errors.add("image_url", "Image URL must start with http:// or https://")
        elif len(image_url) > IMAGE_URL_MAX_LENGTH:
            errors.add("image_url", f"Image URL cannot exceed {IMAGE_URL_MAX_LENGTH} characters")

    errors.raise_if_any()
    return {
        "title": title,
        "content": content,
        "excerpt": excerpt,
        "tags": tags,
        "image_url": image_url,
    }


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _author_summary(author: User | None) -> dict | None:
    if author is None:
        return None
    return {
        "id": author.id,
        "username": author.username,
        "display_name": author.display_name,
    }


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def post_to_dict(post: Post) -> dict:
    """Serialise a Post ORM instance to a plain dict (list view)."""
    return {
        "id": post.id,
        "title": post.title,
        "excerpt": post.excerpt,
        "tags": sorted(t.name for t in post.tags),
        "image_url": post.image_url,
        "is_published": post.is_published,
        "published_at": _isoformat(post.published_at),
        "created_at": _isoformat(post.created_at),
        "updated_at": _isoformat(post.updated_at),
        "author_id": post.author_id,
        "author": _author_summary(post.author),
        "like_count": post.like_count,
        "bookmark_count": post.bookmark_count,
        "comment_count": post.comment_count,
        "read_time": read_time(post.content),
    }


def post_detail_to_dict(post: Post) -> dict:
    data = post_to_dict(post)
    data["content"] = post.content
    data["liked"] = False
    data["bookmarked"] = False
    return data


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def post_load_options() -> tuple:
    return (joinedload(Post.author), selectinload(Post.tags))


async def get_post_record(db: AsyncSession, post_id: int) -> Post | None:
    """
    Load one post with author and tags.

    ``populate_existing`` refreshes an instance already in the identity
    map, which is what makes derived counts current after a write.
    """
    q = (
        select(Post)
        .where(Post.id == post_id)
        .options(*post_load_options())
        .execution_options(populate_existing=True)
    )
    result = await db.execute(q)
    return result.unique().scalar_one_or_none()


async def get_visible_post(db: AsyncSession, post_id: int, viewer: Viewer | None) -> Post:
    """Return the post if it exists and *viewer* may see it, else raise NotFound."""
    post = await get_post_record(db, post_id)
    if post is None or not can_view(viewer, post):
        raise NotFound("Post not found")
    return post


async def get_related_posts(db: AsyncSession, post_id: int, limit: int) -> list[dict]:
    """
    Return up to *limit* other published posts sharing a tag with *post_id*.

    Ranked by number of shared tags, then newest first.  The target's tag
    ids are read in a sub-query, so this does not need the target post to
    be loaded first.
    """
    target_tags = select(post_tags.c.tag_id).where(post_tags.c.post_id == post_id)
    shared = (
        select(post_tags.c.post_id, func.count().label("shared"))
        .where(post_tags.c.tag_id.in_(target_tags), post_tags.c.post_id != post_id)
        .group_by(post_tags.c.post_id)
        .subquery()
    )
    q = (
        select(Post)
        .join(shared, shared.c.post_id == Post.id)
        .where(Post.is_published.is_(True))
        .options(*post_load_options())
        .order_by(shared.c.shared.desc(), Post.created_at.desc(), Post.id.desc())
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(q)
    return [post_to_dict(p) for p in result.unique().scalars().all()]


# ---------------------------------------------------------------------------
# Tag resolution helper (used by create / update)
# ---------------------------------------------------------------------------

async def _resolve_tags(db: AsyncSession, tag_names: list[str]) -> list[Tag]:
    """
    Return Tag ORM instances for each name in *tag_names*, creating any
    that do not yet exist, within the caller's transaction.
    """
    if not tag_names:
        return []
    result = await db.execute(select(Tag).where(Tag.name.in_(tag_names)))
    existing = {t.name: t for t in result.scalars().all()}
    tags: list[Tag] = []
    for name in tag_names:
        tag = existing.get(name)
        if tag is None:
            tag = Tag(name=name)
            db.add(tag)
        tags.append(tag)
    await db.flush()
    return tags


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def create_post(db: AsyncSession, author_id: int, data: PostCreate) -> dict:
    """
    Create a post in the Draft or Published state and return its detail dict.

    Raises ``ValidationError`` for bad fields and ``NotFound`` when the
    author reference does not resolve.
    """
    fields = validate_post(data.title, data.content, data.excerpt, data.tags, data.image_url)

    if await db.get(User, author_id) is None:
        raise NotFound("Author not found")

    post = Post(
        title=fields["title"],
        content=fields["content"],
        excerpt=fields["excerpt"] or derive_excerpt(fields["content"]),
        excerpt_auto=fields["excerpt"] is None,
        image_url=fields["image_url"],
        is_published=data.is_published,
        author_id=author_id,
    )
    if data.is_published:
        post.published_at = datetime.now(timezone.utc)
    post.tags = await _resolve_tags(db, fields["tags"])

    db.add(post)
    await db.flush()
    logger.info("Created post id=%s author=%s published=%s", post.id, author_id, post.is_published)

    after_commit(db, cache.invalidate_lists)
    return post_detail_to_dict(await get_post_record(db, post.id))


async def update_post(
    db: AsyncSession, viewer: Viewer | None, post_id: int, data: PostUpdate
) -> dict:
    """
    Patch an existing post and return its updated detail dict.

    Only fields present in the request are changed
    (``model_dump(exclude_unset=True)``); the merged result is validated
    as a whole.  ``is_published`` may move the post in either direction
    between Draft and Published.
    """
    post = await get_post_record(db, post_id)
    if post is None or not can_view(viewer, post):
        raise NotFound("Post not found")
    if not can_edit(viewer, post):
        raise PermissionDenied("Only the author can edit this post")

    patch = data.model_dump(exclude_unset=True)

    if "excerpt" in patch:
        excerpt = patch["excerpt"]
    else:
        excerpt = None if post.excerpt_auto else post.excerpt

    fields = validate_post(
        patch.get("title", post.title),
        patch.get("content", post.content),
        excerpt,
        patch["tags"] if patch.get("tags") is not None else [t.name for t in post.tags],
        patch.get("image_url", post.image_url),
    )

    post.title = fields["title"]
    post.content = fields["content"]
    post.excerpt = fields["excerpt"] or derive_excerpt(fields["content"])
    post.excerpt_auto = fields["excerpt"] is None
    post.image_url = fields["image_url"]

    if patch.get("tags") is not None:
        post.tags.clear()
        post.tags.extend(await _resolve_tags(db, fields["tags"]))

    if patch.get("is_published") is not None:
        post.is_published = patch["is_published"]
        if post.is_published and post.published_at is None:
            post.published_at = datetime.now(timezone.utc)

    # updated_at is set by the column's onupdate hook
    await db.flush()
    logger.info("Updated post id=%s fields=%s", post_id, sorted(patch))

    after_commit(db, cache.invalidate_lists)
    return post_detail_to_dict(await get_post_record(db, post_id))
