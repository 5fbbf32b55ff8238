"""
Query service: turns a client's list request into a Post query.

Every input arrives as raw query-string text and is normalised here.
Nothing a client puts in the query string can make a list request fail:
unknown sort modes fall back to ``newest`` and unusable page / limit
values fall back to their defaults.

Search is a case-insensitive substring match of the whole trimmed term
against title OR content.
"""
import logging
import math
from dataclasses import dataclass

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from blog_api.cache import cache
from blog_api.config import settings
from blog_api.identity import Viewer, is_admin
from blog_api.models import Post, Tag
from blog_api.schemas import PaginatedResponse
from blog_api.services import post_service

logger = logging.getLogger(__name__)

DEFAULT_SORT = "newest"

SORT_MODES = {
    "newest": (Post.created_at.desc(), Post.id.desc()),
    "oldest": (Post.created_at.asc(), Post.id.asc()),
    "popular": (Post.like_count.desc(), Post.created_at.desc(), Post.id.desc()),
}

_NO_FILTER = {"", "all"}


def coerce_positive_int(value, default: int, maximum: int | None = None) -> int:
    """Parse *value* as an int >= 1, returning *default* when it is not one."""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = int(str(value).strip())
    except ValueError:
        return default
    if number < 1:
        return default
    if maximum is not None:
        number = min(number, maximum)
    return number


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@dataclass(frozen=True)
class ListFilter:
    search: str | None = None
    tags: tuple[str, ...] = ()
    author_id: int | None = None
    sort: str = DEFAULT_SORT
    page: int = 1
    limit: int = settings.DEFAULT_PAGE_SIZE

    @classmethod
    def from_params(
        cls,
        search: str | None = None,
        category: str | None = None,
        tags: str | None = None,
        author: str | None = None,
        sort: str | None = None,
        page: str | int | None = None,
        limit: str | int | None = None,
    ) -> "ListFilter":
        """
        Build a filter from raw request values.

        ``category`` is a single tag and ``tags`` a comma-separated list;
        both are combined and a post must carry every one of them.
        ``"all"`` and blank entries mean "no filter".
        """
        wanted: list[str] = []
        for raw in [category or "", *(tags or "").split(",")]:
            tag = raw.strip()
            if tag.lower() not in _NO_FILTER and tag not in wanted:
                wanted.append(tag)

        sort_mode = (sort or "").strip().lower()
        if sort_mode not in SORT_MODES:
            sort_mode = DEFAULT_SORT

        return cls(
            search=(search or "").strip() or None,
            tags=tuple(wanted),
            author_id=coerce_positive_int(author, None),
            sort=sort_mode,
            page=coerce_positive_int(page, 1),
            limit=coerce_positive_int(limit, settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE),
        )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def cache_key(self) -> str:
        return cache.list_key(
            self.search or "",
            sorted(self.tags),
            self.author_id or "",
            self.sort,
            self.page,
            self.limit,
        )


def _includes_drafts(flt: ListFilter, viewer: Viewer | None) -> bool:
    """Drafts are listed only on an author's own listing, or for admins."""
    if is_admin(viewer):
        return True
    return viewer is not None and flt.author_id == viewer.user_id


def build_conditions(flt: ListFilter, viewer: Viewer | None) -> list:
    conditions = []
    if not _includes_drafts(flt, viewer):
        conditions.append(Post.is_published.is_(True))
    if flt.search:
        pattern = f"%{_escape_like(flt.search)}%"
        conditions.append(
            or_(
                Post.title.ilike(pattern, escape="\\"),
                Post.content.ilike(pattern, escape="\\"),
            )
        )
    for tag in flt.tags:
        conditions.append(Post.tags.any(Tag.name == tag))
    if flt.author_id is not None:
        conditions.append(Post.author_id == flt.author_id)
    return conditions


async def list_posts(
    db: AsyncSession,
    flt: ListFilter,
    viewer: Viewer | None = None,
) -> PaginatedResponse:
    """
    Return one page of posts matching *flt*, using Redis as a cache for
    public listings.

    Two SQL statements are issued on a cache miss:
    1. COUNT over the filtered set (before pagination).
    2. SELECT with ORDER BY / LIMIT / OFFSET, author JOIN and tags LOAD.
    """
    cacheable = not _includes_drafts(flt, viewer)
    cache_key = flt.cache_key()
    if cacheable:
        cached = await cache.get(cache_key)
        if cached:
            return PaginatedResponse(**cached)

    conditions = build_conditions(flt, viewer)

    count_q = select(func.count()).select_from(Post).where(*conditions)
    total: int = (await db.execute(count_q)).scalar_one()

    total_pages = max(1, math.ceil(total / flt.limit))
    items: list[dict] = []
    if flt.offset < total:
        posts_q = (
            select(Post)
            .where(*conditions)
            .options(*post_service.post_load_options())
            .order_by(*SORT_MODES[flt.sort])
            .offset(flt.offset)
            .limit(flt.limit)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(posts_q)
        items = [post_service.post_to_dict(p) for p in result.unique().scalars().all()]

    response = PaginatedResponse(
        items=items,
        total=total,
        page=flt.page,
        limit=flt.limit,
        total_pages=total_pages,
    )
    if cacheable:
        await cache.set(cache_key, response.model_dump(mode="json"), ttl=settings.CACHE_TTL_LIST)
    logger.debug("Listed posts filter=%s total=%d", flt, total)
    return response
