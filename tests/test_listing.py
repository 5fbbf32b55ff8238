"""
Post list tests: search, tag filters, sort modes, pagination envelope,
draft visibility and forgiving query-string handling.

Posts are seeded directly through the ORM with explicit ``created_at``
values and interaction rows so that ordering assertions are exact.
"""
import math
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from blog_api.identity import Viewer
from blog_api.models import Interaction, Post, User
from blog_api.services import post_service, query_service
from blog_api.services.query_service import ListFilter

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _create_user(db: AsyncSession, username: str = "lister") -> User:
    user = User(username=username, email=f"{username}@example.com")
    db.add(user)
    await db.flush()
    return user


async def _seed_post(
    db: AsyncSession,
    author: User,
    title: str,
    *,
    content: str = "Body text",
    tags: tuple[str, ...] = (),
    published: bool = True,
    day: int = 0,
    likes: int = 0,
) -> Post:
    post = Post(
        title=title,
        content=content,
        excerpt=post_service.derive_excerpt(content),
        author_id=author.id,
        is_published=published,
        created_at=BASE_TIME + timedelta(days=day),
    )
    post.tags = await post_service._resolve_tags(db, list(tags))
    db.add(post)
    await db.flush()
    for i in range(likes):
        db.add(Interaction(user_id=1000 + i, post_id=post.id, kind="like"))
    await db.flush()
    return post


async def _titles(db: AsyncSession, viewer=None, **params) -> list[str]:
    result = await query_service.list_posts(db, ListFilter.from_params(**params), viewer)
    return [item.title for item in result.items]


# ---------------------------------------------------------------------------
# Envelope and pagination
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_posts_empty(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/posts")
    assert resp.status_code == 200
    data = resp.json()
    assert data["items"] == []
    assert data["total"] == 0
    assert data["page"] == 1
    assert data["total_pages"] == 1


@pytest.mark.asyncio
async def test_pages_partition_the_filtered_set(db_session: AsyncSession):
    author = await _create_user(db_session)
    for i in range(7):
        await _seed_post(db_session, author, f"Post {i}", day=i)

    for limit in (1, 2, 3, 7, 10):
        first = await query_service.list_posts(db_session, ListFilter.from_params(limit=str(limit)))
        assert first.total == 7
        assert first.total_pages == max(1, math.ceil(7 / limit))

        seen: list[int] = []
        for page in range(1, first.total_pages + 1):
            result = await query_service.list_posts(
                db_session, ListFilter.from_params(page=str(page), limit=str(limit))
            )
            seen.extend(item.id for item in result.items)
        assert len(seen) == 7
        assert len(set(seen)) == 7


@pytest.mark.asyncio
async def test_page_beyond_last_is_empty(db_session: AsyncSession):
    author = await _create_user(db_session)
    for i in range(3):
        await _seed_post(db_session, author, f"Post {i}", day=i)

    result = await query_service.list_posts(db_session, ListFilter.from_params(page="9", limit="2"))
    assert result.items == []
    assert result.total == 3
    assert result.total_pages == 2
    assert result.page == 9


@pytest.mark.asyncio
async def test_bad_pagination_params_fall_back_to_defaults(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/posts?page=abc&limit=-5&sort=sideways")
    assert resp.status_code == 200
    data = resp.json()
    assert data["page"] == 1
    assert data["limit"] == 10


@pytest.mark.asyncio
async def test_limit_is_capped(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/posts?limit=100000")
    assert resp.status_code == 200
    assert resp.json()["limit"] == 100


# ---------------------------------------------------------------------------
# Sorting
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_sort_newest_is_default(db_session: AsyncSession):
    author = await _create_user(db_session)
    await _seed_post(db_session, author, "Middle", day=5)
    await _seed_post(db_session, author, "Oldest", day=1)
    await _seed_post(db_session, author, "Newest", day=9)

    assert await _titles(db_session) == ["Newest", "Middle", "Oldest"]
    assert await _titles(db_session, sort="newest") == ["Newest", "Middle", "Oldest"]

    result = await query_service.list_posts(db_session, ListFilter.from_params())
    stamps = [item.created_at for item in result.items]
    assert all(stamps[i] >= stamps[i + 1] for i in range(len(stamps) - 1))


@pytest.mark.asyncio
async def test_sort_oldest(db_session: AsyncSession):
    author = await _create_user(db_session)
    await _seed_post(db_session, author, "Middle", day=5)
    await _seed_post(db_session, author, "Oldest", day=1)
    await _seed_post(db_session, author, "Newest", day=9)

    assert await _titles(db_session, sort="oldest") == ["Oldest", "Middle", "Newest"]


@pytest.mark.asyncio
async def test_sort_popular_breaks_ties_by_newest(db_session: AsyncSession):
    author = await _create_user(db_session)
    await _seed_post(db_session, author, "Loved", day=1, likes=5)
    await _seed_post(db_session, author, "Tied old", day=2, likes=2)
    await _seed_post(db_session, author, "Tied new", day=3, likes=2)
    await _seed_post(db_session, author, "Ignored", day=4)

    assert await _titles(db_session, sort="popular") == ["Loved", "Tied new", "Tied old", "Ignored"]


@pytest.mark.asyncio
async def test_unknown_sort_falls_back_to_newest(db_session: AsyncSession):
    author = await _create_user(db_session)
    await _seed_post(db_session, author, "A", day=1, likes=3)
    await _seed_post(db_session, author, "B", day=2)

    assert await _titles(db_session, sort="bogus") == ["B", "A"]


# ---------------------------------------------------------------------------
# Search and tag filters
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_search_matches_title_or_content_case_insensitively(db_session: AsyncSession):
    author = await _create_user(db_session)
    await _seed_post(db_session, author, "Learning RUST", day=1)
    await _seed_post(db_session, author, "Systems", content="Why I picked Rust for this", day=2)
    await _seed_post(db_session, author, "Python tips", day=3)

    assert await _titles(db_session, search="rust") == ["Systems", "Learning RUST"]
    assert await _titles(db_session, search="   ") == ["Python tips", "Systems", "Learning RUST"]


@pytest.mark.asyncio
async def test_search_treats_wildcards_literally(db_session: AsyncSession):
    author = await _create_user(db_session)
    await _seed_post(db_session, author, "100% coverage", day=1)
    await _seed_post(db_session, author, "100 percent", day=2)

    assert await _titles(db_session, search="100%") == ["100% coverage"]
    assert await _titles(db_session, search="_") == []


@pytest.mark.asyncio
async def test_category_filter_exact_tag(db_session: AsyncSession):
    author = await _create_user(db_session)
    await _seed_post(db_session, author, "Web post", tags=("web",), day=1)
    await _seed_post(db_session, author, "Webassembly post", tags=("webassembly",), day=2)
    await _seed_post(db_session, author, "Untagged", day=3)

    assert await _titles(db_session, category="web") == ["Web post"]
    assert await _titles(db_session, category="all") == ["Untagged", "Webassembly post", "Web post"]


@pytest.mark.asyncio
async def test_tags_filter_requires_every_tag(db_session: AsyncSession):
    author = await _create_user(db_session)
    await _seed_post(db_session, author, "Both", tags=("web", "async"), day=1)
    await _seed_post(db_session, author, "Web only", tags=("web",), day=2)

    assert await _titles(db_session, tags="web,async") == ["Both"]
    assert await _titles(db_session, category="async", tags="web") == ["Both"]


@pytest.mark.asyncio
async def test_search_popular_second_page(db_session: AsyncSession):
    """5 matching posts, popular order, page 2 of size 2 → the 3rd and 4th most liked."""
    author = await _create_user(db_session)
    for i, likes in enumerate([4, 1, 5, 3, 2]):
        await _seed_post(db_session, author, f"Rust part {i} ({likes} likes)", day=i, likes=likes)
    await _seed_post(db_session, author, "Unrelated Go post", day=10, likes=9)

    result = await query_service.list_posts(
        db_session,
        ListFilter.from_params(search="rust", sort="popular", page="2", limit="2"),
    )
    assert result.total == 5
    assert result.total_pages == 3
    assert result.page == 2
    assert [item.like_count for item in result.items] == [3, 2]


# ---------------------------------------------------------------------------
# Visibility
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_drafts_hidden_from_anonymous_for_any_filter(db_session: AsyncSession):
    author = await _create_user(db_session)
    await _seed_post(db_session, author, "Rust draft", tags=("rust",), published=False, day=2, likes=9)
    await _seed_post(db_session, author, "Rust public", tags=("rust",), day=1)

    for params in (
        {},
        {"search": "rust"},
        {"category": "rust"},
        {"sort": "popular"},
        {"author": str(author.id)},
    ):
        result = await query_service.list_posts(db_session, ListFilter.from_params(**params))
        assert [item.title for item in result.items] == ["Rust public"], params
        assert result.total == 1


@pytest.mark.asyncio
async def test_author_sees_own_drafts_on_own_listing(db_session: AsyncSession):
    author = await _create_user(db_session, "owner")
    other = await _create_user(db_session, "other")
    await _seed_post(db_session, author, "My draft", published=False, day=2)
    await _seed_post(db_session, author, "My post", day=1)
    await _seed_post(db_session, other, "Their draft", published=False, day=3)

    me = Viewer(user_id=author.id)
    assert await _titles(db_session, viewer=me, author=str(author.id)) == ["My draft", "My post"]
    # The general feed never shows drafts, not even the viewer's own.
    assert await _titles(db_session, viewer=me) == ["My post"]
    assert await _titles(db_session, viewer=me, author=str(other.id)) == []


@pytest.mark.asyncio
async def test_list_via_http_hides_drafts(async_client: AsyncClient):
    user_resp = await async_client.post("/api/v1/users", json={
        "username": "httplister", "email": "httplister@example.com",
    })
    headers = {"X-User-Id": str(user_resp.json()["id"])}
    await async_client.post("/api/v1/posts", headers=headers, json={
        "title": "Published Post", "content": "Visible", "is_published": True,
    })
    await async_client.post("/api/v1/posts", headers=headers, json={
        "title": "Draft Post", "content": "Hidden", "is_published": False,
    })

    resp = await async_client.get("/api/v1/posts")
    data = resp.json()
    assert data["total"] == 1
    item = data["items"][0]
    assert item["title"] == "Published Post"
    assert "content" not in item
    assert item["excerpt"] == "Visible"
    assert item["read_time"] == 1
