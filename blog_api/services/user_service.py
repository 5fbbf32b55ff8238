"""
User service: author records for the identity collaborator.

Authentication is out of scope; these records exist so posts and
comments can show who wrote them.
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from blog_api.models import Post, User
from blog_api.schemas import UserCreate


def _user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "display_name": user.display_name,
        "bio": user.bio,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def _post_summary_to_dict(post: Post) -> dict:
    return {
        "id": post.id,
        "title": post.title,
        "excerpt": post.excerpt,
        "created_at": post.created_at.isoformat() if post.created_at else None,
    }


async def get_users(db: AsyncSession) -> list[dict]:
    q = select(User).order_by(User.created_at.desc(), User.id.desc())
    result = await db.execute(q)
    return [_user_to_dict(u) for u in result.scalars().all()]


async def get_user(db: AsyncSession, user_id: int) -> dict | None:
    """
    Return the detail dict for *user_id* with their published posts,
    newest first, or None when the user does not exist.

    Drafts are left out: this is a public profile.
    """
    user = await db.get(User, user_id)
    if user is None:
        return None

    q = (
        select(Post)
        .where(Post.author_id == user_id, Post.is_published.is_(True))
        .order_by(Post.created_at.desc(), Post.id.desc())
    )
    posts = (await db.execute(q)).scalars().all()

    data = _user_to_dict(user)
    data["posts"] = [_post_summary_to_dict(p) for p in posts]
    return data


async def create_user(db: AsyncSession, data: UserCreate) -> dict:
    """
    Create a user.  Username and email uniqueness is enforced by the
    database; the router maps the integrity error to 409.
    """
    user = User(
        username=data.username,
        email=data.email,
        display_name=data.display_name,
        bio=data.bio,
    )
    db.add(user)
    await db.flush()
    return _user_to_dict(user)
