"""
Identity predicates consumed from the outside world.

Authentication is not handled here: the caller's user id arrives as an
opaque reference (the ``X-User-Id`` header) and this module only answers
ownership and visibility questions about it.
"""
from dataclasses import dataclass

from blog_api.config import settings


@dataclass(frozen=True)
class Viewer:
    user_id: int

    @property
    def is_admin(self) -> bool:
        return self.user_id in settings.ADMIN_USER_IDS


def parse_viewer(raw: str | None) -> Viewer | None:
    """Return a Viewer for a header value, or None for anonymous / malformed."""
    if raw is None:
        return None
    try:
        user_id = int(raw.strip())
    except ValueError:
        return None
    if user_id < 1:
        return None
    return Viewer(user_id=user_id)


def is_admin(viewer: Viewer | None) -> bool:
    return viewer is not None and viewer.is_admin


def is_owner(viewer: Viewer | None, post) -> bool:
    return viewer is not None and post.author_id == viewer.user_id


def can_view(viewer: Viewer | None, post) -> bool:
    """Published posts are public; drafts are visible to their author and admins."""
    return post.is_published or is_owner(viewer, post) or is_admin(viewer)


def can_edit(viewer: Viewer | None, post) -> bool:
    return is_owner(viewer, post) or is_admin(viewer)
