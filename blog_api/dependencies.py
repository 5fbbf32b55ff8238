from fastapi import Header, HTTPException, Query

from blog_api.identity import Viewer, parse_viewer
from blog_api.services.query_service import ListFilter


class ListParams:
    """
    Reusable FastAPI dependency collecting the post-list query parameters.

    Every parameter is accepted as plain text so that malformed values
    (``page=abc``, ``limit=-3``, ``sort=random``) reach
    ``ListFilter.from_params``, which replaces them with defaults instead
    of rejecting the request.  Omitting all of them yields the first page
    of newest posts.

    Usage in a router::

        @router.get("/posts")
        async def list_posts(params: ListParams = Depends()):
            flt = params.to_filter()
    """

    def __init__(
        self,
        search: str | None = Query(None, description="Case-insensitive substring of title or content."),
        category: str | None = Query(None, description="Single tag to filter by; 'all' disables."),
        tags: str | None = Query(None, description="Comma-separated tags; a post must carry all of them."),
        author: str | None = Query(None, description="Author user id."),
        sort: str | None = Query(None, description="newest (default), oldest or popular."),
        page: str | None = Query(None, description="1-based page number (default 1)."),
        limit: str | None = Query(None, description="Items per page (default 10, max 100)."),
    ) -> None:
        self.search = search
        self.category = category
        self.tags = tags
        self.author = author
        self.sort = sort
        self.page = page
        self.limit = limit

    def to_filter(self) -> ListFilter:
        return ListFilter.from_params(
            search=self.search,
            category=self.category,
            tags=self.tags,
            author=self.author,
            sort=self.sort,
            page=self.page,
            limit=self.limit,
        )


async def get_viewer(x_user_id: str | None = Header(None)) -> Viewer | None:
    """Resolve the caller from the ``X-User-Id`` header; None means anonymous."""
    return parse_viewer(x_user_id)


async def require_viewer(x_user_id: str | None = Header(None)) -> Viewer:
    viewer = parse_viewer(x_user_id)
    if viewer is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return viewer
