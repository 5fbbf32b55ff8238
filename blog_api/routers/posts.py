from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from blog_api.config import settings
from blog_api.database import get_db, get_session_factory
from blog_api.dependencies import ListParams, get_viewer, require_viewer
from blog_api.identity import Viewer
from blog_api.schemas import (
    CommentCreate,
    CommentResponse,
    ErrorResponse,
    PaginatedResponse,
    PostCreate,
    PostDetail,
    PostDetailView,
    PostResponse,
    PostUpdate,
    ToggleResponse,
)
from blog_api.services import (
    comment_service,
    detail_service,
    interaction_service,
    post_service,
    query_service,
)

router = APIRouter(
    prefix="/api/v1/posts",
    tags=["posts"],
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)


@router.get("", response_model=PaginatedResponse)
async def list_posts(
    params: ListParams = Depends(),
    viewer: Viewer | None = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await query_service.list_posts(db, params.to_filter(), viewer)


@router.post("", status_code=201, response_model=PostDetail)
async def create_post(
    data: PostCreate,
    viewer: Viewer = Depends(require_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await post_service.create_post(db, viewer.user_id, data)


@router.get("/{post_id}", response_model=PostDetailView)
async def get_post_detail(
    post_id: int,
    viewer: Viewer | None = Depends(get_viewer),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    return await detail_service.get_post_detail(session_factory, post_id, viewer)


@router.put("/{post_id}", response_model=PostDetail)
async def update_post(
    post_id: int,
    data: PostUpdate,
    viewer: Viewer = Depends(require_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await post_service.update_post(db, viewer, post_id, data)


@router.get("/{post_id}/comments", response_model=list[CommentResponse])
async def list_comments(
    post_id: int,
    viewer: Viewer | None = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    await post_service.get_visible_post(db, post_id, viewer)
    return await comment_service.list_comments(db, post_id)


@router.post("/{post_id}/comments", status_code=201, response_model=CommentResponse)
async def add_comment(
    post_id: int,
    data: CommentCreate,
    viewer: Viewer = Depends(require_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await comment_service.add_comment(db, viewer, post_id, data)


@router.get("/{post_id}/related", response_model=list[PostResponse])
async def list_related(
    post_id: int,
    viewer: Viewer | None = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    await post_service.get_visible_post(db, post_id, viewer)
    return await post_service.get_related_posts(db, post_id, settings.RELATED_POSTS_LIMIT)


@router.post("/{post_id}/like", response_model=ToggleResponse)
async def toggle_like(
    post_id: int,
    viewer: Viewer = Depends(require_viewer),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    return await interaction_service.toggle(session_factory, viewer, post_id, "like")


@router.post("/{post_id}/bookmark", response_model=ToggleResponse)
async def toggle_bookmark(
    post_id: int,
    viewer: Viewer = Depends(require_viewer),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    return await interaction_service.toggle(session_factory, viewer, post_id, "bookmark")
