from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# --- User ---

class UserBase(BaseModel):
    username: str = Field(max_length=50)
    email: str = Field(max_length=255)
    display_name: str | None = None
    bio: str | None = None


class UserCreate(UserBase):
    pass


class UserResponse(UserBase):
    id: int
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class UserPostSummary(BaseModel):
    id: int
    title: str
    excerpt: str
    created_at: datetime


class UserDetail(UserResponse):
    posts: list[UserPostSummary] = []


class AuthorSummary(BaseModel):
    id: int
    username: str
    display_name: str | None = None


# --- Comment ---

class CommentCreate(BaseModel):
    # Emptiness and length are checked by the service so the error shape
    # matches every other field-level validation failure.
    text: str = ""


class CommentResponse(BaseModel):
    id: int
    post_id: int
    author_id: int
    author: AuthorSummary | None = None
    text: str
    created_at: datetime


# --- Post ---

class PostCreate(BaseModel):
    """
    Request body for creating a post.

    Field constraints (title length, required content, tag limits) are
    enforced by ``post_service.validate_post`` so that every violation is
    reported in a single response.
    """

    title: str = ""
    content: str = ""
    excerpt: str | None = None
    tags: list[str] = []
    image_url: str | None = None
    is_published: bool = False


class PostUpdate(BaseModel):
    title: str | None = None
    content: str | None = None
    excerpt: str | None = None
    tags: list[str] | None = None
    image_url: str | None = None
    is_published: bool | None = None


class PostResponse(BaseModel):
    id: int
    title: str
    excerpt: str
    tags: list[str] = []
    image_url: str | None = None
    is_published: bool
    published_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    author_id: int
    author: AuthorSummary | None = None
    like_count: int
    bookmark_count: int
    comment_count: int
    read_time: int


class PostDetail(PostResponse):
    content: str
    liked: bool = False
    bookmarked: bool = False


class PostDetailView(BaseModel):
    post: PostDetail
    comments: list[CommentResponse] = []
    related_posts: list[PostResponse] = []


# --- Interaction ---

class ToggleResponse(BaseModel):
    active: bool
    count: int


# --- Pagination ---

class PaginatedResponse(BaseModel):
    items: list[PostResponse]
    total: int
    page: int
    limit: int
    total_pages: int


# --- Errors ---

class FieldError(BaseModel):
    field: str
    message: str


class ErrorResponse(BaseModel):
    detail: str
    errors: list[FieldError] = []


# --- Metrics ---

class MetricsResponse(BaseModel):
    total_posts: int
    published_posts: int
    total_comments: int
    total_likes: int
    total_bookmarks: int
    total_users: int
    cache_info: dict = {}
