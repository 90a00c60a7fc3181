from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# --- Tag ---

class TagPayload(BaseModel):
    id: int | None = None
    name: str = Field(min_length=2, max_length=100)


class TagResponse(BaseModel):
    id: int
    name: str
    model_config = ConfigDict(from_attributes=True)


# --- Post ---

class PostPayload(BaseModel):
    """Body of POST /api/posts and PUT /api/posts."""

    id: int | None = None
    title: str = Field(min_length=1, max_length=300)
    content: str
    date: datetime | None = None
    blog_id: int | None = None
    tags: list[TagPayload] = []


class PostResponse(BaseModel):
    id: int
    title: str
    content: str
    date: datetime
    blog_id: int | None = None
    tags: list[TagResponse] = []
    model_config = ConfigDict(from_attributes=True)


# --- User ---

class UserCreate(BaseModel):
    login: str = Field(min_length=1, max_length=100)
    email: str = Field(max_length=255)


class UserResponse(UserCreate):
    id: int
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


# --- Blog ---

class BlogCreate(BaseModel):
    name: str = Field(min_length=3, max_length=200)
    handle: str = Field(min_length=2, max_length=100)


class BlogResponse(BlogCreate):
    id: int
    user_id: int
    model_config = ConfigDict(from_attributes=True)


# --- Metrics ---

class MetricsResponse(BaseModel):
    total_posts: int
    total_tags: int
    total_blogs: int
    total_users: int
    reindex_queue: dict = {}
