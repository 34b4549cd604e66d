from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ConfigDict


ContentType = Literal["create_post", "lead_magnet"]
PostStatus = Literal["draft", "scheduled", "published", "archived"]


class PostCreateIn(BaseModel):
    content: str
    content_type: ContentType
    title: Optional[str] = Field(None, max_length=255)
    status: Optional[PostStatus] = None
    source_data: Optional[Dict[str, Any]] = None
    original_content: Optional[str] = None
    edit_history: Optional[List[Dict[str, Any]]] = None
    scheduled_date: Optional[datetime] = None
    platform: Optional[str] = Field(None, max_length=50)
    tags: Optional[List[str]] = None


class PostUpdateIn(BaseModel):
    """
    Partial update. Only fields present in the request body are written.

    updated_at is accepted and ignored: the database stamps it.
    """

    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(None, max_length=255)
    content: Optional[str] = None
    content_type: Optional[ContentType] = None
    status: Optional[PostStatus] = None
    source_data: Optional[Dict[str, Any]] = None
    original_content: Optional[str] = None
    edit_history: Optional[List[Dict[str, Any]]] = None
    scheduled_date: Optional[datetime] = None
    platform: Optional[str] = Field(None, max_length=50)
    tags: Optional[List[str]] = None
    updated_at: Optional[datetime] = None


class PostOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: Optional[str] = None
    content: str
    content_type: ContentType
    status: PostStatus
    source_data: Dict[str, Any]
    original_content: Optional[str] = None
    edit_history: List[Dict[str, Any]]
    scheduled_date: Optional[datetime] = None
    platform: Optional[str] = None
    tags: Optional[List[str]] = None
    created_at: datetime
    updated_at: datetime


class PostListOut(BaseModel):
    items: List[PostOut]
    limit: int
    offset: int
    total: int


class EditIn(BaseModel):
    content: str
    note: Optional[str] = Field(None, max_length=500)


class AllowedTransitionsOut(BaseModel):
    post_id: str
    from_status: PostStatus
    allowed: List[PostStatus]
    intended_next: Optional[PostStatus] = None


class TransitionIn(BaseModel):
    to_status: str


class TransitionOut(BaseModel):
    post_id: str
    from_status: PostStatus
    to_status: PostStatus
    in_order: bool
    post: PostOut
