from datetime import datetime
from typing import List, Literal, Optional, Union

from fastapi_users import schemas as fu_schemas
from pydantic import BaseModel, EmailStr, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel

from .models import CollaboratorRole, CollaboratorStatus, PhotoStatus, UserRole


def _url(rel: Optional[str]) -> Optional[str]:
    if not rel:
        return None
    if rel.startswith(("http://", "https://", "/")):
        return rel
    return f"/{rel}"


class ApiModel(BaseModel):
    """camelCase on the wire, snake_case in Python; both accepted on input."""

    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True


# =========================
# USER SCHEMAS
# =========================
class UserCreate(fu_schemas.BaseUserCreate):
    username: str = Field(min_length=3, max_length=64, pattern=r"^[A-Za-z0-9_.-]+$")
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    role: Literal["photographer", "company"] = "photographer"

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class LoginRequest(ApiModel):
    email: EmailStr
    password: str


class UserSummary(ApiModel):
    id: int
    username: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar: Optional[str] = None
    is_verified: bool = False

    @field_validator("avatar", mode="before")
    @classmethod
    def _avatar_url(cls, v):
        return _url(v)


class UserPublic(UserSummary):
    role: UserRole
    bio: Optional[str] = None
    website: Optional[str] = None
    location: Optional[str] = None
    instagram: Optional[str] = None
    twitter: Optional[str] = None
    behance: Optional[str] = None
    dribbble: Optional[str] = None
    followers_count: int = 0
    following_count: int = 0
    uploads_count: int = 0
    total_views: int = 0
    total_downloads: int = 0
    created_at: Optional[datetime] = None


class UserPrivate(UserPublic):
    email: EmailStr
    is_active: bool = True


class ProfileUpdate(ApiModel):
    username: Optional[str] = Field(default=None, min_length=3, max_length=64, pattern=r"^[A-Za-z0-9_.-]+$")
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    bio: Optional[str] = Field(default=None, max_length=2000)
    website: Optional[str] = Field(default=None, max_length=255)
    location: Optional[str] = Field(default=None, max_length=255)
    instagram: Optional[str] = Field(default=None, max_length=100)
    twitter: Optional[str] = Field(default=None, max_length=100)
    behance: Optional[str] = Field(default=None, max_length=100)
    dribbble: Optional[str] = Field(default=None, max_length=100)
    avatar: Optional[str] = Field(default=None, max_length=255)


class AdminUserUpdate(ApiModel):
    email: Optional[EmailStr] = None
    username: Optional[str] = Field(default=None, min_length=3, max_length=64)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: Optional[Literal["photographer", "company"]] = None
    is_active: Optional[bool] = None
    is_verified: Optional[bool] = None


class AdminUserRead(UserPrivate):
    updated_at: Optional[datetime] = None


# =========================
# PHOTO SCHEMAS
# =========================
class PhotoRead(ApiModel):
    id: int
    user_id: int
    title: str
    description: Optional[str] = None
    file_path: str
    thumbnail_path: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    size_kb: Optional[int] = None
    format: Optional[str] = None
    orientation: str
    license: str = "free"
    status: PhotoStatus
    published_at: Optional[datetime] = None
    is_featured: bool = False
    views: int = 0
    likes: int = 0
    downloads: int = 0
    created_at: Optional[datetime] = None
    tags: List[str] = []
    categories: List[str] = []
    owner: Optional[UserSummary] = Field(default=None, serialization_alias="user")

    @field_validator("file_path", "thumbnail_path", mode="before")
    @classmethod
    def _paths(cls, v):
        return _url(v)

    @field_validator("tags", "categories", mode="before")
    @classmethod
    def _names(cls, v):
        return [getattr(item, "name", item) for item in (v or [])]


class CategoryRead(ApiModel):
    id: int
    name: str
    slug: str


# =========================
# COLLECTION SCHEMAS
# =========================
class CollectionCreate(ApiModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    is_private: bool = False
    is_collaborative: bool = False
    cover_photo_id: Optional[int] = None
    photo_ids: List[int] = []
    collaborator_emails: List[EmailStr] = []

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Collection name is required")
        return v


class CollectionUpdate(ApiModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    is_private: Optional[bool] = None
    is_collaborative: Optional[bool] = None
    cover_photo_id: Optional[int] = None
    photo_ids: Optional[List[int]] = None
    collaborator_emails: Optional[List[EmailStr]] = None


class CollaboratorRead(ApiModel):
    id: int
    collection_id: int
    user_id: Optional[int] = None
    email: str
    role: CollaboratorRole
    status: CollaboratorStatus
    invited_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    user: Optional[UserSummary] = None
    invited_by: Optional[UserSummary] = None


class CollaboratorPublic(ApiModel):
    """What visitors see of an accepted collaborator: no invitation address."""

    id: int
    user_id: Optional[int] = None
    role: CollaboratorRole
    status: CollaboratorStatus
    responded_at: Optional[datetime] = None
    user: Optional[UserSummary] = None


class CollectionRead(ApiModel):
    id: int
    uuid: str
    user_id: int
    name: str
    description: Optional[str] = None
    is_private: bool
    is_collaborative: bool
    cover_photo_id: Optional[int] = None
    cover_image: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    owner: Optional[UserSummary] = Field(default=None, serialization_alias="user")
    photo_count: int = 0
    like_count: int = 0
    comment_count: int = 0
    view_count: int = 0


class CollectionDetail(CollectionRead):
    photos: List[PhotoRead] = []
    collaborators: Optional[List[Union[CollaboratorRead, CollaboratorPublic]]] = None
    is_owner: bool = False
    is_collaborator: bool = False
    is_liked: bool = False


class JoinRequest(ApiModel):
    otp_code: str = Field(min_length=1, max_length=16)

    @field_validator("otp_code")
    @classmethod
    def _strip(cls, v: str) -> str:
        return v.strip()


class AddPhotosRequest(ApiModel):
    photo_ids: List[int] = Field(min_length=1)


# =========================
# COMMENT SCHEMAS
# =========================
class CommentCreate(ApiModel):
    content: str
    parent_id: Optional[int] = None

    @field_validator("content")
    @classmethod
    def _content(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("Comment content is required")
        if len(v) > 1000:
            raise ValueError("Comment is too long (max 1000 characters)")
        return v


class CommentRead(ApiModel):
    id: int
    content: str
    parent_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    user: UserSummary
    reply_count: int = 0
    like_count: int = 0
    is_liked: bool = False


# =========================
# NOTIFICATION SCHEMAS
# =========================
class NotificationRead(ApiModel):
    id: int
    type: str
    message: str
    related_id: Optional[int] = None
    action_url: Optional[str] = None
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @computed_field(alias="isRead")
    @property
    def is_read(self) -> bool:
        return self.read_at is not None
