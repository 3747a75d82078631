import enum
import uuid

from sqlalchemy import (
    Column, Integer, String, Boolean, ForeignKey, Text, DateTime, func,
    Table, UniqueConstraint, Index,
)
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import relationship

from .database import Base


class UserRole(str, enum.Enum):
    photographer = "photographer"
    company = "company"
    admin = "admin"
    super_admin = "super_admin"

    @property
    def is_admin(self) -> bool:
        return self in (UserRole.admin, UserRole.super_admin)


class PhotoStatus(str, enum.Enum):
    draft = "draft"
    live = "live"


class CollaboratorStatus(str, enum.Enum):
    pending = "pending"
    accepted = "accepted"


class CollaboratorRole(str, enum.Enum):
    editor = "editor"


def _new_uuid() -> str:
    return str(uuid.uuid4())


# ---------------------------
# USERS & SESSIONS
# ---------------------------
class User(Base):
    __tablename__ = "user"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    username = Column(String(64), unique=True, index=True, nullable=False)
    hashed_password = Column(String(1024), nullable=False)
    # fastapi-users bookkeeping; `role` is what authorization looks at
    is_active = Column(Boolean, default=True, nullable=False)
    is_superuser = Column(Boolean, default=False, nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)

    role = Column(SAEnum(UserRole), default=UserRole.photographer, nullable=False)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    avatar = Column(String(255), nullable=True)
    bio = Column(Text, nullable=True)
    website = Column(String(255), nullable=True)
    location = Column(String(255), nullable=True)
    instagram = Column(String(100), nullable=True)
    twitter = Column(String(100), nullable=True)
    behance = Column(String(100), nullable=True)
    dribbble = Column(String(100), nullable=True)

    # denormalized, recomputed lazily on profile fetch
    followers_count = Column(Integer, default=0, nullable=False)
    following_count = Column(Integer, default=0, nullable=False)
    uploads_count = Column(Integer, default=0, nullable=False)
    total_views = Column(Integer, default=0, nullable=False)
    total_downloads = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
    photos = relationship("Photo", back_populates="owner", cascade="all, delete-orphan", passive_deletes=True)
    collections = relationship("Collection", back_populates="owner", cascade="all, delete-orphan", passive_deletes=True)

    @property
    def display_name(self) -> str:
        full = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return full or self.username or self.email


class UserSession(Base):
    __tablename__ = "user_session"

    id = Column(Integer, primary_key=True)
    token = Column(String(128), unique=True, index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), index=True, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="sessions")


# ---------------------------
# TAGS & CATEGORIES
# ---------------------------
class Tag(Base):
    __tablename__ = "tag"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(64), unique=True, nullable=False)

    def __repr__(self):
        return f"<Tag {self.name}>"


class Category(Base):
    __tablename__ = "category"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(64), unique=True, nullable=False)
    slug = Column(String(64), unique=True, nullable=False)


photo_tags = Table(
    "photo_tags",
    Base.metadata,
    Column("photo_id", ForeignKey("photo.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", ForeignKey("tag.id", ondelete="CASCADE"), primary_key=True),
    UniqueConstraint("photo_id", "tag_id", name="uq_photo_tag"),
)

photo_categories = Table(
    "photo_categories",
    Base.metadata,
    Column("photo_id", ForeignKey("photo.id", ondelete="CASCADE"), primary_key=True),
    Column("category_id", ForeignKey("category.id", ondelete="CASCADE"), primary_key=True),
    UniqueConstraint("photo_id", "category_id", name="uq_photo_category"),
)


# ---------------------------
# PHOTOS
# ---------------------------
class Photo(Base):
    __tablename__ = "photo"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), index=True, nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    file_path = Column(String(512), nullable=False)
    thumbnail_path = Column(String(512), nullable=True)
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)
    size_kb = Column(Integer, nullable=True)
    format = Column(String(16), nullable=True)
    license = Column(String(32), default="free", nullable=False)
    status = Column(SAEnum(PhotoStatus), default=PhotoStatus.draft, nullable=False, index=True)
    published_at = Column(DateTime(timezone=True), nullable=True)
    is_featured = Column(Boolean, default=False, nullable=False)

    # vanity counters, `col = col + 1` updates only
    views = Column(Integer, default=0, nullable=False)
    likes = Column(Integer, default=0, nullable=False)
    downloads = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    owner = relationship("User", back_populates="photos", lazy="joined")
    tags = relationship("Tag", secondary=photo_tags, lazy="selectin")
    categories = relationship("Category", secondary=photo_categories, lazy="selectin")

    @property
    def orientation(self) -> str:
        w, h = self.width or 0, self.height or 0
        if w > h:
            return "landscape"
        if w < h:
            return "portrait"
        return "square"


class PhotoLike(Base):
    __tablename__ = "photo_like"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), index=True, nullable=False)
    photo_id = Column(Integer, ForeignKey("photo.id", ondelete="CASCADE"), index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (UniqueConstraint("user_id", "photo_id", name="uq_photo_like_once"),)


class PhotoSave(Base):
    __tablename__ = "photo_save"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), index=True, nullable=False)
    photo_id = Column(Integer, ForeignKey("photo.id", ondelete="CASCADE"), index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (UniqueConstraint("user_id", "photo_id", name="uq_photo_save_once"),)


class PhotoView(Base):
    __tablename__ = "photo_view"

    id = Column(Integer, primary_key=True)
    photo_id = Column(Integer, ForeignKey("photo.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    viewed_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)


class PhotoDownload(Base):
    __tablename__ = "photo_download"

    id = Column(Integer, primary_key=True)
    photo_id = Column(Integer, ForeignKey("photo.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)


class Comment(Base):
    __tablename__ = "comment"

    id = Column(Integer, primary_key=True)
    photo_id = Column(Integer, ForeignKey("photo.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), index=True, nullable=False)
    parent_id = Column(Integer, ForeignKey("comment.id", ondelete="CASCADE"), index=True, nullable=True)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", lazy="joined")


class CommentLike(Base):
    __tablename__ = "comment_like"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), index=True, nullable=False)
    comment_id = Column(Integer, ForeignKey("comment.id", ondelete="CASCADE"), index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (UniqueConstraint("user_id", "comment_id", name="uq_comment_like_once"),)


class Follow(Base):
    __tablename__ = "follow"

    id = Column(Integer, primary_key=True)
    follower_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), index=True, nullable=False)
    following_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (UniqueConstraint("follower_id", "following_id", name="uq_follow_once"),)


# ---------------------------
# COLLECTIONS
# ---------------------------
class Collection(Base):
    __tablename__ = "collection"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(36), unique=True, index=True, nullable=False, default=_new_uuid)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_private = Column(Boolean, default=False, nullable=False)
    is_collaborative = Column(Boolean, default=False, nullable=False)
    cover_photo_id = Column(Integer, ForeignKey("photo.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    owner = relationship("User", back_populates="collections", lazy="joined")
    cover_photo = relationship("Photo", foreign_keys=[cover_photo_id], lazy="joined")
    memberships = relationship(
        "CollectionPhoto",
        back_populates="collection",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="CollectionPhoto.id",
    )
    collaborator_rows = relationship(
        "CollectionCollaborator",
        back_populates="collection",
        cascade="all, delete-orphan",
        passive_deletes=True,
        foreign_keys="CollectionCollaborator.collection_id",
    )


class CollectionPhoto(Base):
    __tablename__ = "collection_photos"

    # surrogate id keeps insertion order stable within one second
    id = Column(Integer, primary_key=True)
    collection_id = Column(Integer, ForeignKey("collection.id", ondelete="CASCADE"), index=True, nullable=False)
    photo_id = Column(Integer, ForeignKey("photo.id", ondelete="CASCADE"), index=True, nullable=False)
    added_by_user_id = Column(Integer, ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    added_at = Column(DateTime(timezone=True), server_default=func.now())

    collection = relationship("Collection", back_populates="memberships")
    photo = relationship("Photo", lazy="joined")

    __table_args__ = (UniqueConstraint("collection_id", "photo_id", name="uq_collection_photo_once"),)


class CollectionCollaborator(Base):
    __tablename__ = "collection_collaborator"

    id = Column(Integer, primary_key=True)
    collection_id = Column(Integer, ForeignKey("collection.id", ondelete="CASCADE"), index=True, nullable=False)
    # null until the invited email belongs to an account
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), index=True, nullable=True)
    email = Column(String(255), nullable=False, index=True)
    role = Column(SAEnum(CollaboratorRole), default=CollaboratorRole.editor, nullable=False)
    status = Column(SAEnum(CollaboratorStatus), default=CollaboratorStatus.pending, nullable=False)
    otp_code = Column(String(6), nullable=True)
    otp_expires_at = Column(DateTime(timezone=True), nullable=True)
    invited_by_user_id = Column(Integer, ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    invited_at = Column(DateTime(timezone=True), server_default=func.now())
    responded_at = Column(DateTime(timezone=True), nullable=True)

    collection = relationship("Collection", back_populates="collaborator_rows", foreign_keys=[collection_id])
    user = relationship("User", foreign_keys=[user_id], lazy="joined")
    invited_by = relationship("User", foreign_keys=[invited_by_user_id], lazy="joined")

    __table_args__ = (
        # one accepted membership per (collection, user); pending rows may repeat
        Index(
            "uq_collaborator_accepted_once",
            "collection_id",
            "user_id",
            unique=True,
            postgresql_where=(status == CollaboratorStatus.accepted),
            sqlite_where=(status == CollaboratorStatus.accepted),
        ),
        Index("ix_collaborator_collection_otp", "collection_id", "otp_code"),
    )


class CollectionLike(Base):
    __tablename__ = "collection_like"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), index=True, nullable=False)
    collection_id = Column(Integer, ForeignKey("collection.id", ondelete="CASCADE"), index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (UniqueConstraint("user_id", "collection_id", name="uq_collection_like_once"),)


class CollectionView(Base):
    __tablename__ = "collection_view"

    id = Column(Integer, primary_key=True)
    collection_id = Column(Integer, ForeignKey("collection.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=True)
    ip_address = Column(String(64), nullable=True)
    viewed_at = Column(DateTime(timezone=True), server_default=func.now())


class CollectionComment(Base):
    __tablename__ = "collection_comment"

    id = Column(Integer, primary_key=True)
    collection_id = Column(Integer, ForeignKey("collection.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), index=True, nullable=False)
    parent_id = Column(Integer, ForeignKey("collection_comment.id", ondelete="CASCADE"), index=True, nullable=True)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", lazy="joined")


class CollectionCommentLike(Base):
    __tablename__ = "collection_comment_like"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), index=True, nullable=False)
    comment_id = Column(Integer, ForeignKey("collection_comment.id", ondelete="CASCADE"), index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (UniqueConstraint("user_id", "comment_id", name="uq_collection_comment_like_once"),)


# ---------------------------
# NOTIFICATIONS
# ---------------------------
class Notification(Base):
    __tablename__ = "notification"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(50), nullable=False, index=True)
    message = Column(Text, nullable=False)
    related_id = Column(Integer, nullable=True)
    action_url = Column(String(255), nullable=True)
    read_at = Column(DateTime(timezone=True), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    __table_args__ = (
        Index("ix_notification_user_read_created", "user_id", "read_at", "created_at"),
    )
