"""
SQLAlchemy ORM models backing the SQL document store.

Tables:
  profiles      — user profiles keyed to the external auth user id
  threads       — posts and replies (parent_thread_id set on replies)
  likes         — user × thread edges, unique per pair
  follows       — social graph edges (follower → following), unique per pair
  notifications — cross-user activity records

Every table carries an ``id`` primary key and a ``permissions`` JSON list of
grant strings, so rows round-trip through the store as plain documents.
"""
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from social_feed.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    username: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(50), nullable=False)
    bio: Mapped[Optional[str]] = mapped_column(String(160))
    avatar_url: Mapped[Optional[str]] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    permissions: Mapped[list] = mapped_column(JSON, default=list, nullable=False)


class Thread(Base):
    __tablename__ = "threads"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    author_id: Mapped[str] = mapped_column(String(36), nullable=False)
    content: Mapped[str] = mapped_column(Text, default="", nullable=False)
    media_ids: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    # NULL for top-level threads
    parent_thread_id: Mapped[Optional[str]] = mapped_column(String(36))
    parent_reply_id: Mapped[Optional[str]] = mapped_column(String(36))
    reply_to_username: Mapped[Optional[str]] = mapped_column(String(30))
    reply_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    like_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    permissions: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    __table_args__ = (
        Index("idx_threads_author", "author_id"),
        Index("idx_threads_created", "created_at"),
        Index("idx_threads_parent", "parent_thread_id"),
    )


class Like(Base):
    __tablename__ = "likes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    thread_id: Mapped[str] = mapped_column(String(36), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    permissions: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "thread_id", name="uq_likes_user_thread"),
        Index("idx_likes_thread", "thread_id"),
    )


class Follow(Base):
    __tablename__ = "follows"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    follower_id: Mapped[str] = mapped_column(String(36), nullable=False)
    following_id: Mapped[str] = mapped_column(String(36), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    permissions: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    __table_args__ = (
        UniqueConstraint("follower_id", "following_id", name="uq_follows_pair"),
        # "who follows user X?" for follower counts
        Index("idx_follows_following", "following_id"),
    )


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    recipient_id: Mapped[str] = mapped_column(String(36), nullable=False)
    actor_id: Mapped[str] = mapped_column(String(36), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    thread_id: Mapped[Optional[str]] = mapped_column(String(36))
    message: Mapped[Optional[str]] = mapped_column(String(200))
    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    permissions: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    __table_args__ = (
        Index("idx_notifications_recipient_created", "recipient_id", "created_at"),
        Index("idx_notifications_recipient_read", "recipient_id", "read"),
    )


MODELS_BY_COLLECTION = {
    "profiles": Profile,
    "threads": Thread,
    "likes": Like,
    "follows": Follow,
    "notifications": Notification,
}
