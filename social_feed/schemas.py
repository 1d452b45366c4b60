"""
Pydantic domain and transport schemas.
Kept separate from ORM models so services work against any store backend.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


# ──────────────────────────── Profiles ────────────────────────────────────

class Profile(BaseModel):
    id: str
    user_id: str
    username: str
    display_name: str
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class ProfileSummary(BaseModel):
    """The slice of a profile embedded next to threads and notifications."""
    user_id: str
    username: str
    display_name: str
    avatar_url: Optional[str] = None


class ProfileCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=30)
    display_name: str = Field(..., min_length=1, max_length=50)


class ProfileUpdate(BaseModel):
    display_name: Optional[str] = Field(None, min_length=1, max_length=50)
    bio: Optional[str] = Field(None, max_length=160)
    avatar_url: Optional[str] = None


class UserSearchResult(BaseModel):
    users: list[Profile] = Field(default_factory=list)
    # The sanitised query actually searched for
    query: str = ""


# ──────────────────────────── Threads ─────────────────────────────────────

class Thread(BaseModel):
    id: str
    author_id: str
    content: str = ""
    media_ids: list[str] = Field(default_factory=list)
    parent_thread_id: Optional[str] = None
    parent_reply_id: Optional[str] = None
    reply_to_username: Optional[str] = None
    reply_count: int = 0
    like_count: int = 0
    created_at: datetime
    updated_at: Optional[datetime] = None


class ThreadWithAuthor(Thread):
    author: ProfileSummary
    # None when the viewer is anonymous
    is_liked: Optional[bool] = None


class ThreadPreview(BaseModel):
    id: str
    author_id: str
    content: str
    like_count: int = 0
    reply_count: int = 0
    created_at: datetime


class ThreadCreate(BaseModel):
    content: str = Field("", max_length=500)
    media_ids: list[str] = Field(default_factory=list, max_length=4)


class ReplyCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=500)
    parent_reply_id: Optional[str] = None
    reply_to_username: Optional[str] = Field(None, max_length=30)


class LikeStatusRequest(BaseModel):
    thread_ids: list[str] = Field(default_factory=list, max_length=100)


# ──────────────────────────── Relationships ───────────────────────────────

class FollowToggle(BaseModel):
    following: bool


class FollowCounts(BaseModel):
    followers: int = 0
    following: int = 0


class FollowStatus(BaseModel):
    target_user_id: str
    following: bool = False
    followers_count: int = 0
    following_count: int = 0


class LikeToggle(BaseModel):
    liked: bool
    like_count: int


# ──────────────────────────── Feed ────────────────────────────────────────

class FeedPage(BaseModel):
    threads: list[ThreadWithAuthor] = Field(default_factory=list)
    next_cursor: Optional[str] = None
    has_more: bool = False


class FollowingFeedPage(FeedPage):
    following_count: int = 0


# ──────────────────────────── Notifications ───────────────────────────────

class NotificationType(str, Enum):
    LIKE = "like"
    FOLLOW = "follow"
    REPLY = "reply"
    MENTION = "mention"


class Notification(BaseModel):
    id: str
    recipient_id: str
    actor_id: str
    type: NotificationType
    thread_id: Optional[str] = None
    message: Optional[str] = None
    read: bool = False
    created_at: datetime


class NotificationWithContext(Notification):
    actor: ProfileSummary
    thread: Optional[ThreadPreview] = None


class NotificationResult(BaseModel):
    success: bool = True
    # None when the notification was suppressed (self-action or duplicate)
    notification: Optional[Notification] = None


class NotificationPage(BaseModel):
    notifications: list[NotificationWithContext] = Field(default_factory=list)
    next_cursor: Optional[str] = None
    has_more: bool = False
    unread_count: int = 0


class MarkAllResult(BaseModel):
    success: bool = True
    count: int = 0


class MarkReadRequest(BaseModel):
    notification_id: Optional[str] = None
    all: bool = False


class MarkReadResponse(BaseModel):
    marked: int


class UnreadCount(BaseModel):
    count: int
