"""
Thread endpoints:
  POST /threads                 — create a top-level thread
  POST /threads/like-status     — batch "did I like these?" lookup
  GET  /threads/{id}            — fetch a single thread
  POST /threads/{id}/replies    — reply to a thread
  GET  /threads/{id}/replies    — replies, oldest first
  POST /threads/{id}/like       — toggle the caller's like
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from opentelemetry import trace

from social_feed.dependencies import Services, current_user_id, get_services, require_user_id
from social_feed.schemas import (
    FeedPage,
    LikeStatusRequest,
    LikeToggle,
    ReplyCreate,
    Thread,
    ThreadCreate,
    ThreadWithAuthor,
)
from social_feed.services.feed import attach_like_status

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


@router.post("/", response_model=Thread, status_code=status.HTTP_201_CREATED)
async def create_thread(
    body: ThreadCreate,
    user_id: str = Depends(require_user_id),
    services: Services = Depends(get_services),
):
    return await services.threads.create_thread(user_id, body.content, body.media_ids)


@router.post("/like-status", response_model=dict[str, bool])
async def like_status(
    body: LikeStatusRequest,
    user_id: str = Depends(require_user_id),
    services: Services = Depends(get_services),
):
    return await services.relationships.get_user_like_status_batch(user_id, body.thread_ids)


@router.get("/{thread_id}", response_model=ThreadWithAuthor)
async def get_thread(
    thread_id: str,
    viewer_id: Optional[str] = Depends(current_user_id),
    services: Services = Depends(get_services),
):
    thread = await services.threads.get_thread(thread_id)
    if viewer_id:
        thread.is_liked = await services.relationships.has_liked(viewer_id, thread_id)
    return thread


@router.post("/{thread_id}/replies", response_model=Thread, status_code=status.HTTP_201_CREATED)
async def create_reply(
    thread_id: str,
    body: ReplyCreate,
    user_id: str = Depends(require_user_id),
    services: Services = Depends(get_services),
):
    return await services.threads.create_reply(
        user_id,
        thread_id,
        body.content,
        parent_reply_id=body.parent_reply_id,
        reply_to_username=body.reply_to_username,
    )


@router.get("/{thread_id}/replies", response_model=FeedPage)
async def list_replies(
    thread_id: str,
    cursor: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1),
    viewer_id: Optional[str] = Depends(current_user_id),
    services: Services = Depends(get_services),
):
    page = await services.feed.get_replies(thread_id, cursor=cursor, limit=limit)
    return await attach_like_status(page, viewer_id, services.relationships)


@router.post("/{thread_id}/like", response_model=LikeToggle)
async def toggle_like(
    thread_id: str,
    user_id: str = Depends(require_user_id),
    services: Services = Depends(get_services),
):
    """Like the thread, or remove the caller's like if present."""
    with tracer.start_as_current_span("toggle_like_request"):
        return await services.relationships.toggle_like(user_id, thread_id)
