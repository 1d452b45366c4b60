"""
Feed retrieval endpoints:
  GET /feed            — public reverse-chronological feed (anonymous OK)
  GET /feed/following  — threads from authors the caller follows

Both accept ``cursor`` (the ``next_cursor`` of the previous page) and
``limit`` (default 20, max 50). When the caller is known, each thread's
``is_liked`` is filled with one batched like-status lookup per page.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from social_feed.dependencies import Services, current_user_id, get_services, require_user_id
from social_feed.schemas import FeedPage, FollowingFeedPage
from social_feed.services.feed import attach_like_status

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/", response_model=FeedPage)
async def public_feed(
    cursor: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1),
    viewer_id: Optional[str] = Depends(current_user_id),
    services: Services = Depends(get_services),
):
    page = await services.feed.get_public_feed(cursor=cursor, limit=limit)
    return await attach_like_status(page, viewer_id, services.relationships)


@router.get("/following", response_model=FollowingFeedPage)
async def following_feed(
    cursor: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1),
    user_id: str = Depends(require_user_id),
    services: Services = Depends(get_services),
):
    page = await services.feed.get_following_feed(user_id, cursor=cursor, limit=limit)
    return await attach_like_status(page, user_id, services.relationships)
