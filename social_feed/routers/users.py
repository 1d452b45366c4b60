"""
User profile & social graph endpoints:
  POST  /users                    — create the caller's profile
  GET   /users/{id}               — fetch a profile
  PATCH /users/{id}               — edit own profile
  POST  /users/{id}/follow        — toggle follow on a user
  GET   /users/{id}/follow        — follow status + public counts
  GET   /users/{id}/followers     — follower ids
  GET   /users/search?q=          — find users by username or display name
  GET   /users/{id}/threads       — the user's top-level threads
  GET   /users/{id}/replies       — the user's replies, newest first
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from opentelemetry import trace

from social_feed.dependencies import Services, current_user_id, get_services, require_user_id
from social_feed.errors import NotFound
from social_feed.schemas import (
    FeedPage,
    FollowStatus,
    Profile,
    ProfileCreate,
    ProfileUpdate,
    UserSearchResult,
)
from social_feed.services.feed import attach_like_status

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


@router.post("/", response_model=Profile, status_code=status.HTTP_201_CREATED)
async def create_user(
    body: ProfileCreate,
    user_id: str = Depends(require_user_id),
    services: Services = Depends(get_services),
):
    """Register the caller's profile; usernames are unique and lowercased."""
    return await services.profiles.create_profile(user_id, body.username, body.display_name)


@router.get("/search", response_model=UserSearchResult)
async def search_users(
    q: str = "",
    limit: Optional[int] = Query(None, ge=1),
    services: Services = Depends(get_services),
):
    """Username prefix matches first, then display-name matches."""
    return await services.profiles.search(q, limit=limit)


@router.get("/{user_id}", response_model=Profile)
async def get_user(user_id: str, services: Services = Depends(get_services)):
    profile = await services.profiles.get_by_user_id(user_id)
    if profile is None:
        raise NotFound("User not found")
    return profile


@router.patch("/{user_id}", response_model=Profile)
async def update_user(
    user_id: str,
    body: ProfileUpdate,
    principal_id: str = Depends(require_user_id),
    services: Services = Depends(get_services),
):
    return await services.profiles.update_profile(user_id, principal_id, body)


@router.post("/{user_id}/follow", response_model=FollowStatus)
async def toggle_follow(
    user_id: str,
    follower_id: str = Depends(require_user_id),
    services: Services = Depends(get_services),
):
    """
    Follow the user if the caller doesn't yet, unfollow otherwise.

    The response carries the target's refreshed public counts so the client
    can replace its optimistic state in one round trip.
    """
    with tracer.start_as_current_span("toggle_follow_request"):
        result = await services.relationships.toggle_follow(follower_id, user_id)
        counts = await services.relationships.get_follow_counts(user_id)
        return FollowStatus(
            target_user_id=user_id,
            following=result.following,
            followers_count=counts.followers,
            following_count=counts.following,
        )


@router.get("/{user_id}/follow", response_model=FollowStatus)
async def follow_status(
    user_id: str,
    viewer_id: Optional[str] = Depends(current_user_id),
    services: Services = Depends(get_services),
):
    """Anonymous callers get ``following=false`` plus the public counts."""
    return await services.relationships.get_follow_status(viewer_id, user_id)


@router.get("/{user_id}/followers")
async def list_followers(
    user_id: str,
    limit: int = Query(100, ge=1, le=1000),
    services: Services = Depends(get_services),
):
    follower_ids = await services.relationships.list_follower_ids(user_id, limit=limit)
    return {"user_id": user_id, "followers": follower_ids}


@router.get("/{user_id}/threads", response_model=FeedPage)
async def list_user_threads(
    user_id: str,
    cursor: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1),
    viewer_id: Optional[str] = Depends(current_user_id),
    services: Services = Depends(get_services),
):
    page = await services.feed.get_author_feed(user_id, cursor=cursor, limit=limit)
    return await attach_like_status(page, viewer_id, services.relationships)


@router.get("/{user_id}/replies", response_model=FeedPage)
async def list_user_replies(
    user_id: str,
    cursor: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1),
    viewer_id: Optional[str] = Depends(current_user_id),
    services: Services = Depends(get_services),
):
    page = await services.feed.get_author_replies(user_id, cursor=cursor, limit=limit)
    return await attach_like_status(page, viewer_id, services.relationships)
