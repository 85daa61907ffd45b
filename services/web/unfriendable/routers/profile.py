"""
Profile endpoints:
  GET    /profile/{username}                        — page as seen by the viewer
  POST   /profile/{username}/friend-request         — send a friend request
  POST   /profile/{username}/friend-request/accept  — accept their request
  DELETE /profile/{username}/friendship             — unfriend
  POST   /profile/{username}/follow                 — follow
  DELETE /profile/{username}/follow                 — unfollow
  POST   /profile/{username}/best-friend            — mark as best friend
  DELETE /profile/{username}/best-friend            — unmark
  DELETE /profile/{username}/best-friend-status     — reject their best-friend tag on me
  POST   /profile/{username}/hide                   — hide from my feed
  DELETE /profile/{username}/hide                   — unhide
  GET    /profile/{username}/friends|followers|following
  PATCH  /profile                                   — edit my own profile
"""
import logging

from fastapi import APIRouter, Depends, Query
from opentelemetry import trace

from unfriendable.dependencies import SessionContext, require_actor, require_profile
from unfriendable.schemas import ActionResponse, ProfilePageResponse, ProfileUpdate, UserProfile
from unfriendable.services import profile as profile_service
from unfriendable.services.relationships import Action

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


@router.patch("", response_model=UserProfile)
async def update_my_profile(body: ProfileUpdate, ctx: SessionContext = Depends(require_actor)):
    with tracer.start_as_current_span("update_profile"):
        return await profile_service.update_profile(ctx.rest, ctx.viewer, body)


@router.get("/{username}", response_model=ProfilePageResponse)
async def get_profile(
    username: str,
    refresh: bool = Query(False, description="Refetch without recording a profile view"),
    ctx: SessionContext = Depends(require_profile),
):
    with tracer.start_as_current_span("get_profile") as span:
        span.set_attribute("profile.username", username)
        return await profile_service.load_profile_page(
            ctx.rest, ctx.viewer, username, record_view=not refresh
        )


async def _act(ctx: SessionContext, username: str, action: Action) -> ActionResponse:
    with tracer.start_as_current_span(f"profile_{action.value}") as span:
        span.set_attribute("profile.username", username)
        return await profile_service.perform_action(ctx.rest, ctx.viewer, username, action)


@router.post("/{username}/friend-request", response_model=ActionResponse)
async def send_friend_request(username: str, ctx: SessionContext = Depends(require_actor)):
    return await _act(ctx, username, Action.ADD_FRIEND)


@router.post("/{username}/friend-request/accept", response_model=ActionResponse)
async def accept_friend_request(username: str, ctx: SessionContext = Depends(require_actor)):
    return await _act(ctx, username, Action.ACCEPT_FRIEND)


@router.delete("/{username}/friendship", response_model=ActionResponse)
async def remove_friend(username: str, ctx: SessionContext = Depends(require_actor)):
    return await _act(ctx, username, Action.REMOVE_FRIEND)


@router.post("/{username}/follow", response_model=ActionResponse)
async def follow(username: str, ctx: SessionContext = Depends(require_actor)):
    return await _act(ctx, username, Action.FOLLOW)


@router.delete("/{username}/follow", response_model=ActionResponse)
async def unfollow(username: str, ctx: SessionContext = Depends(require_actor)):
    return await _act(ctx, username, Action.UNFOLLOW)


@router.post("/{username}/best-friend", response_model=ActionResponse)
async def add_best_friend(username: str, ctx: SessionContext = Depends(require_actor)):
    return await _act(ctx, username, Action.ADD_BEST_FRIEND)


@router.delete("/{username}/best-friend", response_model=ActionResponse)
async def remove_best_friend(username: str, ctx: SessionContext = Depends(require_actor)):
    return await _act(ctx, username, Action.REMOVE_BEST_FRIEND)


@router.delete("/{username}/best-friend-status", response_model=ActionResponse)
async def revoke_best_friend_status(username: str, ctx: SessionContext = Depends(require_actor)):
    return await _act(ctx, username, Action.REVOKE_BEST_FRIEND_STATUS)


@router.post("/{username}/hide", response_model=ActionResponse)
async def hide(username: str, ctx: SessionContext = Depends(require_actor)):
    return await _act(ctx, username, Action.HIDE)


@router.delete("/{username}/hide", response_model=ActionResponse)
async def unhide(username: str, ctx: SessionContext = Depends(require_actor)):
    return await _act(ctx, username, Action.UNHIDE)


@router.get("/{username}/friends", response_model=list[UserProfile])
async def list_friends(username: str, ctx: SessionContext = Depends(require_profile)):
    return await profile_service.list_friends(ctx.rest, username)


@router.get("/{username}/followers", response_model=list[UserProfile])
async def list_followers(username: str, ctx: SessionContext = Depends(require_profile)):
    return await profile_service.list_follows(ctx.rest, username, followers=True)


@router.get("/{username}/following", response_model=list[UserProfile])
async def list_following(username: str, ctx: SessionContext = Depends(require_profile)):
    return await profile_service.list_follows(ctx.rest, username, followers=False)
