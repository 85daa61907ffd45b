"""
Developer / moderation panel (dev accounts only):
  GET    /dev/stats                     — platform counters
  GET    /dev/users                     — all users, newest first
  GET    /dev/happenings                — latest 100 happenings
  GET    /dev/users/{id}                — user with friendships, follows, happenings
  POST   /dev/users/{id}/ban            — ban with a reason
  POST   /dev/users/{id}/unban
  POST   /dev/users/{id}/sign-out       — invalidate all of the user's sessions
  DELETE /dev/users/{id}?confirm_username=…  — permanent deletion
  DELETE /dev/friendships/{id}
  DELETE /dev/follows/{id}
  POST   /dev/happenings                — create a happening by hand
  PATCH  /dev/happenings/{id}
  DELETE /dev/happenings/{id}
"""
import asyncio
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from opentelemetry import trace

from unfriendable.clients.rest_client import clause
from unfriendable.config import settings
from unfriendable.dependencies import SessionContext, require_dev
from unfriendable.happenings import HAPPENING_SELECT, parse_happenings
from unfriendable.schemas import (
    BanRequest,
    Follow,
    Friendship,
    FriendshipStatus,
    Happening,
    HappeningCreate,
    HappeningType,
    HappeningUpdate,
    MessageResponse,
    PlatformStats,
    UserDetails,
    UserProfile,
)

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


def _start_of_today() -> str:
    now = datetime.now(timezone.utc)
    return now.replace(hour=0, minute=0, second=0, microsecond=0).isoformat()


@router.get("/stats", response_model=PlatformStats)
async def platform_stats(ctx: SessionContext = Depends(require_dev)):
    with tracer.start_as_current_span("dev_stats"):
        rest = ctx.rest
        total_users, new_users, total_happenings, total_unfriends = await asyncio.gather(
            rest.table("users").select("id", count="exact", head=True).execute(),
            rest.table("users").select("id", count="exact", head=True)
            .gte("created_at", _start_of_today()).execute(),
            rest.table("happenings").select("id", count="exact", head=True).execute(),
            rest.table("happenings").select("id", count="exact", head=True)
            .eq("action_type", HappeningType.REMOVED_FRIEND.value).execute(),
        )
        return PlatformStats(
            total_users=total_users.count or 0,
            new_users_today=new_users.count or 0,
            total_happenings=total_happenings.count or 0,
            total_unfriends=total_unfriends.count or 0,
        )


@router.get("/users", response_model=list[UserProfile])
async def list_users(ctx: SessionContext = Depends(require_dev)):
    result = await ctx.rest.table("users").select("*").order("created_at", desc=True).execute()
    return [UserProfile.model_validate(row) for row in result.data or []]


@router.get("/happenings", response_model=list[Happening])
async def list_happenings(ctx: SessionContext = Depends(require_dev)):
    result = await (
        ctx.rest.table("happenings")
        .select(HAPPENING_SELECT)
        .order("created_at", desc=True)
        .limit(settings.dev_happenings_limit)
        .execute()
    )
    return parse_happenings(result.data)


async def _get_user(ctx: SessionContext, user_id: str) -> UserProfile:
    result = await ctx.rest.table("users").select("*").eq("id", user_id).maybe_single().execute()
    if not result.data:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")
    return UserProfile.model_validate(result.data)


@router.get("/users/{user_id}", response_model=UserDetails)
async def user_details(user_id: str, ctx: SessionContext = Depends(require_dev)):
    with tracer.start_as_current_span("dev_user_details"):
        rest = ctx.rest
        user, friendships, followers, following, happenings = await asyncio.gather(
            _get_user(ctx, user_id),
            rest.table("friendships")
            .select("*, user_1_profile:user_id_1(*), user_2_profile:user_id_2(*)")
            .or_(clause("user_id_1", "eq", user_id), clause("user_id_2", "eq", user_id))
            .eq("status", FriendshipStatus.ACCEPTED.value)
            .execute(),
            rest.table("follows").select("*, follower:follower_id(*)")
            .eq("following_id", user_id).execute(),
            rest.table("follows").select("*, following:following_id(*)")
            .eq("follower_id", user_id).execute(),
            rest.table("happenings").select(HAPPENING_SELECT)
            .or_(clause("actor_id", "eq", user_id), clause("target_id", "eq", user_id))
            .order("created_at", desc=True)
            .limit(settings.manage_user_happenings_limit)
            .execute(),
        )
        return UserDetails(
            user=user,
            friendships=[Friendship.model_validate(r) for r in friendships.data or []],
            followers=[Follow.model_validate(r) for r in followers.data or []],
            following=[Follow.model_validate(r) for r in following.data or []],
            happenings=parse_happenings(happenings.data),
        )


@router.post("/users/{user_id}/ban", response_model=MessageResponse)
async def ban_user(user_id: str, body: BanRequest, ctx: SessionContext = Depends(require_dev)):
    with tracer.start_as_current_span("dev_ban_user"):
        await ctx.rest.table("users").update(
            {
                "is_banned": True,
                "banned_at": datetime.now(timezone.utc).isoformat(),
                "ban_reason": body.reason,
            }
        ).eq("id", user_id).execute()
        logger.info("User %s banned by %s: %s", user_id, ctx.session.user_id, body.reason)
        return MessageResponse(message="User banned.")


@router.post("/users/{user_id}/unban", response_model=MessageResponse)
async def unban_user(user_id: str, ctx: SessionContext = Depends(require_dev)):
    with tracer.start_as_current_span("dev_unban_user"):
        await ctx.rest.table("users").update(
            {"is_banned": False, "banned_at": None, "ban_reason": None}
        ).eq("id", user_id).execute()
        logger.info("User %s unbanned by %s", user_id, ctx.session.user_id)
        return MessageResponse(message="User unbanned.")


@router.post("/users/{user_id}/sign-out", response_model=MessageResponse)
async def force_sign_out(user_id: str, ctx: SessionContext = Depends(require_dev)):
    with tracer.start_as_current_span("dev_force_sign_out"):
        await ctx.rest.rpc("force_sign_out_user", {"target_user_id": user_id})
        logger.info("Sessions of %s invalidated by %s", user_id, ctx.session.user_id)
        return MessageResponse(message="User signed out of all sessions.")


@router.delete("/users/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: str,
    confirm_username: str = Query(..., description="Must equal the user's username"),
    ctx: SessionContext = Depends(require_dev),
):
    with tracer.start_as_current_span("dev_delete_user"):
        user = await _get_user(ctx, user_id)
        if confirm_username != user.username:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Username mismatch. Deletion cancelled.",
            )
        await ctx.rest.rpc("delete_user_by_id", {"user_id_to_delete": user_id})
        logger.info("User %s (@%s) deleted by %s", user_id, user.username, ctx.session.user_id)
        return MessageResponse(message="User permanently deleted.")


@router.delete("/friendships/{friendship_id}", response_model=MessageResponse)
async def delete_friendship(friendship_id: int, ctx: SessionContext = Depends(require_dev)):
    await ctx.rest.table("friendships").delete().eq("id", friendship_id).execute()
    return MessageResponse(message="Friendship removed.")


@router.delete("/follows/{follow_id}", response_model=MessageResponse)
async def delete_follow(follow_id: int, ctx: SessionContext = Depends(require_dev)):
    await ctx.rest.table("follows").delete().eq("id", follow_id).execute()
    return MessageResponse(message="Follow removed.")


@router.post("/happenings", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def create_happening(body: HappeningCreate, ctx: SessionContext = Depends(require_dev)):
    await ctx.rest.table("happenings").insert(body.model_dump(mode="json")).execute()
    return MessageResponse(message="Happening created.")


@router.patch("/happenings/{happening_id}", response_model=MessageResponse)
async def update_happening(
    happening_id: int, body: HappeningUpdate, ctx: SessionContext = Depends(require_dev)
):
    changes = body.model_dump(mode="json", exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Nothing to update.")
    await ctx.rest.table("happenings").update(changes).eq("id", happening_id).execute()
    return MessageResponse(message="Happening updated.")


@router.delete("/happenings/{happening_id}", response_model=MessageResponse)
async def delete_happening(happening_id: int, ctx: SessionContext = Depends(require_dev)):
    await ctx.rest.table("happenings").delete().eq("id", happening_id).execute()
    return MessageResponse(message="Happening deleted.")
