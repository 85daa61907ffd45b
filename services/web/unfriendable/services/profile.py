"""
Profile view: load a user's page as seen by the viewer, and the relationship
actions performed from it.

Page load fans out concurrently after the username lookup:

  friendships   pair row (maybe single)            → friend / pending flags
  follows       head counts, both directions       → is_following / is_followed_by
  best_friends  head counts, both directions       → is_best_friend / is_best_friend_by
  hidden_users  head count                         → is_hidden
  happenings    20 newest where actor or target
  rpc           get_user_stats(target_user_id)     → friends/followers/following/hidden

Actions write their rows and the audit happening concurrently. Writes are
best-effort: every write is attempted, then the first failure is reported.
"""
import asyncio
import logging
from typing import Any, Awaitable, Optional

from fastapi import HTTPException, status

from unfriendable.clients.errors import BackendError
from unfriendable.clients.rest_client import RestClient, clause
from unfriendable.config import settings
from unfriendable.happenings import HAPPENING_SELECT, parse_happenings
from unfriendable.schemas import (
    ActionResponse,
    FriendshipStatus,
    FullUserProfile,
    HappeningType,
    ProfilePageResponse,
    ProfileUpdate,
    UserProfile,
    UserStats,
)
from unfriendable.services.relationships import (
    ACTION_HAPPENINGS,
    ACTION_MESSAGES,
    ACTION_PATCHES,
    BANNED_MESSAGE,
    BEST_FRIEND_PAIR,
    FOLLOW_PAIR,
    FRIENDSHIP_PAIR,
    Action,
    available_actions,
    derive_flags,
    pair_clauses,
)
from unfriendable.telemetry import RELATIONSHIP_ACTIONS_TOTAL

logger = logging.getLogger(__name__)

HIDE_LIMIT_MESSAGE = "You can only hide up to {limit} users."


async def get_user_by_username(rest: RestClient, username: str) -> UserProfile:
    result = await rest.table("users").select("*").eq("username", username).maybe_single().execute()
    if not result.data:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")
    return UserProfile.model_validate(result.data)


def _head(rest: RestClient, table: str, **filters: Any) -> Awaitable:
    query = rest.table(table).select("id", count="exact", head=True)
    for column, value in filters.items():
        query = query.eq(column, value)
    return query.execute()


def _stats_from_rpc(payload: Any) -> UserStats:
    # set-returning functions come back as a one-element list
    if isinstance(payload, list):
        payload = payload[0] if payload else {}
    return UserStats.model_validate(payload or {})


async def load_profile_page(
    rest: RestClient,
    viewer: UserProfile,
    username: str,
    *,
    record_view: bool = True,
) -> ProfilePageResponse:
    target = await get_user_by_username(rest, username)
    me, them = viewer.id, target.id

    try:
        (
            friendship,
            following,
            followed_by,
            best_friend,
            best_friend_by,
            hidden,
            happenings,
            stats,
        ) = await asyncio.gather(
            rest.table("friendships").select("*")
            .or_(*pair_clauses(FRIENDSHIP_PAIR, me, them)).maybe_single().execute(),
            _head(rest, "follows", follower_id=me, following_id=them),
            _head(rest, "follows", follower_id=them, following_id=me),
            _head(rest, "best_friends", user_id=me, best_friend_id=them),
            _head(rest, "best_friends", user_id=them, best_friend_id=me),
            _head(rest, "hidden_users", user_id=me, hidden_user_id=them),
            rest.table("happenings").select(HAPPENING_SELECT)
            .or_(clause("actor_id", "eq", them), clause("target_id", "eq", them))
            .order("created_at", desc=True)
            .limit(settings.profile_happenings_limit)
            .execute(),
            rest.rpc("get_user_stats", {"target_user_id": them}),
        )
    except BackendError as exc:
        raise BackendError(
            f"Failed to load profile: {exc.message}", exc.status_code, exc.code
        ) from exc

    flags = derive_flags(
        me,
        friendship.data,
        following=following.count or 0,
        followed_by=followed_by.count or 0,
        best_friend=best_friend.count or 0,
        best_friend_by=best_friend_by.count or 0,
        hidden=hidden.count or 0,
    )
    profile = FullUserProfile(**target.model_dump(), **flags.model_dump())
    is_self = me == them
    is_view_only_profile = target.username in settings.view_only_usernames

    if record_view and not is_self:
        try:
            await rest.table("happenings").insert(
                {
                    "actor_id": me,
                    "action_type": HappeningType.VIEWED_PROFILE.value,
                    "target_id": them,
                }
            ).execute()
        except BackendError as exc:
            logger.warning("Could not record profile view %s → %s: %s", me, them, exc)

    return ProfilePageResponse(
        profile=profile,
        stats=_stats_from_rpc(stats),
        happenings=parse_happenings(happenings.data),
        is_self=is_self,
        is_view_only_profile=is_view_only_profile,
        actions=available_actions(
            profile, is_self=is_self, is_view_only_profile=is_view_only_profile
        ),
    )


def _check_target(viewer: UserProfile, target: UserProfile) -> None:
    if viewer.id == target.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot perform this action on yourself.",
        )
    if target.username in settings.view_only_usernames:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Actions are disabled for view-only accounts.",
        )
    if target.is_banned:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=BANNED_MESSAGE)


def _writes(rest: RestClient, action: Action, me: str, them: str) -> list[Awaitable]:
    """Row writes for an action, excluding the audit happening."""
    if action is Action.ADD_FRIEND:
        return [
            rest.table("friendships").insert(
                {"user_id_1": me, "user_id_2": them, "status": FriendshipStatus.PENDING.value}
            ).execute()
        ]
    if action is Action.ACCEPT_FRIEND:
        # friends supersede follows in either direction
        return [
            rest.table("friendships").update({"status": FriendshipStatus.ACCEPTED.value})
            .or_(*pair_clauses(FRIENDSHIP_PAIR, me, them)).execute(),
            rest.table("follows").delete().or_(*pair_clauses(FOLLOW_PAIR, me, them)).execute(),
        ]
    if action is Action.REMOVE_FRIEND:
        return [
            rest.table("friendships").delete().or_(*pair_clauses(FRIENDSHIP_PAIR, me, them)).execute(),
            rest.table("best_friends").delete().or_(*pair_clauses(BEST_FRIEND_PAIR, me, them)).execute(),
        ]
    if action is Action.FOLLOW:
        return [rest.table("follows").insert({"follower_id": me, "following_id": them}).execute()]
    if action is Action.UNFOLLOW:
        return [
            rest.table("follows").delete().eq("follower_id", me).eq("following_id", them).execute()
        ]
    if action is Action.ADD_BEST_FRIEND:
        return [rest.table("best_friends").insert({"user_id": me, "best_friend_id": them}).execute()]
    if action is Action.REMOVE_BEST_FRIEND:
        return [
            rest.table("best_friends").delete().eq("user_id", me).eq("best_friend_id", them).execute()
        ]
    if action is Action.REVOKE_BEST_FRIEND_STATUS:
        return [
            rest.table("best_friends").delete().eq("user_id", them).eq("best_friend_id", me).execute()
        ]
    if action is Action.HIDE:
        return [rest.table("hidden_users").insert({"user_id": me, "hidden_user_id": them}).execute()]
    if action is Action.UNHIDE:
        return [
            rest.table("hidden_users").delete().eq("user_id", me).eq("hidden_user_id", them).execute()
        ]
    raise ValueError(f"Unknown action {action}")


async def perform_action(
    rest: RestClient,
    viewer: UserProfile,
    username: str,
    action: Action,
) -> ActionResponse:
    target = await get_user_by_username(rest, username)
    _check_target(viewer, target)
    me, them = viewer.id, target.id

    if action is Action.HIDE:
        hidden = await _head(rest, "hidden_users", user_id=me)
        if (hidden.count or 0) >= settings.hidden_users_max:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=HIDE_LIMIT_MESSAGE.format(limit=settings.hidden_users_max),
            )

    audit = rest.table("happenings").insert(
        {"actor_id": me, "action_type": ACTION_HAPPENINGS[action].value, "target_id": them}
    ).execute()
    results = await asyncio.gather(*_writes(rest, action, me, them), audit, return_exceptions=True)
    failures = [r for r in results if isinstance(r, BaseException)]
    if failures:
        logger.warning(
            "%s %s → %s: %d of %d writes failed", action.value, me, them, len(failures), len(results)
        )
        raise failures[0]

    RELATIONSHIP_ACTIONS_TOTAL.labels(action=action.value).inc()
    logger.info("%s %s → %s", action.value, me, them)
    return ActionResponse(
        message=ACTION_MESSAGES[action].format(name=target.display_name),
        patch=ACTION_PATCHES[action],
    )


async def list_friends(rest: RestClient, username: str) -> list[UserProfile]:
    target = await get_user_by_username(rest, username)
    result = await (
        rest.table("friendships")
        .select("user_1_profile:user_id_1(*), user_2_profile:user_id_2(*)")
        .or_(clause("user_id_1", "eq", target.id), clause("user_id_2", "eq", target.id))
        .eq("status", FriendshipStatus.ACCEPTED.value)
        .execute()
    )
    friends = []
    for row in result.data or []:
        first = row.get("user_1_profile") or {}
        other = row.get("user_2_profile") if first.get("id") == target.id else first
        if other:
            friends.append(UserProfile.model_validate(other))
    return friends


async def list_follows(rest: RestClient, username: str, *, followers: bool) -> list[UserProfile]:
    """followers=True → who follows the user; False → whom the user follows."""
    target = await get_user_by_username(rest, username)
    match_column, embed = (
        ("following_id", "profile:follower_id(*)")
        if followers
        else ("follower_id", "profile:following_id(*)")
    )
    result = await rest.table("follows").select(embed).eq(match_column, target.id).execute()
    return [
        UserProfile.model_validate(row["profile"])
        for row in result.data or []
        if row.get("profile")
    ]


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


async def update_profile(rest: RestClient, viewer: UserProfile, body: ProfileUpdate) -> UserProfile:
    display_name = body.display_name.strip()
    if not display_name:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Display name is required."
        )
    bio = body.bio or ""
    if len(bio) > settings.bio_max_length:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Bio cannot be longer than {settings.bio_max_length} characters.",
        )

    changes = {
        "display_name": display_name,
        "bio": bio,
        "avatar_url": _blank_to_none(body.avatar_url),
        "cover_image_url": _blank_to_none(body.cover_image_url),
    }
    await rest.table("users").update(changes).eq("id", viewer.id).execute()
    logger.info("Updated profile of %s", viewer.username)
    return viewer.model_copy(update=changes)
