"""
Home view data: the happenings feed, pending friend requests addressed to
the viewer, and the global unfriend counter.

Feed query shape (newest first, limit 50):

  global    — every happening, minus actors the viewer hid
  personal  — actor ∈ relevant ids  OR  target = viewer
              relevant ids = friends ∪ following ∪ {viewer} (relationship=all)
                           | friends | best friends | following
              minus hidden ids; none left → only rows targeting the viewer

VIEWED_PROFILE rows appear only for viewers who opted into profile views.
"""
import asyncio
import logging
from typing import Optional

from fastapi import HTTPException, status

from unfriendable.clients.errors import BackendError
from unfriendable.clients.rest_client import RestClient, clause
from unfriendable.config import settings
from unfriendable.happenings import HAPPENING_SELECT, parse_happenings
from unfriendable.schemas import (
    FeedKind,
    FriendRequest,
    FriendshipStatus,
    Happening,
    HappeningType,
    RelationshipFilter,
    UserProfile,
)

logger = logging.getLogger(__name__)


async def _relationship_ids(rest: RestClient, viewer_id: str) -> dict[str, list[str]]:
    try:
        friendships, following, best_friends, hidden = await asyncio.gather(
            rest.table("friendships").select("user_id_1, user_id_2")
            .or_(clause("user_id_1", "eq", viewer_id), clause("user_id_2", "eq", viewer_id))
            .eq("status", FriendshipStatus.ACCEPTED.value)
            .execute(),
            rest.table("follows").select("following_id").eq("follower_id", viewer_id).execute(),
            rest.table("best_friends").select("best_friend_id").eq("user_id", viewer_id).execute(),
            rest.table("hidden_users").select("hidden_user_id").eq("user_id", viewer_id).execute(),
        )
    except BackendError as exc:
        logger.warning("Relationship lookup for %s failed: %s", viewer_id, exc)
        raise BackendError(
            "Failed to fetch user relationships.", exc.status_code, exc.code
        ) from exc

    friends = [
        row["user_id_2"] if row["user_id_1"] == viewer_id else row["user_id_1"]
        for row in friendships.data or []
    ]
    return {
        "friends": friends,
        "following": [row["following_id"] for row in following.data or []],
        "best_friends": [row["best_friend_id"] for row in best_friends.data or []],
        "hidden": [row["hidden_user_id"] for row in hidden.data or []],
    }


async def _hidden_ids(rest: RestClient, viewer_id: str) -> list[str]:
    result = await (
        rest.table("hidden_users").select("hidden_user_id").eq("user_id", viewer_id).execute()
    )
    return [row["hidden_user_id"] for row in result.data or []]


def relevant_ids(
    viewer_id: str,
    relations: dict[str, list[str]],
    relationship: RelationshipFilter,
) -> list[str]:
    if relationship is RelationshipFilter.FRIENDS:
        ids = relations["friends"]
    elif relationship is RelationshipFilter.BEST_FRIENDS:
        ids = relations["best_friends"]
    elif relationship is RelationshipFilter.FOLLOWING:
        ids = relations["following"]
    else:
        ids = relations["friends"] + relations["following"] + [viewer_id]
    hidden = set(relations["hidden"])
    # order-preserving dedupe
    return [i for i in dict.fromkeys(ids) if i not in hidden]


async def load_feed(
    rest: RestClient,
    viewer: UserProfile,
    *,
    feed: FeedKind = FeedKind.PERSONAL,
    action_type: Optional[str] = None,
    relationship: RelationshipFilter = RelationshipFilter.ALL,
) -> list[Happening]:
    query = rest.table("happenings").select(HAPPENING_SELECT)

    if not viewer.show_profile_views:
        query = query.not_("action_type", "eq", HappeningType.VIEWED_PROFILE.value)
    if action_type and action_type != "all":
        query = query.eq("action_type", action_type)

    if feed is FeedKind.GLOBAL:
        hidden = await _hidden_ids(rest, viewer.id)
        if hidden:
            query = query.not_("actor_id", "in", hidden)
    else:
        relations = await _relationship_ids(rest, viewer.id)
        ids = relevant_ids(viewer.id, relations, relationship)
        if ids:
            query = query.or_(clause("actor_id", "in", ids), clause("target_id", "eq", viewer.id))
        else:
            query = query.eq("target_id", viewer.id)

    result = await query.order("created_at", desc=True).limit(settings.feed_limit).execute()
    return parse_happenings(result.data)


async def pending_requests(rest: RestClient, viewer: UserProfile) -> list[FriendRequest]:
    result = await (
        rest.table("friendships")
        .select("id, requester:user_id_1(*)")
        .eq("user_id_2", viewer.id)
        .eq("status", FriendshipStatus.PENDING.value)
        .execute()
    )
    return [
        FriendRequest.model_validate(row) for row in result.data or [] if row.get("requester")
    ]


async def respond_to_request(
    rest: RestClient,
    viewer: UserProfile,
    request_id: int,
    *,
    accept: bool,
) -> str:
    """Accept or reject a pending request addressed to the viewer. Returns the requester id."""
    found = await (
        rest.table("friendships")
        .select("id, user_id_1")
        .eq("id", request_id)
        .eq("user_id_2", viewer.id)
        .eq("status", FriendshipStatus.PENDING.value)
        .maybe_single()
        .execute()
    )
    if not found.data:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Friend request not found.")
    requester_id = found.data["user_id_1"]

    new_status = FriendshipStatus.ACCEPTED if accept else FriendshipStatus.REJECTED
    await rest.table("friendships").update({"status": new_status.value}).eq("id", request_id).execute()

    happening = (
        HappeningType.ACCEPTED_FRIEND_REQUEST if accept else HappeningType.REJECTED_FRIEND_REQUEST
    )
    try:
        await rest.table("happenings").insert(
            {"actor_id": viewer.id, "action_type": happening.value, "target_id": requester_id}
        ).execute()
    except BackendError as exc:
        logger.warning("Could not record %s for request %s: %s", happening.value, request_id, exc)

    logger.info("%s friend request %s", new_status.value, request_id)
    return requester_id


async def unfriend_count(rest: RestClient) -> int:
    result = await (
        rest.table("happenings")
        .select("id", count="exact", head=True)
        .eq("action_type", HappeningType.REMOVED_FRIEND.value)
        .execute()
    )
    return result.count or 0
