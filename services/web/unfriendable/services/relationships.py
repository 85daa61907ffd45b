"""
Relationship flags between a viewer and another user, and the actions the
profile view offers on top of them.

Flags are derived purely from presence/absence of rows:

  friendships   one row per unordered pair (user_id_1 = requester), status
                pending | accepted | rejected
  follows       follower_id → following_id
  best_friends  user_id → best_friend_id   (layered on a friendship)
  hidden_users  user_id → hidden_user_id   (feed suppression)
"""
from enum import Enum
from typing import Any, Optional

from unfriendable.clients.rest_client import and_all, clause
from unfriendable.schemas import (
    FriendshipStatus,
    FullUserProfile,
    HappeningType,
    ProfileActions,
    RelationshipFlags,
)

FRIENDSHIP_PAIR = ("user_id_1", "user_id_2")
FOLLOW_PAIR = ("follower_id", "following_id")
BEST_FRIEND_PAIR = ("user_id", "best_friend_id")
HIDDEN_PAIR = ("user_id", "hidden_user_id")

BANNED_MESSAGE = "Actions are disabled for banned users."
VIEW_ONLY_PROFILE_MESSAGE = "This is a view-only profile."


class Action(str, Enum):
    ADD_FRIEND = "add_friend"
    ACCEPT_FRIEND = "accept_friend"
    REMOVE_FRIEND = "remove_friend"
    FOLLOW = "follow"
    UNFOLLOW = "unfollow"
    ADD_BEST_FRIEND = "add_best_friend"
    REMOVE_BEST_FRIEND = "remove_best_friend"
    REVOKE_BEST_FRIEND_STATUS = "revoke_best_friend_status"
    HIDE = "hide"
    UNHIDE = "unhide"


# Optimistic flag delta a client applies while the writes are in flight.
ACTION_PATCHES: dict[Action, dict[str, bool]] = {
    Action.ADD_FRIEND: {"is_friend_pending_them": True},
    Action.ACCEPT_FRIEND: {
        "is_friend": True,
        "is_friend_pending_me": False,
        "is_following": False,
        "is_followed_by": False,
    },
    Action.REMOVE_FRIEND: {
        "is_friend": False,
        "is_best_friend": False,
        "is_best_friend_by": False,
    },
    Action.FOLLOW: {"is_following": True},
    Action.UNFOLLOW: {"is_following": False},
    Action.ADD_BEST_FRIEND: {"is_best_friend": True},
    Action.REMOVE_BEST_FRIEND: {"is_best_friend": False},
    Action.REVOKE_BEST_FRIEND_STATUS: {"is_best_friend_by": False},
    Action.HIDE: {"is_hidden": True},
    Action.UNHIDE: {"is_hidden": False},
}

ACTION_HAPPENINGS: dict[Action, HappeningType] = {
    Action.ADD_FRIEND: HappeningType.SENT_FRIEND_REQUEST,
    Action.ACCEPT_FRIEND: HappeningType.ACCEPTED_FRIEND_REQUEST,
    Action.REMOVE_FRIEND: HappeningType.REMOVED_FRIEND,
    Action.FOLLOW: HappeningType.FOLLOWED_USER,
    Action.UNFOLLOW: HappeningType.UNFOLLOWED_USER,
    Action.ADD_BEST_FRIEND: HappeningType.ADDED_BEST_FRIEND,
    Action.REMOVE_BEST_FRIEND: HappeningType.REMOVED_BEST_FRIEND,
    Action.REVOKE_BEST_FRIEND_STATUS: HappeningType.REJECTED_BEST_FRIEND_STATUS,
    Action.HIDE: HappeningType.HID_USER,
    Action.UNHIDE: HappeningType.UNHID_USER,
}

ACTION_MESSAGES: dict[Action, str] = {
    Action.ADD_FRIEND: "Friend request sent!",
    Action.ACCEPT_FRIEND: "Friend request accepted!",
    Action.REMOVE_FRIEND: "Friend removed.",
    Action.FOLLOW: "Now following {name}",
    Action.UNFOLLOW: "Unfollowed {name}",
    Action.ADD_BEST_FRIEND: "{name} is now a best friend!",
    Action.REMOVE_BEST_FRIEND: "Removed {name} from best friends.",
    Action.REVOKE_BEST_FRIEND_STATUS: "Rejected best friend status from {name}.",
    Action.HIDE: "Hid {name}.",
    Action.UNHIDE: "Unhid {name}.",
}


def pair_clauses(columns: tuple[str, str], a: str, b: str) -> tuple[str, str]:
    """
    Both orientations of an unordered pair, for `or_()`:
      and(user_id_1.eq.A,user_id_2.eq.B), and(user_id_1.eq.B,user_id_2.eq.A)
    """
    left, right = columns
    return (
        and_all(clause(left, "eq", a), clause(right, "eq", b)),
        and_all(clause(left, "eq", b), clause(right, "eq", a)),
    )


def derive_flags(
    viewer_id: str,
    friendship: Optional[dict[str, Any]],
    *,
    following: int = 0,
    followed_by: int = 0,
    best_friend: int = 0,
    best_friend_by: int = 0,
    hidden: int = 0,
) -> RelationshipFlags:
    """Flags from the pair's friendship row (or None) and the presence counts."""
    friendship_status = friendship.get("status") if friendship else None
    pending = friendship_status == FriendshipStatus.PENDING.value
    return RelationshipFlags(
        is_friend=friendship_status == FriendshipStatus.ACCEPTED.value,
        is_friend_pending_me=pending and friendship.get("user_id_2") == viewer_id,
        is_friend_pending_them=pending and friendship.get("user_id_1") == viewer_id,
        is_following=bool(following),
        is_followed_by=bool(followed_by),
        is_best_friend=bool(best_friend),
        is_best_friend_by=bool(best_friend_by),
        is_hidden=bool(hidden),
    )


def available_actions(
    profile: FullUserProfile,
    *,
    is_self: bool,
    is_view_only_profile: bool,
) -> ProfileActions:
    if is_self:
        return ProfileActions()
    if is_view_only_profile:
        return ProfileActions(disabled_reason=VIEW_ONLY_PROFILE_MESSAGE)
    if profile.is_banned:
        return ProfileActions(disabled_reason=BANNED_MESSAGE)

    if profile.is_friend:
        friendship = "unfriend"
    elif profile.is_friend_pending_me:
        friendship = "accept"
    elif profile.is_friend_pending_them:
        friendship = "pending"
    else:
        friendship = "add"

    # Following is only offered while there is no friendship state at all.
    follow = None
    if friendship == "add":
        follow = "unfollow" if profile.is_following else "follow"

    best_friend = None
    if profile.is_friend:
        best_friend = "remove" if profile.is_best_friend else "add"

    return ProfileActions(
        friendship=friendship,
        follow=follow,
        best_friend=best_friend,
        hide="unhide" if profile.is_hidden else "hide",
        can_revoke_best_friend_status=profile.is_best_friend_by,
    )