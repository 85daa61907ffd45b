"""
Happening rows → one-line sentences, plus the filter labels offered by the
home feed.
"""
from typing import Any, Iterable

from unfriendable.schemas import FilterOption, Happening, HappeningType

# actor/target embeds used by every view that lists happenings
HAPPENING_SELECT = "*, actor:actor_id(*), target:target_id(*)"

_SENTENCES = {
    HappeningType.CREATED_ACCOUNT: "{actor} created an account.",
    HappeningType.SENT_FRIEND_REQUEST: "{actor} sent a friend request to {target}.",
    HappeningType.ACCEPTED_FRIEND_REQUEST: "{actor} accepted a friend request from {target}.",
    HappeningType.REJECTED_FRIEND_REQUEST: "{actor} rejected a friend request from {target}.",
    HappeningType.REMOVED_FRIEND: "{actor} removed {target} as a friend.",
    HappeningType.ADDED_BEST_FRIEND: "{actor} made {target} a best friend.",
    HappeningType.MADE_BEST_FRIEND: "{actor} made {target} a best friend.",
    HappeningType.REMOVED_BEST_FRIEND: "{actor} removed {target} as a best friend.",
    HappeningType.REJECTED_BEST_FRIEND_STATUS: '{actor} rejected {target}\'s "best friend" status.',
    HappeningType.FOLLOWED_USER: "{actor} started following {target}.",
    HappeningType.UNFOLLOWED_USER: "{actor} unfollowed {target}.",
    HappeningType.HID_USER: "{actor} hid {target} from their feed.",
    HappeningType.UNHID_USER: "{actor} unhid {target}.",
    HappeningType.VIEWED_PROFILE: "{actor} viewed the profile of {target}.",
}

_LABELS = {
    HappeningType.CREATED_ACCOUNT: "Account Creations",
    HappeningType.SENT_FRIEND_REQUEST: "Friend Requests Sent",
    HappeningType.ACCEPTED_FRIEND_REQUEST: "Friend Requests Accepted",
    HappeningType.REJECTED_FRIEND_REQUEST: "Friend Requests Rejected",
    HappeningType.REMOVED_FRIEND: "Friends Removed",
    HappeningType.SENT_BEST_FRIEND_REQUEST: "Best Friend Requests Sent",
    HappeningType.ADDED_BEST_FRIEND: "Best Friends Added",
    HappeningType.REMOVED_BEST_FRIEND: "Best Friends Removed",
    HappeningType.REJECTED_BEST_FRIEND_STATUS: "Best Friend Rejections",
    HappeningType.FOLLOWED_USER: "Follows",
    HappeningType.UNFOLLOWED_USER: "Unfollows",
    HappeningType.HID_USER: "Users Hidden",
    HappeningType.UNHID_USER: "Users Unhidden",
    HappeningType.VIEWED_PROFILE: "Profile Views",
}


def describe(happening: Happening) -> str:
    actor = happening.actor.display_name if happening.actor else "Someone"
    target = happening.target.display_name if happening.target else "someone"
    # str-valued enum members hash like their values
    template = _SENTENCES.get(happening.action_type)
    if template is None:
        return f"{actor} did something."
    return template.format(actor=actor, target=target)


def parse_happenings(rows: Iterable[dict[str, Any]]) -> list[Happening]:
    happenings = []
    for row in rows or []:
        happening = Happening.model_validate(row)
        happening.description = describe(happening)
        happenings.append(happening)
    return happenings


def action_type_options() -> list[FilterOption]:
    options = [FilterOption(value="all", label="All Actions")]
    options += [FilterOption(value=t.value, label=label) for t, label in _LABELS.items()]
    return options
