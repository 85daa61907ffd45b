"""
Pydantic request / response schemas for the API layer.

Row shapes mirror the BaaS relations (users, friendships, follows,
best_friends, hidden_users, happenings); view models add the derived
relationship flags and the actions a client should offer.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


# ──────────────────────────── Enumerations ────────────────────────────────

class HappeningType(str, Enum):
    CREATED_ACCOUNT = "CREATED_ACCOUNT"
    SENT_FRIEND_REQUEST = "SENT_FRIEND_REQUEST"
    ACCEPTED_FRIEND_REQUEST = "ACCEPTED_FRIEND_REQUEST"
    REJECTED_FRIEND_REQUEST = "REJECTED_FRIEND_REQUEST"
    REMOVED_FRIEND = "REMOVED_FRIEND"
    SENT_BEST_FRIEND_REQUEST = "SENT_BEST_FRIEND_REQUEST"
    ADDED_BEST_FRIEND = "ADDED_BEST_FRIEND"
    REMOVED_BEST_FRIEND = "REMOVED_BEST_FRIEND"
    REJECTED_BEST_FRIEND_STATUS = "REJECTED_BEST_FRIEND_STATUS"
    FOLLOWED_USER = "FOLLOWED_USER"
    UNFOLLOWED_USER = "UNFOLLOWED_USER"
    HID_USER = "HID_USER"
    UNHID_USER = "UNHID_USER"
    VIEWED_PROFILE = "VIEWED_PROFILE"
    # legacy rows written before ADDED_BEST_FRIEND existed
    MADE_BEST_FRIEND = "MADE_BEST_FRIEND"


class FriendshipStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class FeedKind(str, Enum):
    PERSONAL = "personal"
    GLOBAL = "global"


class RelationshipFilter(str, Enum):
    ALL = "all"
    FRIENDS = "friends"
    BEST_FRIENDS = "best_friends"
    FOLLOWING = "following"


# ──────────────────────────── Users ───────────────────────────────────────

class UserProfile(BaseModel):
    id: str
    username: str
    display_name: str
    created_at: Optional[datetime] = None
    is_banned: bool = False
    banned_at: Optional[datetime] = None
    ban_reason: Optional[str] = None
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    cover_image_url: Optional[str] = None
    show_profile_views: bool = False
    last_sign_in_at: Optional[datetime] = None


class RelationshipFlags(BaseModel):
    is_friend: bool = False
    is_friend_pending_me: bool = False    # they asked me
    is_friend_pending_them: bool = False  # I asked them
    is_following: bool = False
    is_followed_by: bool = False
    is_best_friend: bool = False          # my edge toward them
    is_best_friend_by: bool = False       # their edge toward me
    is_hidden: bool = False


class FullUserProfile(UserProfile, RelationshipFlags):
    pass


class UserStats(BaseModel):
    friends: int = 0
    followers: int = 0
    following: int = 0
    hidden: int = 0


class ProfileUpdate(BaseModel):
    display_name: str = Field(..., min_length=1)
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    cover_image_url: Optional[str] = None


# ──────────────────────────── Happenings ──────────────────────────────────

class Happening(BaseModel):
    id: int
    actor_id: Optional[str] = None
    action_type: str
    target_id: Optional[str] = None
    created_at: datetime
    actor: Optional[UserProfile] = None
    target: Optional[UserProfile] = None
    description: str = ""


class HappeningCreate(BaseModel):
    actor_id: str
    action_type: HappeningType
    target_id: Optional[str] = None


class HappeningUpdate(BaseModel):
    actor_id: Optional[str] = None
    action_type: Optional[HappeningType] = None
    target_id: Optional[str] = None


# ──────────────────────────── Relations ───────────────────────────────────

class Friendship(BaseModel):
    id: int
    user_id_1: str
    user_id_2: str
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    user_1_profile: Optional[UserProfile] = None
    user_2_profile: Optional[UserProfile] = None


class Follow(BaseModel):
    id: int
    follower_id: str
    following_id: str
    created_at: Optional[datetime] = None
    follower: Optional[UserProfile] = None
    following: Optional[UserProfile] = None


class FriendRequest(BaseModel):
    id: int
    requester: UserProfile


# ──────────────────────────── Auth ────────────────────────────────────────

class LoginRequest(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class SignupRequest(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    username: str = Field(..., min_length=1)
    display_name: str = Field(..., min_length=1)


class ForgotPasswordRequest(BaseModel):
    email: str = Field(..., min_length=1)


class SessionResponse(BaseModel):
    user: dict[str, Any]
    profile: Optional[UserProfile] = None
    is_dev: bool = False
    is_view_only: bool = False


class LoginResponse(SessionResponse):
    session_token: str


class SignupResponse(BaseModel):
    status: str  # 'logged_in' | 'confirmation_required'
    message: str
    session_token: Optional[str] = None
    session: Optional[SessionResponse] = None


# ──────────────────────────── Views ───────────────────────────────────────

class ProfileActions(BaseModel):
    friendship: Optional[str] = None    # 'add' | 'accept' | 'pending' | 'unfriend'
    follow: Optional[str] = None        # 'follow' | 'unfollow'
    best_friend: Optional[str] = None   # 'add' | 'remove'
    hide: Optional[str] = None          # 'hide' | 'unhide'
    can_revoke_best_friend_status: bool = False
    disabled_reason: Optional[str] = None


class ProfilePageResponse(BaseModel):
    profile: FullUserProfile
    stats: UserStats
    happenings: list[Happening]
    is_self: bool
    is_view_only_profile: bool
    actions: ProfileActions


class ActionResponse(BaseModel):
    message: str
    patch: dict[str, bool] = {}


class MessageResponse(BaseModel):
    message: str


class FeedResponse(BaseModel):
    feed: FeedKind
    happenings: list[Happening]
    latency_ms: float


class CountResponse(BaseModel):
    count: int


class FilterOption(BaseModel):
    value: str
    label: str


class FeedFilters(BaseModel):
    action_types: list[FilterOption]
    relationships: list[FilterOption]


# ──────────────────────────── Dev panel ───────────────────────────────────

class PlatformStats(BaseModel):
    total_users: int = 0
    new_users_today: int = 0
    total_happenings: int = 0
    total_unfriends: int = 0


class UserDetails(BaseModel):
    user: UserProfile
    friendships: list[Friendship]
    followers: list[Follow]
    following: list[Follow]
    happenings: list[Happening]


class BanRequest(BaseModel):
    reason: str = ""
