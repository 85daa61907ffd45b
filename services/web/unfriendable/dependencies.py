"""
Request-scoped dependencies: the shared BaaS client, the session store and
the signed-in user's context.

A SessionContext carries everything a view needs about the caller: the BaaS
session (tokens), the auth user, the `users` row, the derived roles, and a
RestClient that acts with the caller's token so row-level security applies.
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from unfriendable.clients.auth_client import AuthSession
from unfriendable.clients.baas import BaasClient, baas_client
from unfriendable.clients.errors import AuthError
from unfriendable.clients.rest_client import RestClient
from unfriendable.clients.session_store import (
    InMemorySessionStore,
    RedisSessionStore,
    SessionStore,
)
from unfriendable.config import settings
from unfriendable.schemas import SessionResponse, UserProfile

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

VIEW_ONLY_MESSAGE = "View-only accounts cannot perform actions."

_session_store: Optional[SessionStore] = None


def get_baas() -> BaasClient:
    return baas_client


def get_session_store() -> SessionStore:
    global _session_store
    if _session_store is None:
        if settings.redis_url:
            _session_store = RedisSessionStore(settings.redis_url)
        else:
            logger.info("REDIS_URL not set, sessions are kept in memory")
            _session_store = InMemorySessionStore()
    return _session_store


async def init_session_store() -> None:
    store = get_session_store()
    if isinstance(store, RedisSessionStore):
        await store.ping()


async def close_session_store() -> None:
    global _session_store
    if isinstance(_session_store, RedisSessionStore):
        await _session_store.close()
    _session_store = None


def compute_roles(user: dict[str, Any], profile: Optional[UserProfile]) -> tuple[bool, bool]:
    """Return (is_dev, is_view_only) for an auth user and their profile row."""
    username = profile.username if profile else None
    is_dev = username in settings.dev_usernames or user.get("email") in settings.dev_emails
    is_view_only = username in settings.view_only_usernames
    return is_dev, is_view_only


@dataclass
class SessionContext:
    session_id: str
    session: AuthSession
    profile: Optional[UserProfile]
    is_dev: bool
    is_view_only: bool
    rest: RestClient

    @property
    def user(self) -> dict[str, Any]:
        return self.session.user

    @property
    def viewer(self) -> UserProfile:
        """The caller's users row; routes reach it through require_profile."""
        if self.profile is None:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Profile not found for this account.",
            )
        return self.profile

    def as_response(self) -> SessionResponse:
        return SessionResponse(
            user=self.user,
            profile=self.profile,
            is_dev=self.is_dev,
            is_view_only=self.is_view_only,
        )


async def load_own_profile(rest: RestClient, user_id: str) -> Optional[UserProfile]:
    result = await rest.table("users").select("*").eq("id", user_id).maybe_single().execute()
    return UserProfile.model_validate(result.data) if result.data else None


async def build_context(session_id: str, session: AuthSession, baas: BaasClient) -> SessionContext:
    rest = baas.rest(session.access_token)
    profile = await load_own_profile(rest, session.user_id)
    is_dev, is_view_only = compute_roles(session.user, profile)
    return SessionContext(
        session_id=session_id,
        session=session,
        profile=profile,
        is_dev=is_dev,
        is_view_only=is_view_only,
        rest=rest,
    )


async def resolve_session(session_id: str, store: SessionStore, baas: BaasClient) -> SessionContext:
    """
    Look up a session id, refreshing the access token when it has expired.
    Shared by HTTP routes (bearer header) and live views (?token=).
    """
    session = await store.get(session_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session expired or unknown. Please log in again.",
        )

    if session.expired:
        try:
            session = await baas.auth.refresh_session(session.refresh_token)
        except AuthError as exc:
            logger.info("Session refresh failed, signing out: %s", exc)
            await store.delete(session_id)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Session expired or unknown. Please log in again.",
            ) from exc
        await store.save(session_id, session)

    return await build_context(session_id, session, baas)


async def get_current_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    store: SessionStore = Depends(get_session_store),
    baas: BaasClient = Depends(get_baas),
) -> SessionContext:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return await resolve_session(credentials.credentials, store, baas)


async def require_profile(ctx: SessionContext = Depends(get_current_session)) -> SessionContext:
    if ctx.profile is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Profile not found for this account.",
        )
    return ctx


async def require_actor(ctx: SessionContext = Depends(require_profile)) -> SessionContext:
    if ctx.is_view_only:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=VIEW_ONLY_MESSAGE)
    return ctx


async def require_dev(ctx: SessionContext = Depends(get_current_session)) -> SessionContext:
    if not ctx.is_dev:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Developer access required."
        )
    return ctx
