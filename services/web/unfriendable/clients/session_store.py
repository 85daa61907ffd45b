"""
Session persistence.

The BaaS session (access/refresh tokens, expiry, auth user) is kept
server-side under an opaque session id; the caller only ever sees the id,
sent back as `Authorization: Bearer <id>` (or `?token=<id>` on websockets).

  Redis     — STRING keyed by {session_key_prefix}{session_id}, JSON value, TTL
  In-memory — dict, for local development and tests (no REDIS_URL)
"""
import json
import logging
import secrets
import time
from typing import Optional, Protocol

import redis.asyncio as aioredis

from unfriendable.clients.auth_client import AuthSession
from unfriendable.config import settings

logger = logging.getLogger(__name__)


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


class SessionStore(Protocol):
    async def save(self, session_id: str, session: AuthSession) -> None: ...

    async def get(self, session_id: str) -> Optional[AuthSession]: ...

    async def delete(self, session_id: str) -> None: ...


class InMemorySessionStore:
    def __init__(self, ttl: Optional[int] = None) -> None:
        self.ttl = ttl or settings.session_ttl
        self._sessions: dict[str, tuple[float, AuthSession]] = {}

    async def save(self, session_id: str, session: AuthSession) -> None:
        now = time.time()
        for stale in [sid for sid, (expires, _) in self._sessions.items() if now >= expires]:
            del self._sessions[stale]
        self._sessions[session_id] = (now + self.ttl, session)

    async def get(self, session_id: str) -> Optional[AuthSession]:
        entry = self._sessions.get(session_id)
        if entry is None:
            return None
        expires, session = entry
        if time.time() >= expires:
            self._sessions.pop(session_id, None)
            return None
        return session

    async def delete(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)


class RedisSessionStore:
    def __init__(self, redis_url: str, ttl: Optional[int] = None) -> None:
        self.ttl = ttl or settings.session_ttl
        self._redis = aioredis.Redis.from_url(redis_url, decode_responses=True)

    def _key(self, session_id: str) -> str:
        return f"{settings.session_key_prefix}{session_id}"

    async def ping(self) -> None:
        await self._redis.ping()
        logger.info("Session store connected to Redis")

    async def close(self) -> None:
        await self._redis.aclose()

    async def save(self, session_id: str, session: AuthSession) -> None:
        await self._redis.set(
            self._key(session_id), json.dumps(session.as_dict()), ex=self.ttl
        )

    async def get(self, session_id: str) -> Optional[AuthSession]:
        raw = await self._redis.get(self._key(session_id))
        if not raw:
            return None
        return AuthSession(**json.loads(raw))

    async def delete(self, session_id: str) -> None:
        await self._redis.delete(self._key(session_id))
