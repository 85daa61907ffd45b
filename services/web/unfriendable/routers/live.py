"""
Live views: WebSocket reconciliation channels.

  WS /live/profile/{username}?token=…   → {"type": "profile", "data": ProfilePageResponse}
  WS /live/feed?token=…&feed=…          → {"type": "feed", "data": {...}}
  WS /live/unfriend-count?token=…       → {"type": "unfriend_count", "data": {"count": n}}

Each connection opens its own realtime broker subscription. Change
notifications are not merged: every burst schedules one debounced refetch
of the whole snapshot, which is pushed to the socket. Sending the text
"refresh" forces a refetch. Failures are pushed as {"type": "error", ...}.

Sockets outlive access tokens: every refetch re-checks the session, and a
refreshed token is also handed to the broker. If the broker drops the
connection the client gets an error and the socket is closed (1011).
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder

from unfriendable.clients.baas import BaasClient
from unfriendable.clients.errors import BackendError
from unfriendable.clients.realtime_client import Channel, RealtimeClient
from unfriendable.clients.session_store import SessionStore
from unfriendable.config import settings
from unfriendable.debounce import Debouncer
from unfriendable.dependencies import SessionContext, get_baas, get_session_store, resolve_session
from unfriendable.schemas import FeedKind, HappeningType, RelationshipFilter
from unfriendable.services import feed as feed_service
from unfriendable.services import profile as profile_service

logger = logging.getLogger(__name__)
router = APIRouter()

REALTIME_FAILED_MESSAGE = "Real-time connection failed."

# table → columns that reference the profile's user id
PROFILE_BINDINGS = {
    "happenings": ("actor_id", "target_id"),
    "friendships": ("user_id_1", "user_id_2"),
    "follows": ("follower_id", "following_id"),
    "best_friends": ("user_id", "best_friend_id"),
}


class LiveSession:
    """The caller's context for the lifetime of one socket."""

    def __init__(
        self, session_id: str, store: SessionStore, baas: BaasClient, ctx: SessionContext
    ) -> None:
        self.session_id = session_id
        self.store = store
        self.baas = baas
        self.ctx = ctx
        self.realtime: Optional[RealtimeClient] = None

    def open_realtime(self) -> RealtimeClient:
        self.realtime = self.baas.realtime(self.ctx.session.access_token)
        return self.realtime

    async def current(self) -> SessionContext:
        if not self.ctx.session.expired:
            return self.ctx

        previous_token = self.ctx.session.access_token
        self.ctx = await resolve_session(self.session_id, self.store, self.baas)
        token = self.ctx.session.access_token
        if self.realtime is not None and token != previous_token:
            try:
                await self.realtime.set_auth(token)
            except BackendError as exc:
                logger.warning("Could not pass refreshed token to the broker: %s", exc)
        return self.ctx


async def _authenticate(
    websocket: WebSocket, token: str, store: SessionStore, baas: BaasClient
) -> Optional[LiveSession]:
    try:
        ctx = await resolve_session(token, store, baas)
    except HTTPException as exc:
        await websocket.close(code=4401, reason=str(exc.detail))
        return None
    except BackendError as exc:
        await websocket.close(code=1011, reason=exc.message)
        return None
    if ctx.profile is None:
        await websocket.close(code=4403, reason="Profile not found for this account.")
        return None
    return LiveSession(token, store, baas, ctx)


def _snapshot_sender(
    websocket: WebSocket,
    kind: str,
    live: LiveSession,
    load: Callable[[SessionContext], Awaitable[Any]],
) -> Callable[[], Awaitable[None]]:
    async def send_snapshot() -> None:
        try:
            ctx = await live.current()
            data = await load(ctx)
        except (BackendError, HTTPException) as exc:
            message = exc.message if isinstance(exc, BackendError) else exc.detail
            await websocket.send_json({"type": "error", "message": message})
            return
        await websocket.send_json({"type": kind, "data": jsonable_encoder(data)})

    return send_snapshot


async def _read_commands(websocket: WebSocket, debouncer: Debouncer) -> None:
    while True:
        text = await websocket.receive_text()
        if text.strip() == "refresh":
            debouncer.trigger()


async def _relay(
    websocket: WebSocket,
    realtime: RealtimeClient,
    channels: list[Channel],
    debouncer: Debouncer,
) -> None:
    """Subscribe, then serve the socket until the client or the broker goes away."""
    subscribed = True
    try:
        for channel in channels:
            await channel.subscribe()
    except BackendError as exc:
        subscribed = False
        logger.warning("Live subscription failed: %s", exc)
        await websocket.send_json({"type": "error", "message": REALTIME_FAILED_MESSAGE})

    commands = asyncio.create_task(_read_commands(websocket, debouncer))
    broker = asyncio.create_task(realtime.wait_closed()) if subscribed else None
    watched = {commands} if broker is None else {commands, broker}
    try:
        done, _ = await asyncio.wait(watched, return_when=asyncio.FIRST_COMPLETED)
        if commands in done:
            commands.result()
        else:
            logger.warning("Realtime broker dropped the live connection")
            await websocket.send_json({"type": "error", "message": REALTIME_FAILED_MESSAGE})
            await websocket.close(code=1011)
    except WebSocketDisconnect:
        logger.debug("Live client disconnected")
    finally:
        for task in (commands, broker):
            if task is not None:
                task.cancel()
        debouncer.cancel()
        for channel in channels:
            await channel.unsubscribe()
        await realtime.close()


@router.websocket("/profile/{username}")
async def live_profile(
    websocket: WebSocket,
    username: str,
    token: str = Query(...),
    baas: BaasClient = Depends(get_baas),
    store: SessionStore = Depends(get_session_store),
):
    await websocket.accept()
    live = await _authenticate(websocket, token, store, baas)
    if live is None:
        return

    try:
        target = await profile_service.get_user_by_username(live.ctx.rest, username)
    except HTTPException as exc:
        await websocket.close(code=4404, reason=str(exc.detail))
        return

    send_snapshot = _snapshot_sender(
        websocket,
        "profile",
        live,
        lambda ctx: profile_service.load_profile_page(
            ctx.rest, ctx.viewer, username, record_view=False
        ),
    )
    debouncer = Debouncer(settings.realtime_debounce_seconds, send_snapshot)

    def notify(change: dict[str, Any]) -> None:
        debouncer.trigger()

    realtime = live.open_realtime()
    channel = realtime.channel(f"profile-page-{target.id}")
    channel.on_postgres_changes("UPDATE", "users", notify, filter=f"id=eq.{target.id}")
    # one binding per column: broker filters take a single condition
    for table, columns in PROFILE_BINDINGS.items():
        for column in columns:
            channel.on_postgres_changes("*", table, notify, filter=f"{column}=eq.{target.id}")

    await _relay(websocket, realtime, [channel], debouncer)


@router.websocket("/feed")
async def live_feed(
    websocket: WebSocket,
    token: str = Query(...),
    feed: FeedKind = Query(FeedKind.PERSONAL),
    action_type: str = Query("all"),
    relationship: RelationshipFilter = Query(RelationshipFilter.ALL),
    baas: BaasClient = Depends(get_baas),
    store: SessionStore = Depends(get_session_store),
):
    await websocket.accept()
    live = await _authenticate(websocket, token, store, baas)
    if live is None:
        return

    async def load_home(ctx: SessionContext) -> dict[str, Any]:
        happenings = await feed_service.load_feed(
            ctx.rest, ctx.viewer, feed=feed, action_type=action_type, relationship=relationship
        )
        requests = await feed_service.pending_requests(ctx.rest, ctx.viewer)
        return {"happenings": happenings, "friend_requests": requests}

    debouncer = Debouncer(
        settings.realtime_debounce_seconds, _snapshot_sender(websocket, "feed", live, load_home)
    )

    def notify(change: dict[str, Any]) -> None:
        debouncer.trigger()

    realtime = live.open_realtime()
    happenings_channel = realtime.channel("public:happenings").on_postgres_changes(
        "*", "happenings", notify
    )
    friendships_channel = realtime.channel("public:friendships").on_postgres_changes(
        "*", "friendships", notify
    )
    await _relay(websocket, realtime, [happenings_channel, friendships_channel], debouncer)


@router.websocket("/unfriend-count")
async def live_unfriend_count(
    websocket: WebSocket,
    token: str = Query(...),
    baas: BaasClient = Depends(get_baas),
    store: SessionStore = Depends(get_session_store),
):
    await websocket.accept()
    live = await _authenticate(websocket, token, store, baas)
    if live is None:
        return

    async def load_count(ctx: SessionContext) -> dict[str, int]:
        return {"count": await feed_service.unfriend_count(ctx.rest)}

    debouncer = Debouncer(
        settings.realtime_debounce_seconds,
        _snapshot_sender(websocket, "unfriend_count", live, load_count),
    )
    realtime = live.open_realtime()
    channel = realtime.channel("public:happenings:unfriend-counter").on_postgres_changes(
        "*",
        "happenings",
        lambda change: debouncer.trigger(),
        filter=f"action_type=eq.{HappeningType.REMOVED_FRIEND.value}",
    )
    await _relay(websocket, realtime, [channel], debouncer)
