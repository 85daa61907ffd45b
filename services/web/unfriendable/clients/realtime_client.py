"""
Realtime broker client (Phoenix channels over a websocket).

Wire format (vsn 1.0.0, JSON objects):

  → {"topic": "realtime:profile-page-42", "event": "phx_join", "ref": "1",
     "payload": {"config": {"postgres_changes": [{"event": "*", "schema": "public",
                                                  "table": "follows",
                                                  "filter": "following_id=eq.42"}]},
                 "access_token": "…"}}
  ← {"topic": "realtime:profile-page-42", "event": "phx_reply", "ref": "1",
     "payload": {"status": "ok", "response": {"postgres_changes": [{"id": 9, …}]}}}
  ← {"topic": "realtime:profile-page-42", "event": "postgres_changes", "ref": null,
     "payload": {"ids": [9], "data": {"type": "INSERT", "table": "follows",
                                      "record": {…}, "old_record": {…}}}}

A heartbeat on the "phoenix" topic keeps the socket open. Notifications are
delivered to the callbacks of the matching bindings from the reader task;
`wait_closed()` returns once that task stops. A refreshed access token is
handed to the broker with an "access_token" push on every joined channel.
"""
import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from unfriendable.clients.errors import BackendError
from unfriendable.config import settings
from unfriendable.telemetry import REALTIME_EVENTS_TOTAL

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[dict[str, Any]], None]

PROTOCOL_VERSION = "1.0.0"


@dataclass
class _Binding:
    event: str
    schema: str
    table: str
    filter: Optional[str]
    callback: ChangeCallback
    server_id: Optional[int] = None

    def as_config(self) -> dict[str, Any]:
        config = {"event": self.event, "schema": self.schema, "table": self.table}
        if self.filter:
            config["filter"] = self.filter
        return config

    def matches(self, data: dict[str, Any], ids: list[int]) -> bool:
        if self.server_id is not None and ids:
            return self.server_id in ids
        if data.get("table") != self.table:
            return False
        return self.event == "*" or self.event == data.get("type")


class Channel:
    def __init__(self, client: "RealtimeClient", name: str) -> None:
        self._client = client
        self.topic = f"realtime:{name}"
        self._bindings: list[_Binding] = []
        self.join_ref: Optional[str] = None
        self.joined = False

    def on_postgres_changes(
        self,
        event: str,
        table: str,
        callback: ChangeCallback,
        filter: Optional[str] = None,
        schema: str = "public",
    ) -> "Channel":
        self._bindings.append(_Binding(event, schema, table, filter, callback))
        return self

    async def subscribe(self, timeout: float = 10.0) -> None:
        await self._client.connect()
        self.join_ref = self._client.make_ref()
        payload = {
            "config": {
                "broadcast": {"ack": False, "self": False},
                "presence": {"key": ""},
                "postgres_changes": [b.as_config() for b in self._bindings],
            },
            "access_token": self._client.access_token,
        }
        reply = await self._client.request(
            self.topic, "phx_join", payload, ref=self.join_ref, timeout=timeout
        )
        if reply.get("status") != "ok":
            reason = (reply.get("response") or {}).get("reason") or reply.get("status")
            raise BackendError(f"Realtime subscription to {self.topic} failed: {reason}")

        server_bindings = (reply.get("response") or {}).get("postgres_changes") or []
        for binding, server in zip(self._bindings, server_bindings):
            binding.server_id = server.get("id")
        self.joined = True
        logger.info("Subscribed to %s (%d bindings)", self.topic, len(self._bindings))

    async def unsubscribe(self) -> None:
        if not self.joined:
            return
        self.joined = False
        try:
            await self._client.push(self.topic, "phx_leave", {}, join_ref=self.join_ref)
        except BackendError as exc:
            logger.info("Leave of %s not delivered: %s", self.topic, exc)
        self._client.remove_channel(self)

    def dispatch(self, payload: dict[str, Any]) -> None:
        data = payload.get("data") or {}
        ids = payload.get("ids") or []
        REALTIME_EVENTS_TOTAL.labels(table=data.get("table", "unknown")).inc()
        for binding in self._bindings:
            if binding.matches(data, ids):
                binding.callback(data)


class RealtimeClient:
    def __init__(
        self,
        url: str,
        api_key: str,
        access_token: Optional[str] = None,
        heartbeat_interval: Optional[float] = None,
    ) -> None:
        self.url = url
        self.api_key = api_key
        self.access_token = access_token or api_key
        self.heartbeat_interval = heartbeat_interval or settings.realtime_heartbeat_seconds
        self._ws: Optional[ClientConnection] = None
        self._ref = 0
        self._channels: dict[str, Channel] = {}
        self._pending: dict[str, asyncio.Future] = {}
        self._reader_task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._closed = asyncio.Event()

    def make_ref(self) -> str:
        self._ref += 1
        return str(self._ref)

    def channel(self, name: str) -> Channel:
        ch = Channel(self, name)
        self._channels[ch.topic] = ch
        return ch

    def remove_channel(self, channel: Channel) -> None:
        self._channels.pop(channel.topic, None)

    async def connect(self) -> None:
        if self._ws is not None:
            return
        endpoint = f"{self.url}?apikey={self.api_key}&vsn={PROTOCOL_VERSION}"
        try:
            self._ws = await connect(endpoint)
        except (OSError, TimeoutError, WebSocketException) as exc:
            logger.warning("Realtime connection to %s failed: %s", self.url, exc)
            raise BackendError(f"Realtime connection failed: {exc}") from exc
        self._reader_task = asyncio.create_task(self._read_loop())
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())
        logger.info("Realtime connected to %s", self.url)

    async def wait_closed(self) -> None:
        """Return once the reader has stopped, whether the broker or close() ended it."""
        await self._closed.wait()

    async def set_auth(self, access_token: str) -> None:
        """Hand a refreshed access token to the broker for every joined channel."""
        self.access_token = access_token
        for channel in list(self._channels.values()):
            if channel.joined:
                await self.push(
                    channel.topic,
                    "access_token",
                    {"access_token": access_token},
                    join_ref=channel.join_ref,
                )

    async def close(self) -> None:
        for task in (self._heartbeat_task, self._reader_task):
            if task is not None:
                task.cancel()
        self._heartbeat_task = self._reader_task = None
        for future in self._pending.values():
            if not future.done():
                future.set_exception(BackendError("Realtime connection closed"))
        self._pending.clear()
        self._channels.clear()
        if self._ws is not None:
            await self._ws.close()
            self._ws = None

    async def push(
        self,
        topic: str,
        event: str,
        payload: dict[str, Any],
        ref: Optional[str] = None,
        join_ref: Optional[str] = None,
    ) -> str:
        if self._ws is None:
            raise BackendError("Realtime client is not connected")
        ref = ref or self.make_ref()
        message = {"topic": topic, "event": event, "payload": payload, "ref": ref}
        if join_ref is not None:
            message["join_ref"] = join_ref
        try:
            await self._ws.send(json.dumps(message))
        except ConnectionClosed as exc:
            raise BackendError(f"Realtime connection closed: {exc}") from exc
        return ref

    async def request(
        self,
        topic: str,
        event: str,
        payload: dict[str, Any],
        ref: Optional[str] = None,
        timeout: float = 10.0,
    ) -> dict[str, Any]:
        """Push a message and wait for its phx_reply payload."""
        ref = ref or self.make_ref()
        future = asyncio.get_running_loop().create_future()
        self._pending[ref] = future
        try:
            await self.push(topic, event, payload, ref=ref, join_ref=ref)
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError as exc:
            raise BackendError(f"Realtime {event} on {topic} timed out") from exc
        finally:
            self._pending.pop(ref, None)

    def handle_message(self, message: dict[str, Any]) -> None:
        event = message.get("event")
        topic = message.get("topic")
        payload = message.get("payload") or {}

        if event == "phx_reply":
            future = self._pending.get(message.get("ref"))
            if future is not None and not future.done():
                future.set_result(payload)
        elif event == "postgres_changes":
            channel = self._channels.get(topic)
            if channel is not None:
                channel.dispatch(payload)
        elif event in ("phx_error", "phx_close"):
            logger.warning("Realtime channel %s reported %s", topic, event)

    async def _read_loop(self) -> None:
        try:
            async for raw in self._ws:
                try:
                    message = json.loads(raw)
                except ValueError:
                    logger.warning("Discarding non-JSON realtime frame")
                    continue
                self.handle_message(message)
        except ConnectionClosed as exc:
            logger.warning("Realtime connection closed by broker: %s", exc)
        finally:
            for future in self._pending.values():
                if not future.done():
                    future.set_exception(BackendError("Realtime connection closed"))
            self._closed.set()

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                await self.push("phoenix", "heartbeat", {})
            except BackendError as exc:
                logger.warning("Realtime heartbeat failed: %s", exc)
                return
