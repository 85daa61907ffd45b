import asyncio
import json
import unittest

from websockets.exceptions import ConnectionClosed

from unfriendable.clients.errors import BackendError
from unfriendable.clients.realtime_client import RealtimeClient


class FakeSocket:
    """Answers phx_join with a reply assigning server ids to the bindings."""

    def __init__(self, client: RealtimeClient, status: str = "ok") -> None:
        self.client = client
        self.status = status
        self.sent: list[dict] = []
        self.closed = False

    async def send(self, raw: str) -> None:
        message = json.loads(raw)
        self.sent.append(message)
        if message["event"] == "phx_join":
            bindings = message["payload"]["config"]["postgres_changes"]
            reply = {
                "topic": message["topic"],
                "event": "phx_reply",
                "ref": message["ref"],
                "payload": {
                    "status": self.status,
                    "response": {
                        "postgres_changes": [
                            {**b, "id": 100 + i} for i, b in enumerate(bindings)
                        ],
                        "reason": "not allowed",
                    },
                },
            }
            asyncio.get_running_loop().call_soon(self.client.handle_message, reply)

    async def close(self) -> None:
        self.closed = True


class HangupSocket:
    """A broker connection that ends before delivering anything."""

    def __aiter__(self):
        return self._frames()

    async def _frames(self):
        raise ConnectionClosed(None, None)
        yield


class RealtimeClientTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.client = RealtimeClient("ws://baas.test/realtime/v1/websocket", "anon", "jwt-1")
        self.socket = FakeSocket(self.client)
        self.client._ws = self.socket

    async def test_subscribe_sends_join_with_bindings(self):
        channel = self.client.channel("profile-page-u1")
        channel.on_postgres_changes("UPDATE", "users", lambda c: None, filter="id=eq.u1")
        channel.on_postgres_changes("*", "follows", lambda c: None, filter="follower_id=eq.u1")

        await channel.subscribe()

        join = self.socket.sent[0]
        self.assertEqual(join["topic"], "realtime:profile-page-u1")
        self.assertEqual(join["event"], "phx_join")
        self.assertEqual(join["payload"]["access_token"], "jwt-1")
        self.assertEqual(
            join["payload"]["config"]["postgres_changes"],
            [
                {"event": "UPDATE", "schema": "public", "table": "users", "filter": "id=eq.u1"},
                {"event": "*", "schema": "public", "table": "follows", "filter": "follower_id=eq.u1"},
            ],
        )
        self.assertTrue(channel.joined)

    async def test_changes_dispatch_by_server_id(self):
        users_changes, follow_changes = [], []
        channel = self.client.channel("profile-page-u1")
        channel.on_postgres_changes("UPDATE", "users", users_changes.append, filter="id=eq.u1")
        channel.on_postgres_changes("*", "follows", follow_changes.append)
        await channel.subscribe()

        self.client.handle_message(
            {
                "topic": "realtime:profile-page-u1",
                "event": "postgres_changes",
                "ref": None,
                "payload": {
                    "ids": [101],
                    "data": {"type": "INSERT", "table": "follows", "record": {"id": 5}},
                },
            }
        )

        self.assertEqual(users_changes, [])
        self.assertEqual(follow_changes[0]["record"], {"id": 5})

    async def test_changes_without_ids_match_table_and_event(self):
        seen = []
        channel = self.client.channel("public:happenings")
        channel.on_postgres_changes("DELETE", "happenings", seen.append)

        channel.dispatch({"data": {"type": "INSERT", "table": "happenings"}})
        channel.dispatch({"data": {"type": "DELETE", "table": "happenings"}})

        self.assertEqual([c["type"] for c in seen], ["DELETE"])

    async def test_rejected_join_raises(self):
        self.socket.status = "error"
        channel = self.client.channel("public:friendships")
        channel.on_postgres_changes("*", "friendships", lambda c: None)

        with self.assertRaises(BackendError):
            await channel.subscribe()
        self.assertFalse(channel.joined)

    async def test_unsubscribe_and_close(self):
        channel = self.client.channel("public:friendships")
        channel.on_postgres_changes("*", "friendships", lambda c: None)
        await channel.subscribe()

        await channel.unsubscribe()
        await self.client.close()

        self.assertEqual(self.socket.sent[-1]["event"], "phx_leave")
        self.assertTrue(self.socket.closed)

    async def test_set_auth_pushes_token_to_joined_channels(self):
        joined = self.client.channel("public:happenings")
        joined.on_postgres_changes("*", "happenings", lambda c: None)
        await joined.subscribe()
        self.client.channel("public:friendships")

        await self.client.set_auth("jwt-2")

        self.assertEqual(self.client.access_token, "jwt-2")
        token_pushes = [m for m in self.socket.sent if m["event"] == "access_token"]
        self.assertEqual(len(token_pushes), 1)
        self.assertEqual(token_pushes[0]["topic"], "realtime:public:happenings")
        self.assertEqual(token_pushes[0]["payload"], {"access_token": "jwt-2"})
        self.assertEqual(token_pushes[0]["join_ref"], joined.join_ref)

    async def test_broker_hangup_wakes_waiters_and_fails_requests(self):
        self.client._ws = HangupSocket()
        waiting = asyncio.get_running_loop().create_future()
        self.client._pending["7"] = waiting

        reader = asyncio.create_task(self.client._read_loop())
        await asyncio.wait_for(self.client.wait_closed(), 1)
        await reader

        with self.assertRaises(BackendError):
            waiting.result()

    async def test_push_without_connection_fails(self):
        client = RealtimeClient("ws://baas.test/realtime/v1/websocket", "anon")
        with self.assertRaises(BackendError):
            await client.push("phoenix", "heartbeat", {})


if __name__ == "__main__":
    unittest.main()
