import unittest
from unittest import mock

from fakes import make_session
from unfriendable.clients.session_store import InMemorySessionStore, new_session_id


class InMemorySessionStoreTests(unittest.IsolatedAsyncioTestCase):
    async def test_round_trip_and_delete(self):
        store = InMemorySessionStore(ttl=60)
        sid = new_session_id()
        await store.save(sid, make_session("u-alice"))

        self.assertEqual((await store.get(sid)).user_id, "u-alice")
        await store.delete(sid)
        self.assertIsNone(await store.get(sid))

    async def test_expired_sessions_are_swept_on_save(self):
        store = InMemorySessionStore(ttl=60)
        with mock.patch("unfriendable.clients.session_store.time.time", return_value=1000.0):
            await store.save("abandoned", make_session("u-alice"))
        with mock.patch("unfriendable.clients.session_store.time.time", return_value=1061.0):
            await store.save("fresh", make_session("u-bob"))

        self.assertNotIn("abandoned", store._sessions)
        self.assertIn("fresh", store._sessions)

    async def test_expired_session_is_not_returned(self):
        store = InMemorySessionStore(ttl=60)
        with mock.patch("unfriendable.clients.session_store.time.time", return_value=1000.0):
            await store.save("sid", make_session("u-alice"))
        with mock.patch("unfriendable.clients.session_store.time.time", return_value=1060.0):
            self.assertIsNone(await store.get("sid"))


if __name__ == "__main__":
    unittest.main()
