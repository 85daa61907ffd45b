import unittest

from fakes import ALICE, BOB, FakeBackend, auth_header, body_of, build_client, make_session, seed_session
from unfriendable.clients.session_store import InMemorySessionStore


class HomeRouteTests(unittest.TestCase):
    def setUp(self):
        self.backend = FakeBackend()
        self.backend.add_user(ALICE)
        self.backend.add_user(BOB)
        self.store = InMemorySessionStore()
        seed_session(self.store, "alice", make_session("u-alice"))
        self.client, self.baas = build_client(self.backend, self.store)
        self.headers = auth_header("alice")

    def feed_query(self):
        return self.backend.calls("GET", "/rest/v1/happenings")[-1]

    def test_global_feed_excludes_hidden_actors_and_profile_views(self):
        self.backend.on("GET", "/rest/v1/hidden_users", json=[{"hidden_user_id": "u-x"}, {"hidden_user_id": "u-y"}])

        response = self.client.get("/home/feed", params={"feed": "global"}, headers=self.headers)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["feed"], "global")
        params = self.feed_query().url.params
        self.assertEqual(params.get_list("action_type"), ["not.eq.VIEWED_PROFILE"])
        self.assertEqual(params["actor_id"], "not.in.(u-x,u-y)")
        self.assertEqual(params["limit"], "50")

    def test_personal_feed_uses_relevant_ids(self):
        self.backend.on(
            "GET",
            "/rest/v1/friendships",
            json=[{"user_id_1": "u-bob", "user_id_2": "u-alice"}],
        )
        self.backend.on("GET", "/rest/v1/follows", json=[{"following_id": "u-carol"}, {"following_id": "u-bob"}])
        self.backend.on("GET", "/rest/v1/hidden_users", json=[{"hidden_user_id": "u-carol"}])

        self.client.get("/home/feed", headers=self.headers)

        params = self.feed_query().url.params
        self.assertEqual(params["or"], "(actor_id.in.(u-bob,u-alice),target_id.eq.u-alice)")

    def test_personal_feed_without_relevant_ids_targets_viewer_only(self):
        self.client.get(
            "/home/feed", params={"relationship": "best_friends", "action_type": "HID_USER"}, headers=self.headers
        )

        params = self.feed_query().url.params
        self.assertEqual(params["target_id"], "eq.u-alice")
        self.assertNotIn("or", params)
        self.assertIn("eq.HID_USER", params.get_list("action_type"))

    def test_profile_views_shown_when_opted_in(self):
        self.backend.add_user({**ALICE, "show_profile_views": True})

        self.client.get("/home/feed", params={"feed": "global"}, headers=self.headers)

        self.assertNotIn("action_type", self.feed_query().url.params)

    def test_relationship_lookup_failure(self):
        self.backend.on("GET", "/rest/v1/follows", status=500, json={"message": "db down"})

        response = self.client.get("/home/feed", headers=self.headers)

        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.json()["detail"], "Failed to fetch user relationships.")
        self.assertEqual(self.backend.calls("GET", "/rest/v1/happenings"), [])

    def test_filters_list_action_types(self):
        response = self.client.get("/home/filters", headers=self.headers)

        options = {o["value"]: o["label"] for o in response.json()["action_types"]}
        self.assertEqual(list(options)[0], "all")
        self.assertEqual(options["CREATED_ACCOUNT"], "Account Creations")
        self.assertEqual(options["SENT_BEST_FRIEND_REQUEST"], "Best Friend Requests Sent")
        # offered even when the viewer hides profile views from the feed
        self.assertEqual(options["VIEWED_PROFILE"], "Profile Views")
        relationships = [o["label"] for o in response.json()["relationships"]]
        self.assertEqual(relationships[0], "All Connections")

    def test_pending_friend_requests(self):
        self.backend.on("GET", "/rest/v1/friendships", json=[{"id": 4, "requester": BOB}])

        response = self.client.get("/home/friend-requests", headers=self.headers)

        self.assertEqual(len(response.json()), 1)
        self.assertEqual(response.json()[0]["id"], 4)
        self.assertEqual(response.json()[0]["requester"]["username"], "bob")
        query = self.backend.calls("GET", "/rest/v1/friendships")[0]
        self.assertEqual(query.url.params["user_id_2"], "eq.u-alice")
        self.assertEqual(query.url.params["status"], "eq.pending")

    def test_accept_request_updates_status_and_records_happening(self):
        self.backend.on("GET", "/rest/v1/friendships", json=[{"id": 4, "user_id_1": "u-bob"}])

        response = self.client.post("/home/friend-requests/4/accept", headers=self.headers)

        self.assertEqual(response.status_code, 200)
        update = self.backend.calls("PATCH", "/rest/v1/friendships")[0]
        self.assertEqual(update.url.params["id"], "eq.4")
        self.assertEqual(body_of(update), {"status": "accepted"})
        happening = body_of(self.backend.calls("POST", "/rest/v1/happenings")[0])
        self.assertEqual(
            happening,
            {"actor_id": "u-alice", "action_type": "ACCEPTED_FRIEND_REQUEST", "target_id": "u-bob"},
        )

    def test_reject_request_not_addressed_to_viewer(self):
        response = self.client.post("/home/friend-requests/99/reject", headers=self.headers)

        self.assertEqual(response.status_code, 404)
        self.assertEqual(self.backend.calls("PATCH", "/rest/v1/friendships"), [])

    def test_unfriend_count(self):
        self.backend.on("HEAD", "/rest/v1/happenings", headers={"Content-Range": "*/17"})

        response = self.client.get("/home/unfriend-count", headers=self.headers)

        self.assertEqual(response.json(), {"count": 17})
        query = self.backend.calls("HEAD", "/rest/v1/happenings")[0]
        self.assertEqual(query.url.params["action_type"], "eq.REMOVED_FRIEND")


if __name__ == "__main__":
    unittest.main()
