import unittest

import httpx

from fakes import ALICE, BOB, EVERETT, FakeBackend, auth_header, body_of, build_client, make_session, seed_session
from unfriendable.clients.session_store import InMemorySessionStore

HAPPENING_ROW = {
    "id": 9,
    "actor_id": "u-bob",
    "action_type": "FOLLOWED_USER",
    "target_id": "u-alice",
    "created_at": "2024-05-03T10:00:00+00:00",
    "actor": BOB,
    "target": ALICE,
}


class ProfileRouteTests(unittest.TestCase):
    def setUp(self):
        self.backend = FakeBackend()
        for row in (ALICE, BOB, EVERETT):
            self.backend.add_user(row)
        self.store = InMemorySessionStore()
        seed_session(self.store, "alice", make_session("u-alice"))
        seed_session(self.store, "everett", make_session("u-everett"))
        self.client, self.baas = build_client(self.backend, self.store)
        self.headers = auth_header("alice")

    def happening_inserts(self) -> list[dict]:
        return [body_of(r) for r in self.backend.calls("POST", "/rest/v1/happenings")]

    # ── page load ──────────────────────────────────────────────────────────

    def test_profile_page_derives_flags_and_records_view(self):
        self.backend.on(
            "GET",
            "/rest/v1/friendships",
            json=[{"id": 1, "user_id_1": "u-bob", "user_id_2": "u-alice", "status": "pending"}],
        )
        self.backend.on(
            "HEAD",
            "/rest/v1/follows",
            headers={"Content-Range": "*/1"},
            params={"follower_id": "eq.u-bob"},
        )
        self.backend.on("GET", "/rest/v1/happenings", json=[HAPPENING_ROW])
        self.backend.on(
            "POST",
            "/rest/v1/rpc/get_user_stats",
            json=[{"friends": 3, "followers": 2, "following": 1, "hidden": 0}],
        )

        response = self.client.get("/profile/bob", headers=self.headers)

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        profile = payload["profile"]
        self.assertTrue(profile["is_friend_pending_me"])
        self.assertTrue(profile["is_followed_by"])
        self.assertFalse(profile["is_following"])
        self.assertEqual(payload["stats"]["friends"], 3)
        self.assertEqual(payload["actions"]["friendship"], "accept")
        self.assertEqual(payload["happenings"][0]["description"], "Bob started following Alice.")
        self.assertFalse(payload["is_self"])

        friendship_query = self.backend.calls("GET", "/rest/v1/friendships")[0]
        self.assertEqual(
            friendship_query.url.params["or"],
            "(and(user_id_1.eq.u-alice,user_id_2.eq.u-bob),and(user_id_1.eq.u-bob,user_id_2.eq.u-alice))",
        )
        happenings_query = self.backend.calls("GET", "/rest/v1/happenings")[0]
        self.assertEqual(happenings_query.url.params["limit"], "20")
        self.assertEqual(happenings_query.url.params["order"], "created_at.desc")
        stats_call = self.backend.calls("POST", "/rest/v1/rpc/get_user_stats")[0]
        self.assertEqual(body_of(stats_call), {"target_user_id": "u-bob"})
        self.assertEqual(
            self.happening_inserts(),
            [{"actor_id": "u-alice", "action_type": "VIEWED_PROFILE", "target_id": "u-bob"}],
        )

    def test_refresh_and_own_profile_do_not_record_views(self):
        self.client.get("/profile/bob", params={"refresh": "true"}, headers=self.headers)
        own = self.client.get("/profile/alice", headers=self.headers)

        self.assertTrue(own.json()["is_self"])
        self.assertIsNone(own.json()["actions"]["friendship"])
        self.assertEqual(self.happening_inserts(), [])

    def test_failed_view_record_does_not_fail_the_page(self):
        self.backend.on("POST", "/rest/v1/happenings", status=403, json={"message": "rls"})

        response = self.client.get("/profile/bob", headers=self.headers)

        self.assertEqual(response.status_code, 200)

    def test_unknown_user_is_404(self):
        response = self.client.get("/profile/nobody", headers=self.headers)

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["detail"], "User not found.")

    def test_view_only_profile_offers_no_actions(self):
        response = self.client.get("/profile/everett", headers=self.headers)

        self.assertTrue(response.json()["is_view_only_profile"])
        self.assertIsNone(response.json()["actions"]["hide"])

    def test_stats_failure_is_reported(self):
        self.backend.on(
            "POST", "/rest/v1/rpc/get_user_stats", status=500, json={"message": "boom"}
        )

        response = self.client.get("/profile/bob", headers=self.headers)

        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.json()["detail"], "Failed to load profile: boom")

    # ── actions ────────────────────────────────────────────────────────────

    def test_follow_writes_edge_and_happening(self):
        response = self.client.post("/profile/bob/follow", headers=self.headers)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"message": "Now following Bob", "patch": {"is_following": True}})
        follow = self.backend.calls("POST", "/rest/v1/follows")[0]
        self.assertEqual(body_of(follow), {"follower_id": "u-alice", "following_id": "u-bob"})
        self.assertEqual(
            self.happening_inserts(),
            [{"actor_id": "u-alice", "action_type": "FOLLOWED_USER", "target_id": "u-bob"}],
        )

    def test_accept_from_profile_updates_pair_and_drops_follows(self):
        response = self.client.post("/profile/bob/friend-request/accept", headers=self.headers)

        self.assertEqual(response.json()["message"], "Friend request accepted!")
        update = self.backend.calls("PATCH", "/rest/v1/friendships")[0]
        self.assertEqual(body_of(update), {"status": "accepted"})
        self.assertIn("and(user_id_1.eq.u-bob,user_id_2.eq.u-alice)", update.url.params["or"])
        follows_delete = self.backend.calls("DELETE", "/rest/v1/follows")[0]
        self.assertIn("and(follower_id.eq.u-alice,following_id.eq.u-bob)", follows_delete.url.params["or"])

    def test_unfriend_removes_best_friend_edges(self):
        response = self.client.delete("/profile/bob/friendship", headers=self.headers)

        self.assertEqual(response.json()["message"], "Friend removed.")
        self.assertEqual(len(self.backend.calls("DELETE", "/rest/v1/friendships")), 1)
        self.assertEqual(len(self.backend.calls("DELETE", "/rest/v1/best_friends")), 1)
        self.assertEqual(self.happening_inserts()[0]["action_type"], "REMOVED_FRIEND")

    def test_revoke_best_friend_status_deletes_their_edge(self):
        self.client.delete("/profile/bob/best-friend-status", headers=self.headers)

        delete = self.backend.calls("DELETE", "/rest/v1/best_friends")[0]
        self.assertEqual(delete.url.params["user_id"], "eq.u-bob")
        self.assertEqual(delete.url.params["best_friend_id"], "eq.u-alice")

    def test_hide_limit(self):
        self.backend.on("HEAD", "/rest/v1/hidden_users", headers={"Content-Range": "*/10"})

        response = self.client.post("/profile/bob/hide", headers=self.headers)

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "You can only hide up to 10 users.")
        self.assertEqual(self.backend.calls("POST", "/rest/v1/hidden_users"), [])

    def test_hide_under_limit(self):
        self.backend.on("HEAD", "/rest/v1/hidden_users", headers={"Content-Range": "*/2"})

        response = self.client.post("/profile/bob/hide", headers=self.headers)

        self.assertEqual(response.json()["message"], "Hid Bob.")
        self.assertEqual(response.json()["patch"], {"is_hidden": True})

    def test_partial_write_failure_is_reported(self):
        self.backend.on("POST", "/rest/v1/happenings", json=httpx.ConnectError("down"))

        response = self.client.post("/profile/bob/follow", headers=self.headers)

        self.assertEqual(response.status_code, 502)
        # the edge write was still attempted
        self.assertEqual(len(self.backend.calls("POST", "/rest/v1/follows")), 1)

    def test_view_only_accounts_cannot_act(self):
        response = self.client.post("/profile/bob/follow", headers=auth_header("everett"))

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["detail"], "View-only accounts cannot perform actions.")

    def test_cannot_act_on_self_banned_or_view_only(self):
        banned_bob = {**BOB, "is_banned": True}
        self.backend.add_user(banned_bob)

        self_action = self.client.post("/profile/alice/follow", headers=self.headers)
        banned = self.client.post("/profile/bob/follow", headers=self.headers)
        view_only = self.client.post("/profile/everett/follow", headers=self.headers)

        self.assertEqual(self_action.status_code, 400)
        self.assertEqual(banned.status_code, 403)
        self.assertEqual(banned.json()["detail"], "Actions are disabled for banned users.")
        self.assertEqual(view_only.status_code, 403)
        self.assertEqual(self.backend.calls("POST", "/rest/v1/follows"), [])

    # ── lists & editing ────────────────────────────────────────────────────

    def test_friends_list_returns_the_other_side(self):
        self.backend.on(
            "GET",
            "/rest/v1/friendships",
            json=[
                {"user_1_profile": BOB, "user_2_profile": ALICE},
                {"user_1_profile": ALICE, "user_2_profile": EVERETT},
            ],
        )

        response = self.client.get("/profile/alice/friends", headers=self.headers)

        self.assertEqual([u["username"] for u in response.json()], ["bob", "everett"])

    def test_followers_list(self):
        self.backend.on("GET", "/rest/v1/follows", json=[{"profile": BOB}])

        response = self.client.get("/profile/alice/followers", headers=self.headers)

        self.assertEqual(response.json()[0]["id"], "u-bob")
        query = self.backend.calls("GET", "/rest/v1/follows")[0]
        self.assertEqual(query.url.params["following_id"], "eq.u-alice")

    def test_update_profile(self):
        response = self.client.patch(
            "/profile",
            json={"display_name": " Alice A. ", "bio": "hi", "avatar_url": "  ", "cover_image_url": None},
            headers=self.headers,
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["display_name"], "Alice A.")
        update = self.backend.calls("PATCH", "/rest/v1/users")[0]
        self.assertEqual(update.url.params["id"], "eq.u-alice")
        self.assertEqual(
            body_of(update),
            {"display_name": "Alice A.", "bio": "hi", "avatar_url": None, "cover_image_url": None},
        )

    def test_bio_length_is_enforced(self):
        response = self.client.patch(
            "/profile", json={"display_name": "Alice", "bio": "x" * 251}, headers=self.headers
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Bio cannot be longer than 250 characters.")
        self.assertEqual(self.backend.calls("PATCH", "/rest/v1/users"), [])


if __name__ == "__main__":
    unittest.main()
