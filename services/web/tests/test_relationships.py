import unittest

from unfriendable.happenings import describe
from unfriendable.schemas import FullUserProfile, Happening, UserProfile
from unfriendable.services.relationships import (
    ACTION_PATCHES,
    BANNED_MESSAGE,
    FRIENDSHIP_PAIR,
    Action,
    available_actions,
    derive_flags,
    pair_clauses,
)

ME = "u-me"
THEM = "u-them"


def profile(**flags) -> FullUserProfile:
    return FullUserProfile(id=THEM, username="them", display_name="Them", **flags)


class DeriveFlagsTests(unittest.TestCase):
    def test_no_rows_means_no_relationship(self):
        flags = derive_flags(ME, None)
        self.assertFalse(any(flags.model_dump().values()))

    def test_pending_direction_follows_requester(self):
        incoming = {"user_id_1": THEM, "user_id_2": ME, "status": "pending"}
        outgoing = {"user_id_1": ME, "user_id_2": THEM, "status": "pending"}

        self.assertTrue(derive_flags(ME, incoming).is_friend_pending_me)
        self.assertFalse(derive_flags(ME, incoming).is_friend_pending_them)
        self.assertTrue(derive_flags(ME, outgoing).is_friend_pending_them)

    def test_accepted_and_counts(self):
        flags = derive_flags(
            ME,
            {"user_id_1": ME, "user_id_2": THEM, "status": "accepted"},
            following=1,
            best_friend_by=1,
            hidden=1,
        )
        self.assertTrue(flags.is_friend)
        self.assertTrue(flags.is_following)
        self.assertFalse(flags.is_followed_by)
        self.assertTrue(flags.is_best_friend_by)
        self.assertTrue(flags.is_hidden)

    def test_rejected_request_is_no_friendship(self):
        flags = derive_flags(ME, {"user_id_1": ME, "user_id_2": THEM, "status": "rejected"})
        self.assertFalse(flags.is_friend)
        self.assertFalse(flags.is_friend_pending_them)


class AvailableActionsTests(unittest.TestCase):
    def test_stranger_can_be_added_followed_and_hidden(self):
        actions = available_actions(profile(), is_self=False, is_view_only_profile=False)
        self.assertEqual(actions.friendship, "add")
        self.assertEqual(actions.follow, "follow")
        self.assertIsNone(actions.best_friend)
        self.assertEqual(actions.hide, "hide")

    def test_friend_gets_best_friend_toggle_but_no_follow(self):
        actions = available_actions(
            profile(is_friend=True, is_best_friend=True, is_best_friend_by=True),
            is_self=False,
            is_view_only_profile=False,
        )
        self.assertEqual(actions.friendship, "unfriend")
        self.assertIsNone(actions.follow)
        self.assertEqual(actions.best_friend, "remove")
        self.assertTrue(actions.can_revoke_best_friend_status)

    def test_pending_states(self):
        incoming = available_actions(
            profile(is_friend_pending_me=True), is_self=False, is_view_only_profile=False
        )
        outgoing = available_actions(
            profile(is_friend_pending_them=True, is_following=True),
            is_self=False,
            is_view_only_profile=False,
        )
        self.assertEqual(incoming.friendship, "accept")
        self.assertEqual(outgoing.friendship, "pending")
        self.assertIsNone(outgoing.follow)

    def test_nothing_for_self_banned_or_view_only(self):
        self.assertIsNone(available_actions(profile(), is_self=True, is_view_only_profile=False).friendship)
        banned = available_actions(profile(is_banned=True), is_self=False, is_view_only_profile=False)
        self.assertIsNone(banned.friendship)
        self.assertEqual(banned.disabled_reason, BANNED_MESSAGE)
        view_only = available_actions(profile(), is_self=False, is_view_only_profile=True)
        self.assertIsNone(view_only.hide)

    def test_accept_patch_drops_follow_flags(self):
        self.assertEqual(
            ACTION_PATCHES[Action.ACCEPT_FRIEND],
            {
                "is_friend": True,
                "is_friend_pending_me": False,
                "is_following": False,
                "is_followed_by": False,
            },
        )


class PairClauseTests(unittest.TestCase):
    def test_both_orientations(self):
        self.assertEqual(
            pair_clauses(FRIENDSHIP_PAIR, ME, THEM),
            (
                "and(user_id_1.eq.u-me,user_id_2.eq.u-them)",
                "and(user_id_1.eq.u-them,user_id_2.eq.u-me)",
            ),
        )


class DescribeTests(unittest.TestCase):
    def happening(self, action_type, target=True) -> Happening:
        return Happening(
            id=1,
            actor_id="a",
            action_type=action_type,
            target_id="b" if target else None,
            created_at="2024-05-01T10:00:00+00:00",
            actor=UserProfile(id="a", username="alice", display_name="Alice"),
            target=UserProfile(id="b", username="bob", display_name="Bob") if target else None,
        )

    def test_sentences(self):
        self.assertEqual(
            describe(self.happening("SENT_FRIEND_REQUEST")), "Alice sent a friend request to Bob."
        )
        self.assertEqual(
            describe(self.happening("REJECTED_BEST_FRIEND_STATUS")),
            'Alice rejected Bob\'s "best friend" status.',
        )
        self.assertEqual(
            describe(self.happening("MADE_BEST_FRIEND")), "Alice made Bob a best friend."
        )
        self.assertEqual(
            describe(self.happening("ADDED_BEST_FRIEND")), "Alice made Bob a best friend."
        )
        self.assertEqual(
            describe(self.happening("SENT_BEST_FRIEND_REQUEST")), "Alice did something."
        )
        self.assertEqual(
            describe(self.happening("CREATED_ACCOUNT", target=False)), "Alice created an account."
        )

    def test_unknown_type_falls_back(self):
        self.assertEqual(describe(self.happening("SOMETHING_NEW")), "Alice did something.")


if __name__ == "__main__":
    unittest.main()
