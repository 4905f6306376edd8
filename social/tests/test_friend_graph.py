"""
Unit Tests for the Friend Graph and Friend Request Service

Tests cover:
1. Canonical pair ordering
2. Request / accept flow and notifications
3. Invalid state transitions
4. Remove and block
5. Friend lists and pending requests
6. Concurrent crossed requests
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from core.errors import (
    AlreadyExistsError,
    InvalidArgumentError,
    InvalidStateTransitionError,
    NotFoundError,
)
from ledger.models import GiftRequest
from notifications.models import NotificationKind
from social.graph import FRIENDSHIPS
from social.models import FriendshipStatus, FriendStatus, canonical_pair, friendship_id


@pytest.fixture
def users(make_account):
    for user_id in ["alice", "bob", "carol"]:
        make_account(user_id)


class TestCanonicalPair:
    """Tests for pair ordering."""

    def test_order_independent(self):
        assert canonical_pair("bob", "alice") == ("alice", "bob")
        assert friendship_id("bob", "alice") == friendship_id("alice", "bob") == "alice:bob"

    def test_same_user_rejected(self):
        with pytest.raises(InvalidArgumentError):
            canonical_pair("alice", "alice")


class TestRequestFlow:
    """Tests for sending and accepting requests."""

    def test_send_request_creates_pending_edge(self, container, users):
        response = container.friend_requests.send_request("bob", "alice")

        edge = response.friendship
        assert edge.id == "alice:bob"
        assert (edge.user_id1, edge.user_id2) == ("alice", "bob")
        assert edge.status == FriendshipStatus.PENDING
        assert edge.initiated_by == "bob"
        assert container.graph.status("alice", "bob") == FriendStatus.PENDING
        assert container.graph.status("bob", "alice") == FriendStatus.PENDING

        notifications = container.notifier.list_notifications("alice")
        assert [n.type for n in notifications] == [NotificationKind.FRIEND_REQUEST]
        assert notifications[0].related_friendship_id == "alice:bob"

    def test_receiver_accepts(self, container, users):
        """A requests B, B accepts."""
        edge = container.friend_requests.send_request("alice", "bob").friendship

        response = container.friend_requests.accept(edge.id, "bob")

        assert response.friendship.status == FriendshipStatus.ACCEPTED
        assert response.friendship.accepted_at is not None
        assert container.graph.status("alice", "bob") == FriendStatus.ACCEPTED
        kinds = [n.type for n in container.notifier.list_notifications("alice")]
        assert kinds == [NotificationKind.FRIEND_ACCEPTED]

    def test_initiator_cannot_accept_own_request(self, container, users):
        edge = container.friend_requests.send_request("alice", "bob").friendship

        with pytest.raises(InvalidStateTransitionError):
            container.friend_requests.accept(edge.id, "alice")

        assert container.graph.status("alice", "bob") == FriendStatus.PENDING

    def test_outsider_cannot_accept(self, container, users):
        edge = container.friend_requests.send_request("alice", "bob").friendship

        with pytest.raises(InvalidStateTransitionError):
            container.graph.accept(edge.id, "carol")

    def test_accept_twice_fails(self, container, users):
        edge = container.friend_requests.send_request("alice", "bob").friendship
        container.friend_requests.accept(edge.id, "bob")

        with pytest.raises(InvalidStateTransitionError):
            container.friend_requests.accept(edge.id, "bob")

    def test_accept_missing_edge(self, container, users):
        with pytest.raises(NotFoundError):
            container.graph.accept("alice:bob", "bob")

    def test_second_request_fails(self, container, users):
        """A requests B twice before B responds."""
        container.friend_requests.send_request("alice", "bob")

        with pytest.raises(AlreadyExistsError):
            container.friend_requests.send_request("alice", "bob")
        with pytest.raises(AlreadyExistsError):
            container.friend_requests.send_request("bob", "alice")

    def test_request_to_self_rejected(self, container, users):
        with pytest.raises(InvalidArgumentError):
            container.friend_requests.send_request("alice", "alice")

    def test_request_to_missing_user(self, container, users):
        with pytest.raises(NotFoundError):
            container.friend_requests.send_request("alice", "ghost")
        assert container.store.count(FRIENDSHIPS) == 0

    def test_snapshot_names_captured_once(self, container, users):
        container.friend_requests.send_request("alice", "bob")
        container.accounts.update_profile("bob", "Robert")

        edge = container.graph.get_friendship("alice", "bob")
        assert edge.other_user_name("alice") == "Bob"


class TestRemoveAndBlock:
    """Tests for removing and blocking edges."""

    def test_decline_removes_edge(self, container, users):
        container.friend_requests.send_request("alice", "bob")

        assert container.friend_requests.decline("alice:bob", "bob") is True
        assert container.graph.status("alice", "bob") == FriendStatus.NONE

        # A fresh request is allowed after removal
        container.friend_requests.send_request("bob", "alice")
        assert container.graph.get_friendship("alice", "bob").initiated_by == "bob"

    def test_remove_is_idempotent(self, container, users):
        assert container.friend_requests.unfriend("alice", "carol") is False
        assert container.graph.remove("alice", "carol") is False

    def test_unfriend(self, container, users):
        edge = container.friend_requests.send_request("alice", "bob").friendship
        container.friend_requests.accept(edge.id, "bob")

        assert container.friend_requests.unfriend("alice", "bob") is True

        assert container.graph.list_friends("alice") == []

    def test_block_prevents_new_requests(self, container, users):
        edge = container.friend_requests.send_request("alice", "bob").friendship
        container.friend_requests.accept(edge.id, "bob")

        blocked = container.friend_requests.block("bob", "alice")

        assert blocked.status == FriendshipStatus.BLOCKED
        assert blocked.blocked_by == "bob"
        assert container.graph.status("alice", "bob") == FriendStatus.BLOCKED
        assert container.graph.list_friends("alice") == []
        with pytest.raises(AlreadyExistsError):
            container.friend_requests.send_request("alice", "bob")
        with pytest.raises(InvalidStateTransitionError):
            container.friend_requests.accept(edge.id, "alice")

    def test_block_pending_and_twice(self, container, users):
        container.friend_requests.send_request("alice", "bob")

        container.graph.block("bob", "alice")
        again = container.graph.block("alice", "bob")

        assert again.blocked_by == "bob"

    def test_block_without_edge(self, container, users):
        with pytest.raises(NotFoundError):
            container.graph.block("alice", "carol")

    def test_blocked_user_cannot_lift_block(self, container, users):
        container.friend_requests.send_request("alice", "bob")
        container.friend_requests.block("bob", "alice")

        with pytest.raises(InvalidStateTransitionError):
            container.friend_requests.unfriend("alice", "bob")

        assert container.graph.status("alice", "bob") == FriendStatus.BLOCKED
        with pytest.raises(AlreadyExistsError):
            container.friend_requests.send_request("alice", "bob")

    def test_blocker_can_lift_block(self, container, users):
        container.friend_requests.send_request("alice", "bob")
        container.friend_requests.block("bob", "alice")

        assert container.friend_requests.unfriend("bob", "alice") is True

        container.friend_requests.send_request("alice", "bob")
        assert container.graph.status("alice", "bob") == FriendStatus.PENDING

    def test_only_receiver_declines(self, container, users):
        edge = container.friend_requests.send_request("alice", "bob").friendship

        with pytest.raises(InvalidStateTransitionError):
            container.friend_requests.decline(edge.id, "alice")
        assert container.friend_requests.decline(edge.id, "bob") is True

    def test_only_sender_cancels(self, container, users):
        edge = container.friend_requests.send_request("alice", "bob").friendship

        with pytest.raises(InvalidStateTransitionError):
            container.friend_requests.cancel(edge.id, "bob")
        assert container.friend_requests.cancel(edge.id, "alice") is True
        assert container.graph.status("alice", "bob") == FriendStatus.NONE

    def test_cannot_decline_accepted_friendship(self, container, users):
        edge = container.friend_requests.send_request("alice", "bob").friendship
        container.friend_requests.accept(edge.id, "bob")

        with pytest.raises(InvalidStateTransitionError):
            container.friend_requests.decline(edge.id, "bob")
        assert container.graph.status("alice", "bob") == FriendStatus.ACCEPTED


class TestFriendLists:
    """Tests for friend and pending lists."""

    def _befriend(self, container, a, b):
        edge = container.friend_requests.send_request(a, b).friendship
        container.friend_requests.accept(edge.id, b)

    def test_friends_sorted_by_total_gifted(self, container, make_account, users):
        make_account("dave")
        self._befriend(container, "alice", "bob")
        self._befriend(container, "carol", "alice")
        self._befriend(container, "alice", "dave")
        container.gifts.send_gift("dave", GiftRequest(to_user_id="alice", amount=50))
        # bob and carol tie at 0; id breaks the tie

        friends = container.graph.list_friends("alice")

        assert [f.id for f in friends] == ["dave", "bob", "carol"]

    def test_pending_excluded_from_friends(self, container, users):
        container.friend_requests.send_request("alice", "bob")

        assert container.graph.list_friends("alice") == []
        assert container.graph.list_friends("bob") == []

    def test_pending_incoming(self, container, users):
        container.friend_requests.send_request("alice", "carol")
        container.friend_requests.send_request("bob", "carol")

        incoming = container.graph.list_pending_incoming("carol")

        assert sorted(r.requester.id for r in incoming) == ["alice", "bob"]
        assert container.graph.list_pending_incoming("alice") == []
        assert [e.id for e in container.graph.list_pending_outgoing("alice")] == ["alice:carol"]


class TestConcurrentRequests:
    """Crossed requests sent at the same instant."""

    def test_crossed_requests_create_one_edge(self, container, users):
        barrier = threading.Barrier(2)

        def _send(pair):
            sender, receiver = pair
            barrier.wait()
            try:
                container.graph.create_request(sender, receiver)
                return True
            except AlreadyExistsError:
                return False

        with ThreadPoolExecutor(max_workers=2) as pool:
            results = list(pool.map(_send, [("alice", "bob"), ("bob", "alice")]))

        assert sorted(results) == [False, True]
        assert container.store.count(FRIENDSHIPS) == 1

    def test_many_duplicate_requests(self, container, users):
        senders = [("alice", "bob"), ("bob", "alice")] * 5
        barrier = threading.Barrier(len(senders))

        def _send(pair):
            barrier.wait()
            try:
                container.graph.create_request(*pair)
                return True
            except AlreadyExistsError:
                return False

        with ThreadPoolExecutor(max_workers=len(senders)) as pool:
            results = list(pool.map(_send, senders))

        assert results.count(True) == 1
        assert container.store.count(FRIENDSHIPS) == 1
