import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from core.config import Settings, get_settings
from core.errors import AlreadyExistsError, InvalidStateTransitionError, NotFoundError
from core.identifiers import ensure_user_id
from ledger.accounts import AccountStore
from ledger.models import Account
from store.base import DocumentStore, Transaction

from .models import (
    FriendRequest,
    Friendship,
    FriendshipStatus,
    FriendStatus,
    canonical_pair,
    friendship_id,
)

logger = logging.getLogger(__name__)

FRIENDSHIPS = "friendships"


class FriendGraph:
    """
    Friendship edges and their lifecycle.

        absent -> pending -> accepted
        pending | accepted -> absent      (decline, cancel, unfriend)
        pending | accepted -> blocked     (kept so the pair cannot re-request)
    """

    def __init__(
        self,
        store: DocumentStore,
        accounts: Optional[AccountStore] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.accounts = accounts or AccountStore(store, self.settings)

    def create_request(self, sender_id: str, receiver_id: str) -> Friendship:
        ensure_user_id(sender_id)
        ensure_user_id(receiver_id)
        user_id1, user_id2 = canonical_pair(sender_id, receiver_id)
        edge_id = friendship_id(user_id1, user_id2)

        # Accounts are only read for existence and display snapshots
        user1 = self.accounts.get_account(user_id1)
        user2 = self.accounts.get_account(user_id2)

        def _create(tx: Transaction) -> Friendship:
            existing = tx.get(FRIENDSHIPS, edge_id)
            if existing is not None:
                raise AlreadyExistsError(
                    f"Friendship {edge_id} already exists ({FriendshipStatus(existing['status']).value})"
                )
            edge = Friendship(
                id=edge_id,
                user_id1=user_id1,
                user_id2=user_id2,
                status=FriendshipStatus.PENDING,
                initiated_by=sender_id,
                created_at=datetime.now(timezone.utc),
                user1_name=user1.name,
                user2_name=user2.name,
                user1_username=user1.username,
                user2_username=user2.username,
            )
            tx.create(FRIENDSHIPS, edge_id, edge.model_dump())
            return edge

        edge = self.store.run_transaction(_create)
        logger.info("Friend request %s sent by %s", edge_id, sender_id)
        return edge

    def accept(self, edge_id: str, accepting_user_id: str) -> Friendship:
        def _accept(tx: Transaction) -> Friendship:
            data = tx.get(FRIENDSHIPS, edge_id)
            if data is None:
                raise NotFoundError(f"Friendship {edge_id} not found")
            edge = Friendship(**data)
            if not edge.can_accept(accepting_user_id):
                if edge.status != FriendshipStatus.PENDING:
                    reason = f"it is {edge.status.value}"
                elif accepting_user_id == edge.initiated_by:
                    reason = "you sent it"
                else:
                    reason = "you are not part of it"
                raise InvalidStateTransitionError(f"Cannot accept friendship {edge_id}: {reason}")

            fields = {
                "status": FriendshipStatus.ACCEPTED,
                "accepted_at": datetime.now(timezone.utc),
            }
            tx.update(FRIENDSHIPS, edge_id, fields)
            return edge.model_copy(update=fields)

        edge = self.store.run_transaction(_accept)
        logger.info("Friendship %s accepted by %s", edge_id, accepting_user_id)
        return edge

    def remove(self, user_a: str, user_b: str) -> bool:
        """Delete the pair's edge whatever its status. Removing a missing edge is not an error."""
        edge_id = friendship_id(user_a, user_b)
        removed = self.store.delete(FRIENDSHIPS, edge_id)
        if removed:
            logger.info("Friendship %s removed", edge_id)
        return removed

    def remove_if(self, edge_id: str, check: Callable[[Friendship], None]) -> bool:
        """
        Delete the edge after `check` has seen its current state. `check` raises
        to refuse; the read and the delete commit in one transaction.
        """

        def _remove(tx: Transaction) -> bool:
            data = tx.get(FRIENDSHIPS, edge_id)
            if data is None:
                return False
            check(Friendship(**data))
            tx.delete(FRIENDSHIPS, edge_id)
            return True

        removed = self.store.run_transaction(_remove)
        if removed:
            logger.info("Friendship %s removed", edge_id)
        return removed

    def block(self, blocker_id: str, blocked_id: str) -> Friendship:
        edge_id = friendship_id(blocker_id, blocked_id)

        def _block(tx: Transaction) -> Friendship:
            data = tx.get(FRIENDSHIPS, edge_id)
            if data is None:
                raise NotFoundError(f"Friendship {edge_id} not found")
            edge = Friendship(**data)
            if edge.status == FriendshipStatus.BLOCKED:
                return edge
            fields = {"status": FriendshipStatus.BLOCKED, "blocked_by": blocker_id}
            tx.update(FRIENDSHIPS, edge_id, fields)
            return edge.model_copy(update=fields)

        edge = self.store.run_transaction(_block)
        logger.info("Friendship %s blocked by %s", edge_id, edge.blocked_by)
        return edge

    def get_friendship(self, user_a: str, user_b: str) -> Optional[Friendship]:
        data = self.store.get(FRIENDSHIPS, friendship_id(user_a, user_b))
        return Friendship(**data) if data else None

    def get_friendship_by_id(self, edge_id: str) -> Friendship:
        data = self.store.get(FRIENDSHIPS, edge_id)
        if not data:
            raise NotFoundError(f"Friendship {edge_id} not found")
        return Friendship(**data)

    def status(self, user_a: str, user_b: str) -> FriendStatus:
        edge = self.get_friendship(user_a, user_b)
        if edge is None:
            return FriendStatus.NONE
        return FriendStatus(edge.status.value)

    def list_friends(self, user_id: str) -> list[Account]:
        friends = []
        for edge in self._edges(user_id, FriendshipStatus.ACCEPTED):
            account = self.accounts.find_account(edge.other_user_id(user_id))
            if account is not None:
                friends.append(account)
        friends.sort(key=lambda a: (-a.total_gifted, a.id))
        return friends

    def list_pending_incoming(self, user_id: str) -> list[FriendRequest]:
        requests = []
        for edge in self._edges(user_id, FriendshipStatus.PENDING):
            if edge.initiated_by == user_id:
                continue
            requester = self.accounts.find_account(edge.initiated_by)
            if requester is not None:
                requests.append(FriendRequest(friendship=edge, requester=requester))
        requests.sort(key=lambda r: (r.friendship.created_at, r.friendship.id), reverse=True)
        return requests

    def list_pending_outgoing(self, user_id: str) -> list[Friendship]:
        edges = [e for e in self._edges(user_id, FriendshipStatus.PENDING) if e.initiated_by == user_id]
        edges.sort(key=lambda e: (e.created_at, e.id), reverse=True)
        return edges

    def _edges(self, user_id: str, status: FriendshipStatus) -> list[Friendship]:
        edges = []
        for side in ("user_id1", "user_id2"):
            edges.extend(
                Friendship(**data)
                for data in self.store.query(
                    FRIENDSHIPS, where=[(side, "==", user_id), ("status", "==", status)]
                )
            )
        return edges
