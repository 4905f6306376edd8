import logging

from core.errors import InvalidStateTransitionError, ServiceError
from notifications.models import NotificationKind
from notifications.service import Notifier

from .graph import FriendGraph
from .models import Friendship, FriendshipResponse, FriendshipStatus, friendship_id

logger = logging.getLogger(__name__)


class FriendRequestService:
    def __init__(self, graph: FriendGraph, notifier: Notifier):
        self.graph = graph
        self.notifier = notifier

    def send_request(self, sender_id: str, receiver_id: str) -> FriendshipResponse:
        edge = self.graph.create_request(sender_id, receiver_id)
        name = edge.other_user_name(receiver_id)
        username = edge.other_username(receiver_id)
        delivered = self._notify(
            receiver_id,
            NotificationKind.FRIEND_REQUEST,
            title="New friend request",
            message=f"{name} (@{username}) wants to be your friend",
            related_user_id=sender_id,
            edge=edge,
        )
        return FriendshipResponse(
            friendship=edge, notification_delivered=delivered, message="Friend request sent"
        )

    def accept(self, edge_id: str, accepting_user_id: str) -> FriendshipResponse:
        edge = self.graph.accept(edge_id, accepting_user_id)
        delivered = self._notify(
            edge.initiated_by,
            NotificationKind.FRIEND_ACCEPTED,
            title="Friend request accepted",
            message=f"{edge.other_user_name(edge.initiated_by)} accepted your friend request",
            related_user_id=accepting_user_id,
            edge=edge,
        )
        return FriendshipResponse(
            friendship=edge, notification_delivered=delivered, message="Friend request accepted"
        )

    def decline(self, edge_id: str, user_id: str) -> bool:
        """Receiver turns down a pending request."""

        def _check(edge: Friendship) -> None:
            if not edge.can_accept(user_id):
                raise InvalidStateTransitionError(
                    f"Cannot decline friendship {edge_id}: only the receiver of a pending request can"
                )

        return self.graph.remove_if(edge_id, _check)

    def cancel(self, edge_id: str, user_id: str) -> bool:
        """Sender withdraws a pending request."""

        def _check(edge: Friendship) -> None:
            if edge.status != FriendshipStatus.PENDING or edge.initiated_by != user_id:
                raise InvalidStateTransitionError(
                    f"Cannot cancel friendship {edge_id}: only the sender of a pending request can"
                )

        return self.graph.remove_if(edge_id, _check)

    def unfriend(self, user_id: str, other_user_id: str) -> bool:
        """
        Drop the edge between the two users. A block can only be lifted by the
        user who placed it.
        """
        edge_id = friendship_id(user_id, other_user_id)

        def _check(edge: Friendship) -> None:
            if edge.status == FriendshipStatus.BLOCKED and edge.blocked_by != user_id:
                raise InvalidStateTransitionError(
                    f"Cannot remove friendship {edge_id}: blocked by {edge.blocked_by}"
                )

        return self.graph.remove_if(edge_id, _check)

    def block(self, user_id: str, other_user_id: str) -> Friendship:
        return self.graph.block(user_id, other_user_id)

    def _notify(self, recipient_id, kind, title, message, related_user_id, edge: Friendship) -> bool:
        try:
            self.notifier.notify(
                recipient_id,
                kind,
                title=title,
                message=message,
                related_user_id=related_user_id,
                related_friendship_id=edge.id,
            )
        except ServiceError as e:
            logger.warning("Friendship %s updated but notifying %s failed: %s", edge.id, recipient_id, e)
            return False
        return True
