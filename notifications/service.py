import logging
from datetime import datetime, timezone
from typing import Callable, Optional
from uuid import uuid4

from core.config import Settings, get_settings
from core.errors import NotFoundError
from core.identifiers import ensure_user_id
from core.paging import resolve_limit
from store.base import ChangeEvent, ChangeKind, DocumentStore, ListenerRegistration, Transaction

from .models import Notification, NotificationKind

logger = logging.getLogger(__name__)

NOTIFICATIONS = "notifications"


class Notifier:
    def __init__(self, store: DocumentStore, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or get_settings()

    def notify(
        self,
        recipient_id: str,
        kind: NotificationKind,
        title: str,
        message: str,
        related_user_id: Optional[str] = None,
        related_transaction_id: Optional[str] = None,
        related_friendship_id: Optional[str] = None,
        action_url: Optional[str] = None,
    ) -> Notification:
        ensure_user_id(recipient_id)
        notification = Notification(
            id=str(uuid4()),
            user_id=recipient_id,
            type=kind,
            title=title,
            message=message,
            related_user_id=related_user_id,
            related_transaction_id=related_transaction_id,
            related_friendship_id=related_friendship_id,
            read=False,
            created_at=datetime.now(timezone.utc),
            action_url=action_url,
        )
        self.store.create(NOTIFICATIONS, notification.id, notification.model_dump())
        logger.debug("Notification %s (%s) -> %s", notification.id, kind.value, recipient_id)
        return notification

    def get_notification(self, notification_id: str) -> Notification:
        data = self.store.get(NOTIFICATIONS, notification_id)
        if not data:
            raise NotFoundError(f"Notification {notification_id} not found")
        return Notification(**data)

    def mark_read(self, notification_id: str) -> Notification:
        return self._mark_read(notification_id)[0]

    def mark_all_read(self, user_id: str) -> int:
        unread = self.store.query(
            NOTIFICATIONS, where=[("user_id", "==", user_id), ("read", "==", False)]
        )
        flipped = 0
        for data in unread:
            _, changed = self._mark_read(data["id"])
            flipped += int(changed)
        return flipped

    def unread_count(self, user_id: str) -> int:
        return self.store.count(
            NOTIFICATIONS, where=[("user_id", "==", user_id), ("read", "==", False)]
        )

    def list_notifications(self, user_id: str, limit: Optional[int] = None) -> list[Notification]:
        documents = self.store.query(
            NOTIFICATIONS,
            where=[("user_id", "==", user_id)],
            order_by=[("created_at", "desc"), ("id", "desc")],
            limit=resolve_limit(limit, self.settings.notifications_limit),
        )
        return [Notification(**data) for data in documents]

    def listen(
        self, user_id: str, callback: Callable[[Notification], None]
    ) -> ListenerRegistration:
        def _on_change(event: ChangeEvent) -> None:
            if event.kind != ChangeKind.REMOVED and event.data:
                callback(Notification(**event.data))

        return self.store.listen_collection(
            NOTIFICATIONS, _on_change, where=[("user_id", "==", user_id)]
        )

    def _mark_read(self, notification_id: str) -> tuple[Notification, bool]:
        def _flip(tx: Transaction) -> tuple[Notification, bool]:
            data = tx.get(NOTIFICATIONS, notification_id)
            if data is None:
                raise NotFoundError(f"Notification {notification_id} not found")
            notification = Notification(**data)
            if notification.read:
                return notification, False
            fields = {"read": True, "read_at": datetime.now(timezone.utc)}
            tx.update(NOTIFICATIONS, notification_id, fields)
            return notification.model_copy(update=fields), True

        return self.store.run_transaction(_flip)
