import logging

from core.errors import ServiceError
from notifications.models import NotificationKind
from notifications.service import Notifier

from .models import CreditRequest, GiftRequest, LedgerEntry, TransferResponse
from .service import LedgerService

logger = logging.getLogger(__name__)


class GiftService:
    """Point transfers between users, followed by a best-effort notification to the receiver."""

    def __init__(self, ledger: LedgerService, notifier: Notifier):
        self.ledger = ledger
        self.notifier = notifier

    def send_gift(self, from_user_id: str, request: GiftRequest) -> TransferResponse:
        entry, sender, receiver = self.ledger.transfer(
            from_user_id, request.to_user_id, request.amount, request.message
        )
        delivered = self._notify_receiver(entry)
        return TransferResponse(
            entry=entry,
            sender=sender,
            receiver=receiver,
            notification_delivered=delivered,
            message="Gift sent successfully",
        )

    def award(self, request: CreditRequest) -> TransferResponse:
        entry, account = self.ledger.credit(
            request.user_id, request.kind, request.amount, request.message
        )
        return TransferResponse(
            entry=entry,
            receiver=account,
            message=f"{request.kind.value.capitalize()} recorded",
        )

    def _notify_receiver(self, entry: LedgerEntry) -> bool:
        sender_name = entry.from_user_name or "A friend"
        message = f"{sender_name} sent you {entry.amount} points"
        if entry.message:
            message = f"{message}: \"{entry.message}\""
        try:
            self.notifier.notify(
                entry.to_user_id,
                NotificationKind.GIFT_RECEIVED,
                title="You received a gift!",
                message=message,
                related_user_id=entry.from_user_id,
                related_transaction_id=entry.id,
            )
        except ServiceError as e:
            # The transfer is already committed; the ledger stays the source of truth
            logger.warning(
                "Gift %s committed but notifying %s failed: %s", entry.id, entry.to_user_id, e
            )
            return False
        return True
