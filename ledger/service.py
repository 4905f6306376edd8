import logging
from typing import Callable, Optional
from uuid import uuid4

from core.config import Settings, get_settings
from core.errors import InvalidArgumentError, NotFoundError
from core.identifiers import ensure_user_id
from core.paging import resolve_limit
from store.base import (
    ChangeEvent,
    ChangeKind,
    DocumentStore,
    ListenerRegistration,
    Transaction,
)

from .accounts import TRANSACTIONS, AccountStore, utcnow
from .models import (
    Account,
    AccountDelta,
    Activity,
    ActivityType,
    EntryKind,
    EntryStatus,
    IntegrityReport,
    LedgerEntry,
    LedgerHistoryResponse,
)

logger = logging.getLogger(__name__)

ACTIVITIES = "activities"


def _ensure_amount(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidArgumentError(f"Amount must be a positive integer, got {amount!r}")
    return amount


def _newest_first(entries: list[LedgerEntry]) -> list[LedgerEntry]:
    return sorted(entries, key=lambda e: (e.created_at, e.id), reverse=True)


class LedgerService:
    """
    Records immutable point movements and applies them to accounts.

    Each movement is one store transaction: the account deltas, the completed
    ledger entry and the activity feed items commit together or not at all.
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

    def transfer(
        self,
        from_user_id: str,
        to_user_id: str,
        amount: int,
        message: Optional[str] = None,
    ) -> tuple[LedgerEntry, Account, Account]:
        ensure_user_id(from_user_id)
        ensure_user_id(to_user_id)
        if from_user_id == to_user_id:
            raise InvalidArgumentError("Cannot gift points to yourself")
        _ensure_amount(amount)

        def _transfer(tx: Transaction) -> tuple[LedgerEntry, Account, Account]:
            # The balance check happens inside apply_delta, against the
            # version of the sender this transaction commits over.
            sender = self.accounts.apply_delta(
                from_user_id,
                AccountDelta(balance=-amount, total_gifted=amount, gifts_given=1),
                tx,
            )
            receiver = self.accounts.apply_delta(
                to_user_id,
                AccountDelta(balance=amount, total_earned=amount, gifts_received=1),
                tx,
            )
            now = utcnow()
            entry = LedgerEntry(
                id=str(uuid4()),
                kind=EntryKind.GIFT,
                from_user_id=from_user_id,
                to_user_id=to_user_id,
                amount=amount,
                message=message,
                status=EntryStatus.COMPLETED,
                created_at=now,
                completed_at=now,
                from_user_name=sender.name,
                from_username=sender.username,
                to_user_name=receiver.name,
                to_username=receiver.username,
            )
            tx.create(TRANSACTIONS, entry.id, entry.model_dump())
            self._record_activity(tx, entry, from_user_id, ActivityType.SENT)
            self._record_activity(tx, entry, to_user_id, ActivityType.RECEIVED)
            return entry, sender, receiver

        entry, sender, receiver = self.store.run_transaction(_transfer)
        logger.info(
            "Transfer %s: %s -> %s, %d points", entry.id, from_user_id, to_user_id, amount
        )
        return entry, sender, receiver

    def credit(
        self,
        user_id: str,
        kind: EntryKind,
        amount: int,
        message: Optional[str] = None,
    ) -> tuple[LedgerEntry, Account]:
        """System-issued bonus/earned credit or penalty debit on a single account."""
        ensure_user_id(user_id)
        _ensure_amount(amount)
        kind = EntryKind(kind)
        if kind == EntryKind.GIFT:
            raise InvalidArgumentError("Gifts need a sender; use transfer()")

        if kind == EntryKind.PENALTY:
            delta = AccountDelta(balance=-amount)
            activity_type = ActivityType.DEDUCTED
        else:
            delta = AccountDelta(balance=amount, total_earned=amount)
            activity_type = ActivityType.EARNED

        def _credit(tx: Transaction) -> tuple[LedgerEntry, Account]:
            account = self.accounts.apply_delta(user_id, delta, tx)
            now = utcnow()
            entry = LedgerEntry(
                id=str(uuid4()),
                kind=kind,
                to_user_id=user_id,
                amount=amount,
                message=message,
                status=EntryStatus.COMPLETED,
                created_at=now,
                completed_at=now,
                to_user_name=account.name,
                to_username=account.username,
            )
            tx.create(TRANSACTIONS, entry.id, entry.model_dump())
            self._record_activity(tx, entry, user_id, activity_type)
            return entry, account

        entry, account = self.store.run_transaction(_credit)
        logger.info("%s %s: %s, %d points", kind.value.capitalize(), entry.id, user_id, amount)
        return entry, account

    def get_entry(self, entry_id: str) -> LedgerEntry:
        data = self.store.get(TRANSACTIONS, entry_id)
        if not data:
            raise NotFoundError(f"Ledger entry {entry_id} not found")
        return LedgerEntry(**data)

    def get_history(self, user_id: str, limit: Optional[int] = None) -> list[LedgerEntry]:
        limit = resolve_limit(limit, self.settings.history_limit)

        newest_first = [("created_at", "desc"), ("id", "desc")]
        merged: dict[str, LedgerEntry] = {}
        for field in ("from_user_id", "to_user_id"):
            for data in self.store.query(
                TRANSACTIONS, where=[(field, "==", user_id)], order_by=newest_first, limit=limit
            ):
                merged[data["id"]] = LedgerEntry(**data)
        return _newest_first(list(merged.values()))[:limit]

    def get_ledger_history(self, user_id: str, limit: Optional[int] = None) -> LedgerHistoryResponse:
        account = self.accounts.get_account(user_id)
        return LedgerHistoryResponse(
            user_id=user_id,
            entries=self.get_history(user_id, limit),
            current_balance=account.balance,
        )

    def get_activity(self, user_id: str, limit: Optional[int] = None) -> list[Activity]:
        documents = self.store.query(
            ACTIVITIES,
            where=[("user_id", "==", user_id)],
            order_by=[("timestamp", "desc"), ("id", "desc")],
            limit=resolve_limit(limit, self.settings.activity_limit),
        )
        return [Activity(**data) for data in documents]

    def verify_integrity(self, user_id: str) -> IntegrityReport:
        """Recompute the balance from the user's completed entries and compare it with the account."""
        account = self.accounts.get_account(user_id)
        entries: dict[str, LedgerEntry] = {}
        for field in ("from_user_id", "to_user_id"):
            for data in self.store.query(TRANSACTIONS, where=[(field, "==", user_id)]):
                entries[data["id"]] = LedgerEntry(**data)

        calculated = sum(entry.signed_amount(user_id) for entry in entries.values())
        status = "OK" if calculated == account.balance else "MISMATCH"
        if status != "OK":
            logger.warning(
                "Balance mismatch for %s: ledger says %d, account says %d",
                user_id, calculated, account.balance,
            )
        return IntegrityReport(
            status=status,
            user_id=user_id,
            calculated_balance=calculated,
            recorded_balance=account.balance,
            entry_count=len(entries),
            verified_at=utcnow(),
        )

    def listen_history(
        self, user_id: str, callback: Callable[[LedgerEntry], None]
    ) -> ListenerRegistration:
        def _on_change(event: ChangeEvent) -> None:
            if event.kind == ChangeKind.ADDED and event.data:
                callback(LedgerEntry(**event.data))

        registrations = [
            self.store.listen_collection(TRANSACTIONS, _on_change, where=[(field, "==", user_id)])
            for field in ("from_user_id", "to_user_id")
        ]
        return ListenerRegistration(lambda: [r.remove() for r in registrations])

    def listen_activity(
        self, user_id: str, callback: Callable[[Activity], None]
    ) -> ListenerRegistration:
        def _on_change(event: ChangeEvent) -> None:
            if event.kind == ChangeKind.ADDED and event.data:
                callback(Activity(**event.data))

        return self.store.listen_collection(ACTIVITIES, _on_change, where=[("user_id", "==", user_id)])

    def _record_activity(
        self, tx: Transaction, entry: LedgerEntry, user_id: str, activity_type: ActivityType
    ) -> None:
        activity = Activity(
            id=str(uuid4()),
            user_id=user_id,
            type=activity_type,
            from_user_id=entry.from_user_id,
            to_user_id=entry.to_user_id,
            from_name=entry.from_user_name,
            to_name=entry.to_user_name,
            amount=entry.amount,
            message=entry.message,
            transaction_id=entry.id,
            timestamp=entry.created_at,
        )
        tx.create(ACTIVITIES, activity.id, activity.model_dump())
