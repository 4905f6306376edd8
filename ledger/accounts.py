import logging
import re
from datetime import datetime, timezone
from typing import Callable, Optional
from uuid import uuid4

from core.config import Settings, get_settings
from core.errors import (
    AlreadyExistsError,
    InsufficientFundsError,
    InvalidArgumentError,
    NotFoundError,
)
from core.identifiers import ensure_user_id
from core.paging import resolve_limit
from store.base import ChangeEvent, DocumentStore, ListenerRegistration, Transaction

from .models import (
    Account,
    AccountDelta,
    CreateAccountRequest,
    EntryKind,
    EntryStatus,
    LedgerEntry,
    generosity_level,
)

logger = logging.getLogger(__name__)

ACCOUNTS = "users"
USERNAMES = "usernames"
STUDENT_IDS = "student_ids"
TRANSACTIONS = "transactions"

USERNAME_PATTERN = re.compile(r"^[a-z0-9_.]{3,30}$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_username(username: str) -> str:
    return username.strip().lower()


class AccountStore:
    """
    Owns the per-user balance and lifetime counters.

    Balances only move through `apply_delta`, which re-reads the account inside
    a store transaction and refuses any delta that would take the balance below
    zero. Callers that need several accounts to move together (a gift) pass
    their own transaction so every delta commits or none does.
    """

    def __init__(self, store: DocumentStore, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or get_settings()

    def create_account(self, request: CreateAccountRequest) -> Account:
        user_id = ensure_user_id(request.user_id)
        username = normalize_username(request.username)
        if not USERNAME_PATTERN.match(username):
            raise InvalidArgumentError(f"Invalid username: {request.username!r}")
        student_id = request.student_id.strip()

        initial_balance = request.initial_balance
        if initial_balance is None:
            initial_balance = self.settings.starting_balance

        def _create(tx: Transaction) -> Account:
            if tx.get(ACCOUNTS, user_id) is not None:
                raise AlreadyExistsError(f"Account {user_id} already exists")
            if tx.get(USERNAMES, username) is not None:
                raise AlreadyExistsError(f"Username {username} is taken")
            if student_id and tx.get(STUDENT_IDS, student_id) is not None:
                raise AlreadyExistsError(f"Student ID {student_id} is already registered")

            now = utcnow()
            account = Account(
                id=user_id,
                name=request.name,
                username=username,
                email=request.email,
                school=request.school,
                student_id=student_id,
                email_verified=request.email_verified,
                balance=initial_balance,
                total_earned=initial_balance,
                created_at=now,
                last_active=now,
            )
            tx.create(ACCOUNTS, user_id, account.model_dump())
            tx.create(USERNAMES, username, {"user_id": user_id, "created_at": now})
            if student_id:
                tx.create(STUDENT_IDS, student_id, {"user_id": user_id, "created_at": now})

            # The starting balance is backed by a ledger entry like any other credit
            if initial_balance > 0:
                entry = LedgerEntry(
                    id=str(uuid4()),
                    kind=EntryKind.BONUS,
                    to_user_id=user_id,
                    amount=initial_balance,
                    message="Starter points",
                    status=EntryStatus.COMPLETED,
                    created_at=now,
                    completed_at=now,
                    to_user_name=account.name,
                    to_username=account.username,
                )
                tx.create(TRANSACTIONS, entry.id, entry.model_dump())
            return account

        account = self.store.run_transaction(_create)
        logger.info("Created account %s (@%s) with %d points", user_id, username, initial_balance)
        return account

    def get_account(self, user_id: str) -> Account:
        account = self.find_account(user_id)
        if account is None:
            raise NotFoundError(f"Account {user_id} not found")
        return account

    def find_account(self, user_id: str) -> Optional[Account]:
        data = self.store.get(ACCOUNTS, user_id)
        return Account(**data) if data else None

    def apply_delta(
        self,
        user_id: str,
        delta: AccountDelta,
        transaction: Optional[Transaction] = None,
    ) -> Account:
        if transaction is None:
            return self.store.run_transaction(lambda tx: self.apply_delta(user_id, delta, tx))

        if any(value < 0 for value in delta.counters().values()):
            raise InvalidArgumentError("Lifetime counters can only increase")

        data = transaction.get(ACCOUNTS, user_id)
        if data is None:
            raise NotFoundError(f"Account {user_id} not found")
        account = Account(**data)

        new_balance = account.balance + delta.balance
        if new_balance < 0:
            raise InsufficientFundsError(
                f"Account {user_id} has {account.balance} points, needs {-delta.balance}",
                balance=account.balance,
                requested=-delta.balance,
            )

        total_gifted = account.total_gifted + delta.total_gifted
        fields = {
            "balance": new_balance,
            "total_earned": account.total_earned + delta.total_earned,
            "total_gifted": total_gifted,
            "gifts_given": account.gifts_given + delta.gifts_given,
            "gifts_received": account.gifts_received + delta.gifts_received,
            "generosity_score": total_gifted,
            "generosity_level": generosity_level(total_gifted),
            "last_active": utcnow(),
        }
        transaction.update(ACCOUNTS, user_id, fields)
        return account.model_copy(update=fields)

    def list_for_ranking(self, limit: Optional[int] = None) -> list[Account]:
        documents = self.store.query(
            ACCOUNTS,
            order_by=[("total_gifted", "desc"), ("id", "asc")],
            limit=limit,
        )
        return [Account(**data) for data in documents]

    def is_username_available(self, username: str) -> bool:
        return self.store.get(USERNAMES, normalize_username(username)) is None

    def is_student_id_available(self, student_id: str) -> bool:
        student_id = student_id.strip()
        if not student_id:
            raise InvalidArgumentError("Student ID must not be empty")
        return self.store.get(STUDENT_IDS, student_id) is None

    def search_users(self, query: str, limit: int = 20) -> list[Account]:
        limit = resolve_limit(limit, 20)
        prefix = normalize_username(query)
        if len(prefix) < 2:
            return []
        documents = self.store.query(
            ACCOUNTS,
            where=[("username", ">=", prefix), ("username", "<", prefix + "\uf8ff")],
            order_by=[("username", "asc")],
            limit=limit,
        )
        return [Account(**data) for data in documents]

    def update_profile(self, user_id: str, name: str) -> Account:
        """Rename a user. Snapshots already written into entries and edges keep the old name."""
        self.store.update(ACCOUNTS, user_id, {"name": name, "last_active": utcnow()})
        return self.get_account(user_id)

    def mark_email_verified(self, user_id: str) -> Account:
        self.store.update(ACCOUNTS, user_id, {"email_verified": True})
        return self.get_account(user_id)

    def listen(
        self, user_id: str, callback: Callable[[Optional[Account]], None]
    ) -> ListenerRegistration:
        def _on_change(event: ChangeEvent) -> None:
            callback(Account(**event.data) if event.data else None)

        return self.store.listen_document(ACCOUNTS, user_id, _on_change)
