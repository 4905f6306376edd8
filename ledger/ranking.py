import logging
from typing import Optional

from core.config import Settings, get_settings
from core.errors import ServiceError
from core.paging import resolve_limit
from notifications.models import NotificationKind
from notifications.service import Notifier
from store.base import DocumentStore

from .accounts import ACCOUNTS, AccountStore
from .models import Account, LeaderboardEntry

logger = logging.getLogger(__name__)


def dense_ranks(accounts: list[Account]) -> list[int]:
    """
    Ranks for accounts already ordered by total gifted, descending.

    Tied accounts share a rank and the next distinct total gets 1 + the number
    of accounts ahead of it: totals [300, 300, 100] rank [1, 1, 3].
    """
    ranks: list[int] = []
    for position, account in enumerate(accounts):
        if position and account.total_gifted == accounts[position - 1].total_gifted:
            ranks.append(ranks[-1])
        else:
            ranks.append(position + 1)
    return ranks


class RankingEngine:
    def __init__(
        self,
        store: DocumentStore,
        accounts: Optional[AccountStore] = None,
        notifier: Optional[Notifier] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.accounts = accounts or AccountStore(store, self.settings)
        self.notifier = notifier

    def leaderboard(self, limit: Optional[int] = None) -> list[LeaderboardEntry]:
        limit = resolve_limit(limit, self.settings.leaderboard_limit)
        accounts = self.accounts.list_for_ranking(limit)
        return [
            LeaderboardEntry(rank=rank, account=account)
            for rank, account in zip(dense_ranks(accounts), accounts)
        ]

    def rank_of(self, user_id: str) -> int:
        account = self.accounts.get_account(user_id)
        ahead = self.store.count(ACCOUNTS, where=[("total_gifted", ">", account.total_gifted)])
        return ahead + 1

    def refresh_ranks(self) -> int:
        """Rewrite the cached rank on every account; returns how many changed."""
        accounts = self.accounts.list_for_ranking()
        changed = 0
        for rank, account in zip(dense_ranks(accounts), accounts):
            if account.rank == rank:
                continue
            self.store.update(ACCOUNTS, account.id, {"rank": rank})
            changed += 1
            if account.rank > 0 and rank < account.rank:
                self._notify_climb(account, rank)
        logger.info("Refreshed ranks for %d accounts, %d changed", len(accounts), changed)
        return changed

    def _notify_climb(self, account: Account, rank: int) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.notify(
                account.id,
                NotificationKind.LEADERBOARD_CHANGE,
                title="You moved up the leaderboard!",
                message=f"You are now ranked #{rank} (was #{account.rank})",
            )
        except ServiceError as e:
            logger.warning("Rank notification for %s failed: %s", account.id, e)
