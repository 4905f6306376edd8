from dataclasses import dataclass
from typing import Optional

from core.config import Settings, get_settings
from ledger.accounts import AccountStore
from ledger.gifts import GiftService
from ledger.ranking import RankingEngine
from ledger.service import LedgerService
from notifications.service import Notifier
from social.graph import FriendGraph
from social.requests import FriendRequestService
from store.base import DocumentStore
from store.memory import InMemoryDocumentStore


@dataclass
class ServiceContainer:
    settings: Settings
    store: DocumentStore
    accounts: AccountStore
    ledger: LedgerService
    notifier: Notifier
    gifts: GiftService
    ranking: RankingEngine
    graph: FriendGraph
    friend_requests: FriendRequestService

    def close(self) -> None:
        self.store.close()


def build_container(
    settings: Optional[Settings] = None, store: Optional[DocumentStore] = None
) -> ServiceContainer:
    """Wire every component around one store handle owned by the caller."""
    settings = settings or get_settings()
    store = store or InMemoryDocumentStore(settings)

    accounts = AccountStore(store, settings)
    ledger = LedgerService(store, accounts, settings)
    notifier = Notifier(store, settings)
    graph = FriendGraph(store, accounts, settings)
    return ServiceContainer(
        settings=settings,
        store=store,
        accounts=accounts,
        ledger=ledger,
        notifier=notifier,
        gifts=GiftService(ledger, notifier),
        ranking=RankingEngine(store, accounts, notifier, settings),
        graph=graph,
        friend_requests=FriendRequestService(graph, notifier),
    )
