from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Sequence, TypeVar

T = TypeVar("T")

# ("field", "op", value), op in ==, !=, <, <=, >, >=, in
Filter = tuple[str, str, Any]
# ("field", "asc" | "desc")
Ordering = tuple[str, str]


class ChangeKind(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass(frozen=True)
class ChangeEvent:
    collection: str
    doc_id: str
    kind: ChangeKind
    data: Optional[dict]


class ListenerRegistration:
    def __init__(self, on_remove: Callable[[], None]):
        self._on_remove = on_remove
        self.active = True

    def remove(self) -> None:
        if self.active:
            self.active = False
            self._on_remove()


class Transaction(ABC):
    """Reads inside a transaction are validated at commit; writes are buffered until then."""

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[dict]: ...

    @abstractmethod
    def create(self, collection: str, doc_id: str, data: dict) -> None: ...

    @abstractmethod
    def set(self, collection: str, doc_id: str, data: dict) -> None: ...

    @abstractmethod
    def update(self, collection: str, doc_id: str, fields: dict) -> None: ...

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None: ...


class DocumentStore(ABC):
    """
    Contract of the external document/KV service the core is built on.

    Documents are plain dicts keyed by id inside named collections.
    """

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[dict]: ...

    @abstractmethod
    def create(self, collection: str, doc_id: str, data: dict) -> None:
        """Conditional create: raises AlreadyExistsError if the key exists."""

    @abstractmethod
    def set(self, collection: str, doc_id: str, data: dict) -> None: ...

    @abstractmethod
    def update(self, collection: str, doc_id: str, fields: dict) -> None: ...

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> bool: ...

    @abstractmethod
    def query(
        self,
        collection: str,
        where: Sequence[Filter] = (),
        order_by: Sequence[Ordering] = (),
        limit: Optional[int] = None,
    ) -> list[dict]: ...

    @abstractmethod
    def count(self, collection: str, where: Sequence[Filter] = ()) -> int: ...

    @abstractmethod
    def run_transaction(
        self, fn: Callable[[Transaction], T], max_attempts: Optional[int] = None
    ) -> T: ...

    @abstractmethod
    def listen_document(
        self, collection: str, doc_id: str, callback: Callable[[ChangeEvent], None]
    ) -> ListenerRegistration: ...

    @abstractmethod
    def listen_collection(
        self,
        collection: str,
        callback: Callable[[ChangeEvent], None],
        where: Sequence[Filter] = (),
    ) -> ListenerRegistration: ...

    @abstractmethod
    def close(self) -> None: ...
