import copy
import itertools
import logging
import operator
import random
import threading
import time
from typing import Any, Callable, Optional, Sequence

from core.config import Settings, get_settings
from core.errors import AlreadyExistsError, NotFoundError, TransientError, UnavailableError

from .base import (
    ChangeEvent,
    ChangeKind,
    DocumentStore,
    Filter,
    ListenerRegistration,
    Ordering,
    T,
    Transaction,
)

logger = logging.getLogger(__name__)

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "in": lambda value, options: value in options,
}


class WriteConflict(Exception):
    """A document read by a transaction changed before the transaction committed."""


def _matches(data: Optional[dict], where: Sequence[Filter]) -> bool:
    if data is None:
        return False
    for field, op, expected in where:
        if op not in _OPERATORS:
            raise ValueError(f"Unsupported query operator: {op}")
        value = data.get(field)
        if value is None and op not in ("==", "!="):
            return False
        if not _OPERATORS[op](value, expected):
            return False
    return True


def _sort_key(value: Any):
    return (value is not None, value)


class _Listener:
    def __init__(self, collection: str, callback, doc_id: Optional[str] = None, where: Sequence[Filter] = ()):
        self.collection = collection
        self.callback = callback
        self.doc_id = doc_id
        self.where = tuple(where)

    def wants(self, event: ChangeEvent, previous: Optional[dict]) -> bool:
        if event.collection != self.collection:
            return False
        if self.doc_id is not None:
            return event.doc_id == self.doc_id
        return _matches(event.data, self.where) or _matches(previous, self.where)


class InMemoryTransaction(Transaction):
    def __init__(self, store: "InMemoryDocumentStore"):
        self._store = store
        self._reads: dict[tuple[str, str], int] = {}
        self._writes: dict[tuple[str, str], Optional[dict]] = {}

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        key = (collection, doc_id)
        if key in self._writes:
            return copy.deepcopy(self._writes[key])
        version, data = self._store._read(collection, doc_id)
        self._reads.setdefault(key, version)
        return data

    def create(self, collection: str, doc_id: str, data: dict) -> None:
        if self.get(collection, doc_id) is not None:
            raise AlreadyExistsError(f"{collection}/{doc_id} already exists")
        self._writes[(collection, doc_id)] = {**copy.deepcopy(data), "id": doc_id}

    def set(self, collection: str, doc_id: str, data: dict) -> None:
        self._writes[(collection, doc_id)] = {**copy.deepcopy(data), "id": doc_id}

    def update(self, collection: str, doc_id: str, fields: dict) -> None:
        current = self.get(collection, doc_id)
        if current is None:
            raise NotFoundError(f"{collection}/{doc_id} not found")
        current.update(copy.deepcopy(fields))
        self._writes[(collection, doc_id)] = current

    def delete(self, collection: str, doc_id: str) -> None:
        self.get(collection, doc_id)
        self._writes[(collection, doc_id)] = None

    def commit(self) -> list[tuple[ChangeEvent, Optional[dict]]]:
        return self._store._commit(self._reads, self._writes)


class InMemoryDocumentStore(DocumentStore):
    """
    Thread-safe in-memory implementation of the document store contract.

    Every document carries a version drawn from a store-wide counter. A
    transaction remembers the version of each document it read and commits
    only if none of them moved (compare-and-swap over the whole read set);
    otherwise the transaction function is re-run, up to the retry budget.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._collections: dict[str, dict[str, tuple[int, dict]]] = {}
        self._lock = threading.RLock()
        self._versions = itertools.count(1)
        self._listeners: dict[int, _Listener] = {}
        self._listener_ids = itertools.count(1)
        self._closed = False

    # Primitives

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        self._ensure_open()
        return self._read(collection, doc_id)[1]

    def create(self, collection: str, doc_id: str, data: dict) -> None:
        self.run_transaction(lambda tx: tx.create(collection, doc_id, data))

    def set(self, collection: str, doc_id: str, data: dict) -> None:
        self.run_transaction(lambda tx: tx.set(collection, doc_id, data))

    def update(self, collection: str, doc_id: str, fields: dict) -> None:
        self.run_transaction(lambda tx: tx.update(collection, doc_id, fields))

    def delete(self, collection: str, doc_id: str) -> bool:
        def _delete(tx: Transaction) -> bool:
            existed = tx.get(collection, doc_id) is not None
            if existed:
                tx.delete(collection, doc_id)
            return existed

        return self.run_transaction(_delete)

    def query(
        self,
        collection: str,
        where: Sequence[Filter] = (),
        order_by: Sequence[Ordering] = (),
        limit: Optional[int] = None,
    ) -> list[dict]:
        self._ensure_open()
        with self._lock:
            documents = [
                copy.deepcopy(data)
                for _, data in self._collections.get(collection, {}).values()
                if _matches(data, where)
            ]
        # Stable sorts applied from the least significant key up
        for field, direction in reversed(list(order_by)):
            documents.sort(key=lambda d: _sort_key(d.get(field)), reverse=direction == "desc")
        if limit is not None:
            documents = documents[:limit]
        return documents

    def count(self, collection: str, where: Sequence[Filter] = ()) -> int:
        self._ensure_open()
        with self._lock:
            return sum(
                1 for _, data in self._collections.get(collection, {}).values()
                if _matches(data, where)
            )

    def run_transaction(
        self, fn: Callable[[Transaction], T], max_attempts: Optional[int] = None
    ) -> T:
        attempts = max_attempts or self.settings.transaction_max_attempts
        for attempt in range(1, attempts + 1):
            self._ensure_open()
            transaction = InMemoryTransaction(self)
            result = fn(transaction)
            try:
                changes = transaction.commit()
            except WriteConflict as e:
                logger.debug("Transaction attempt %d/%d conflicted: %s", attempt, attempts, e)
                if attempt < attempts:
                    self._backoff(attempt)
                continue
            self._dispatch(changes)
            return result
        raise TransientError(f"Transaction aborted after {attempts} conflicting attempts")

    # Subscriptions

    def listen_document(
        self, collection: str, doc_id: str, callback: Callable[[ChangeEvent], None]
    ) -> ListenerRegistration:
        return self._register(_Listener(collection, callback, doc_id=doc_id))

    def listen_collection(
        self,
        collection: str,
        callback: Callable[[ChangeEvent], None],
        where: Sequence[Filter] = (),
    ) -> ListenerRegistration:
        return self._register(_Listener(collection, callback, where=where))

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._listeners.clear()

    # Internals

    def _ensure_open(self) -> None:
        if self._closed:
            raise UnavailableError("Document store is closed")

    def _read(self, collection: str, doc_id: str) -> tuple[int, Optional[dict]]:
        self._ensure_open()
        with self._lock:
            record = self._collections.get(collection, {}).get(doc_id)
            if record is None:
                return 0, None
            return record[0], copy.deepcopy(record[1])

    def _commit(
        self,
        reads: dict[tuple[str, str], int],
        writes: dict[tuple[str, str], Optional[dict]],
    ) -> list[tuple[ChangeEvent, Optional[dict]]]:
        changes = []
        with self._lock:
            self._ensure_open()
            for (collection, doc_id), version in reads.items():
                record = self._collections.get(collection, {}).get(doc_id)
                current = record[0] if record else 0
                if current != version:
                    raise WriteConflict(f"{collection}/{doc_id} moved from v{version} to v{current}")

            for (collection, doc_id), data in writes.items():
                documents = self._collections.setdefault(collection, {})
                previous = documents.get(doc_id)
                previous_data = previous[1] if previous else None
                if data is None:
                    if previous is None:
                        continue
                    del documents[doc_id]
                    event = ChangeEvent(collection, doc_id, ChangeKind.REMOVED, None)
                else:
                    documents[doc_id] = (next(self._versions), copy.deepcopy(data))
                    kind = ChangeKind.MODIFIED if previous else ChangeKind.ADDED
                    event = ChangeEvent(collection, doc_id, kind, copy.deepcopy(data))
                changes.append((event, copy.deepcopy(previous_data)))
        return changes

    def _dispatch(self, changes: list[tuple[ChangeEvent, Optional[dict]]]) -> None:
        if not changes:
            return
        with self._lock:
            listeners = list(self._listeners.values())
        for event, previous in changes:
            for listener in listeners:
                if not listener.wants(event, previous):
                    continue
                try:
                    listener.callback(event)
                except Exception:
                    logger.exception("Listener on %s failed for %s", listener.collection, event.doc_id)

    def _register(self, listener: _Listener) -> ListenerRegistration:
        self._ensure_open()
        with self._lock:
            listener_id = next(self._listener_ids)
            self._listeners[listener_id] = listener
        return ListenerRegistration(lambda: self._unregister(listener_id))

    def _unregister(self, listener_id: int) -> None:
        with self._lock:
            self._listeners.pop(listener_id, None)

    def _backoff(self, attempt: int) -> None:
        delay = min(
            self.settings.transaction_backoff_base * (2 ** (attempt - 1)),
            self.settings.transaction_backoff_max,
        )
        time.sleep(random.uniform(0, delay))
