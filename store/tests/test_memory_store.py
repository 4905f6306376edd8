"""
Unit Tests for the in-memory document store

Tests cover:
1. Conditional create and basic reads/writes
2. Queries: filters, ordering, limits, counts
3. Optimistic transactions: retry on conflict, retry budget
4. Subscriptions
5. Unavailable store
"""

import pytest

from core.config import Settings
from core.errors import AlreadyExistsError, NotFoundError, TransientError, UnavailableError
from store import ChangeKind, InMemoryDocumentStore


@pytest.fixture
def memory_store():
    return InMemoryDocumentStore(Settings(_env_file=None, transaction_backoff_base=0.0))


class TestPrimitives:
    """Tests for get/create/set/update/delete."""

    def test_create_then_get(self, memory_store):
        memory_store.create("users", "alice", {"balance": 500})

        assert memory_store.get("users", "alice") == {"id": "alice", "balance": 500}
        assert memory_store.get("users", "nobody") is None

    def test_create_is_conditional(self, memory_store):
        memory_store.create("users", "alice", {"balance": 500})

        with pytest.raises(AlreadyExistsError):
            memory_store.create("users", "alice", {"balance": 0})

        assert memory_store.get("users", "alice")["balance"] == 500

    def test_update_missing_document_fails(self, memory_store):
        with pytest.raises(NotFoundError):
            memory_store.update("users", "ghost", {"balance": 1})

    def test_update_merges_fields(self, memory_store):
        memory_store.create("users", "alice", {"balance": 500, "name": "Alice"})
        memory_store.update("users", "alice", {"balance": 400})

        assert memory_store.get("users", "alice") == {"id": "alice", "balance": 400, "name": "Alice"}

    def test_delete_is_idempotent(self, memory_store):
        memory_store.create("users", "alice", {})

        assert memory_store.delete("users", "alice") is True
        assert memory_store.delete("users", "alice") is False
        assert memory_store.get("users", "alice") is None

    def test_returned_documents_are_copies(self, memory_store):
        memory_store.create("users", "alice", {"tags": ["a"]})

        memory_store.get("users", "alice")["tags"].append("b")

        assert memory_store.get("users", "alice")["tags"] == ["a"]


class TestQueries:
    """Tests for filtered, ordered and counted queries."""

    def _seed(self, store):
        for user_id, total in [("carol", 100), ("alice", 300), ("bob", 300), ("dave", 0)]:
            store.create("users", user_id, {"total_gifted": total})

    def test_order_by_two_keys(self, memory_store):
        self._seed(memory_store)

        docs = memory_store.query(
            "users", order_by=[("total_gifted", "desc"), ("id", "asc")]
        )

        assert [d["id"] for d in docs] == ["alice", "bob", "carol", "dave"]

    def test_filter_and_limit(self, memory_store):
        self._seed(memory_store)

        docs = memory_store.query(
            "users", where=[("total_gifted", ">=", 100)], order_by=[("id", "desc")], limit=2
        )

        assert [d["id"] for d in docs] == ["carol", "bob"]

    def test_count(self, memory_store):
        self._seed(memory_store)

        assert memory_store.count("users", where=[("total_gifted", ">", 100)]) == 2
        assert memory_store.count("users") == 4
        assert memory_store.count("missing") == 0

    def test_prefix_range_query(self, memory_store):
        for username in ["alex", "alice", "bob"]:
            memory_store.create("users", username, {"username": username})

        docs = memory_store.query(
            "users",
            where=[("username", ">=", "al"), ("username", "<", "al\uf8ff")],
            order_by=[("username", "asc")],
        )

        assert [d["username"] for d in docs] == ["alex", "alice"]


class TestTransactions:
    """Tests for optimistic transactions."""

    def test_writes_commit_together(self, memory_store):
        def _move(tx):
            tx.create("a", "1", {"v": 1})
            tx.create("b", "2", {"v": 2})

        memory_store.run_transaction(_move)

        assert memory_store.get("a", "1") is not None
        assert memory_store.get("b", "2") is not None

    def test_error_aborts_every_write(self, memory_store):
        memory_store.create("users", "alice", {"balance": 10})

        def _fail(tx):
            tx.update("users", "alice", {"balance": 0})
            raise NotFoundError("bob missing")

        with pytest.raises(NotFoundError):
            memory_store.run_transaction(_fail)

        assert memory_store.get("users", "alice")["balance"] == 10

    def test_conflicting_write_forces_retry(self, memory_store):
        memory_store.create("counters", "c", {"value": 0})
        attempts = []

        def _increment(tx):
            current = tx.get("counters", "c")["value"]
            if not attempts:
                # Another client writes between our read and our commit
                memory_store.update("counters", "c", {"value": 10})
            attempts.append(current)
            tx.update("counters", "c", {"value": current + 1})

        memory_store.run_transaction(_increment)

        assert attempts == [0, 10]
        assert memory_store.get("counters", "c")["value"] == 11

    def test_retry_budget_exhausted(self, memory_store):
        memory_store.create("counters", "c", {"value": 0})

        def _always_conflicts(tx):
            current = tx.get("counters", "c")["value"]
            memory_store.update("counters", "c", {"value": current + 100})
            tx.update("counters", "c", {"value": current + 1})

        with pytest.raises(TransientError):
            memory_store.run_transaction(_always_conflicts, max_attempts=3)

        # Only the competing writes landed
        assert memory_store.get("counters", "c")["value"] == 300

    def test_conditional_create_inside_transaction(self, memory_store):
        memory_store.create("edges", "a:b", {"status": "pending"})

        with pytest.raises(AlreadyExistsError):
            memory_store.run_transaction(lambda tx: tx.create("edges", "a:b", {"status": "pending"}))

    def test_reads_see_own_writes(self, memory_store):
        def _read_back(tx):
            tx.set("users", "alice", {"balance": 5})
            return tx.get("users", "alice")

        assert memory_store.run_transaction(_read_back) == {"id": "alice", "balance": 5}


class TestSubscriptions:
    """Tests for document and collection listeners."""

    def test_document_listener_sees_changes(self, memory_store):
        events = []
        registration = memory_store.listen_document("users", "alice", events.append)

        memory_store.create("users", "alice", {"balance": 1})
        memory_store.update("users", "alice", {"balance": 2})
        memory_store.create("users", "bob", {"balance": 3})
        memory_store.delete("users", "alice")

        assert [e.kind for e in events] == [ChangeKind.ADDED, ChangeKind.MODIFIED, ChangeKind.REMOVED]
        assert events[1].data["balance"] == 2

        registration.remove()
        memory_store.create("users", "alice", {"balance": 0})
        assert len(events) == 3

    def test_collection_listener_filters(self, memory_store):
        events = []
        memory_store.listen_collection("notifications", events.append, where=[("user_id", "==", "bob")])

        memory_store.create("notifications", "n1", {"user_id": "alice"})
        memory_store.create("notifications", "n2", {"user_id": "bob"})

        assert [e.doc_id for e in events] == ["n2"]

    def test_failed_transaction_emits_nothing(self, memory_store):
        events = []
        memory_store.listen_collection("users", events.append)

        def _fail(tx):
            tx.create("users", "alice", {})
            raise NotFoundError("abort")

        with pytest.raises(NotFoundError):
            memory_store.run_transaction(_fail)

        assert events == []


class TestUnavailable:
    """Tests for a closed store."""

    def test_closed_store_rejects_everything(self, memory_store):
        memory_store.create("users", "alice", {})
        memory_store.close()

        with pytest.raises(UnavailableError):
            memory_store.get("users", "alice")
        with pytest.raises(UnavailableError):
            memory_store.create("users", "bob", {})
        with pytest.raises(UnavailableError):
            memory_store.query("users")
