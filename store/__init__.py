"""
Document store used by every core component.

`DocumentStore` is the contract of the external transactional service;
`InMemoryDocumentStore` implements it with optimistic, version-checked
transactions for tests and local runs.
"""

from .base import (
    ChangeEvent,
    ChangeKind,
    DocumentStore,
    ListenerRegistration,
    Transaction,
)
from .memory import InMemoryDocumentStore, WriteConflict

__all__ = [
    "ChangeEvent",
    "ChangeKind",
    "DocumentStore",
    "ListenerRegistration",
    "Transaction",
    "InMemoryDocumentStore",
    "WriteConflict",
]
