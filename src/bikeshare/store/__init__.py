"""Row store collaborator interface, in-memory store and batch persistence."""

from bikeshare.store.memory import InMemoryRowStore
from bikeshare.store.models import CellMark, CommitResult, WriteDescriptor, WriteKind
from bikeshare.store.persistence import BatchCommitter
from bikeshare.store.protocol import ConfigSource, RowStore

__all__ = [
    "BatchCommitter",
    "CellMark",
    "CommitResult",
    "ConfigSource",
    "InMemoryRowStore",
    "RowStore",
    "WriteDescriptor",
    "WriteKind",
]
