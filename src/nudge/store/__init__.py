"""Durable persistence for jobs and delivery history.

Backends:
- MemoryStore: In-process, for tests and ephemeral runs
- FileStore: One JSON file per job plus a JSONL history log
- SqlStore: SQLite (or any async SQLAlchemy URL), one transaction per write
"""

from nudge.store.base import Store
from nudge.store.files import FileStore
from nudge.store.memory import MemoryStore
from nudge.store.sql import SqlStore

__all__ = [
    "FileStore",
    "MemoryStore",
    "SqlStore",
    "Store",
]
