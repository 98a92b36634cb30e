"""Database layer."""

from nudge.db.engine import Database
from nudge.db.models import Base, HistoryRecord, JobRecord

__all__ = [
    "Base",
    "Database",
    "HistoryRecord",
    "JobRecord",
]
