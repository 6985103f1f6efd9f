from .base import IncidentStore
from .sqlite_store import SqliteStore

__all__ = ["IncidentStore", "SqliteStore"]
