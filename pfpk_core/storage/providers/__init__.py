from .memory_provider import InMemoryStorage
from .sqlite_provider import SQLiteStorage

__all__ = ["InMemoryStorage", "SQLiteStorage"]
