"""SQLite storage: schema migrations and the storage engine."""

from commdash.storage.engine import StorageEngine
from commdash.storage.migrations import LATEST_VERSION, MIGRATIONS, migrate

__all__ = ["LATEST_VERSION", "MIGRATIONS", "StorageEngine", "migrate"]
