# pfpk_core/storage/__init__.py

from .models import (
    ChainPreference,
    ChainPublicKey,
    NftReference,
    PreferredKey,
    Profile,
    ProfileSearchResult,
    ProfileView,
    PublicKeyBinding,
)
from .provider import StorageProvider
from .providers.memory_provider import InMemoryStorage
from .providers.sqlite_provider import SQLiteStorage
import os

from pfpk_core.logger import get_logger

log = get_logger("PFPK.Storage")

DEFAULT_DB_PATH = "db/pfpk.db"


def load_storage_provider(config: dict | None = None) -> StorageProvider:
    """
    Factory resolver for selecting the runtime storage backend.

    Keys of `config` win over the environment:

        provider     PFPK_STORAGE_PROVIDER   sqlite (default) | memory
        sqlite_path  PFPK_DB_PATH            file path, "~" expanded; ":memory:" allowed
        timeout      PFPK_DB_TIMEOUT         seconds to wait on another writer
    """
    config = config or {}
    provider = (config.get("provider") or os.getenv("PFPK_STORAGE_PROVIDER") or "sqlite").strip().lower()

    if provider == "memory":
        log.info("[STORAGE] using in-memory provider")
        return InMemoryStorage()

    if provider == "sqlite":
        db_path = config.get("sqlite_path") or os.getenv("PFPK_DB_PATH") or DEFAULT_DB_PATH
        if db_path != ":memory:":
            db_path = os.path.expanduser(db_path)
        timeout = float(config.get("timeout") or os.getenv("PFPK_DB_TIMEOUT") or 5.0)
        log.info("[STORAGE] using sqlite provider", extra={"db_path": db_path, "timeout": timeout})
        return SQLiteStorage(db_path, timeout=timeout)

    raise ValueError(f"Unknown storage provider: {provider}")


__all__ = [
    "ChainPreference",
    "ChainPublicKey",
    "NftReference",
    "PreferredKey",
    "Profile",
    "ProfileSearchResult",
    "ProfileView",
    "PublicKeyBinding",
    "StorageProvider",
    "InMemoryStorage",
    "SQLiteStorage",
    "load_storage_provider",
]
