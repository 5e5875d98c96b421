from __future__ import annotations
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional
import os, sqlite3, threading
from pfpk_core.errors import ConflictError, StorageInvariantError
from pfpk_core.logger import get_logger
from pfpk_core.storage.provider import StorageProvider
from pfpk_core.storage.models import (
    ChainPublicKey,
    NftReference,
    PreferredKey,
    Profile,
    ProfileSearchResult,
    PublicKeyBinding,
)
from pfpk_core.utils import escape_like, now_ts

log = get_logger("PFPK.Storage.SQLite")


def _profile_from_row(row: sqlite3.Row) -> Profile:
    return Profile(
        id=row["id"],
        name=row["name"],
        nonce=row["nonce"],
        nft=NftReference.from_columns(row["nftChainId"], row["nftCollectionAddress"], row["nftTokenId"]),
        created_at=row["createdAt"],
        updated_at=row["updatedAt"],
    )


def _binding_from_row(row: sqlite3.Row) -> PublicKeyBinding:
    return PublicKeyBinding(
        id=row["id"],
        profile_id=row["profileId"],
        public_key=row["publicKey"],
        bech32_hash=row["bech32Hash"],
        created_at=row["createdAt"],
        updated_at=row["updatedAt"],
    )


class SQLiteStorage(StorageProvider):
    def __init__(self, path="db/pfpk.db", timeout: float = 5.0):
        # If no directory, default to current working directory
        dir_path = os.path.dirname(path) or "."
        os.makedirs(dir_path, exist_ok=True)
        # autocommit mode; transactions are opened explicitly with BEGIN IMMEDIATE
        # `timeout` bounds the wait on another connection's write lock before
        # the write surfaces as a busy ConflictError
        self.db = sqlite3.connect(path, timeout=timeout, check_same_thread=False, isolation_level=None)
        self.db.row_factory = sqlite3.Row
        self.db.execute("PRAGMA foreign_keys = ON")

        # guards the shared connection object, not domain state
        self._lock = threading.RLock()
        self._depth = 0

        self._init()

    def execute(self, sql: str, params: tuple = ()):
        with self._lock:
            try:
                return self.db.execute(sql, params)
            except sqlite3.IntegrityError as err:
                if "UNIQUE" in str(err):
                    log.warning(f"[SQLITE] unique conflict: {err}")
                    raise ConflictError("Conflicting write, retry the operation", detail=err) from err
                log.error(f"[SQLITE] integrity error: {err}")
                raise StorageInvariantError("Storage constraint violated", detail=err) from err
            except sqlite3.OperationalError as err:
                msg = str(err)
                if "locked" in msg or "busy" in msg:
                    log.warning(f"[SQLITE] database busy: {err}")
                    raise ConflictError("Database busy, retry the operation", detail=err) from err
                log.error(f"[SQLITE] operational error: {err}")
                raise StorageInvariantError("Storage failure", detail=err) from err

    def fetch_one(self, sql: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        with self._lock:
            return self.execute(sql, params).fetchone()

    def fetch_all(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        with self._lock:
            return self.execute(sql, params).fetchall()

    def _init(self) -> None:
        c = self.db.cursor()

        c.execute("""CREATE TABLE IF NOT EXISTS profiles(
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            nonce INTEGER NOT NULL DEFAULT 0 CHECK (nonce >= 0),
            name TEXT UNIQUE,
            nftChainId TEXT,
            nftCollectionAddress TEXT,
            nftTokenId TEXT,
            createdAt TEXT NOT NULL,
            updatedAt TEXT NOT NULL
        )""")
        c.execute("""CREATE TABLE IF NOT EXISTS profile_public_keys(
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            profileId INTEGER NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            publicKey TEXT NOT NULL UNIQUE,
            bech32Hash TEXT NOT NULL,
            createdAt TEXT NOT NULL,
            updatedAt TEXT NOT NULL,
            UNIQUE (profileId, id)
        )""")
        c.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_profile_public_keys_bech32Hash "
            "ON profile_public_keys(bech32Hash)"
        )
        # composite FK: a preference can only point at a key of the same profile
        c.execute("""CREATE TABLE IF NOT EXISTS profile_public_key_chain_preferences(
            profileId INTEGER NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            chainId TEXT NOT NULL,
            profilePublicKeyId INTEGER NOT NULL,
            updatedAt TEXT NOT NULL,
            PRIMARY KEY (profileId, chainId),
            FOREIGN KEY (profileId, profilePublicKeyId)
                REFERENCES profile_public_keys(profileId, id) ON DELETE CASCADE
        )""")

    # --- Transactions ---

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            if self._depth:
                # join the outer transaction
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return

            self.execute("BEGIN IMMEDIATE")
            self._depth = 1
            try:
                yield
                self.execute("COMMIT")
            except BaseException:
                if self.db.in_transaction:
                    self.db.rollback()
                    log.debug("[SQLITE] transaction rolled back")
                raise
            finally:
                self._depth = 0

    # --- Profiles ---

    def get_profile(self, profile_id: int) -> Optional[Profile]:
        row = self.fetch_one("SELECT * FROM profiles WHERE id = ?", (profile_id,))
        return _profile_from_row(row) if row else None

    def get_profile_by_name(self, name: str) -> Optional[Profile]:
        row = self.fetch_one("SELECT * FROM profiles WHERE name = ?", (name,))
        return _profile_from_row(row) if row else None

    def get_profile_by_public_key(self, public_key: str) -> Optional[Profile]:
        row = self.fetch_one(
            "SELECT profiles.* FROM profiles "
            "INNER JOIN profile_public_keys ON profiles.id = profile_public_keys.profileId "
            "WHERE profile_public_keys.publicKey = ?",
            (public_key,),
        )
        return _profile_from_row(row) if row else None

    def get_profile_by_bech32_hash(self, bech32_hash: str) -> Optional[Profile]:
        row = self.fetch_one(
            "SELECT profiles.* FROM profiles "
            "INNER JOIN profile_public_keys ON profiles.id = profile_public_keys.profileId "
            "WHERE profile_public_keys.bech32Hash = ?",
            (bech32_hash,),
        )
        return _profile_from_row(row) if row else None

    def search_profiles(self, name_prefix: str, chain_id: str, limit: int) -> List[ProfileSearchResult]:
        rows = self.fetch_all(
            "SELECT profiles.*, "
            "profile_public_keys.publicKey AS publicKey, "
            "profile_public_keys.bech32Hash AS bech32Hash "
            "FROM profiles "
            "INNER JOIN profile_public_key_chain_preferences AS prefs ON profiles.id = prefs.profileId "
            "INNER JOIN profile_public_keys ON prefs.profilePublicKeyId = profile_public_keys.id "
            "WHERE profiles.name LIKE ? ESCAPE '\\' AND prefs.chainId = ? "
            "ORDER BY profiles.name ASC LIMIT ?",
            (escape_like(name_prefix) + "%", chain_id, limit),
        )
        return [
            ProfileSearchResult(
                public_key=row["publicKey"],
                bech32_hash=row["bech32Hash"],
                profile_id=row["id"],
                profile=_profile_from_row(row),
            )
            for row in rows
        ]

    def insert_profile(self, profile: Profile) -> Optional[int]:
        ts = now_ts()
        nft = profile.nft
        cur = self.execute(
            "INSERT INTO profiles (nonce, name, nftChainId, nftCollectionAddress, nftTokenId, createdAt, updatedAt) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                profile.nonce,
                profile.name,
                nft.chain_id if nft else None,
                nft.collection_address if nft else None,
                nft.token_id if nft else None,
                ts,
                ts,
            ),
        )
        return cur.lastrowid if cur.rowcount == 1 else None

    def update_profile(self, profile_id: int, profile: Profile) -> bool:
        nft = profile.nft
        cur = self.execute(
            "UPDATE profiles SET nonce = ?, name = ?, nftChainId = ?, nftCollectionAddress = ?, "
            "nftTokenId = ?, updatedAt = ? WHERE id = ?",
            (
                profile.nonce,
                profile.name,
                nft.chain_id if nft else None,
                nft.collection_address if nft else None,
                nft.token_id if nft else None,
                now_ts(),
                profile_id,
            ),
        )
        return cur.rowcount == 1

    def increment_nonce(self, profile_id: int) -> bool:
        cur = self.execute(
            "UPDATE profiles SET nonce = nonce + 1, updatedAt = ? WHERE id = ?",
            (now_ts(), profile_id),
        )
        return cur.rowcount == 1

    def delete_profile(self, profile_id: int) -> None:
        # cascades to public keys and chain preferences
        self.execute("DELETE FROM profiles WHERE id = ?", (profile_id,))

    # --- Public keys ---

    def get_binding_by_public_key(self, public_key: str) -> Optional[PublicKeyBinding]:
        row = self.fetch_one("SELECT * FROM profile_public_keys WHERE publicKey = ?", (public_key,))
        return _binding_from_row(row) if row else None

    def get_public_key_for_bech32_hash(self, bech32_hash: str) -> Optional[str]:
        row = self.fetch_one("SELECT publicKey FROM profile_public_keys WHERE bech32Hash = ?", (bech32_hash,))
        return row["publicKey"] if row else None

    def list_bindings(self, profile_id: int) -> List[PublicKeyBinding]:
        rows = self.fetch_all(
            "SELECT * FROM profile_public_keys WHERE profileId = ? ORDER BY id ASC",
            (profile_id,),
        )
        return [_binding_from_row(r) for r in rows]

    def insert_binding(self, profile_id: int, public_key: str, bech32_hash: str) -> Optional[PublicKeyBinding]:
        ts = now_ts()
        with self.transaction():
            cur = self.execute(
                "INSERT INTO profile_public_keys (profileId, publicKey, bech32Hash, createdAt, updatedAt) "
                "VALUES (?, ?, ?, ?, ?)",
                (profile_id, public_key, bech32_hash, ts, ts),
            )
            if cur.rowcount != 1:
                return None
            row = self.fetch_one("SELECT * FROM profile_public_keys WHERE id = ?", (cur.lastrowid,))
        return _binding_from_row(row) if row else None

    def delete_bindings(self, binding_ids: Iterable[int]) -> None:
        with self.transaction():
            # cascades to chain preferences
            for binding_id in binding_ids:
                self.execute("DELETE FROM profile_public_keys WHERE id = ?", (binding_id,))

    # --- Chain preferences ---

    def get_preferred_public_key(self, profile_id: int, chain_id: str) -> Optional[PreferredKey]:
        row = self.fetch_one(
            "SELECT profile_public_keys.publicKey AS publicKey, profile_public_keys.bech32Hash AS bech32Hash "
            "FROM profile_public_keys "
            "INNER JOIN profile_public_key_chain_preferences AS prefs "
            "ON profile_public_keys.id = prefs.profilePublicKeyId "
            "WHERE prefs.profileId = ? AND prefs.chainId = ?",
            (profile_id, chain_id),
        )
        return PreferredKey(public_key=row["publicKey"], bech32_hash=row["bech32Hash"]) if row else None

    def list_chain_public_keys(self, profile_id: int) -> List[ChainPublicKey]:
        rows = self.fetch_all(
            "SELECT prefs.chainId AS chainId, profile_public_keys.publicKey AS publicKey "
            "FROM profile_public_key_chain_preferences AS prefs "
            "INNER JOIN profile_public_keys ON prefs.profilePublicKeyId = profile_public_keys.id "
            "WHERE prefs.profileId = ? ORDER BY prefs.chainId ASC",
            (profile_id,),
        )
        return [ChainPublicKey(chain_id=r["chainId"], public_key=r["publicKey"]) for r in rows]

    def upsert_chain_preferences(self, profile_id: int, binding_id: int, chain_ids: Iterable[str]) -> None:
        ts = now_ts()
        with self.transaction():
            for chain_id in chain_ids:
                self.execute(
                    """
                    INSERT INTO profile_public_key_chain_preferences (profileId, chainId, profilePublicKeyId, updatedAt)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT (profileId, chainId) DO UPDATE SET
                      profilePublicKeyId = excluded.profilePublicKeyId,
                      updatedAt = excluded.updatedAt
                    """,
                    (profile_id, chain_id, binding_id, ts),
                )

    def close(self):
        self.db.close()
