"""
pfpk_core.storage.provider
--------------------------
Interface every storage backend implements.

Providers expose row-level primitives only; the multi-statement operations
(save, transfer, remove) are composed by the directory components and wrapped
in `transaction()`. A transaction must be re-entrant: opening one while another
is active on the same provider joins the outer unit.

Primitives raise:
- ConflictError on a unique-constraint clash (name, publicKey)
- StorageInvariantError on any other storage fault
"""

from __future__ import annotations
from typing import ContextManager, Iterable, List, Optional
from pfpk_core.storage.models import (
    ChainPublicKey,
    PreferredKey,
    Profile,
    ProfileSearchResult,
    PublicKeyBinding,
)


class StorageProvider:
    # Transactions
    def transaction(self) -> ContextManager[None]: ...

    # Profiles
    def get_profile(self, profile_id: int) -> Optional[Profile]: ...
    def get_profile_by_name(self, name: str) -> Optional[Profile]: ...
    def get_profile_by_public_key(self, public_key: str) -> Optional[Profile]: ...
    def get_profile_by_bech32_hash(self, bech32_hash: str) -> Optional[Profile]: ...
    def search_profiles(self, name_prefix: str, chain_id: str, limit: int) -> List[ProfileSearchResult]: ...
    def insert_profile(self, profile: Profile) -> Optional[int]: ...
    def update_profile(self, profile_id: int, profile: Profile) -> bool: ...
    def increment_nonce(self, profile_id: int) -> bool: ...
    def delete_profile(self, profile_id: int) -> None: ...

    # Public keys
    def get_binding_by_public_key(self, public_key: str) -> Optional[PublicKeyBinding]: ...
    def get_public_key_for_bech32_hash(self, bech32_hash: str) -> Optional[str]: ...
    def list_bindings(self, profile_id: int) -> List[PublicKeyBinding]: ...
    def insert_binding(self, profile_id: int, public_key: str, bech32_hash: str) -> Optional[PublicKeyBinding]: ...
    def delete_bindings(self, binding_ids: Iterable[int]) -> None: ...

    # Chain preferences
    def get_preferred_public_key(self, profile_id: int, chain_id: str) -> Optional[PreferredKey]: ...
    def list_chain_public_keys(self, profile_id: int) -> List[ChainPublicKey]: ...
    def upsert_chain_preferences(self, profile_id: int, binding_id: int, chain_ids: Iterable[str]) -> None: ...

    def close(self) -> None: ...
