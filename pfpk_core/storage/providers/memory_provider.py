from __future__ import annotations
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional, Tuple
import copy, itertools, threading
from pfpk_core.errors import ConflictError, StorageInvariantError
from pfpk_core.logger import get_logger
from pfpk_core.storage.models import (
    ChainPreference,
    ChainPublicKey,
    NftReference,
    PreferredKey,
    Profile,
    ProfileSearchResult,
    PublicKeyBinding,
)
from pfpk_core.storage.provider import StorageProvider
from pfpk_core.utils import ascii_lower, now_ts

log = get_logger("PFPK.Storage.Memory")


def _normalise_nft(nft: Optional[NftReference]) -> Optional[NftReference]:
    if nft is None:
        return None
    return NftReference.from_columns(nft.chain_id, nft.collection_address, nft.token_id)


class InMemoryStorage(StorageProvider):
    """
    Dict-backed provider.

    Has no native cascade, so deleting a profile or a key removes dependent
    rows explicitly. Transactions snapshot all tables and restore them if an
    exception escapes.
    """

    def __init__(self):
        self.profiles: Dict[int, Profile] = {}
        self.bindings: Dict[int, PublicKeyBinding] = {}
        self.preferences: Dict[Tuple[int, str], ChainPreference] = {}
        self._profile_ids = itertools.count(1)
        self._binding_ids = itertools.count(1)
        self._lock = threading.RLock()
        self._depth = 0

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return

            snapshot = copy.deepcopy((self.profiles, self.bindings, self.preferences))
            self._depth = 1
            try:
                yield
            except BaseException:
                self.profiles, self.bindings, self.preferences = snapshot
                log.debug("[MEMORY] transaction rolled back")
                raise
            finally:
                self._depth = 0

    # profiles
    def get_profile(self, profile_id: int) -> Optional[Profile]:
        with self._lock:
            profile = self.profiles.get(profile_id)
            return copy.deepcopy(profile) if profile else None

    def get_profile_by_name(self, name: str) -> Optional[Profile]:
        with self._lock:
            profile = next((p for p in self.profiles.values() if p.name == name), None)
            return copy.deepcopy(profile) if profile else None

    def get_profile_by_public_key(self, public_key: str) -> Optional[Profile]:
        binding = self.get_binding_by_public_key(public_key)
        return self.get_profile(binding.profile_id) if binding else None

    def get_profile_by_bech32_hash(self, bech32_hash: str) -> Optional[Profile]:
        with self._lock:
            binding = next((b for b in self.bindings.values() if b.bech32_hash == bech32_hash), None)
            return self.get_profile(binding.profile_id) if binding else None

    def search_profiles(self, name_prefix: str, chain_id: str, limit: int) -> List[ProfileSearchResult]:
        prefix = ascii_lower(name_prefix)
        with self._lock:
            matches = []
            for (profile_id, pref_chain_id), pref in self.preferences.items():
                profile = self.profiles[profile_id]
                if pref_chain_id != chain_id or profile.name is None:
                    continue
                if not ascii_lower(profile.name).startswith(prefix):
                    continue
                binding = self.bindings[pref.public_key_binding_id]
                matches.append(
                    ProfileSearchResult(
                        public_key=binding.public_key,
                        bech32_hash=binding.bech32_hash,
                        profile_id=profile_id,
                        profile=copy.deepcopy(profile),
                    )
                )
        matches.sort(key=lambda r: r.profile.name)
        return matches[:limit]

    def _check_name(self, name: Optional[str], profile_id: Optional[int] = None) -> None:
        if name is None:
            return
        for other in self.profiles.values():
            if other.name == name and other.id != profile_id:
                log.warning(f"[MEMORY] unique conflict on name={name!r}")
                raise ConflictError("Conflicting write, retry the operation", detail=f"name {name!r} taken")

    def insert_profile(self, profile: Profile) -> Optional[int]:
        with self._lock:
            self._check_name(profile.name)
            ts = now_ts()
            profile_id = next(self._profile_ids)
            self.profiles[profile_id] = Profile(
                id=profile_id,
                name=profile.name,
                nonce=profile.nonce,
                nft=_normalise_nft(profile.nft),
                created_at=ts,
                updated_at=ts,
            )
            return profile_id

    def update_profile(self, profile_id: int, profile: Profile) -> bool:
        with self._lock:
            current = self.profiles.get(profile_id)
            if not current:
                return False
            self._check_name(profile.name, profile_id)
            current.name = profile.name
            current.nonce = profile.nonce
            current.nft = _normalise_nft(profile.nft)
            current.updated_at = now_ts()
            return True

    def increment_nonce(self, profile_id: int) -> bool:
        with self._lock:
            current = self.profiles.get(profile_id)
            if not current:
                return False
            current.nonce += 1
            current.updated_at = now_ts()
            return True

    def delete_profile(self, profile_id: int) -> None:
        with self.transaction():
            # explicit cascade: preferences, then keys, then the profile
            for key in [k for k in self.preferences if k[0] == profile_id]:
                del self.preferences[key]
            for binding_id in [b.id for b in self.bindings.values() if b.profile_id == profile_id]:
                del self.bindings[binding_id]
            self.profiles.pop(profile_id, None)

    # public keys
    def get_binding_by_public_key(self, public_key: str) -> Optional[PublicKeyBinding]:
        with self._lock:
            binding = next((b for b in self.bindings.values() if b.public_key == public_key), None)
            return copy.deepcopy(binding) if binding else None

    def get_public_key_for_bech32_hash(self, bech32_hash: str) -> Optional[str]:
        with self._lock:
            return next((b.public_key for b in self.bindings.values() if b.bech32_hash == bech32_hash), None)

    def list_bindings(self, profile_id: int) -> List[PublicKeyBinding]:
        with self._lock:
            return [copy.deepcopy(b) for b in self.bindings.values() if b.profile_id == profile_id]

    def insert_binding(self, profile_id: int, public_key: str, bech32_hash: str) -> Optional[PublicKeyBinding]:
        with self._lock:
            if profile_id not in self.profiles:
                raise StorageInvariantError("Storage constraint violated", detail=f"profile {profile_id} missing")
            if any(b.public_key == public_key or b.bech32_hash == bech32_hash for b in self.bindings.values()):
                log.warning("[MEMORY] unique conflict on publicKey")
                raise ConflictError("Conflicting write, retry the operation", detail="public key already bound")
            ts = now_ts()
            binding = PublicKeyBinding(
                id=next(self._binding_ids),
                profile_id=profile_id,
                public_key=public_key,
                bech32_hash=bech32_hash,
                created_at=ts,
                updated_at=ts,
            )
            self.bindings[binding.id] = binding
            return copy.deepcopy(binding)

    def delete_bindings(self, binding_ids: Iterable[int]) -> None:
        with self.transaction():
            for binding_id in binding_ids:
                if self.bindings.pop(binding_id, None) is None:
                    continue
                # explicit cascade to chain preferences
                for key in [k for k, p in self.preferences.items() if p.public_key_binding_id == binding_id]:
                    del self.preferences[key]

    # chain preferences
    def get_preferred_public_key(self, profile_id: int, chain_id: str) -> Optional[PreferredKey]:
        with self._lock:
            pref = self.preferences.get((profile_id, chain_id))
            if not pref:
                return None
            binding = self.bindings[pref.public_key_binding_id]
            return PreferredKey(public_key=binding.public_key, bech32_hash=binding.bech32_hash)

    def list_chain_public_keys(self, profile_id: int) -> List[ChainPublicKey]:
        with self._lock:
            out = [
                ChainPublicKey(chain_id=chain_id, public_key=self.bindings[p.public_key_binding_id].public_key)
                for (pid, chain_id), p in self.preferences.items()
                if pid == profile_id
            ]
        return sorted(out, key=lambda c: c.chain_id)

    def upsert_chain_preferences(self, profile_id: int, binding_id: int, chain_ids: Iterable[str]) -> None:
        with self.transaction():
            binding = self.bindings.get(binding_id)
            if not binding or binding.profile_id != profile_id:
                raise StorageInvariantError(
                    "Storage constraint violated",
                    detail=f"key {binding_id} does not belong to profile {profile_id}",
                )
            ts = now_ts()
            for chain_id in chain_ids:
                self.preferences[(profile_id, chain_id)] = ChainPreference(
                    profile_id=profile_id,
                    chain_id=chain_id,
                    public_key_binding_id=binding_id,
                    updated_at=ts,
                )

    def close(self):
        pass
