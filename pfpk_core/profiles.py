"""
pfpk_core.profiles
------------------
ProfileStore: lookups over profiles, their public keys and chain preferences,
plus create-or-update and nonce increments.

Absence is never an error on read paths: lookups return None, list queries an
empty list and get_nonce() the default nonce of 0.
"""

from __future__ import annotations
from typing import Iterable, List, Optional
from pfpk_core.crypto import Secp256k1Resolver
from pfpk_core.errors import InvalidInputError, StorageInvariantError
from pfpk_core.logger import get_logger
from pfpk_core.preferences import ChainPreferenceManager
from pfpk_core.storage.models import (
    ChainPublicKey,
    PreferredKey,
    Profile,
    ProfileSearchResult,
    PublicKeyBinding,
)
from pfpk_core.storage.provider import StorageProvider

log = get_logger("PFPK.Profiles")

SEARCH_LIMIT = 5
DEFAULT_NONCE = 0


class ProfileStore:
    def __init__(
        self,
        storage: StorageProvider,
        resolver: Optional[Secp256k1Resolver] = None,
        preferences: Optional[ChainPreferenceManager] = None,
    ):
        self.storage = storage
        self.resolver = resolver or Secp256k1Resolver()
        self.preferences = preferences or ChainPreferenceManager(storage)

    # --- Lookups ---

    def get_by_name(self, name: str) -> Optional[Profile]:
        return self.storage.get_profile_by_name(name)

    def get_by_public_key(self, public_key: str) -> Optional[Profile]:
        return self.storage.get_profile_by_public_key(public_key)

    def get_by_hash(self, bech32_hash: str) -> Optional[Profile]:
        return self.storage.get_profile_by_bech32_hash(bech32_hash)

    def get_nonce(self, public_key: str) -> int:
        """Nonce of the profile owning `public_key`, or 0 if none does."""
        profile = self.get_by_public_key(public_key)
        return profile.nonce if profile else DEFAULT_NONCE

    def get_public_key_for_hash(self, bech32_hash: str) -> Optional[str]:
        return self.storage.get_public_key_for_bech32_hash(bech32_hash)

    def search_by_name_prefix(self, prefix: str, chain_id: str) -> List[ProfileSearchResult]:
        """
        Top SEARCH_LIMIT profiles whose name starts with `prefix`, ordered by
        name, each paired with its preferred public key on `chain_id`.
        Profiles without a preference for that chain are not returned.
        """
        return self.storage.search_profiles(prefix, chain_id, SEARCH_LIMIT)

    def get_preferred_key(self, profile_id: int, chain_id: str) -> Optional[PreferredKey]:
        return self.storage.get_preferred_public_key(profile_id, chain_id)

    def list_bindings(self, profile_id: int) -> List[PublicKeyBinding]:
        return self.storage.list_bindings(profile_id)

    def list_preferred_key_per_chain(self, profile_id: int) -> List[ChainPublicKey]:
        return self.storage.list_chain_public_keys(profile_id)

    # --- Mutations ---

    def save(self, public_key: str, profile: Profile, chain_ids: Optional[Iterable[str]] = None) -> Profile:
        """
        Create or update the profile owned by `public_key`.

        An existing profile gets its name, nonce and nft replaced. Otherwise a
        new profile is created with `public_key` as its first key and, if
        given, set as the preferred key for `chain_ids`. Runs as one
        transaction, so a profile is never left without a key.
        """
        if profile.nonce < 0:
            raise InvalidInputError("Nonce must not be negative", field="nonce")

        with self.storage.transaction():
            existing = self.storage.get_profile_by_public_key(public_key)

            if existing:
                if profile.nonce < existing.nonce:
                    raise InvalidInputError(
                        f"Nonce cannot decrease from {existing.nonce} to {profile.nonce}",
                        field="nonce",
                    )
                self.storage.update_profile(existing.id, profile)
                profile_id = existing.id
                log.info("[PROFILE] updated", extra={"profile_id": profile_id})
            else:
                bech32_hash = self.resolver.derive_hash(public_key)

                profile_id = self.storage.insert_profile(profile)
                if profile_id is None:
                    log.error("[PROFILE] insert returned no row")
                    raise StorageInvariantError("Failed to save profile.")

                binding = self.storage.insert_binding(profile_id, public_key, bech32_hash)
                if binding is None:
                    log.error(f"[PROFILE] key insert returned no row profile={profile_id}")
                    raise StorageInvariantError("Failed to save profile public key.")

                if chain_ids:
                    self.preferences.set_preferences(profile_id, binding.id, chain_ids)
                log.info("[PROFILE] created", extra={"profile_id": profile_id})

            saved = self.storage.get_profile(profile_id)

        return saved

    def increment_nonce(self, profile_id: int) -> None:
        if not self.storage.increment_nonce(profile_id):
            log.warning(f"[PROFILE] nonce increment on missing profile={profile_id}")
            return
        log.debug(f"[PROFILE] nonce incremented profile={profile_id}")
