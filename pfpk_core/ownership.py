"""
pfpk_core.ownership
-------------------
Moving public keys between profiles.

A public key is bound to at most one profile. Attaching a key that another
profile owns detaches it there first, which deletes that profile if the key
was its last one. Removing every key of a profile deletes the profile and
frees its name.

Both operations run in a single storage transaction. The UNIQUE constraint on
publicKey backs this up: a concurrent transfer that loses the race surfaces
as ConflictError and can be retried.
"""

from __future__ import annotations
from typing import Iterable, Optional
from pfpk_core.crypto import Secp256k1Resolver
from pfpk_core.errors import InvalidInputError, StorageInvariantError
from pfpk_core.logger import get_logger
from pfpk_core.preferences import ChainPreferenceManager
from pfpk_core.storage.provider import StorageProvider

log = get_logger("PFPK.Ownership")


class KeyOwnershipTransfer:
    def __init__(
        self,
        storage: StorageProvider,
        resolver: Optional[Secp256k1Resolver] = None,
        preferences: Optional[ChainPreferenceManager] = None,
    ):
        self.storage = storage
        self.resolver = resolver or Secp256k1Resolver()
        self.preferences = preferences or ChainPreferenceManager(storage)

    def add_public_key(self, profile_id: int, public_key: str, chain_ids: Optional[Iterable[str]] = None) -> int:
        """
        Attach `public_key` to `profile_id` and optionally make it the
        preferred key for `chain_ids`. Returns the binding id.
        """
        bech32_hash = self.resolver.derive_hash(public_key)

        with self.storage.transaction():
            if self.storage.get_profile(profile_id) is None:
                raise InvalidInputError(f"Profile {profile_id} not found", field="profile_id")

            current = self.storage.get_binding_by_public_key(public_key)

            if current and current.profile_id != profile_id:
                log.info("[OWNERSHIP] moving key", extra={"from_profile_id": current.profile_id, "profile_id": profile_id})
                self.remove_public_keys(current.profile_id, [public_key])

            if current and current.profile_id == profile_id:
                binding_id = current.id
            else:
                binding = self.storage.insert_binding(profile_id, public_key, bech32_hash)
                if binding is None:
                    log.error(f"[OWNERSHIP] key insert returned no row profile={profile_id}")
                    raise StorageInvariantError("Failed to save or retrieve profile public key.")
                binding_id = binding.id
                log.info("[OWNERSHIP] key attached", extra={"binding_id": binding_id, "profile_id": profile_id})

            if chain_ids:
                self.preferences.set_preferences(profile_id, binding_id, chain_ids)

        return binding_id

    def remove_public_keys(self, profile_id: int, public_keys: Iterable[str]) -> None:
        """
        Detach `public_keys` from `profile_id`. Keys the profile does not own
        are ignored. If nothing would be left, the whole profile is deleted.
        """
        public_keys = set(public_keys)

        with self.storage.transaction():
            bindings = self.storage.list_bindings(profile_id)
            if not bindings:
                log.debug(f"[OWNERSHIP] no keys on profile={profile_id}, nothing to remove")
                return

            # no key would have access anymore; free the name
            if all(b.public_key in public_keys for b in bindings):
                self.storage.delete_profile(profile_id)
                log.info("[OWNERSHIP] last key removed, profile deleted", extra={"profile_id": profile_id})
                return

            to_delete = [b.id for b in bindings if b.public_key in public_keys]
            if to_delete:
                self.storage.delete_bindings(to_delete)
                log.info("[OWNERSHIP] keys removed", extra={"binding_ids": to_delete, "profile_id": profile_id})
