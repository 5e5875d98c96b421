"""
pfpk_core.directory
-------------------
ProfileDirectory wires the storage backend, the identity resolver and the
profile components together, and builds the public view of a profile.
"""

from __future__ import annotations
from typing import Optional
from pfpk_core.crypto import Secp256k1Resolver
from pfpk_core.errors import InvalidInputError
from pfpk_core.logger import get_logger
from pfpk_core.ownership import KeyOwnershipTransfer
from pfpk_core.preferences import ChainPreferenceManager
from pfpk_core.profiles import ProfileStore
from pfpk_core.replay import ReplayGuard
from pfpk_core.storage import load_storage_provider
from pfpk_core.storage.models import ProfileView
from pfpk_core.storage.provider import StorageProvider

log = get_logger("PFPK.Directory")


class ProfileDirectory:
    def __init__(self, storage: Optional[StorageProvider] = None, resolver: Optional[Secp256k1Resolver] = None):
        self.storage = storage or load_storage_provider()
        self.resolver = resolver or Secp256k1Resolver()
        self.preferences = ChainPreferenceManager(self.storage)
        self.profiles = ProfileStore(self.storage, self.resolver, self.preferences)
        self.ownership = KeyOwnershipTransfer(self.storage, self.resolver, self.preferences)
        self.replay = ReplayGuard(self.profiles)

    def fetch_profile(self, public_key: str) -> ProfileView:
        """
        Profile owning `public_key` with the preferred key and address per
        chain. An unknown key yields an empty view with nonce 0.
        """
        profile = self.profiles.get_by_public_key(public_key)
        if not profile:
            return ProfileView()

        chains = {}
        for entry in self.profiles.list_preferred_key_per_chain(profile.id):
            try:
                address = self.resolver.address_for_chain(entry.public_key, entry.chain_id)
            except InvalidInputError as err:
                log.debug(f"[DIRECTORY] skipping chain={entry.chain_id}: {err}")
                continue
            chains[entry.chain_id] = {"public_key": entry.public_key, "address": address}

        return ProfileView(
            id=profile.id,
            nonce=profile.nonce,
            name=profile.name,
            nft=profile.nft,
            chains=chains,
        )

    def close(self) -> None:
        self.storage.close()
