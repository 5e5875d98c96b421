"""
pfpk_core.preferences
---------------------
Per-chain designation of which bound public key is authoritative for a
profile. One row per (profile, chain); the latest write wins.
"""

from __future__ import annotations
from typing import Iterable, Optional
from pfpk_core.errors import InvalidInputError
from pfpk_core.logger import get_logger
from pfpk_core.storage.provider import StorageProvider
from pfpk_core.utils import unique_chain_ids

log = get_logger("PFPK.Preferences")


class ChainPreferenceManager:
    def __init__(self, storage: StorageProvider):
        self.storage = storage

    def set_preferences(self, profile_id: int, binding_id: int, chain_ids: Optional[Iterable[str]]) -> None:
        """
        Point every chain in `chain_ids` at `binding_id`, all or nothing.

        The binding must belong to `profile_id`; a preference may never point
        at another profile's key.
        """
        chain_ids = unique_chain_ids(chain_ids)
        if not chain_ids:
            return

        with self.storage.transaction():
            if not any(b.id == binding_id for b in self.storage.list_bindings(profile_id)):
                raise InvalidInputError(
                    f"Public key {binding_id} is not attached to profile {profile_id}",
                    field="binding_id",
                )
            self.storage.upsert_chain_preferences(profile_id, binding_id, chain_ids)

        log.info(
            "[PREFS] chain preferences set",
            extra={"profile_id": profile_id, "binding_id": binding_id, "chain_ids": chain_ids},
        )
