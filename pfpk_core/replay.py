"""
pfpk_core.replay
----------------
Per-profile replay nonce.

A signed mutation request carries the nonce it was signed against. The
calling layer is responsible for rejecting a request whose nonce differs from
the stored one (verify_nonce is provided for that) and for calling
increment_profile_nonce once the mutation has committed. Nothing in the
directory enforces either step on its own.
"""

from __future__ import annotations
from pfpk_core.errors import InvalidNonceError
from pfpk_core.logger import get_logger
from pfpk_core.profiles import ProfileStore

log = get_logger("PFPK.Replay")


class ReplayGuard:
    def __init__(self, profiles: ProfileStore):
        self.profiles = profiles

    def get_nonce(self, public_key: str) -> int:
        return self.profiles.get_nonce(public_key)

    def verify_nonce(self, public_key: str, nonce: int) -> None:
        expected = self.get_nonce(public_key)
        if nonce != expected:
            log.info(f"[REPLAY] rejected nonce={nonce} expected={expected}")
            raise InvalidNonceError(f"Invalid nonce. Expected: {expected}", field="nonce")

    def increment_profile_nonce(self, profile_id: int) -> None:
        self.profiles.increment_nonce(profile_id)
