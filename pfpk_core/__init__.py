"""
PFPK Core Package
=================
Profile directory shared by the PFPK service and its tooling.

Provides:
- Profile / public key / chain preference models
- secp256k1 -> bech32 identity resolution
- Pluggable transactional storage (SQLite default, in-memory for tests)
- Key ownership transfer and replay nonce helpers
"""

from pfpk_core.directory import ProfileDirectory
from pfpk_core.errors import (
    PfpkError,
    InvalidInputError,
    InvalidNonceError,
    StorageInvariantError,
    ConflictError,
)

__all__ = [
    "ProfileDirectory",
    "PfpkError",
    "InvalidInputError",
    "InvalidNonceError",
    "StorageInvariantError",
    "ConflictError",
]
