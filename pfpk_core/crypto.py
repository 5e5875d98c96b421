"""
pfpk_core.crypto
----------------
Identity resolution for secp256k1 public keys:

- derive_hash(): hex RIPEMD160(SHA256(pubkey)), the "bech32 hash" used as a
  chain-agnostic lookup key (identical to the data part of every address)
- derive_address(): bech32 address for a given human-readable prefix
- chain_prefix(): known chain id -> bech32 prefix

Public keys travel as hex of the 33-byte compressed SEC1 point.
"""

from __future__ import annotations
from typing import Dict, Optional
import hashlib

from bech32 import bech32_encode, convertbits
from Crypto.Hash import RIPEMD160
from cryptography.hazmat.primitives.asymmetric import ec

from pfpk_core.errors import InvalidInputError

COMPRESSED_PUBKEY_LEN = 33

CHAIN_PREFIXES: Dict[str, str] = {
    "cosmoshub-4": "cosmos",
    "juno-1": "juno",
    "uni-6": "juno",
    "migaloo-1": "migaloo",
    "neutron-1": "neutron",
    "pion-1": "neutron",
    "osmosis-1": "osmo",
    "phoenix-1": "terra",
    "stargaze-1": "stars",
}


# --------- secp256k1 parsing ----------
def parse_public_key(public_key: str) -> bytes:
    """
    Decode and validate a hex compressed secp256k1 public key.

    Only the canonical spelling (lowercase, no separators) is accepted, since
    the string itself is the stored lookup key.

    Raises InvalidInputError on bad or non-canonical hex, wrong length or a
    point that is not on the curve.
    """
    try:
        raw = bytes.fromhex(public_key)
    except (TypeError, ValueError) as err:
        raise InvalidInputError("Invalid public key", field="public_key", detail=err) from err

    if public_key != raw.hex():
        raise InvalidInputError("Public key must be lowercase hex without separators", field="public_key")

    if len(raw) != COMPRESSED_PUBKEY_LEN:
        raise InvalidInputError(
            f"Invalid public key length {len(raw)}, expected {COMPRESSED_PUBKEY_LEN}",
            field="public_key",
        )

    try:
        ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), raw)
    except ValueError as err:
        raise InvalidInputError("Invalid public key", field="public_key", detail=err) from err

    return raw


def raw_address(public_key: str) -> bytes:
    raw = parse_public_key(public_key)
    sha = hashlib.sha256(raw).digest()
    return RIPEMD160.new(sha).digest()


# --------- resolver ----------
class Secp256k1Resolver:
    """
    Default IdentityResolver. Pure and deterministic; extra chain prefixes may
    be registered per instance.
    """

    def __init__(self, prefixes: Optional[Dict[str, str]] = None):
        self.prefixes = dict(CHAIN_PREFIXES)
        if prefixes:
            self.prefixes.update(prefixes)

    def derive_hash(self, public_key: str) -> str:
        return raw_address(public_key).hex()

    def derive_address(self, public_key: str, prefix: str) -> str:
        data = convertbits(raw_address(public_key), 8, 5)
        address = bech32_encode(prefix, data) if data is not None else None
        if not address:
            raise InvalidInputError(f"Invalid bech32 prefix {prefix!r}", field="chain_prefix")
        return address

    def chain_prefix(self, chain_id: str) -> str:
        prefix = self.prefixes.get(chain_id)
        if not prefix:
            raise InvalidInputError(f"Unknown chain {chain_id!r}", field="chain_id")
        return prefix

    def address_for_chain(self, public_key: str, chain_id: str) -> str:
        return self.derive_address(public_key, self.chain_prefix(chain_id))
