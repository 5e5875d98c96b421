# pfpk_core/storage/models.py
from __future__ import annotations
from dataclasses import dataclass, asdict, field
from typing import Any, Dict, Optional


@dataclass
class NftReference:
    chain_id: str
    collection_address: str
    token_id: str

    @classmethod
    def from_columns(
        cls,
        chain_id: Optional[str],
        collection_address: Optional[str],
        token_id: Optional[str],
    ) -> Optional["NftReference"]:
        # a partially filled avatar is treated as no avatar
        if chain_id and collection_address and token_id:
            return cls(chain_id, collection_address, token_id)
        return None


@dataclass
class Profile:
    """
    Storage-level representation of a profile.

    `id` and the timestamps are assigned by the provider; callers building a
    profile to save only fill in name / nonce / nft.
    """
    name: Optional[str] = None
    nonce: int = 0
    nft: Optional[NftReference] = None
    id: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class PublicKeyBinding:
    id: int
    profile_id: int
    public_key: str
    bech32_hash: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class ChainPreference:
    profile_id: int
    chain_id: str
    public_key_binding_id: int
    updated_at: Optional[str] = None


@dataclass
class PreferredKey:
    public_key: str
    bech32_hash: str


@dataclass
class ChainPublicKey:
    chain_id: str
    public_key: str


@dataclass
class ProfileSearchResult:
    public_key: str
    bech32_hash: str
    profile_id: int
    profile: Profile


@dataclass
class ProfileView:
    """Public shape of a profile: who it is and which key/address it uses per chain."""
    id: Optional[int] = None
    nonce: int = 0
    name: Optional[str] = None
    nft: Optional[NftReference] = None
    chains: Dict[str, Dict[str, str]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
