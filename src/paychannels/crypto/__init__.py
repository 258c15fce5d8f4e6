"""
Cryptographic primitives for paychannels.

This module provides the cryptographic functions needed for:
- Keccak-256 hashing
- Recoverable ECDSA signatures over secp256k1
- Typed structured-data (EIP-712) digests
"""

from .hashing import Hash, Keccak256Hasher
from .signatures import (
    ZERO_ADDRESS,
    ECDSASigner,
    PrivateKey,
    PublicKey,
    Signature,
    is_zero_address,
    normalize_address,
)
from .typed_data import (
    ApproveTransfer,
    ChannelClose,
    ChannelOpen,
    MarketCreate,
    MarketJoin,
    MemberRegister,
    TypedDataSigner,
    TypedDomain,
    TypedMessage,
    as_typed_data,
    hash_typed_data,
)

__all__ = [
    # Hashing
    "Hash",
    "Keccak256Hasher",
    # Signatures
    "ECDSASigner",
    "PrivateKey",
    "PublicKey",
    "Signature",
    "ZERO_ADDRESS",
    "is_zero_address",
    "normalize_address",
    # Typed data
    "TypedDomain",
    "TypedMessage",
    "TypedDataSigner",
    "MemberRegister",
    "MarketCreate",
    "MarketJoin",
    "ChannelOpen",
    "ChannelClose",
    "ApproveTransfer",
    "as_typed_data",
    "hash_typed_data",
]
