"""
Hash functions and utilities for paychannels.

Implements Keccak-256 hashing, the digest used by typed-data signing and
address derivation.
"""

from dataclasses import dataclass
from typing import List, Union

from eth_utils import keccak


@dataclass(frozen=True)
class Hash:
    """Immutable hash value with comparison and string representation."""

    value: bytes

    def __post_init__(self) -> None:
        if len(self.value) != 32:
            raise ValueError("Hash must be exactly 32 bytes")

    def __str__(self) -> str:
        return self.value.hex()

    def __repr__(self) -> str:
        return f"Hash('{self.value.hex()}')"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Hash):
            return False
        return self.value == other.value

    def __hash__(self) -> int:
        return hash(self.value)

    def __lt__(self, other: "Hash") -> bool:
        return self.value < other.value

    @classmethod
    def from_hex(cls, hex_string: str) -> "Hash":
        """Create a Hash from a hexadecimal string."""
        if hex_string.startswith("0x"):
            hex_string = hex_string[2:]
        return cls(bytes.fromhex(hex_string))

    @classmethod
    def zero(cls) -> "Hash":
        """Create a zero hash (all zeros)."""
        return cls(b"\x00" * 32)

    def to_hex(self) -> str:
        """Convert hash to 0x-prefixed hexadecimal string."""
        return "0x" + self.value.hex()

    def to_int(self) -> int:
        """Convert hash to integer (big-endian)."""
        return int.from_bytes(self.value, byteorder="big")


class Keccak256Hasher:
    """Keccak-256 hasher (the pre-standard SHA-3 variant used by Ethereum)."""

    @staticmethod
    def hash(data: Union[bytes, str]) -> Hash:
        """
        Hash data using Keccak-256.

        Args:
            data: Data to hash (bytes or string)

        Returns:
            Hash object containing the Keccak-256 digest
        """
        if isinstance(data, str):
            data = data.encode("utf-8")

        return Hash(keccak(data))

    @staticmethod
    def hash_list(items: List[Union[bytes, str]]) -> Hash:
        """
        Hash a list of items by concatenating them.

        Args:
            items: List of items to hash

        Returns:
            Hash of the concatenated items
        """
        combined = b""
        for item in items:
            if isinstance(item, str):
                combined += item.encode("utf-8")
            else:
                combined += item

        return Keccak256Hasher.hash(combined)
