"""
Unit tests for Keccak-256 hashing.
"""

import pytest

from paychannels.crypto.hashing import Hash, Keccak256Hasher

EMPTY_KECCAK = "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"


class TestHash:
    """Test the Hash class."""

    def test_hash_creation(self):
        """Test creating a hash from 32 bytes."""
        value = b"\x01" * 32
        hash_obj = Hash(value)
        assert hash_obj.value == value

    def test_hash_invalid_length(self):
        """Test that invalid length raises ValueError."""
        with pytest.raises(ValueError, match="Hash must be exactly 32 bytes"):
            Hash(b"\x01" * 31)

    def test_hash_from_hex_with_prefix(self):
        """Test parsing a 0x-prefixed hex string."""
        hash_obj = Hash.from_hex("0x" + "ab" * 32)
        assert hash_obj.value == b"\xab" * 32

    def test_hash_to_hex(self):
        """Test hex rendering is 0x-prefixed."""
        assert Hash(b"\x00" * 32).to_hex() == "0x" + "00" * 32

    def test_zero_hash(self):
        """Test zero hash."""
        assert Hash.zero().to_int() == 0

    def test_hash_equality_and_ordering(self):
        """Test equality, hashing and ordering."""
        low = Hash(b"\x00" * 31 + b"\x01")
        high = Hash(b"\x01" + b"\x00" * 31)
        assert low == Hash(b"\x00" * 31 + b"\x01")
        assert low != high
        assert low < high
        assert len({low, Hash(low.value)}) == 1

    def test_hash_not_equal_to_bytes(self):
        """Test that a Hash never equals a raw bytes value."""
        assert Hash(b"\x00" * 32) != b"\x00" * 32


class TestKeccak256Hasher:
    """Test Keccak-256 hashing."""

    def test_empty_input_vector(self):
        """Test the well-known digest of empty input."""
        assert str(Keccak256Hasher.hash(b"")) == EMPTY_KECCAK

    def test_string_and_bytes_agree(self):
        """Test that strings are hashed as their UTF-8 bytes."""
        assert Keccak256Hasher.hash("hello") == Keccak256Hasher.hash(b"hello")

    def test_differs_from_sha3(self):
        """Test that Keccak-256 is not the standardized SHA3-256."""
        import hashlib

        assert Keccak256Hasher.hash(b"").value != hashlib.sha3_256(b"").digest()

    def test_hash_list_concatenates(self):
        """Test that hash_list hashes the concatenation of its items."""
        assert Keccak256Hasher.hash_list(["ab", b"cd"]) == Keccak256Hasher.hash(b"abcd")
