"""
Digital signature implementation using ECDSA with secp256k1 curve.

Signatures are the 65-byte recoverable (r, s, v) form used by Ethereum:
the signer's address is recovered from a signature and a 32-byte digest
instead of being verified against a known public key.
"""

from dataclasses import dataclass
from typing import Optional, Tuple, Union

from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from eth_keys import keys
from eth_keys.exceptions import BadSignature
from eth_keys.exceptions import ValidationError as KeyValidationError
from eth_utils import is_address, to_checksum_address

from ..logging import get_logger
from .hashing import Hash, Keccak256Hasher

logger = get_logger(__name__)

# secp256k1 group order
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

# recovery ids are carried as 27/28 on the wire
RECOVERY_ID_OFFSET = 27

SIGNATURE_LENGTH = 65

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def normalize_address(address: str) -> str:
    """Return the EIP-55 checksum form of an address, raising ValueError if malformed."""
    if not isinstance(address, str) or not is_address(address):
        raise ValueError(f"Invalid address: {address!r}")
    return to_checksum_address(address)


def is_zero_address(address: Optional[str]) -> bool:
    return address is None or int(address, 16) == 0


@dataclass(frozen=True)
class PrivateKey:
    """Immutable private key with cryptographic operations."""

    _key: ec.EllipticCurvePrivateKey

    def __post_init__(self) -> None:
        if not isinstance(self._key.curve, ec.SECP256K1):
            raise ValueError("Private key must use secp256k1 curve")

    @classmethod
    def generate(cls) -> "PrivateKey":
        """Generate a new random private key."""
        key = ec.generate_private_key(ec.SECP256K1())
        return cls(key)

    @classmethod
    def from_bytes(cls, key_bytes: bytes) -> "PrivateKey":
        """Create a private key from raw bytes."""
        if len(key_bytes) != 32:
            raise ValueError("Private key must be exactly 32 bytes")

        key = ec.derive_private_key(
            int.from_bytes(key_bytes, byteorder="big"), ec.SECP256K1()
        )
        return cls(key)

    @classmethod
    def from_hex(cls, hex_string: str) -> "PrivateKey":
        """Create a private key from hexadecimal string."""
        if hex_string.startswith("0x"):
            hex_string = hex_string[2:]
        return cls.from_bytes(bytes.fromhex(hex_string))

    def to_bytes(self) -> bytes:
        """Convert private key to raw bytes."""
        private_numbers = self._key.private_numbers()
        return private_numbers.private_value.to_bytes(32, byteorder="big")

    def to_hex(self) -> str:
        """Convert private key to hexadecimal string."""
        return self.to_bytes().hex()

    def get_public_key(self) -> "PublicKey":
        """Get the corresponding public key."""
        return PublicKey(self._key.public_key())

    @property
    def address(self) -> str:
        """Checksum address controlled by this key."""
        return self.get_public_key().to_address()

    def sign_hash(self, digest: Union[bytes, Hash]) -> "Signature":
        """Sign a 32-byte digest, producing a recoverable signature."""
        if isinstance(digest, Hash):
            digest = digest.value
        if len(digest) != 32:
            raise ValueError("Digest must be exactly 32 bytes")

        signed = keys.PrivateKey(self.to_bytes()).sign_msg_hash(digest)
        return Signature(signed.r, signed.s, signed.v + RECOVERY_ID_OFFSET)

    def __str__(self) -> str:
        return f"PrivateKey('{self.to_hex()[:8]}...')"

    def __repr__(self) -> str:
        return f"PrivateKey(address='{self.address}')"


@dataclass(frozen=True)
class PublicKey:
    """Immutable public key with cryptographic operations."""

    _key: ec.EllipticCurvePublicKey

    def __post_init__(self) -> None:
        if not isinstance(self._key.curve, ec.SECP256K1):
            raise ValueError("Public key must use secp256k1 curve")

    @classmethod
    def from_bytes(cls, key_bytes: bytes) -> "PublicKey":
        """Create a public key from raw bytes (compressed or uncompressed)."""
        if len(key_bytes) == 33:
            if key_bytes[0] not in (0x02, 0x03):
                raise ValueError("Invalid compressed public key format")
        elif len(key_bytes) == 65:
            if key_bytes[0] != 0x04:
                raise ValueError("Invalid uncompressed public key format")
        else:
            raise ValueError(
                "Public key must be 33 (compressed) or 65 (uncompressed) bytes"
            )

        try:
            key = ec.EllipticCurvePublicKey.from_encoded_point(
                ec.SECP256K1(), key_bytes
            )
        except ValueError as e:
            raise ValueError(f"Invalid public key: {e}") from e
        return cls(key)

    def to_bytes(self, compressed: bool = True) -> bytes:
        """Convert public key to raw bytes."""
        encoding = (
            PublicFormat.CompressedPoint
            if compressed
            else PublicFormat.UncompressedPoint
        )
        return self._key.public_bytes(Encoding.X962, encoding)

    def to_hex(self, compressed: bool = True) -> str:
        """Convert public key to hexadecimal string."""
        return self.to_bytes(compressed).hex()

    def to_address(self) -> str:
        """Convert public key to a checksum address (last 20 bytes of Keccak-256)."""
        point = self.to_bytes(compressed=False)[1:]
        return to_checksum_address(Keccak256Hasher.hash(point).value[-20:])

    def __str__(self) -> str:
        return f"PublicKey('{self.to_hex()[:8]}...')"


@dataclass(frozen=True)
class Signature:
    """Immutable recoverable signature with v in {27, 28}."""

    r: int
    s: int
    v: int

    def __post_init__(self) -> None:
        if not (0 < self.r < SECP256K1_N) or not (0 < self.s < SECP256K1_N):
            raise ValueError("Signature components must be in [1, n)")
        # reject the malleable high-s twin of every valid signature
        if self.s > SECP256K1_N // 2:
            raise ValueError("Signature s component must be in the lower half order")
        if self.v not in (RECOVERY_ID_OFFSET, RECOVERY_ID_OFFSET + 1):
            raise ValueError(f"Invalid recovery id: {self.v}")

    @classmethod
    def from_bytes(cls, signature_bytes: bytes) -> "Signature":
        """Create a signature from 65 raw bytes (r || s || v)."""
        if len(signature_bytes) != SIGNATURE_LENGTH:
            raise ValueError(f"Signature must be exactly {SIGNATURE_LENGTH} bytes")

        r = int.from_bytes(signature_bytes[:32], byteorder="big")
        s = int.from_bytes(signature_bytes[32:64], byteorder="big")
        v = signature_bytes[64]
        if v < RECOVERY_ID_OFFSET:
            v += RECOVERY_ID_OFFSET

        return cls(r, s, v)

    @classmethod
    def from_hex(cls, hex_string: str) -> "Signature":
        """Create a signature from hexadecimal string."""
        if hex_string.startswith("0x"):
            hex_string = hex_string[2:]
        return cls.from_bytes(bytes.fromhex(hex_string))

    def to_bytes(self) -> bytes:
        """Convert signature to raw bytes."""
        return (
            self.r.to_bytes(32, byteorder="big")
            + self.s.to_bytes(32, byteorder="big")
            + bytes([self.v])
        )

    def to_hex(self) -> str:
        """Convert signature to hexadecimal string."""
        return "0x" + self.to_bytes().hex()

    def recover_address(self, digest: Union[bytes, Hash]) -> str:
        """Recover the checksum address that produced this signature over digest."""
        if isinstance(digest, Hash):
            digest = digest.value
        recoverable = keys.Signature(
            vrs=(self.v - RECOVERY_ID_OFFSET, self.r, self.s)
        )
        return recoverable.recover_public_key_from_msg_hash(digest).to_checksum_address()

    def __str__(self) -> str:
        return f"Signature('{self.to_hex()[:18]}...')"


class ECDSASigner:
    """ECDSA signature operations with secp256k1 curve."""

    @staticmethod
    def generate_keypair() -> Tuple[PrivateKey, PublicKey]:
        """Generate a new ECDSA key pair."""
        private_key = PrivateKey.generate()
        public_key = private_key.get_public_key()
        return private_key, public_key

    @staticmethod
    def sign_hash(private_key: PrivateKey, digest: Union[bytes, Hash]) -> bytes:
        """Sign a digest and return the 65-byte wire encoding."""
        return private_key.sign_hash(digest).to_bytes()

    @staticmethod
    def recover_address(
        digest: Union[bytes, Hash], signature: Union[bytes, Signature]
    ) -> Optional[str]:
        """
        Recover the signer address from a digest and signature.

        Returns None for malformed signatures (wrong length, bad recovery id,
        out of range or high-s components, or no recoverable point).
        """
        try:
            if not isinstance(signature, Signature):
                signature = Signature.from_bytes(bytes(signature))
            return signature.recover_address(digest)
        except (ValueError, TypeError, BadSignature, KeyValidationError) as e:
            logger.debug(f"Signature recovery failed: {e}")
            return None

    @staticmethod
    def verify_address(
        address: str, digest: Union[bytes, Hash], signature: Union[bytes, Signature]
    ) -> bool:
        """Check that signature over digest was produced by address."""
        try:
            expected = normalize_address(address)
        except ValueError:
            return False
        if is_zero_address(expected):
            return False
        recovered = ECDSASigner.recover_address(digest, signature)
        return recovered is not None and recovered == expected
