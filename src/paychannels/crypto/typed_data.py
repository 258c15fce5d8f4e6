"""
Typed structured-data hashing and signing (EIP-712).

Every message shape carries its own type string, so its type hash is folded
into the digest and a signature over one shape can never verify as another.
The domain separator binds the chain id and verifying contract, making a
signature invalid outside the deployment it was produced for.
"""

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union

from eth_abi import encode
from eth_abi.exceptions import EncodingError

from ..logging import get_logger
from .hashing import Hash, Keccak256Hasher
from .signatures import ECDSASigner, PrivateKey, normalize_address

logger = get_logger(__name__)

EIP191_PREFIX = b"\x19\x01"


def _encode_value(abi_type: str, value: Any) -> bytes:
    """Encode one field as a 32-byte word per the structured-data rules."""
    if abi_type == "string":
        return Keccak256Hasher.hash(value.encode("utf-8")).value
    if abi_type == "bytes":
        return Keccak256Hasher.hash(bytes(value)).value
    return encode([abi_type], [value])


class TypedMessage:
    """Mixin giving a frozen dataclass a structured-data type and struct hash.

    Subclasses declare ``PRIMARY_TYPE`` and ``FIELDS`` as a tuple of
    ``(attribute, wire_name, abi_type)``.
    """

    PRIMARY_TYPE: ClassVar[str] = ""
    FIELDS: ClassVar[Tuple[Tuple[str, str, str], ...]] = ()

    @classmethod
    def type_string(cls) -> str:
        members = ",".join(f"{abi_type} {name}" for _, name, abi_type in cls.FIELDS)
        return f"{cls.PRIMARY_TYPE}({members})"

    @classmethod
    def type_hash(cls) -> bytes:
        return Keccak256Hasher.hash(cls.type_string()).value

    def encode_data(self) -> bytes:
        encoded = [self.type_hash()]
        for attribute, _, abi_type in self.FIELDS:
            encoded.append(_encode_value(abi_type, getattr(self, attribute)))
        return b"".join(encoded)

    def struct_hash(self) -> bytes:
        return Keccak256Hasher.hash(self.encode_data()).value

    def message_dict(self) -> Dict[str, Any]:
        return {name: getattr(self, attribute) for attribute, name, _ in self.FIELDS}

    @classmethod
    def type_fields(cls) -> List[Dict[str, str]]:
        return [{"name": name, "type": abi_type} for _, name, abi_type in cls.FIELDS]


@dataclass(frozen=True)
class TypedDomain(TypedMessage):
    """Domain separator binding signatures to one chain and verifying contract."""

    PRIMARY_TYPE: ClassVar[str] = "EIP712Domain"
    FIELDS: ClassVar[Tuple[Tuple[str, str, str], ...]] = (
        ("name", "name", "string"),
        ("version", "version", "string"),
        ("chain_id", "chainId", "uint256"),
        ("verifying_contract", "verifyingContract", "address"),
    )

    name: str
    version: str
    chain_id: int
    verifying_contract: str

    def separator(self) -> bytes:
        return self.struct_hash()


@dataclass(frozen=True)
class MemberRegister(TypedMessage):
    """A member registering itself (optionally relayed)."""

    PRIMARY_TYPE: ClassVar[str] = "MemberRegister"
    FIELDS: ClassVar[Tuple[Tuple[str, str, str], ...]] = (
        ("member", "member", "address"),
        ("registered", "registered", "uint256"),
        ("eula", "eula", "string"),
        ("profile", "profile", "string"),
    )

    member: str
    registered: int
    eula: str
    profile: str


@dataclass(frozen=True)
class MarketCreate(TypedMessage):
    """A member creating a market."""

    PRIMARY_TYPE: ClassVar[str] = "MarketCreate"
    FIELDS: ClassVar[Tuple[Tuple[str, str, str], ...]] = (
        ("member", "member", "address"),
        ("created", "created", "uint256"),
        ("market_id", "marketId", "bytes16"),
        ("coin", "coin", "address"),
        ("terms", "terms", "string"),
        ("meta", "meta", "string"),
        ("maker", "maker", "address"),
        ("provider_security", "providerSecurity", "uint256"),
        ("consumer_security", "consumerSecurity", "uint256"),
        ("market_fee", "marketFee", "uint256"),
    )

    member: str
    created: int
    market_id: bytes
    coin: str
    terms: str
    meta: str
    maker: str
    provider_security: int
    consumer_security: int
    market_fee: int


@dataclass(frozen=True)
class MarketJoin(TypedMessage):
    """A member joining a market as provider or consumer."""

    PRIMARY_TYPE: ClassVar[str] = "MarketJoin"
    FIELDS: ClassVar[Tuple[Tuple[str, str, str], ...]] = (
        ("member", "member", "address"),
        ("joined", "joined", "uint256"),
        ("market_id", "marketId", "bytes16"),
        ("actor_type", "actorType", "uint8"),
        ("meta", "meta", "string"),
    )

    member: str
    joined: int
    market_id: bytes
    actor_type: int
    meta: str


@dataclass(frozen=True)
class ChannelOpen(TypedMessage):
    """The actor's authorization to open a channel and escrow ``amount``."""

    PRIMARY_TYPE: ClassVar[str] = "ChannelOpen"
    FIELDS: ClassVar[Tuple[Tuple[str, str, str], ...]] = (
        ("ctype", "ctype", "uint8"),
        ("market_id", "marketId", "bytes16"),
        ("channel_id", "channelId", "bytes16"),
        ("actor", "actor", "address"),
        ("delegate", "delegate", "address"),
        ("marketmaker", "marketmaker", "address"),
        ("recipient", "recipient", "address"),
        ("amount", "amount", "uint256"),
        ("timeout", "timeout", "uint32"),
    )

    ctype: int
    market_id: bytes
    channel_id: bytes
    actor: str
    delegate: str
    marketmaker: str
    recipient: str
    amount: int
    timeout: int


@dataclass(frozen=True)
class ChannelClose(TypedMessage):
    """A closing claim co-signed by the delegate and the market maker."""

    PRIMARY_TYPE: ClassVar[str] = "ChannelClose"
    FIELDS: ClassVar[Tuple[Tuple[str, str, str], ...]] = (
        ("channel_id", "channelId", "bytes16"),
        ("channel_seq", "channelSeq", "uint32"),
        ("balance", "balance", "uint256"),
        ("is_final", "isFinal", "bool"),
    )

    channel_id: bytes
    channel_seq: int
    balance: int
    is_final: bool


@dataclass(frozen=True)
class ApproveTransfer(TypedMessage):
    """A pre-signed approval submitted on the owner's behalf by a relayer."""

    PRIMARY_TYPE: ClassVar[str] = "ApproveTransfer"
    FIELDS: ClassVar[Tuple[Tuple[str, str, str], ...]] = (
        ("sender", "sender", "address"),
        ("relayer", "relayer", "address"),
        ("spender", "spender", "address"),
        ("amount", "amount", "uint256"),
        ("expires", "expires", "uint256"),
        ("nonce", "nonce", "uint256"),
    )

    sender: str
    relayer: str
    spender: str
    amount: int
    expires: int
    nonce: int


def hash_typed_data(domain: TypedDomain, message: TypedMessage) -> Hash:
    """Compute the domain-separated digest of a structured message."""
    return Keccak256Hasher.hash(
        EIP191_PREFIX + domain.separator() + message.struct_hash()
    )


def as_typed_data(domain: TypedDomain, message: TypedMessage) -> Dict[str, Any]:
    """Render domain and message as the JSON-style structure wallets sign."""
    return {
        "types": {
            domain.PRIMARY_TYPE: domain.type_fields(),
            message.PRIMARY_TYPE: message.type_fields(),
        },
        "primaryType": message.PRIMARY_TYPE,
        "domain": domain.message_dict(),
        "message": message.message_dict(),
    }


class TypedDataSigner:
    """Hashes, signs and verifies structured messages for one domain."""

    def __init__(self, domain: TypedDomain):
        self.domain = domain
        self._separator = domain.separator()
        logger.info(
            "Initialized typed-data signer",
            extra={
                "chain_id": domain.chain_id,
                "verifying_contract": domain.verifying_contract,
            },
        )

    def hash(self, message: TypedMessage) -> Hash:
        return Keccak256Hasher.hash(
            EIP191_PREFIX + self._separator + message.struct_hash()
        )

    def sign(self, private_key: PrivateKey, message: TypedMessage) -> bytes:
        """Sign a message, returning the 65-byte signature."""
        return ECDSASigner.sign_hash(private_key, self.hash(message))

    def recover(
        self, message: TypedMessage, signature: Union[bytes, bytearray, None]
    ) -> Optional[str]:
        """Recover the signer of message, or None when nothing can be recovered."""
        if signature is None:
            return None
        try:
            digest = self.hash(message)
        except (EncodingError, ValueError, TypeError, AttributeError) as e:
            logger.debug(f"Cannot encode {message.PRIMARY_TYPE}: {e}")
            return None
        return ECDSASigner.recover_address(digest, signature)

    def verify(
        self,
        signer: str,
        message: TypedMessage,
        signature: Union[bytes, bytearray, None],
    ) -> bool:
        """Return whether signature over message was produced by signer.

        Fails closed: malformed signatures, unencodable messages and wrong
        signers all return False.
        """
        try:
            expected = normalize_address(signer)
        except ValueError:
            return False
        recovered = self.recover(message, signature)
        return recovered is not None and recovered == expected and int(expected, 16) != 0
