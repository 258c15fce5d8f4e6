"""
Market and member directory.

The channel core consumes the directory only through the read-only
``MarketDirectory`` queries. ``InMemoryDirectory`` is a full directory:
members register (optionally with a signed ``MemberRegister``), markets are
created with a single market maker, and members join markets as provider or
consumer.
"""

import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

from ..crypto.signatures import is_zero_address, normalize_address
from ..crypto.typed_data import (
    MarketCreate,
    MarketJoin,
    MemberRegister,
    TypedDataSigner,
    TypedMessage,
)
from ..errors import (
    PreconditionError,
    ReasonCode,
    SignatureError,
    ValidationError,
)
from ..logging import get_logger
from .types import Actor, ActorType, Market, Member, MemberLevel

logger = get_logger(__name__)

MARKET_ID_LENGTH = 16


class MarketDirectory(ABC):
    """Read-only queries the channel core makes against the directory."""

    @abstractmethod
    def member_level(self, address: str) -> MemberLevel:
        """Level of address, NULL when unknown."""

    @abstractmethod
    def market_owner(self, market_id: bytes) -> Optional[str]:
        """Owner of market_id, or None when the market does not exist."""

    @abstractmethod
    def market_maker(self, market_id: bytes) -> Optional[str]:
        """Market maker of market_id, or None when the market does not exist."""

    @abstractmethod
    def is_joined_provider(self, market_id: bytes, address: str) -> bool:
        """Whether address is on the provider roster of market_id."""

    @abstractmethod
    def is_joined_consumer(self, market_id: bytes, address: str) -> bool:
        """Whether address is on the consumer roster of market_id."""


def _address(value: str, field: str) -> str:
    try:
        address = normalize_address(value)
    except ValueError as e:
        raise ValidationError(
            str(e), field=field, value=value, error_code=ReasonCode.INVALID_ADDRESS, cause=e
        ) from e
    if is_zero_address(address):
        raise ValidationError(
            f"{field} must not be the zero address",
            field=field,
            value=value,
            error_code=ReasonCode.INVALID_ADDRESS,
        )
    return address


def _market_id(value: bytes) -> bytes:
    if not isinstance(value, (bytes, bytearray)) or len(value) != MARKET_ID_LENGTH:
        raise ValidationError(
            f"Market id must be {MARKET_ID_LENGTH} bytes",
            field="market_id",
            value=value,
            expected=f"{MARKET_ID_LENGTH} bytes",
            error_code=ReasonCode.INVALID_MARKET_ID,
        )
    return bytes(value)


class InMemoryDirectory(MarketDirectory):
    """Member and market registry held in memory."""

    def __init__(
        self,
        signer: Optional[TypedDataSigner] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.signer = signer
        self._clock = clock or (lambda: int(time.time()))
        self._members: Dict[str, Member] = {}
        self._markets: Dict[bytes, Market] = {}
        # maker address -> market id
        self._makers: Dict[str, bytes] = {}
        self._lock = threading.RLock()

    def _check_signature(
        self, signer_address: str, message: TypedMessage, signature: Optional[bytes]
    ) -> None:
        if signature is None:
            return
        if self.signer is None or not self.signer.verify(signer_address, message, signature):
            raise SignatureError(
                f"Invalid {message.PRIMARY_TYPE} signature",
                signer=signer_address,
                error_code=ReasonCode.INVALID_SIGNATURE,
            )

    def _require_member(self, address: str) -> Member:
        member = self._members.get(address)
        if member is None or not member.level.in_good_standing:
            raise PreconditionError(
                "Address is not an active member",
                field="member",
                value=address,
                error_code=ReasonCode.NO_SUCH_MEMBER,
            )
        return member

    # Members

    def register_member(
        self,
        member: str,
        eula: str,
        profile: str = "",
        registered: Optional[int] = None,
        signature: Optional[bytes] = None,
    ) -> Member:
        """Register member. A signature, when given, must be a MemberRegister by member."""
        address = _address(member, "member")
        registered = self._clock() if registered is None else registered

        with self._lock:
            if address in self._members:
                raise PreconditionError(
                    "Member already registered",
                    field="member",
                    value=address,
                    error_code=ReasonCode.MEMBER_ALREADY_REGISTERED,
                )
            self._check_signature(
                address,
                MemberRegister(
                    member=address, registered=registered, eula=eula, profile=profile
                ),
                signature,
            )
            record = Member(
                address=address,
                registered=registered,
                eula=eula,
                profile=profile,
                level=MemberLevel.ACTIVE,
                signature=signature,
            )
            self._members[address] = record

        logger.info("Member registered", extra={"member": address, "relayed": signature is not None})
        return record

    def set_member_level(self, member: str, level: MemberLevel) -> None:
        """Override the level of a registered member."""
        address = _address(member, "member")
        level = MemberLevel(level)
        if level == MemberLevel.NULL:
            raise ValidationError(
                "A registered member cannot be reset to NULL",
                field="level",
                value=level,
                error_code=ReasonCode.INVALID_MEMBER_LEVEL,
            )
        with self._lock:
            record = self._members.get(address)
            if record is None:
                raise PreconditionError(
                    "No such member",
                    field="member",
                    value=address,
                    error_code=ReasonCode.NO_SUCH_MEMBER,
                )
            previous = record.level
            record.level = level
        logger.info(
            "Member level changed",
            extra={"member": address, "from": previous.name, "to": level.name},
        )

    def get_member(self, member: str) -> Optional[Member]:
        with self._lock:
            return self._members.get(normalize_address(member))

    # Markets

    def create_market(
        self,
        owner: str,
        market_id: bytes,
        coin: str,
        terms: str,
        meta: str,
        maker: str,
        provider_security: int = 0,
        consumer_security: int = 0,
        market_fee: int = 0,
        created: Optional[int] = None,
        signature: Optional[bytes] = None,
    ) -> Market:
        """Create a market owned by owner and served by maker."""
        owner = _address(owner, "owner")
        market_id = _market_id(market_id)
        coin = _address(coin, "coin")
        try:
            maker = _address(maker, "maker")
        except ValidationError as e:
            raise PreconditionError(
                "Market maker must be a non-zero address",
                field="maker",
                value=maker,
                error_code=ReasonCode.INVALID_MAKER,
                cause=e,
            ) from e
        for name, value in (
            ("provider_security", provider_security),
            ("consumer_security", consumer_security),
        ):
            if value < 0:
                raise ValidationError(
                    f"{name} must not be negative", field=name, value=value, expected=">= 0"
                )
        if not isinstance(market_fee, int) or market_fee < 0:
            raise ValidationError(
                "Market fee must be a non-negative integer",
                field="market_fee",
                value=market_fee,
                error_code=ReasonCode.INVALID_MARKET_FEE,
            )
        created = self._clock() if created is None else created

        with self._lock:
            self._require_member(owner)
            if market_id in self._markets:
                raise PreconditionError(
                    "Market already exists",
                    field="market_id",
                    value=market_id.hex(),
                    error_code=ReasonCode.MARKET_ALREADY_EXISTS,
                )
            if maker in self._makers:
                raise PreconditionError(
                    "Market maker already serves another market",
                    field="maker",
                    value=maker,
                    error_code=ReasonCode.MAKER_ALREADY_WORKING_FOR_OTHER_MARKET,
                )
            self._check_signature(
                owner,
                MarketCreate(
                    member=owner,
                    created=created,
                    market_id=market_id,
                    coin=coin,
                    terms=terms,
                    meta=meta,
                    maker=maker,
                    provider_security=provider_security,
                    consumer_security=consumer_security,
                    market_fee=market_fee,
                ),
                signature,
            )
            market = Market(
                market_id=market_id,
                owner=owner,
                coin=coin,
                terms=terms,
                meta=meta,
                maker=maker,
                provider_security=provider_security,
                consumer_security=consumer_security,
                market_fee=market_fee,
                created=created,
                signature=signature,
            )
            self._markets[market_id] = market
            self._makers[maker] = market_id

        logger.info(
            "Market created",
            extra={"market_id": market_id, "owner": owner, "maker": maker},
        )
        return market

    def join_market(
        self,
        member: str,
        market_id: bytes,
        actor_type: ActorType,
        security: int = 0,
        meta: str = "",
        joined: Optional[int] = None,
        signature: Optional[bytes] = None,
    ) -> Actor:
        """Add member to the roster of actor_type in market_id."""
        address = _address(member, "member")
        market_id = _market_id(market_id)
        try:
            actor_type = ActorType(actor_type)
        except ValueError as e:
            raise ValidationError(
                f"Unknown actor type {actor_type!r}",
                field="actor_type",
                value=actor_type,
                error_code=ReasonCode.INVALID_ACTOR_TYPE,
                cause=e,
            ) from e
        joined = self._clock() if joined is None else joined

        with self._lock:
            self._require_member(address)
            market = self._markets.get(market_id)
            if market is None:
                raise PreconditionError(
                    "No such market",
                    field="market_id",
                    value=market_id.hex(),
                    error_code=ReasonCode.NO_SUCH_MARKET,
                )
            roster = market.roster(actor_type)
            if address in roster:
                raise PreconditionError(
                    f"Member already joined as {actor_type.name.lower()}",
                    field="member",
                    value=address,
                    error_code=ReasonCode.ACTOR_ALREADY_JOINED,
                )
            minimum = (
                market.provider_security
                if actor_type == ActorType.PROVIDER
                else market.consumer_security
            )
            if security < minimum:
                raise PreconditionError(
                    f"Security deposit {security} below market minimum {minimum}",
                    field="security",
                    value=security,
                    error_code=ReasonCode.INSUFFICIENT_SECURITY_DEPOSIT,
                )
            self._check_signature(
                address,
                MarketJoin(
                    member=address,
                    joined=joined,
                    market_id=market_id,
                    actor_type=int(actor_type),
                    meta=meta,
                ),
                signature,
            )
            actor = Actor(
                address=address,
                actor_type=actor_type,
                joined=joined,
                security=security,
                meta=meta,
                signature=signature,
            )
            roster[address] = actor

        logger.info(
            "Member joined market",
            extra={"market_id": market_id, "member": address, "actor_type": actor_type.name},
        )
        return actor

    def get_market(self, market_id: bytes) -> Optional[Market]:
        with self._lock:
            return self._markets.get(bytes(market_id))

    def list_markets(self) -> List[Market]:
        with self._lock:
            return list(self._markets.values())

    def on_channel_opened(self, event) -> None:
        """Record a newly opened channel on the roster entry it belongs to."""
        from ..state_channels.channel import ChannelType

        with self._lock:
            market = self._markets.get(event.market_id)
            if market is None:
                return
            if event.ctype == ChannelType.PAYMENT:
                actor = market.consumers.get(event.actor)
            else:
                actor = market.providers.get(event.recipient)
            if actor is not None and event.channel_id not in actor.channels:
                actor.channels.append(event.channel_id)

    # MarketDirectory

    def member_level(self, address: str) -> MemberLevel:
        with self._lock:
            record = self._members.get(normalize_address(address))
            return record.level if record else MemberLevel.NULL

    def market_owner(self, market_id: bytes) -> Optional[str]:
        market = self.get_market(market_id)
        return market.owner if market else None

    def market_maker(self, market_id: bytes) -> Optional[str]:
        market = self.get_market(market_id)
        return market.maker if market else None

    def is_joined_provider(self, market_id: bytes, address: str) -> bool:
        market = self.get_market(market_id)
        return market is not None and normalize_address(address) in market.providers

    def is_joined_consumer(self, market_id: bytes, address: str) -> bool:
        market = self.get_market(market_id)
        return market is not None and normalize_address(address) in market.consumers
