"""
Member, market and actor records.

Members are created once and never deleted; only their level changes.
Markets hold two rosters keyed by actor address, one per role.
"""

import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional


class MemberLevel(IntEnum):
    """Standing of a member address."""

    NULL = 0
    ACTIVE = 1
    VERIFIED = 2
    RETIRED = 3
    PENALTY = 4
    BLOCKED = 5

    @property
    def in_good_standing(self) -> bool:
        return self in (MemberLevel.ACTIVE, MemberLevel.VERIFIED)


class ActorType(IntEnum):
    """Role an actor plays in a market."""

    PROVIDER = 1
    CONSUMER = 2


@dataclass
class Member:
    """A registered member."""

    address: str
    registered: int
    eula: str
    profile: str
    level: MemberLevel = MemberLevel.ACTIVE
    signature: Optional[bytes] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "registered": self.registered,
            "eula": self.eula,
            "profile": self.profile,
            "level": self.level.name,
            "signature": self.signature.hex() if self.signature else None,
        }


@dataclass
class Actor:
    """A member's entry on one market roster."""

    address: str
    actor_type: ActorType
    joined: int
    security: int = 0
    meta: str = ""
    signature: Optional[bytes] = None
    channels: List[bytes] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "actor_type": self.actor_type.name,
            "joined": self.joined,
            "security": self.security,
            "meta": self.meta,
            "signature": self.signature.hex() if self.signature else None,
            "channels": [channel_id.hex() for channel_id in self.channels],
        }


@dataclass
class Market:
    """A data market with its provider and consumer rosters."""

    market_id: bytes
    owner: str
    coin: str
    terms: str
    meta: str
    maker: str
    provider_security: int = 0
    consumer_security: int = 0
    market_fee: int = 0
    created: int = field(default_factory=lambda: int(time.time()))
    signature: Optional[bytes] = None
    providers: Dict[str, Actor] = field(default_factory=dict)
    consumers: Dict[str, Actor] = field(default_factory=dict)

    def roster(self, actor_type: ActorType) -> Dict[str, Actor]:
        if actor_type == ActorType.PROVIDER:
            return self.providers
        return self.consumers

    def to_dict(self) -> Dict[str, Any]:
        return {
            "market_id": self.market_id.hex(),
            "owner": self.owner,
            "coin": self.coin,
            "terms": self.terms,
            "meta": self.meta,
            "maker": self.maker,
            "provider_security": self.provider_security,
            "consumer_security": self.consumer_security,
            "market_fee": self.market_fee,
            "created": self.created,
            "providers": {a: actor.to_dict() for a, actor in self.providers.items()},
            "consumers": {a: actor.to_dict() for a, actor in self.consumers.items()},
        }
