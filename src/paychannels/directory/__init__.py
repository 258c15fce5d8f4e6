"""Market and member directory."""

from .registry import InMemoryDirectory, MarketDirectory
from .types import Actor, ActorType, Market, Member, MemberLevel

__all__ = [
    "MemberLevel",
    "ActorType",
    "Member",
    "Actor",
    "Market",
    "MarketDirectory",
    "InMemoryDirectory",
]
