"""
Payment and paying channels.

A channel escrows an actor's deposit when opened. Off the ledger, the
actor's delegate and the market maker co-sign ever-decreasing balances; only
the closing claim returns to the ledger, where it is settled into a payout
for the recipient, a protocol fee and a refund for the actor.
"""

from .channel import (
    CHANNEL_ID_LENGTH,
    Channel,
    ChannelState,
    ChannelType,
    Settlement,
    compute_settlement,
)
from .channel_manager import ChannelManager, ChannelStats
from .events import (
    ChannelClosed,
    ChannelClosing,
    ChannelEvent,
    ChannelOpened,
    EventBus,
)

__all__ = [
    # Channel
    "CHANNEL_ID_LENGTH",
    "Channel",
    "ChannelState",
    "ChannelType",
    "Settlement",
    "compute_settlement",
    # Manager
    "ChannelManager",
    "ChannelStats",
    # Events
    "ChannelEvent",
    "ChannelOpened",
    "ChannelClosing",
    "ChannelClosed",
    "EventBus",
]
