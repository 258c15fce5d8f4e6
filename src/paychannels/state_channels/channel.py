"""
Channel aggregate and settlement arithmetic.

A channel's static fields are fixed at open; its closing fields evolve
through OPEN -> CLOSING -> CLOSED and never move backward.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any, Dict, Optional

from ..config import PROTOCOL_FEE_DIVISOR

CHANNEL_ID_LENGTH = 16


class ChannelType(IntEnum):
    """Direction of value in a channel.

    PAYMENT: a consumer pays the market owner for data.
    PAYING: the market maker pays a provider for data it sold.
    """

    PAYMENT = 1
    PAYING = 2


class ChannelState(Enum):
    """Lifecycle state of a channel."""

    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass(frozen=True)
class Settlement:
    """How an escrowed amount splits at close."""

    earned: int
    fee: int
    payout: int
    refund: int

    @property
    def total(self) -> int:
        return self.payout + self.fee + self.refund

    def to_dict(self) -> Dict[str, int]:
        return {
            "earned": self.earned,
            "fee": self.fee,
            "payout": self.payout,
            "refund": self.refund,
        }


def compute_settlement(
    amount: int, balance: int, fee_divisor: int = PROTOCOL_FEE_DIVISOR
) -> Settlement:
    """Split amount given the remaining balance.

    The recipient earned what was spent from the channel; the protocol fee is
    taken from the earned part and the unspent balance is refunded.
    """
    if not 0 <= balance <= amount:
        raise ValueError(f"balance {balance} outside [0, {amount}]")
    earned = amount - balance
    fee = earned // fee_divisor
    return Settlement(earned=earned, fee=fee, payout=earned - fee, refund=balance)


@dataclass
class Channel:
    """One payment or paying channel."""

    channel_id: bytes
    seq: int
    ctype: ChannelType
    market_id: bytes
    market_maker: str
    actor: str
    delegate: str
    recipient: str
    amount: int
    timeout: int
    open_signature: bytes
    opened_at: int
    state: ChannelState = ChannelState.OPEN
    closing_seq: int = 0
    closing_balance: Optional[int] = None
    closing_at: int = 0
    closed_at: int = 0
    closed_seq: int = 0
    closed_balance: int = 0
    delegate_signature: Optional[bytes] = None
    marketmaker_signature: Optional[bytes] = None

    def __post_init__(self):
        if self.closing_balance is None:
            self.closing_balance = self.amount

    @property
    def depositor(self) -> str:
        """Account that escrowed the amount and receives the refund."""
        return self.actor

    @property
    def has_claim(self) -> bool:
        """Whether a closing claim has been accepted."""
        return self.closing_seq > 0

    def is_expired(self, now: int) -> bool:
        return self.state == ChannelState.CLOSING and now >= self.closing_at

    def to_dict(self) -> Dict[str, Any]:
        """Convert channel to dictionary."""
        return {
            "channel_id": "0x" + self.channel_id.hex(),
            "seq": self.seq,
            "ctype": self.ctype.name,
            "market_id": "0x" + self.market_id.hex(),
            "market_maker": self.market_maker,
            "actor": self.actor,
            "delegate": self.delegate,
            "recipient": self.recipient,
            "amount": self.amount,
            "timeout": self.timeout,
            "opened_at": self.opened_at,
            "state": self.state.value,
            "closing_seq": self.closing_seq,
            "closing_balance": self.closing_balance,
            "closing_at": self.closing_at,
            "closed_at": self.closed_at,
            "closed_seq": self.closed_seq,
            "closed_balance": self.closed_balance,
        }
