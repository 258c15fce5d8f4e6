"""
Channel Manager - Payment and Paying Channel State Machine

This module implements the channel registry and its transitions:
- Opening a channel, escrowing the actor's deposit
- Cooperative and non-cooperative closing with monotonic-balance disputes
- Settlement of payout, protocol fee and refund
- Queries and statistics over the registry

Every transition is authorized by typed-data signatures and runs as one
indivisible unit: a rejected request or a refused transfer leaves no state
change and no partial transfer behind.
"""

import copy
import threading
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

from ..config import ChannelConfig
from ..crypto.signatures import is_zero_address, normalize_address
from ..crypto.typed_data import ChannelClose, ChannelOpen, TypedDataSigner
from ..directory.registry import MarketDirectory
from ..errors import (
    PayChannelsError,
    PreconditionError,
    ReasonCode,
    SignatureError,
    StaleSubmissionError,
    ValidationError,
    create_transfer_error,
)
from ..ledger.token import Ledger
from ..locking import KeyedLock
from ..logging import get_logger
from .channel import (
    CHANNEL_ID_LENGTH,
    Channel,
    ChannelState,
    ChannelType,
    Settlement,
    compute_settlement,
)
from .events import ChannelClosed, ChannelClosing, ChannelEvent, ChannelOpened, EventBus

logger = get_logger(__name__)


@dataclass
class ChannelStats:
    """Running totals over the channel registry."""

    opened: int = 0
    closing_claims: int = 0
    closed: int = 0
    total_escrowed: int = 0
    total_paid_out: int = 0
    total_fees: int = 0
    total_refunded: int = 0
    rejections: Dict[str, int] = field(default_factory=dict)

    def record_rejection(self, reason: Optional[str]) -> None:
        key = reason or "UNKNOWN"
        self.rejections[key] = self.rejections.get(key, 0) + 1

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "opened": self.opened,
            "closing_claims": self.closing_claims,
            "closed": self.closed,
            "total_escrowed": self.total_escrowed,
            "total_paid_out": self.total_paid_out,
            "total_fees": self.total_fees,
            "total_refunded": self.total_refunded,
            "rejections": dict(self.rejections),
        }


def _bytes16(value: bytes, field_name: str, reason: ReasonCode) -> bytes:
    if not isinstance(value, (bytes, bytearray)) or len(value) != CHANNEL_ID_LENGTH:
        raise ValidationError(
            f"{field_name} must be {CHANNEL_ID_LENGTH} bytes",
            field=field_name,
            value=value,
            expected=f"{CHANNEL_ID_LENGTH} bytes",
            error_code=reason,
        )
    return bytes(value)


def _address(value: str, field_name: str) -> str:
    try:
        return normalize_address(value)
    except ValueError as e:
        raise ValidationError(
            str(e), field=field_name, value=value, error_code=ReasonCode.INVALID_ADDRESS, cause=e
        ) from e


class ChannelManager:
    """Registry and state machine for payment and paying channels."""

    def __init__(
        self,
        directory: MarketDirectory,
        ledger: Ledger,
        config: ChannelConfig,
        signer: Optional[TypedDataSigner] = None,
        events: Optional[EventBus] = None,
    ):
        self.directory = directory
        self.ledger = ledger
        self.config = config
        self.signer = signer or TypedDataSigner(config.domain())
        self.events = events or EventBus()

        self._channels: Dict[bytes, Channel] = {}
        self._next_seq = 1
        self._stats = ChannelStats()
        self._registry_lock = threading.RLock()
        self._channel_locks = KeyedLock("channel")

        logger.info(
            "Channel manager initialized",
            extra={
                "escrow": config.escrow_address,
                "fee_collector": config.fee_collector,
                "chain_id": config.chain_id,
            },
        )

    def _rejected(self, operation: str, channel_id: Any, error: PayChannelsError) -> None:
        with self._registry_lock:
            self._stats.record_rejection(error.reason)
        log = logger.error if error.reason in (
            ReasonCode.OPEN_TRANSFER_FAILED.value,
            ReasonCode.CLOSE_TRANSFER_FAILED.value,
        ) else logger.warning
        log(
            f"{operation} rejected: {error.message}",
            extra={"reason": error.reason, "channel_id": channel_id},
        )

    def _publish(self, events: List[ChannelEvent]) -> None:
        for event in events:
            self.events.publish(event)

    # Open

    def open_channel(
        self,
        ctype: ChannelType,
        market_id: bytes,
        channel_id: bytes,
        market_maker: str,
        actor: str,
        delegate: str,
        recipient: str,
        amount: int,
        timeout: int,
        signature: bytes,
    ) -> Channel:
        """Open a channel and escrow amount from actor.

        Args:
            ctype: PAYMENT (consumer pays market owner) or PAYING (market maker pays provider)
            market_id: 16-byte id of the market the channel belongs to
            channel_id: 16-byte globally unique channel id
            market_maker: The market's maker, co-signer of every closing claim
            actor: Depositor of amount and signer of the open request
            delegate: Off-ledger agent acting for the actor, co-signer of closing claims
            recipient: Receiver of the payout
            amount: Value escrowed from the actor
            timeout: Grace period in seconds for non-cooperative close
            signature: Actor's signature over the ChannelOpen message

        Returns:
            Snapshot of the newly opened channel
        """
        try:
            channel, event = self._open(
                ctype, market_id, channel_id, market_maker, actor,
                delegate, recipient, amount, timeout, signature,
            )
        except PayChannelsError as e:
            self._rejected("open_channel", channel_id, e)
            raise

        logger.info(
            "Channel opened",
            extra={
                "channel_id": channel.channel_id,
                "seq": channel.seq,
                "ctype": channel.ctype.name,
                "amount": channel.amount,
                "actor": channel.actor,
                "recipient": channel.recipient,
            },
        )
        self._publish([event])
        return copy.deepcopy(channel)

    def _open(
        self,
        ctype: ChannelType,
        market_id: bytes,
        channel_id: bytes,
        market_maker: str,
        actor: str,
        delegate: str,
        recipient: str,
        amount: int,
        timeout: int,
        signature: bytes,
    ) -> Tuple[Channel, ChannelOpened]:
        try:
            ctype = ChannelType(ctype)
        except ValueError as e:
            raise ValidationError(
                f"Unknown channel type {ctype!r}",
                field="ctype",
                value=ctype,
                error_code=ReasonCode.INVALID_CHANNEL_TYPE,
                cause=e,
            ) from e
        market_id = _bytes16(market_id, "market_id", ReasonCode.INVALID_MARKET_ID)
        channel_id = _bytes16(channel_id, "channel_id", ReasonCode.INVALID_CHANNEL_ID)
        market_maker = _address(market_maker, "market_maker")
        actor = _address(actor, "actor")
        delegate = _address(delegate, "delegate")
        recipient = _address(recipient, "recipient")
        for name, value, reason in (
            ("amount", amount, ReasonCode.INVALID_CHANNEL_AMOUNT),
            ("timeout", timeout, ReasonCode.INVALID_CHANNEL_TIMEOUT),
        ):
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ValidationError(
                    f"{name} must be a non-negative integer",
                    field=name,
                    value=value,
                    expected=">= 0",
                    error_code=reason,
                )

        request = ChannelOpen(
            ctype=int(ctype),
            market_id=market_id,
            channel_id=channel_id,
            actor=actor,
            delegate=delegate,
            marketmaker=market_maker,
            recipient=recipient,
            amount=amount,
            timeout=timeout,
        )

        with self._channel_locks.hold(channel_id):
            if not self.signer.verify(actor, request, signature):
                raise SignatureError(
                    "Open request was not signed by the actor",
                    signer=actor,
                    error_code=ReasonCode.INVALID_CHANNEL_SIGNATURE,
                )

            owner = self.directory.market_owner(market_id)
            if owner is None:
                raise PreconditionError(
                    "No such market",
                    field="market_id",
                    value=market_id.hex(),
                    error_code=ReasonCode.NO_SUCH_MARKET,
                )

            with self._registry_lock:
                exists = channel_id in self._channels
            if exists:
                raise PreconditionError(
                    "Channel id already used",
                    field="channel_id",
                    value=channel_id.hex(),
                    error_code=ReasonCode.CHANNEL_ALREADY_EXISTS,
                )

            if is_zero_address(market_maker) or market_maker != self.directory.market_maker(market_id):
                raise PreconditionError(
                    "Market maker does not serve this market",
                    field="market_maker",
                    value=market_maker,
                    error_code=ReasonCode.INVALID_MARKETMAKER,
                )

            if not self.directory.member_level(actor).in_good_standing:
                raise PreconditionError(
                    "Actor is not an active member",
                    field="actor",
                    value=actor,
                    error_code=ReasonCode.INVALID_ACTOR,
                )

            if is_zero_address(delegate):
                raise PreconditionError(
                    "Delegate must be a non-zero address",
                    field="delegate",
                    value=delegate,
                    error_code=ReasonCode.INVALID_DELEGATE,
                )

            if not self.directory.member_level(recipient).in_good_standing:
                raise PreconditionError(
                    "Recipient is not an active member",
                    field="recipient",
                    value=recipient,
                    error_code=ReasonCode.INVALID_RECIPIENT,
                )

            self._check_roles(ctype, market_id, owner, market_maker, actor, recipient)

            if not 0 < amount <= self.ledger.total_issuance():
                raise PreconditionError(
                    f"Channel amount {amount} outside (0, total issuance]",
                    field="amount",
                    value=amount,
                    error_code=ReasonCode.INVALID_CHANNEL_AMOUNT,
                )

            if not 0 <= timeout < self.config.max_timeout:
                raise PreconditionError(
                    f"Channel timeout {timeout} outside [0, {self.config.max_timeout})",
                    field="timeout",
                    value=timeout,
                    error_code=ReasonCode.INVALID_CHANNEL_TIMEOUT,
                )

            escrow = self.config.escrow_address
            with self.ledger.atomic():
                if not self.ledger.transfer_from(escrow, actor, escrow, amount):
                    raise create_transfer_error(
                        ReasonCode.OPEN_TRANSFER_FAILED,
                        escrow,
                        amount,
                        f"Could not escrow {amount} from {actor}",
                    )

                with self._registry_lock:
                    seq = self._next_seq
                    channel = Channel(
                        channel_id=channel_id,
                        seq=seq,
                        ctype=ctype,
                        market_id=market_id,
                        market_maker=market_maker,
                        actor=actor,
                        delegate=delegate,
                        recipient=recipient,
                        amount=amount,
                        timeout=timeout,
                        open_signature=bytes(signature),
                        opened_at=self.ledger.current_time(),
                    )
                    self._channels[channel_id] = channel
                    self._next_seq += 1
                    self._stats.opened += 1
                    self._stats.total_escrowed += amount

        event = ChannelOpened(
            channel_id=channel_id,
            ctype=ctype,
            market_id=market_id,
            seq=seq,
            market_maker=market_maker,
            actor=actor,
            delegate=delegate,
            recipient=recipient,
            amount=amount,
            timeout=timeout,
            signature=bytes(signature),
        )
        return channel, event

    def _check_roles(
        self,
        ctype: ChannelType,
        market_id: bytes,
        owner: str,
        market_maker: str,
        actor: str,
        recipient: str,
    ) -> None:
        if ctype == ChannelType.PAYMENT:
            if recipient != owner:
                raise PreconditionError(
                    "Payment channel recipient must be the market owner",
                    field="recipient",
                    value=recipient,
                    error_code=ReasonCode.RECIPIENT_NOT_MARKET,
                )
            if not self.directory.is_joined_consumer(market_id, actor):
                raise PreconditionError(
                    "Payment channel actor must be a joined consumer",
                    field="actor",
                    value=actor,
                    error_code=ReasonCode.ACTOR_NOT_CONSUMER,
                )
        else:
            if actor != market_maker:
                raise PreconditionError(
                    "Paying channel actor must be the market maker",
                    field="actor",
                    value=actor,
                    error_code=ReasonCode.ACTOR_NOT_MARKETMAKER,
                )
            if not self.directory.is_joined_provider(market_id, recipient):
                raise PreconditionError(
                    "Paying channel recipient must be a joined provider",
                    field="recipient",
                    value=recipient,
                    error_code=ReasonCode.RECIPIENT_NOT_PROVIDER,
                )

    # Close

    def close_channel(
        self,
        channel_id: bytes,
        closing_seq: int,
        balance: int,
        is_final: bool,
        delegate_signature: bytes,
        marketmaker_signature: bytes,
    ) -> Channel:
        """Submit a closing claim co-signed by the delegate and the market maker.

        The first accepted claim moves the channel to CLOSING and starts the
        grace period. Within it, only claims with a strictly newer sequence
        number and a balance no higher than the accepted one are taken. The
        channel settles at once when the claim is final, the balance is
        exhausted, or the grace period is zero.

        Returns:
            Snapshot of the channel after the claim
        """
        try:
            channel, events = self._close(
                channel_id, closing_seq, balance, is_final,
                delegate_signature, marketmaker_signature,
            )
        except PayChannelsError as e:
            self._rejected("close_channel", channel_id, e)
            raise

        self._publish(events)
        return copy.deepcopy(channel)

    def _close(
        self,
        channel_id: bytes,
        closing_seq: int,
        balance: int,
        is_final: bool,
        delegate_signature: bytes,
        marketmaker_signature: bytes,
    ) -> Tuple[Channel, List[ChannelEvent]]:
        channel_id = _bytes16(channel_id, "channel_id", ReasonCode.INVALID_CHANNEL_ID)
        if not isinstance(balance, int) or isinstance(balance, bool) or balance < 0:
            raise PreconditionError(
                "Closing balance must be a non-negative integer",
                field="balance",
                value=balance,
                error_code=ReasonCode.INVALID_CLOSING_BALANCE,
            )
        if not isinstance(closing_seq, int) or isinstance(closing_seq, bool) or closing_seq < 0:
            raise PreconditionError(
                "Closing sequence must be a non-negative integer",
                field="closing_seq",
                value=closing_seq,
                error_code=ReasonCode.INVALID_CLOSING_SEQ,
            )

        with self._channel_locks.hold(channel_id):
            with self._registry_lock:
                current = self._channels.get(channel_id)
            if current is None:
                raise PreconditionError(
                    "No such channel",
                    field="channel_id",
                    value=channel_id.hex(),
                    error_code=ReasonCode.NO_SUCH_CHANNEL,
                )
            if current.state not in (ChannelState.OPEN, ChannelState.CLOSING):
                raise PreconditionError(
                    f"Channel is {current.state.value}",
                    field="state",
                    value=current.state.value,
                    error_code=ReasonCode.CHANNEL_NOT_OPEN,
                )

            claim = ChannelClose(
                channel_id=channel_id,
                channel_seq=closing_seq,
                balance=balance,
                is_final=bool(is_final),
            )
            if not self.signer.verify(current.delegate, claim, delegate_signature):
                raise SignatureError(
                    "Closing claim was not signed by the delegate",
                    signer=current.delegate,
                    error_code=ReasonCode.INVALID_DELEGATE_SIGNATURE,
                )
            if not self.signer.verify(current.market_maker, claim, marketmaker_signature):
                raise SignatureError(
                    "Closing claim was not signed by the market maker",
                    signer=current.market_maker,
                    error_code=ReasonCode.INVALID_MARKETMAKER_SIGNATURE,
                )

            if balance > current.amount:
                raise PreconditionError(
                    f"Closing balance {balance} exceeds channel amount {current.amount}",
                    field="balance",
                    value=balance,
                    error_code=ReasonCode.INVALID_CLOSING_BALANCE,
                )
            if closing_seq < 1:
                raise PreconditionError(
                    "Closing sequence must start at 1",
                    field="closing_seq",
                    value=closing_seq,
                    error_code=ReasonCode.INVALID_CLOSING_SEQ,
                )

            now = self.ledger.current_time()
            if current.state == ChannelState.CLOSING:
                if now >= current.closing_at:
                    raise PreconditionError(
                        "Grace period has ended; settle the channel instead",
                        field="closing_at",
                        value=current.closing_at,
                        error_code=ReasonCode.CHANNEL_TIMEOUT,
                    )
                if closing_seq <= current.closing_seq:
                    raise StaleSubmissionError(
                        f"Closing sequence {closing_seq} is not newer than {current.closing_seq}",
                        submitted=closing_seq,
                        accepted=current.closing_seq,
                        error_code=ReasonCode.TRANSACTION_SEQ_OUTDATED,
                    )

            if current.has_claim and balance > current.closing_balance:
                raise StaleSubmissionError(
                    f"Closing balance {balance} exceeds accepted balance {current.closing_balance}",
                    submitted=balance,
                    accepted=current.closing_balance,
                    error_code=ReasonCode.TRANSACTION_BALANCE_OUTDATED,
                )

            updated = replace(
                current,
                state=ChannelState.CLOSING,
                closing_seq=closing_seq,
                closing_balance=balance,
                closing_at=now + current.timeout,
                delegate_signature=bytes(delegate_signature),
                marketmaker_signature=bytes(marketmaker_signature),
            )
            settlement = compute_settlement(updated.amount, balance, self.config.fee_divisor)
            events: List[ChannelEvent] = [
                ChannelClosing(
                    channel_id=channel_id,
                    closing_seq=closing_seq,
                    balance=balance,
                    is_final=bool(is_final),
                    closing_at=updated.closing_at,
                    payout=settlement.payout,
                    fee=settlement.fee,
                    refund=settlement.refund,
                )
            ]

            if is_final or balance == 0 or updated.is_expired(now):
                updated = self._settle(updated, settlement, now)
                events.append(self._closed_event(updated, settlement))

            with self._registry_lock:
                self._channels[channel_id] = updated
                self._stats.closing_claims += 1

        logger.info(
            "Closing claim accepted",
            extra={
                "channel_id": channel_id,
                "closing_seq": closing_seq,
                "balance": balance,
                "closing_at": updated.closing_at,
                "final": updated.state == ChannelState.CLOSED,
            },
        )
        return updated, events

    def settle_channel(self, channel_id: bytes) -> Channel:
        """Settle a CLOSING channel whose grace period has ended.

        The last accepted claim was already co-signed, so no new signatures
        are needed.
        """
        try:
            channel, event = self._settle_expired(channel_id)
        except PayChannelsError as e:
            self._rejected("settle_channel", channel_id, e)
            raise

        self._publish([event])
        return copy.deepcopy(channel)

    def _settle_expired(self, channel_id: bytes) -> Tuple[Channel, ChannelClosed]:
        channel_id = _bytes16(channel_id, "channel_id", ReasonCode.INVALID_CHANNEL_ID)

        with self._channel_locks.hold(channel_id):
            with self._registry_lock:
                current = self._channels.get(channel_id)
            if current is None:
                raise PreconditionError(
                    "No such channel",
                    field="channel_id",
                    value=channel_id.hex(),
                    error_code=ReasonCode.NO_SUCH_CHANNEL,
                )
            if current.state != ChannelState.CLOSING:
                raise PreconditionError(
                    f"Channel is {current.state.value}",
                    field="state",
                    value=current.state.value,
                    error_code=ReasonCode.CHANNEL_NOT_CLOSING,
                )
            now = self.ledger.current_time()
            if not current.is_expired(now):
                raise PreconditionError(
                    f"Grace period runs until {current.closing_at}",
                    field="closing_at",
                    value=current.closing_at,
                    error_code=ReasonCode.CHANNEL_NOT_EXPIRED,
                )

            settlement = compute_settlement(
                current.amount, current.closing_balance, self.config.fee_divisor
            )
            updated = self._settle(current, settlement, now)
            with self._registry_lock:
                self._channels[channel_id] = updated

        return updated, self._closed_event(updated, settlement)

    def _settle(self, channel: Channel, settlement: Settlement, now: int) -> Channel:
        """Pay out an escrowed channel; all transfers succeed or none do."""
        escrow = self.config.escrow_address
        transfers = (
            (channel.recipient, settlement.payout),
            (self.config.fee_collector, settlement.fee),
            (channel.depositor, settlement.refund),
        )
        with self.ledger.atomic():
            for to, value in transfers:
                if value and not self.ledger.transfer(escrow, to, value):
                    raise create_transfer_error(ReasonCode.CLOSE_TRANSFER_FAILED, to, value)

        closed = replace(
            channel,
            state=ChannelState.CLOSED,
            closed_at=now,
            closed_seq=channel.closing_seq,
            closed_balance=channel.closing_balance,
        )
        with self._registry_lock:
            self._stats.closed += 1
            self._stats.total_escrowed -= channel.amount
            self._stats.total_paid_out += settlement.payout
            self._stats.total_fees += settlement.fee
            self._stats.total_refunded += settlement.refund

        logger.info(
            "Channel closed",
            extra={
                "channel_id": channel.channel_id,
                "closed_seq": closed.closed_seq,
                "payout": settlement.payout,
                "fee": settlement.fee,
                "refund": settlement.refund,
            },
        )
        return closed

    @staticmethod
    def _closed_event(channel: Channel, settlement: Settlement) -> ChannelClosed:
        return ChannelClosed(
            channel_id=channel.channel_id,
            closed_seq=channel.closed_seq,
            balance=channel.closed_balance,
            closed_at=channel.closed_at,
            payout=settlement.payout,
            fee=settlement.fee,
            refund=settlement.refund,
        )

    # Queries

    def get_channel(self, channel_id: bytes) -> Optional[Channel]:
        """Snapshot of a channel, or None when unknown."""
        with self._registry_lock:
            channel = self._channels.get(bytes(channel_id))
            return copy.deepcopy(channel) if channel else None

    def list_channels(
        self,
        market_id: Optional[bytes] = None,
        actor: Optional[str] = None,
        state: Optional[ChannelState] = None,
    ) -> List[Channel]:
        """Snapshots of channels matching every given filter, in open order."""
        if actor is not None:
            actor = normalize_address(actor)
        with self._registry_lock:
            channels = [
                copy.deepcopy(channel)
                for channel in self._channels.values()
                if (market_id is None or channel.market_id == bytes(market_id))
                and (actor is None or channel.actor == actor)
                and (state is None or channel.state == state)
            ]
        return sorted(channels, key=lambda channel: channel.seq)

    def settlement_preview(self, channel_id: bytes) -> Settlement:
        """Split the channel would settle with at its current closing balance."""
        with self._registry_lock:
            channel = self._channels.get(bytes(channel_id))
            if channel is None:
                raise PreconditionError(
                    "No such channel",
                    field="channel_id",
                    value=bytes(channel_id).hex(),
                    error_code=ReasonCode.NO_SUCH_CHANNEL,
                )
            return compute_settlement(
                channel.amount, channel.closing_balance, self.config.fee_divisor
            )

    def get_channel_stats(self) -> Dict[str, Any]:
        """Registry totals and per-state channel counts."""
        with self._registry_lock:
            stats = self._stats.to_dict()
            by_state = {state.value: 0 for state in ChannelState}
            for channel in self._channels.values():
                by_state[channel.state.value] += 1
        stats["by_state"] = by_state
        stats["total_channels"] = sum(by_state.values())
        return stats
