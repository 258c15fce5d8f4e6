"""Test fixtures for paychannels.

``ChannelTestbed`` builds a complete deployment in memory (ledger,
directory, market with owner, maker, consumer and provider, signer, channel
manager and approval guard) and signs requests on behalf of its parties.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from ..config import ChannelConfig
from ..crypto.hashing import Keccak256Hasher
from ..crypto.signatures import ZERO_ADDRESS, PrivateKey
from ..crypto.typed_data import ApproveTransfer, ChannelClose, ChannelOpen, TypedDataSigner
from ..directory import ActorType, InMemoryDirectory
from ..ledger import InMemoryTokenLedger, MetaTransactionGuard
from ..logging import get_logger
from ..state_channels import Channel, ChannelManager, ChannelOpened, ChannelType, EventBus

logger = get_logger(__name__)

DEFAULT_ISSUANCE = 10**9 * 10**18
DEFAULT_START_TIME = 1_700_000_000
DEFAULT_TIMEOUT = 3600


@dataclass(frozen=True)
class Party:
    """A named participant holding a deterministic key."""

    name: str
    key: PrivateKey

    @classmethod
    def from_seed(cls, name: str) -> "Party":
        seed = Keccak256Hasher.hash(f"paychannels-testbed:{name}").value
        return cls(name=name, key=PrivateKey.from_bytes(seed))

    @property
    def address(self) -> str:
        return self.key.address


def make_id(label: str) -> bytes:
    """Deterministic 16-byte id for a label."""
    return Keccak256Hasher.hash(label).value[:16]


class ChannelTestbed:
    """A complete in-memory deployment with one market."""

    PARTY_NAMES = (
        "treasury",
        "escrow",
        "fee_collector",
        "coin",
        "owner",
        "maker",
        "consumer",
        "consumer_delegate",
        "provider",
        "provider_delegate",
        "outsider",
    )

    def __init__(
        self,
        total_issuance: int = DEFAULT_ISSUANCE,
        chain_id: int = 1,
        start_time: int = DEFAULT_START_TIME,
        consumer_security: int = 0,
        provider_security: int = 0,
    ):
        self.parties: Dict[str, Party] = {
            name: Party.from_seed(name) for name in self.PARTY_NAMES
        }

        self.config = ChannelConfig(
            verifying_contract=self.escrow.address,
            fee_collector=self.fee_collector.address,
            chain_id=chain_id,
        )
        self.ledger = InMemoryTokenLedger(
            total_issuance, self.treasury.address, start_time=start_time
        )
        self.signer = TypedDataSigner(self.config.domain())
        self.directory = InMemoryDirectory(signer=self.signer, clock=self.ledger.current_time)
        self.events = EventBus()
        self.events.subscribe(ChannelOpened, self.directory.on_channel_opened)
        self.manager = ChannelManager(
            self.directory, self.ledger, self.config, signer=self.signer, events=self.events
        )
        self.guard = MetaTransactionGuard(self.ledger, self.signer)

        for name in ("owner", "maker", "consumer", "provider"):
            self.directory.register_member(self.parties[name].address, eula="QmEula")

        self.market_id = make_id("market-1")
        self.directory.create_market(
            owner=self.owner.address,
            market_id=self.market_id,
            coin=self.parties["coin"].address,
            terms="QmTerms",
            meta="QmMeta",
            maker=self.maker.address,
            provider_security=provider_security,
            consumer_security=consumer_security,
        )
        self.directory.join_market(
            self.consumer.address, self.market_id, ActorType.CONSUMER, security=consumer_security
        )
        self.directory.join_market(
            self.provider.address, self.market_id, ActorType.PROVIDER, security=provider_security
        )
        self._channel_counter = 0

    def __getattr__(self, name: str) -> Party:
        parties = self.__dict__.get("parties", {})
        if name in parties:
            return parties[name]
        raise AttributeError(name)

    # Ledger helpers

    def fund(self, party: Party, amount: int) -> None:
        if not self.ledger.transfer(self.treasury.address, party.address, amount):
            raise RuntimeError(f"Treasury could not fund {party.name}")

    def approve_escrow(self, party: Party, amount: int) -> None:
        self.ledger.approve(party.address, self.config.escrow_address, amount)

    def balances(self) -> Dict[str, int]:
        return {name: self.ledger.balance_of(p.address) for name, p in self.parties.items()}

    # Signing helpers

    def next_channel_id(self) -> bytes:
        self._channel_counter += 1
        return make_id(f"channel-{self._channel_counter}")

    def sign_open(
        self,
        signer: Party,
        ctype: ChannelType,
        channel_id: bytes,
        actor: str,
        delegate: str,
        recipient: str,
        amount: int,
        timeout: int,
        market_maker: Optional[str] = None,
        market_id: Optional[bytes] = None,
    ) -> bytes:
        message = ChannelOpen(
            ctype=int(ctype),
            market_id=market_id or self.market_id,
            channel_id=channel_id,
            actor=actor,
            delegate=delegate,
            marketmaker=market_maker or self.maker.address,
            recipient=recipient,
            amount=amount,
            timeout=timeout,
        )
        return self.signer.sign(signer.key, message)

    def sign_close(
        self,
        channel_id: bytes,
        closing_seq: int,
        balance: int,
        is_final: bool,
        delegate: Party,
        market_maker: Optional[Party] = None,
    ) -> Tuple[bytes, bytes]:
        """Delegate and market maker signatures over one closing claim."""
        claim = ChannelClose(
            channel_id=channel_id,
            channel_seq=closing_seq,
            balance=balance,
            is_final=is_final,
        )
        maker = market_maker or self.maker
        return self.signer.sign(delegate.key, claim), self.signer.sign(maker.key, claim)

    def sign_approval(
        self,
        owner: Party,
        spender: str,
        amount: int,
        expires: int = 0,
        nonce: int = 1,
        relayer: str = ZERO_ADDRESS,
    ) -> bytes:
        message = ApproveTransfer(
            sender=owner.address,
            relayer=relayer,
            spender=spender,
            amount=amount,
            expires=expires,
            nonce=nonce,
        )
        return self.signer.sign(owner.key, message)

    # Channel helpers

    def open_payment_channel(
        self,
        amount: int,
        timeout: int = DEFAULT_TIMEOUT,
        channel_id: Optional[bytes] = None,
        fund: bool = True,
    ) -> Channel:
        """Consumer escrows amount to pay the market owner."""
        channel_id = channel_id or self.next_channel_id()
        if fund:
            self.fund(self.consumer, amount)
            self.approve_escrow(self.consumer, amount)
        signature = self.sign_open(
            self.consumer,
            ChannelType.PAYMENT,
            channel_id,
            actor=self.consumer.address,
            delegate=self.consumer_delegate.address,
            recipient=self.owner.address,
            amount=amount,
            timeout=timeout,
        )
        return self.manager.open_channel(
            ChannelType.PAYMENT,
            self.market_id,
            channel_id,
            self.maker.address,
            self.consumer.address,
            self.consumer_delegate.address,
            self.owner.address,
            amount,
            timeout,
            signature,
        )

    def open_paying_channel(
        self,
        amount: int,
        timeout: int = DEFAULT_TIMEOUT,
        channel_id: Optional[bytes] = None,
        fund: bool = True,
    ) -> Channel:
        """Market maker escrows amount to pay the provider."""
        channel_id = channel_id or self.next_channel_id()
        if fund:
            self.fund(self.maker, amount)
            self.approve_escrow(self.maker, amount)
        signature = self.sign_open(
            self.maker,
            ChannelType.PAYING,
            channel_id,
            actor=self.maker.address,
            delegate=self.provider_delegate.address,
            recipient=self.provider.address,
            amount=amount,
            timeout=timeout,
        )
        return self.manager.open_channel(
            ChannelType.PAYING,
            self.market_id,
            channel_id,
            self.maker.address,
            self.maker.address,
            self.provider_delegate.address,
            self.provider.address,
            amount,
            timeout,
            signature,
        )

    def close(
        self,
        channel: Channel,
        closing_seq: int,
        balance: int,
        is_final: bool = False,
    ) -> Channel:
        """Submit a closing claim signed by the channel's delegate and the market maker."""
        delegate = next(p for p in self.parties.values() if p.address == channel.delegate)
        delegate_sig, maker_sig = self.sign_close(
            channel.channel_id, closing_seq, balance, is_final, delegate
        )
        return self.manager.close_channel(
            channel.channel_id, closing_seq, balance, is_final, delegate_sig, maker_sig
        )
