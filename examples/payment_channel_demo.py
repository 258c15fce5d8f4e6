"""
Payment Channel Demo

This demo walks through a market on an in-memory deployment:
- Opening a payment channel funded by a relayed approval
- Cooperative close with a final claim
- Non-cooperative close settled after the grace period
- Rejected stale claims
"""

from paychannels.crypto.signatures import ZERO_ADDRESS
from paychannels.errors import PayChannelsError
from paychannels.logging import LogConfig, LogLevel, get_logger, setup_logging
from paychannels.state_channels import ChannelEvent
from paychannels.testing import ChannelTestbed

logger = get_logger(__name__)


class PaymentChannelDemo:
    """Demo of payment channel lifecycles."""

    def __init__(self):
        self.bed = ChannelTestbed()
        self.bed.events.subscribe(ChannelEvent, self._on_event)

    def _on_event(self, event):
        logger.info(f"Event: {type(event).__name__}", extra=event.to_dict())

    def demo_relayed_approval(self):
        """Consumer signs an approval that a relayer submits, then opens a channel."""
        escrow = self.bed.config.escrow_address
        self.bed.fund(self.bed.consumer, 5000)
        signature = self.bed.sign_approval(self.bed.consumer, escrow, 5000, nonce=1)
        receipt = self.bed.guard.approve_for(
            self.bed.outsider.address,
            self.bed.consumer.address,
            ZERO_ADDRESS,
            escrow,
            5000,
            0,
            1,
            signature,
        )
        logger.info("Approval relayed", extra={"digest": receipt.digest.hex()})

    def demo_cooperative_close(self):
        """Final claim settles at once."""
        channel = self.bed.open_payment_channel(1000, fund=False)
        self.bed.close(channel, 1, 200, is_final=True)
        logger.info("Balances after cooperative close", extra=self.bed.balances())

    def demo_non_cooperative_close(self):
        """Claims compete during the grace period; the last accepted one settles."""
        channel = self.bed.open_payment_channel(2000, fund=False)
        self.bed.close(channel, 1, 1500)
        self.bed.close(channel, 2, 900)
        try:
            self.bed.close(channel, 3, 1200)
        except PayChannelsError as e:
            logger.info("Stale claim rejected", extra={"reason": e.reason})

        closing_at = self.bed.manager.get_channel(channel.channel_id).closing_at
        self.bed.ledger.set_time(closing_at)
        self.bed.manager.settle_channel(channel.channel_id)
        logger.info("Balances after settlement", extra=self.bed.balances())

    def run_complete_demo(self):
        """Run all demos."""
        self.demo_relayed_approval()
        self.demo_cooperative_close()
        self.demo_non_cooperative_close()
        logger.info("Channel statistics", extra=self.bed.manager.get_channel_stats())


def main():
    """Main function."""
    setup_logging(LogConfig(level=LogLevel.INFO, format_type="text"))
    PaymentChannelDemo().run_complete_demo()


if __name__ == "__main__":
    main()
