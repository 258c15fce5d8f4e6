"""
Channel notifications.

Events are published after a transition has committed. A failing handler is
logged and does not affect the transition or the other handlers.
"""

import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Type

from ..logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ChannelEvent:
    """Base class of channel notifications."""

    channel_id: bytes

    def to_dict(self) -> Dict[str, Any]:
        data = {"event": type(self).__name__}
        for key, value in self.__dict__.items():
            if isinstance(value, bytes):
                value = "0x" + value.hex()
            elif hasattr(value, "name"):
                value = value.name
            data[key] = value
        return data


@dataclass(frozen=True)
class ChannelOpened(ChannelEvent):
    """A channel was opened and its amount escrowed."""

    ctype: int
    market_id: bytes
    seq: int
    market_maker: str
    actor: str
    delegate: str
    recipient: str
    amount: int
    timeout: int
    signature: bytes


@dataclass(frozen=True)
class ChannelClosing(ChannelEvent):
    """A closing claim was accepted."""

    closing_seq: int
    balance: int
    is_final: bool
    closing_at: int
    payout: int
    fee: int
    refund: int


@dataclass(frozen=True)
class ChannelClosed(ChannelEvent):
    """A channel was settled."""

    closed_seq: int
    balance: int
    closed_at: int
    payout: int
    fee: int
    refund: int


EventHandler = Callable[[ChannelEvent], None]


class EventBus:
    """Ordered publication of channel events to subscribers."""

    def __init__(self, max_history: Optional[int] = 10000):
        self._handlers: Dict[Type[ChannelEvent], List[EventHandler]] = {}
        self._history: List[ChannelEvent] = []
        self._max_history = max_history
        self._lock = threading.RLock()

    def subscribe(self, event_type: Type[ChannelEvent], handler: EventHandler) -> None:
        """Call handler for every published event of event_type (or a subclass)."""
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)

    def unsubscribe(self, event_type: Type[ChannelEvent], handler: EventHandler) -> bool:
        with self._lock:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)
                return True
            return False

    def publish(self, event: ChannelEvent) -> None:
        with self._lock:
            self._history.append(event)
            if self._max_history is not None and len(self._history) > self._max_history:
                self._history.pop(0)
            handlers = [
                handler
                for event_type, registered in self._handlers.items()
                if isinstance(event, event_type)
                for handler in registered
            ]

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    f"Event handler failed for {type(event).__name__}: {e}",
                    extra={"channel_id": event.channel_id},
                    exception=e,
                )

    def history(self, event_type: Optional[Type[ChannelEvent]] = None) -> List[ChannelEvent]:
        """Published events in order, optionally filtered by type."""
        with self._lock:
            if event_type is None:
                return list(self._history)
            return [event for event in self._history if isinstance(event, event_type)]

    def clear(self) -> None:
        with self._lock:
            self._history.clear()
