"""
Ledger interface and an in-memory token ledger.

The channel core never reimplements value transfer; it consumes the
``Ledger`` interface below. ``InMemoryTokenLedger`` is a complete
single-coin ledger with allowances, a controllable clock and block height,
and journaled atomic sections so a failing operation leaves no partial
transfers behind.
"""

import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional, Set, Tuple

from ..crypto.signatures import normalize_address
from ..logging import get_logger

logger = get_logger(__name__)


class Ledger(ABC):
    """Value-transfer system consumed by the channel core."""

    @abstractmethod
    def total_issuance(self) -> int:
        """Total supply of the settlement coin."""

    @abstractmethod
    def balance_of(self, address: str) -> int:
        """Balance held by address."""

    @abstractmethod
    def transfer(self, sender: str, to: str, amount: int) -> bool:
        """Move amount from sender to to. Reports failure instead of partially completing."""

    @abstractmethod
    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> bool:
        """Move amount from owner to to against spender's allowance."""

    @abstractmethod
    def approve(self, owner: str, spender: str, amount: int) -> None:
        """Set spender's allowance over owner's balance."""

    @abstractmethod
    def allowance(self, owner: str, spender: str) -> int:
        """Remaining allowance of spender over owner's balance."""

    @abstractmethod
    def current_height(self) -> int:
        """Current block height."""

    @abstractmethod
    def current_time(self) -> int:
        """Current ledger time in seconds."""

    @abstractmethod
    def atomic(self):
        """Context manager: all transfers inside commit together or not at all."""


class InMemoryTokenLedger(Ledger):
    """Single-coin ledger held in memory.

    The whole supply starts in ``treasury``. Time and height only move when
    ``advance`` or ``set_time`` is called, which makes deadlines
    deterministic in tests and simulations.
    """

    def __init__(
        self,
        total_issuance: int,
        treasury: str,
        start_time: Optional[int] = None,
        start_height: int = 0,
    ):
        if total_issuance <= 0:
            raise ValueError("total_issuance must be positive")
        self._total_issuance = total_issuance
        self._balances: Dict[str, int] = {normalize_address(treasury): total_issuance}
        self._allowances: Dict[Tuple[str, str], int] = {}
        self._frozen: Set[str] = set()
        self._time = int(time.time()) if start_time is None else start_time
        self._height = start_height
        self._lock = threading.RLock()
        self._journals = threading.local()

    # Journal

    def _journal_stack(self) -> List[List[Callable[[], None]]]:
        stack = getattr(self._journals, "stack", None)
        if stack is None:
            stack = []
            self._journals.stack = stack
        return stack

    def _record(self, undo: Callable[[], None]) -> None:
        stack = self._journal_stack()
        if stack:
            stack[-1].append(undo)

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Undo every transfer and approval made inside the block if it raises."""
        stack = self._journal_stack()
        journal: List[Callable[[], None]] = []
        stack.append(journal)
        try:
            yield
        except BaseException:
            with self._lock:
                for undo in reversed(journal):
                    undo()
            logger.debug(f"Rolled back {len(journal)} ledger operations")
            raise
        else:
            if len(stack) > 1:
                stack[-2].extend(journal)
        finally:
            stack.pop()

    # Queries

    def total_issuance(self) -> int:
        return self._total_issuance

    def balance_of(self, address: str) -> int:
        with self._lock:
            return self._balances.get(normalize_address(address), 0)

    def allowance(self, owner: str, spender: str) -> int:
        with self._lock:
            key = (normalize_address(owner), normalize_address(spender))
            return self._allowances.get(key, 0)

    def current_height(self) -> int:
        with self._lock:
            return self._height

    def current_time(self) -> int:
        with self._lock:
            return self._time

    # Mutations

    def _move(self, sender: str, to: str, amount: int) -> None:
        self._balances[sender] = self._balances.get(sender, 0) - amount
        self._balances[to] = self._balances.get(to, 0) + amount

    def transfer(self, sender: str, to: str, amount: int) -> bool:
        sender = normalize_address(sender)
        to = normalize_address(to)
        with self._lock:
            if amount < 0:
                logger.warning(f"Refusing negative transfer of {amount}")
                return False
            if sender in self._frozen or to in self._frozen:
                logger.warning(
                    "Refusing transfer touching a frozen account",
                    extra={"sender": sender, "to": to, "amount": amount},
                )
                return False
            if self._balances.get(sender, 0) < amount:
                logger.warning(
                    "Refusing transfer: insufficient balance",
                    extra={"sender": sender, "amount": amount},
                )
                return False
            if amount == 0:
                return True

            self._move(sender, to, amount)
            self._record(lambda: self._move(to, sender, amount))
            return True

    def approve(self, owner: str, spender: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("Allowance must not be negative")
        key = (normalize_address(owner), normalize_address(spender))
        with self._lock:
            previous = self._allowances.get(key, 0)
            self._allowances[key] = amount
            self._record(lambda: self._allowances.__setitem__(key, previous))
        logger.debug("Allowance set", extra={"owner": key[0], "spender": key[1], "amount": amount})

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> bool:
        key = (normalize_address(owner), normalize_address(spender))
        with self._lock:
            allowed = self._allowances.get(key, 0)
            if allowed < amount:
                logger.warning(
                    "Refusing transfer: insufficient allowance",
                    extra={"owner": key[0], "spender": key[1], "amount": amount},
                )
                return False
            if not self.transfer(owner, to, amount):
                return False
            self._allowances[key] = allowed - amount
            self._record(lambda: self._allowances.__setitem__(key, allowed))
            return True

    # Administration

    def freeze(self, address: str) -> None:
        """Make every transfer from or to address fail."""
        with self._lock:
            self._frozen.add(normalize_address(address))

    def unfreeze(self, address: str) -> None:
        with self._lock:
            self._frozen.discard(normalize_address(address))

    def advance(self, seconds: int = 0, blocks: int = 0) -> None:
        """Move the ledger clock and height forward."""
        if seconds < 0 or blocks < 0:
            raise ValueError("Ledger time and height only move forward")
        with self._lock:
            self._time += seconds
            self._height += blocks

    def set_time(self, timestamp: int) -> None:
        with self._lock:
            if timestamp < self._time:
                raise ValueError("Ledger time only moves forward")
            self._time = timestamp
