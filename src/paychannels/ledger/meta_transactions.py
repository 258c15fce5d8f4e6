"""
Pre-signed approvals with replay protection.

An owner signs an ``ApproveTransfer`` message off-ledger; anyone (or only
the named relayer) may later submit it. Each signed tuple can be used at
most once: ``approve_for`` marks its digest consumed, ``burn_signature``
lets the owner mark an unused one burned so it can never be submitted.
"""

import threading
from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Optional

from ..crypto.signatures import ZERO_ADDRESS, is_zero_address, normalize_address
from ..crypto.typed_data import ApproveTransfer, TypedDataSigner
from ..errors import (
    PreconditionError,
    ReasonCode,
    SignatureError,
    StaleSubmissionError,
    ValidationError,
)
from ..locking import KeyedLock
from ..logging import get_logger
from .token import Ledger

logger = get_logger(__name__)

MAX_UINT256 = 2**256 - 1


class SignatureStatus(IntEnum):
    """Lifecycle of a pre-signed approval digest."""

    UNUSED = 0
    CONSUMED = 1
    BURNED = 2


class BurnedSignatureLedger:
    """Digest -> status table. Entries are set once and never removed."""

    def __init__(self):
        self._statuses: Dict[bytes, SignatureStatus] = {}
        self._lock = threading.RLock()

    def status(self, digest: bytes) -> SignatureStatus:
        with self._lock:
            return self._statuses.get(bytes(digest), SignatureStatus.UNUSED)

    def mark(self, digest: bytes, status: SignatureStatus) -> None:
        """Record status for an unused digest."""
        if status == SignatureStatus.UNUSED:
            raise ValueError("Cannot mark a digest unused")
        digest = bytes(digest)
        with self._lock:
            current = self._statuses.get(digest, SignatureStatus.UNUSED)
            if current != SignatureStatus.UNUSED:
                raise ValueError(f"Digest already {current.name.lower()}")
            self._statuses[digest] = status

    def __len__(self) -> int:
        with self._lock:
            return len(self._statuses)


@dataclass(frozen=True)
class ApprovalReceipt:
    """Result of a successful pre-signed approval."""

    digest: bytes
    owner: str
    spender: str
    amount: int
    relayer: str
    nonce: int


class MetaTransactionGuard:
    """Verifies, applies and revokes pre-signed approvals."""

    def __init__(
        self,
        ledger: Ledger,
        signer: TypedDataSigner,
        burned: Optional[BurnedSignatureLedger] = None,
    ):
        self.ledger = ledger
        self.signer = signer
        self.burned = burned or BurnedSignatureLedger()
        self._locks = KeyedLock("digest")

    def _build(
        self,
        owner: str,
        relayer: str,
        spender: str,
        amount: int,
        expires: int,
        nonce: int,
    ) -> ApproveTransfer:
        try:
            owner = normalize_address(owner)
            spender = normalize_address(spender)
            relayer = normalize_address(relayer or ZERO_ADDRESS)
        except ValueError as e:
            raise ValidationError(
                str(e), field="address", error_code=ReasonCode.INVALID_ADDRESS, cause=e
            ) from e
        for name, value in (("amount", amount), ("expires", expires), ("nonce", nonce)):
            if (
                not isinstance(value, int)
                or isinstance(value, bool)
                or not 0 <= value <= MAX_UINT256
            ):
                raise ValidationError(
                    f"{name} must be an integer in [0, 2**256)",
                    field=name,
                    value=value,
                    expected="uint256",
                    error_code=ReasonCode.INVALID_APPROVAL_VALUE,
                )
        return ApproveTransfer(
            sender=owner,
            relayer=relayer,
            spender=spender,
            amount=amount,
            expires=expires,
            nonce=nonce,
        )

    def digest(
        self,
        owner: str,
        relayer: str,
        spender: str,
        amount: int,
        expires: int,
        nonce: int,
    ) -> bytes:
        """Digest identifying one approval tuple."""
        message = self._build(owner, relayer, spender, amount, expires, nonce)
        return self.signer.hash(message).value

    @staticmethod
    def _caller(address: str, field_name: str) -> str:
        try:
            return normalize_address(address)
        except ValueError as e:
            raise ValidationError(
                str(e), field=field_name, error_code=ReasonCode.INVALID_ADDRESS, cause=e
            ) from e

    def _verify(self, message: ApproveTransfer, signature: bytes) -> None:
        if not self.signer.verify(message.sender, message, signature):
            raise SignatureError(
                "Approval signature was not produced by the owner",
                signer=message.sender,
                error_code=ReasonCode.INVALID_SIGNATURE,
            )

    def _ensure_unused(self, digest: bytes) -> None:
        status = self.burned.status(digest)
        if status != SignatureStatus.UNUSED:
            raise StaleSubmissionError(
                f"Approval already {status.name.lower()}",
                error_code=ReasonCode.REUSED,
                metadata={"status": status.name},
            )

    def approve_for(
        self,
        submitter: str,
        owner: str,
        relayer: str,
        spender: str,
        amount: int,
        expires: int,
        nonce: int,
        signature: bytes,
    ) -> ApprovalReceipt:
        """Apply a pre-signed approval exactly once.

        Args:
            submitter: Who is submitting; must be the relayer unless that is zero
            owner: Address whose balance the approval covers (the signer)
            relayer: Address allowed to submit, or the zero address for anyone
            spender: Address receiving the allowance
            amount: Allowance to set
            expires: Last block height at which the approval may be used (0 = never expires)
            nonce: Signer-chosen value distinguishing otherwise identical approvals
            signature: 65-byte signature by owner over the tuple

        Returns:
            ApprovalReceipt for the applied approval
        """
        message = self._build(owner, relayer, spender, amount, expires, nonce)
        submitter = self._caller(submitter, "submitter")
        digest = self.signer.hash(message).value

        with self._locks.hold(digest):
            self._verify(message, signature)

            if expires != 0 and self.ledger.current_height() > expires:
                raise PreconditionError(
                    f"Approval expired at height {expires}",
                    field="expires",
                    value=expires,
                    error_code=ReasonCode.EXPIRED,
                )

            if not is_zero_address(message.relayer) and submitter != message.relayer:
                raise PreconditionError(
                    "Approval may only be submitted by its relayer",
                    field="submitter",
                    value=submitter,
                    error_code=ReasonCode.INVALID_RELAYER,
                )

            self._ensure_unused(digest)

            with self.ledger.atomic():
                self.ledger.approve(message.sender, message.spender, message.amount)
                self.burned.mark(digest, SignatureStatus.CONSUMED)

        logger.info(
            "Pre-signed approval applied",
            extra={
                "owner": message.sender,
                "spender": message.spender,
                "amount": message.amount,
                "nonce": message.nonce,
                "digest": digest,
            },
        )
        return ApprovalReceipt(
            digest=digest,
            owner=message.sender,
            spender=message.spender,
            amount=message.amount,
            relayer=message.relayer,
            nonce=message.nonce,
        )

    def burn_signature(
        self,
        caller: str,
        owner: str,
        relayer: str,
        spender: str,
        amount: int,
        expires: int,
        nonce: int,
        signature: bytes,
    ) -> bytes:
        """Permanently revoke an unused pre-signed approval. Only the owner may burn."""
        message = self._build(owner, relayer, spender, amount, expires, nonce)
        digest = self.signer.hash(message).value

        with self._locks.hold(digest):
            self._verify(message, signature)

            caller = self._caller(caller, "caller")
            if caller != message.sender:
                raise PreconditionError(
                    "Only the owner may burn an approval signature",
                    field="caller",
                    value=caller,
                    error_code=ReasonCode.NOT_OWNER,
                )

            self._ensure_unused(digest)
            self.burned.mark(digest, SignatureStatus.BURNED)

        logger.info(
            "Approval signature burned",
            extra={"owner": message.sender, "nonce": message.nonce, "digest": digest},
        )
        return digest

    def status(self, digest: bytes) -> SignatureStatus:
        return self.burned.status(digest)
