"""Token ledger and pre-signed approvals."""

from .meta_transactions import (
    ApprovalReceipt,
    BurnedSignatureLedger,
    MetaTransactionGuard,
    SignatureStatus,
)
from .token import InMemoryTokenLedger, Ledger

__all__ = [
    "Ledger",
    "InMemoryTokenLedger",
    "SignatureStatus",
    "BurnedSignatureLedger",
    "ApprovalReceipt",
    "MetaTransactionGuard",
]
