"""Exception hierarchy for paychannels.

Every rejected request surfaces as one of the exceptions below, carrying a
named ``ReasonCode`` in ``error_code``. Categories map onto the failure
taxonomy of the channel core: invalid signature, violated precondition,
stale submission and transfer failure.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories."""

    SIGNATURE = "signature"
    PRECONDITION = "precondition"
    STALE = "stale"
    TRANSFER = "transfer"
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    SYSTEM = "system"


class ReasonCode(str, Enum):
    """Named reasons reported to callers."""

    # signatures
    INVALID_CHANNEL_SIGNATURE = "INVALID_CHANNEL_SIGNATURE"
    INVALID_DELEGATE_SIGNATURE = "INVALID_DELEGATE_SIGNATURE"
    INVALID_MARKETMAKER_SIGNATURE = "INVALID_MARKETMAKER_SIGNATURE"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"

    # channel open
    NO_SUCH_MARKET = "NO_SUCH_MARKET"
    CHANNEL_ALREADY_EXISTS = "CHANNEL_ALREADY_EXISTS"
    INVALID_MARKETMAKER = "INVALID_MARKETMAKER"
    INVALID_ACTOR = "INVALID_ACTOR"
    INVALID_DELEGATE = "INVALID_DELEGATE"
    INVALID_RECIPIENT = "INVALID_RECIPIENT"
    ACTOR_NOT_CONSUMER = "ACTOR_NOT_CONSUMER"
    ACTOR_NOT_MARKETMAKER = "ACTOR_NOT_MARKETMAKER"
    RECIPIENT_NOT_MARKET = "RECIPIENT_NOT_MARKET"
    RECIPIENT_NOT_PROVIDER = "RECIPIENT_NOT_PROVIDER"
    INVALID_CHANNEL_TYPE = "INVALID_CHANNEL_TYPE"
    INVALID_CHANNEL_AMOUNT = "INVALID_CHANNEL_AMOUNT"
    INVALID_CHANNEL_TIMEOUT = "INVALID_CHANNEL_TIMEOUT"
    INVALID_CHANNEL_ID = "INVALID_CHANNEL_ID"

    # channel close
    NO_SUCH_CHANNEL = "NO_SUCH_CHANNEL"
    CHANNEL_NOT_OPEN = "CHANNEL_NOT_OPEN"
    CHANNEL_NOT_CLOSING = "CHANNEL_NOT_CLOSING"
    CHANNEL_NOT_EXPIRED = "CHANNEL_NOT_EXPIRED"
    CHANNEL_TIMEOUT = "CHANNEL_TIMEOUT"
    INVALID_CLOSING_BALANCE = "INVALID_CLOSING_BALANCE"
    INVALID_CLOSING_SEQ = "INVALID_CLOSING_SEQ"
    TRANSACTION_SEQ_OUTDATED = "TRANSACTION_SEQ_OUTDATED"
    TRANSACTION_BALANCE_OUTDATED = "TRANSACTION_BALANCE_OUTDATED"

    # transfers
    OPEN_TRANSFER_FAILED = "OPEN_TRANSFER_FAILED"
    CLOSE_TRANSFER_FAILED = "CLOSE_TRANSFER_FAILED"

    # meta-transactions
    EXPIRED = "EXPIRED"
    REUSED = "REUSED"
    INVALID_RELAYER = "INVALID_RELAYER"
    NOT_OWNER = "NOT_OWNER"
    INVALID_APPROVAL_VALUE = "INVALID_APPROVAL_VALUE"

    # directory
    INVALID_ADDRESS = "INVALID_ADDRESS"
    MEMBER_ALREADY_REGISTERED = "MEMBER_ALREADY_REGISTERED"
    NO_SUCH_MEMBER = "NO_SUCH_MEMBER"
    INVALID_MEMBER_LEVEL = "INVALID_MEMBER_LEVEL"
    INVALID_MARKET_ID = "INVALID_MARKET_ID"
    MARKET_ALREADY_EXISTS = "MARKET_ALREADY_EXISTS"
    INVALID_MAKER = "INVALID_MAKER"
    MAKER_ALREADY_WORKING_FOR_OTHER_MARKET = "MAKER_ALREADY_WORKING_FOR_OTHER_MARKET"
    INVALID_MARKET_FEE = "INVALID_MARKET_FEE"
    INVALID_ACTOR_TYPE = "INVALID_ACTOR_TYPE"
    ACTOR_ALREADY_JOINED = "ACTOR_ALREADY_JOINED"
    INSUFFICIENT_SECURITY_DEPOSIT = "INSUFFICIENT_SECURITY_DEPOSIT"


@dataclass
class ErrorContext:
    """Context information for an error."""

    timestamp: float = field(default_factory=time.time)
    component: Optional[str] = None
    operation: Optional[str] = None
    channel_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert context to dictionary."""
        return {
            "timestamp": self.timestamp,
            "component": self.component,
            "operation": self.operation,
            "channel_id": self.channel_id,
            "metadata": self.metadata,
        }


class PayChannelsError(Exception):
    """Base exception for all paychannels errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.SYSTEM,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.severity = severity
        self.category = category
        self.context = context or ErrorContext()
        self.cause = cause
        self.metadata = metadata or {}
        self.timestamp = time.time()

    @property
    def reason(self) -> Optional[str]:
        """The named reason, as a plain string."""
        if isinstance(self.error_code, ReasonCode):
            return self.error_code.value
        return self.error_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.reason,
            "severity": self.severity.value,
            "category": self.category.value,
            "context": self.context.to_dict(),
            "cause": str(self.cause) if self.cause else None,
            "metadata": self.metadata,
            "timestamp": self.timestamp,
        }

    def __str__(self) -> str:
        """String representation of the error."""
        parts = [f"{self.__class__.__name__}: {self.message}"]

        if self.error_code:
            parts.append(f"Code: {self.reason}")

        if self.severity != ErrorSeverity.MEDIUM:
            parts.append(f"Severity: {self.severity.value}")

        return " | ".join(parts)


class SignatureError(PayChannelsError):
    """A signature is malformed or was not produced by the required signer."""

    def __init__(self, message: str, signer: Optional[str] = None, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        super().__init__(message, category=ErrorCategory.SIGNATURE, **kwargs)
        self.signer = signer

    def to_dict(self) -> Dict[str, Any]:
        """Convert signature error to dictionary."""
        data = super().to_dict()
        data.update({"signer": self.signer})
        return data


class PreconditionError(PayChannelsError):
    """A role, state or arithmetic precondition does not hold."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs,
    ):
        super().__init__(message, category=ErrorCategory.PRECONDITION, **kwargs)
        self.field = field
        self.value = value

    def to_dict(self) -> Dict[str, Any]:
        """Convert precondition error to dictionary."""
        data = super().to_dict()
        data.update(
            {
                "field": self.field,
                "value": str(self.value) if self.value is not None else None,
            }
        )
        return data


class StaleSubmissionError(PayChannelsError):
    """A submission is older than, or regresses from, what was already accepted."""

    def __init__(
        self,
        message: str,
        submitted: Optional[int] = None,
        accepted: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(message, category=ErrorCategory.STALE, **kwargs)
        self.submitted = submitted
        self.accepted = accepted

    def to_dict(self) -> Dict[str, Any]:
        """Convert stale submission error to dictionary."""
        data = super().to_dict()
        data.update({"submitted": self.submitted, "accepted": self.accepted})
        return data


class TransferError(PayChannelsError):
    """The ledger refused a value transfer; the enclosing operation is aborted."""

    def __init__(
        self,
        message: str,
        recipient: Optional[str] = None,
        amount: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            category=ErrorCategory.TRANSFER,
            severity=ErrorSeverity.CRITICAL,
            **kwargs,
        )
        self.recipient = recipient
        self.amount = amount

    def to_dict(self) -> Dict[str, Any]:
        """Convert transfer error to dictionary."""
        data = super().to_dict()
        data.update({"recipient": self.recipient, "amount": self.amount})
        return data


class ValidationError(PayChannelsError):
    """Validation error for malformed inputs."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        expected: Optional[Any] = None,
        **kwargs,
    ):
        super().__init__(message, category=ErrorCategory.VALIDATION, **kwargs)
        self.field = field
        self.value = value
        self.expected = expected

    def to_dict(self) -> Dict[str, Any]:
        """Convert validation error to dictionary."""
        data = super().to_dict()
        data.update(
            {
                "field": self.field,
                "value": str(self.value) if self.value is not None else None,
                "expected": str(self.expected) if self.expected is not None else None,
            }
        )
        return data


class ConfigurationError(PayChannelsError):
    """Configuration error."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        **kwargs,
    ):
        super().__init__(message, category=ErrorCategory.CONFIGURATION, **kwargs)
        self.config_key = config_key
        self.config_value = config_value

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration error to dictionary."""
        data = super().to_dict()
        data.update(
            {
                "config_key": self.config_key,
                "config_value": str(self.config_value)
                if self.config_value is not None
                else None,
            }
        )
        return data


# Convenience functions for common error patterns
def create_validation_error(
    field: str, value: Any, expected: Any, message: Optional[str] = None
) -> ValidationError:
    """Create a validation error."""
    if message is None:
        message = f"Invalid value for field '{field}': expected {expected}, got {value}"

    return ValidationError(message=message, field=field, value=value, expected=expected)


def create_transfer_error(
    reason: ReasonCode, recipient: str, amount: int, message: Optional[str] = None
) -> TransferError:
    """Create a transfer error."""
    if message is None:
        message = f"Ledger refused transfer of {amount} to {recipient}"

    return TransferError(
        message=message, error_code=reason, recipient=recipient, amount=amount
    )
