"""paychannels error handling.

Exception hierarchy and named reason codes shared by every component.
"""

from .exceptions import (
    ConfigurationError,
    ErrorCategory,
    ErrorContext,
    ErrorSeverity,
    PayChannelsError,
    PreconditionError,
    ReasonCode,
    SignatureError,
    StaleSubmissionError,
    TransferError,
    ValidationError,
    create_transfer_error,
    create_validation_error,
)

__all__ = [
    "PayChannelsError",
    "SignatureError",
    "PreconditionError",
    "StaleSubmissionError",
    "TransferError",
    "ValidationError",
    "ConfigurationError",
    "ErrorCategory",
    "ErrorContext",
    "ErrorSeverity",
    "ReasonCode",
    "create_transfer_error",
    "create_validation_error",
]
