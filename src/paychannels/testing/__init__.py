"""Testing utilities for paychannels."""

from .fixtures import (
    DEFAULT_ISSUANCE,
    DEFAULT_START_TIME,
    DEFAULT_TIMEOUT,
    ChannelTestbed,
    Party,
    make_id,
)

__all__ = [
    "ChannelTestbed",
    "Party",
    "make_id",
    "DEFAULT_ISSUANCE",
    "DEFAULT_START_TIME",
    "DEFAULT_TIMEOUT",
]
