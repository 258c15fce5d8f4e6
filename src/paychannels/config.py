"""
Configuration for a channel deployment.

A deployment is identified by its chain id and verifying contract; both are
folded into every typed-data digest. The verifying contract is also the
escrow account holding open channel deposits.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .crypto.signatures import is_zero_address, normalize_address
from .crypto.typed_data import TypedDomain
from .errors import ConfigurationError
from .logging import get_logger

logger = get_logger(__name__)

# channel grace period must stay below 10 days
MAX_CHANNEL_TIMEOUT = 864000

# flat 1% protocol fee on what the recipient earned
PROTOCOL_FEE_DIVISOR = 100


@dataclass
class ChannelConfig:
    """Configuration for the channel core."""

    verifying_contract: Optional[str] = None
    fee_collector: Optional[str] = None
    chain_id: int = 1
    domain_name: str = "XBR"
    domain_version: str = "1"
    max_timeout: int = MAX_CHANNEL_TIMEOUT
    fee_divisor: int = PROTOCOL_FEE_DIVISOR

    # Environment overrides
    environment_overrides: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Apply environment variable overrides and validate."""
        self._apply_environment_overrides()
        self.validate()

    def _apply_environment_overrides(self):
        """Apply environment variable overrides."""
        env_mappings = {
            "PAYCHANNELS_CHAIN_ID": ("chain_id", int),
            "PAYCHANNELS_VERIFYING_CONTRACT": ("verifying_contract", str),
            "PAYCHANNELS_FEE_COLLECTOR": ("fee_collector", str),
            "PAYCHANNELS_MAX_TIMEOUT": ("max_timeout", int),
        }

        for env_var, (attr_name, attr_type) in env_mappings.items():
            env_value = os.environ.get(env_var)
            if env_value is None:
                continue
            try:
                value = attr_type(env_value)
            except ValueError as e:
                raise ConfigurationError(
                    f"Invalid environment variable {env_var}={env_value}: {e}",
                    config_key=env_var,
                    config_value=env_value,
                    cause=e,
                ) from e
            setattr(self, attr_name, value)
            self.environment_overrides[env_var] = value
            logger.info(f"Configuration override from {env_var}", extra={attr_name: value})

    def validate(self) -> None:
        """Validate configuration, normalizing addresses."""
        if not isinstance(self.chain_id, int) or self.chain_id <= 0:
            raise ConfigurationError(
                f"chain_id must be a positive integer, got {self.chain_id!r}",
                config_key="chain_id",
                config_value=self.chain_id,
            )

        for key in ("verifying_contract", "fee_collector"):
            value = getattr(self, key)
            try:
                address = normalize_address(value)
            except ValueError as e:
                raise ConfigurationError(
                    f"{key} must be a valid address, got {value!r}",
                    config_key=key,
                    config_value=value,
                    cause=e,
                ) from e
            if is_zero_address(address):
                raise ConfigurationError(
                    f"{key} must not be the zero address",
                    config_key=key,
                    config_value=value,
                )
            setattr(self, key, address)

        if not 0 < self.max_timeout <= MAX_CHANNEL_TIMEOUT:
            raise ConfigurationError(
                f"max_timeout must be in (0, {MAX_CHANNEL_TIMEOUT}], got {self.max_timeout}",
                config_key="max_timeout",
                config_value=self.max_timeout,
            )

        if self.fee_divisor <= 0:
            raise ConfigurationError(
                f"fee_divisor must be positive, got {self.fee_divisor}",
                config_key="fee_divisor",
                config_value=self.fee_divisor,
            )

    @property
    def escrow_address(self) -> str:
        """Account holding escrowed channel deposits."""
        return self.verifying_contract

    def domain(self) -> TypedDomain:
        """Typed-data domain of this deployment."""
        return TypedDomain(
            name=self.domain_name,
            version=self.domain_version,
            chain_id=self.chain_id,
            verifying_contract=self.verifying_contract,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "verifying_contract": self.verifying_contract,
            "fee_collector": self.fee_collector,
            "chain_id": self.chain_id,
            "domain_name": self.domain_name,
            "domain_version": self.domain_version,
            "max_timeout": self.max_timeout,
            "fee_divisor": self.fee_divisor,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChannelConfig":
        """Create configuration from dictionary."""
        return cls(**data)
