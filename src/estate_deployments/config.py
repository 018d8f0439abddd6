"""Runtime settings for estate-deployments library."""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .constants import (
    DEFAULT_CONFIRMATIONS,
    DEFAULT_GAS_LIMIT,
    DEFAULT_GAS_PRICE_GWEI,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_PRICE_TIER,
    DEFAULT_RETRY_DELAY_S,
    DEFAULT_SAFETY_MARGIN,
    DEFAULT_SUBMISSION_TIMEOUT_S,
    NETWORK_CONFIG,
    PriceTier,
)
from .exceptions import ConfigurationError

GWEI = 10**9


@dataclass(frozen=True)
class ExecutorSettings:
    """Knobs of the transaction executor."""

    safety_margin: float = DEFAULT_SAFETY_MARGIN
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    retry_delay_s: float = DEFAULT_RETRY_DELAY_S
    confirmations: int = DEFAULT_CONFIRMATIONS
    submission_timeout_s: float = DEFAULT_SUBMISSION_TIMEOUT_S
    default_gas_limit: int = DEFAULT_GAS_LIMIT
    default_gas_price_wei: int = DEFAULT_GAS_PRICE_GWEI * GWEI
    price_tier: PriceTier = DEFAULT_PRICE_TIER

    def __post_init__(self) -> None:
        if self.safety_margin < 0:
            raise ConfigurationError("safety_margin must not be negative")
        if self.max_attempts < 1:
            raise ConfigurationError("max_attempts must be at least 1")
        if self.confirmations < 1:
            raise ConfigurationError("confirmations must be at least 1")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ExecutorSettings":
        """
        Build settings from ESTATE_* environment variables.

        Unset variables keep their defaults.

        Raises:
            ConfigurationError: If a variable cannot be parsed
        """
        env = os.environ if environ is None else environ
        kwargs = {}
        try:
            if "ESTATE_SAFETY_MARGIN" in env:
                kwargs["safety_margin"] = float(env["ESTATE_SAFETY_MARGIN"])
            if "ESTATE_MAX_ATTEMPTS" in env:
                kwargs["max_attempts"] = int(env["ESTATE_MAX_ATTEMPTS"])
            if "ESTATE_RETRY_DELAY_S" in env:
                kwargs["retry_delay_s"] = float(env["ESTATE_RETRY_DELAY_S"])
            if "ESTATE_CONFIRMATIONS" in env:
                kwargs["confirmations"] = int(env["ESTATE_CONFIRMATIONS"])
            if "ESTATE_SUBMISSION_TIMEOUT_S" in env:
                kwargs["submission_timeout_s"] = float(env["ESTATE_SUBMISSION_TIMEOUT_S"])
            if "ESTATE_DEFAULT_GAS_LIMIT" in env:
                kwargs["default_gas_limit"] = int(env["ESTATE_DEFAULT_GAS_LIMIT"])
            if "ESTATE_DEFAULT_GAS_PRICE_GWEI" in env:
                kwargs["default_gas_price_wei"] = int(
                    float(env["ESTATE_DEFAULT_GAS_PRICE_GWEI"]) * GWEI
                )
            if "ESTATE_PRICE_TIER" in env:
                kwargs["price_tier"] = PriceTier.parse(env["ESTATE_PRICE_TIER"])
        except ValueError as e:
            raise ConfigurationError(f"Invalid executor setting: {e}") from e
        return cls(**kwargs)


def resolve_rpc_url(
    network: str,
    rpc_url: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> str:
    """
    Pick the RPC endpoint for a network.

    Order: explicit argument, the network's RPC environment variable,
    the network's built-in default.

    Raises:
        ConfigurationError: If no endpoint is known for the network
    """
    if rpc_url:
        return rpc_url

    env = os.environ if environ is None else environ
    network_config = NETWORK_CONFIG.get(network)
    if network_config is None:
        raise ConfigurationError(
            f"Unknown network '{network}' and no RPC URL given "
            f"(known networks: {', '.join(sorted(NETWORK_CONFIG))})"
        )

    url = env.get(network_config["default_rpc_env"]) or network_config["default_rpc_url"]
    if not url:
        raise ConfigurationError(
            f"RPC URL required for network '{network}': pass --rpc-url or set "
            f"${network_config['default_rpc_env']}"
        )
    return url
