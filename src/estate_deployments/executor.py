"""Transaction executor: cost estimation, pricing, retry and confirmation."""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import requests

from .config import ExecutorSettings
from .constants import PriceTier
from .exceptions import (
    PermanentTransactionError,
    RetryExhaustedError,
    TransactionError,
    TransientTransactionError,
)
from .ledger import Ledger
from .retry import RetryPolicy, retry_call
from .types import Action, TransactionOutcome, TransactionStatus

logger = logging.getLogger(__name__)

# Lowercased message fragments of node errors worth another attempt
TRANSIENT_MARKERS = (
    "timeout",
    "timed out",
    "nonce too low",
    "replacement transaction underpriced",
    "already known",
    "429",
    "too many requests",
    "rate limit",
    "temporarily unavailable",
    "connection reset",
)


def classify_error(exc: BaseException) -> bool:
    """
    Decide whether a ledger failure is transient.

    Reverts, invalid arguments, insufficient funds and anything unrecognized
    are permanent.

    Returns:
        True if the failure is worth retrying
    """
    if isinstance(exc, TransientTransactionError):
        return True
    if isinstance(exc, PermanentTransactionError):
        return False
    if isinstance(exc, (requests.Timeout, requests.ConnectionError, TimeoutError, ConnectionError)):
        return True
    message = str(exc).lower()
    return any(marker in message for marker in TRANSIENT_MARKERS)


@dataclass(frozen=True)
class SubmitOptions:
    """Per-call overrides of the executor settings."""

    price_tier: Optional[PriceTier] = None
    gas_limit: Optional[int] = None


class TransactionExecutor:
    """
    Submits actions to a ledger and reports a TransactionOutcome.

    Estimation and submission are retried on transient errors; the
    confirmation wait is not, since the call may already be included.
    """

    def __init__(
        self,
        ledger: Ledger,
        settings: Optional[ExecutorSettings] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.ledger = ledger
        self.settings = settings or ExecutorSettings()
        self._sleep = sleep

    @property
    def sender(self) -> str:
        return self.ledger.sender

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.settings.max_attempts,
            delay_s=self.settings.retry_delay_s,
        )

    def _gas_limit(self, action: Action) -> int:
        try:
            estimate = int(self.ledger.estimate_gas(action))
        except Exception as e:
            if isinstance(e, PermanentTransactionError):
                raise
            logger.warning(
                "Gas estimation failed for %s, using default limit %d: %s",
                action.label,
                self.settings.default_gas_limit,
                e,
            )
            return self.settings.default_gas_limit
        margin_pct = int(round(self.settings.safety_margin * 100))
        return estimate * (100 + margin_pct) // 100

    def _gas_price(self, tier: PriceTier) -> int:
        try:
            base = int(self.ledger.gas_price())
        except Exception as e:
            logger.warning(
                "Gas price lookup failed, using default %d wei: %s",
                self.settings.default_gas_price_wei,
                e,
            )
            base = self.settings.default_gas_price_wei
        return base * tier.value // 100

    def submit(self, action: Action, options: Optional[SubmitOptions] = None) -> TransactionOutcome:
        """
        Submit one action and wait for its confirmation.

        Args:
            action: DeployAction or InvokeAction
            options: Per-call price tier or gas limit override

        Returns:
            TransactionOutcome; never raises for ledger failures
        """
        options = options or SubmitOptions()
        tier = options.price_tier or self.settings.price_tier
        attempts = 0

        def attempt() -> str:
            nonlocal attempts
            attempts += 1
            gas = options.gas_limit or self._gas_limit(action)
            gas_price = self._gas_price(tier)
            logger.debug(
                "action=%s attempt=%d gas=%d gas_price=%d tier=%s",
                action.label,
                attempts,
                gas,
                gas_price,
                tier.name.lower(),
            )
            return self.ledger.send(action, gas, gas_price)

        try:
            tx_hash = retry_call(attempt, self.retry_policy, classify_error, sleep=self._sleep)
        except RetryExhaustedError as e:
            return self._finish(
                action,
                TransactionOutcome(
                    status=TransactionStatus.FAILED,
                    error=str(e.last_error),
                    attempts=attempts,
                    transient=True,
                ),
            )
        except Exception as e:
            return self._finish(
                action,
                TransactionOutcome(status=TransactionStatus.FAILED, error=str(e), attempts=attempts),
            )

        try:
            receipt = self.ledger.wait_for_receipt(
                tx_hash,
                timeout=self.settings.submission_timeout_s,
                confirmations=self.settings.confirmations,
            )
        except TimeoutError as e:
            return self._finish(
                action,
                TransactionOutcome(
                    status=TransactionStatus.PENDING,
                    hash=tx_hash,
                    error=str(e),
                    attempts=attempts,
                    transient=True,
                ),
            )
        except Exception as e:
            return self._finish(
                action,
                TransactionOutcome(
                    status=TransactionStatus.FAILED,
                    hash=tx_hash,
                    error=str(e),
                    attempts=attempts,
                    transient=classify_error(e),
                ),
            )

        return self._finish(action, self._outcome_from_receipt(tx_hash, receipt, attempts))

    def _outcome_from_receipt(self, tx_hash: str, receipt: Dict[str, Any], attempts: int) -> TransactionOutcome:
        reverted = int(receipt.get("status", 0)) == 0
        error = None
        if reverted:
            reason = receipt.get("revertReason")
            error = f"execution reverted: {reason}" if reason else "execution reverted"
        return TransactionOutcome(
            status=TransactionStatus.REVERTED if reverted else TransactionStatus.CONFIRMED,
            hash=receipt.get("transactionHash") or tx_hash,
            block_number=receipt.get("blockNumber"),
            resource_used=receipt.get("gasUsed"),
            contract_address=receipt.get("contractAddress"),
            error=error,
            attempts=attempts,
        )

    def _finish(self, action: Action, outcome: TransactionOutcome) -> TransactionOutcome:
        level = logging.INFO if outcome.confirmed else logging.WARNING
        logger.log(
            level,
            "action=%s attempts=%d status=%s hash=%s%s",
            action.label,
            outcome.attempts,
            outcome.status.value,
            outcome.hash,
            f" error={outcome.error}" if outcome.error else "",
        )
        return outcome

    def call(self, address: str, abi: List[Dict[str, Any]], method: str, args: tuple = ()) -> Any:
        """
        Read-only call, retried on transient errors.

        Raises:
            TransientTransactionError: If every attempt failed transiently
            PermanentTransactionError: On a permanent failure
        """
        try:
            return retry_call(
                lambda: self.ledger.call(address, abi, method, tuple(args)),
                self.retry_policy,
                classify_error,
                sleep=self._sleep,
            )
        except RetryExhaustedError as e:
            raise TransientTransactionError(f"{method} on {address}: {e}") from e
        except TransactionError:
            raise
        except Exception as e:
            raise PermanentTransactionError(f"{method} on {address}: {e}") from e
