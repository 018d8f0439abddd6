"""Ledger capability: the protocol the executor consumes and a web3.py binding."""

import logging
import time
from typing import Any, Dict, List, Optional, Protocol

import requests
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3ValidationError

from .exceptions import PermanentTransactionError, TransientTransactionError
from .types import Action, DeployAction, InvokeAction

logger = logging.getLogger(__name__)


class Ledger(Protocol):
    """
    What the transaction executor needs from a ledger client.

    `wait_for_receipt` raises TimeoutError when the call is not included
    within `timeout`. Receipts are dicts with at least `status`,
    `blockNumber`, `gasUsed`, `contractAddress` and `transactionHash`; a
    reverted receipt may carry `revertReason`.
    """

    @property
    def sender(self) -> str: ...

    def estimate_gas(self, action: Action) -> int: ...

    def gas_price(self) -> int: ...

    def send(self, action: Action, gas: int, gas_price: int) -> str: ...

    def wait_for_receipt(self, tx_hash: str, timeout: float, confirmations: int) -> Dict[str, Any]: ...

    def call(self, address: str, abi: List[Dict[str, Any]], method: str, args: tuple = ()) -> Any: ...


def _translate_error(exc: Exception) -> Exception:
    """Map web3/requests exceptions onto the transient/permanent taxonomy."""
    if isinstance(exc, ContractLogicError):
        return PermanentTransactionError(f"execution reverted: {exc.message or exc}")
    if isinstance(exc, (Web3ValidationError, TypeError)):
        return PermanentTransactionError(f"invalid arguments: {exc}")
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return TransientTransactionError(f"network error: {exc}")
    return exc


class Web3Ledger:
    """Signs locally with a private key and talks to a node through web3.py."""

    def __init__(
        self,
        w3: Web3,
        private_key: str,
        chain_id: Optional[int] = None,
        poll_interval_s: float = 1.0,
    ):
        self.w3 = w3
        self._account = w3.eth.account.from_key(private_key)
        self._chain_id = chain_id
        self.poll_interval_s = poll_interval_s

    @classmethod
    def from_rpc_url(
        cls, rpc_url: str, private_key: str, request_timeout_s: float = 30, **kwargs: Any
    ) -> "Web3Ledger":
        w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout_s}))
        return cls(w3, private_key, **kwargs)

    @property
    def sender(self) -> str:
        return self._account.address

    @property
    def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = int(self.w3.eth.chain_id)
        return self._chain_id

    def _contract_call(self, action: Action) -> Any:
        if isinstance(action, DeployAction):
            contract = self.w3.eth.contract(abi=action.abi, bytecode=action.bytecode)
            return contract.constructor(*action.args)
        contract = self.w3.eth.contract(address=Web3.to_checksum_address(action.address), abi=action.abi)
        return getattr(contract.functions, action.method)(*action.args)

    def estimate_gas(self, action: Action) -> int:
        try:
            return int(self._contract_call(action).estimate_gas({"from": self.sender}))
        except Exception as e:
            raise _translate_error(e) from e

    def gas_price(self) -> int:
        try:
            return int(self.w3.eth.gas_price)
        except Exception as e:
            raise _translate_error(e) from e

    def send(self, action: Action, gas: int, gas_price: int) -> str:
        try:
            tx = self._contract_call(action).build_transaction(
                {
                    "from": self.sender,
                    "nonce": self.w3.eth.get_transaction_count(self.sender, "pending"),
                    "chainId": self.chain_id,
                    "gas": int(gas),
                    "gasPrice": int(gas_price),
                }
            )
            signed = self._account.sign_transaction(tx)
            tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception as e:
            raise _translate_error(e) from e
        return Web3.to_hex(tx_hash)

    def _revert_reason(self, tx_hash: str, block_number: int) -> Optional[str]:
        """Replay a reverted transaction as eth_call to recover its reason."""
        try:
            tx = self.w3.eth.get_transaction(tx_hash)
            replay = {"from": tx["from"], "data": tx["input"], "value": tx.get("value", 0), "gas": tx["gas"]}
            if tx.get("to"):
                replay["to"] = tx["to"]
            self.w3.eth.call(replay, block_identifier=block_number)
        except ContractLogicError as e:
            return e.message or str(e)
        except Exception as e:
            logger.debug("Could not replay %s for revert reason: %s", tx_hash, e)
        return None

    def wait_for_receipt(self, tx_hash: str, timeout: float, confirmations: int) -> Dict[str, Any]:
        deadline = time.monotonic() + timeout
        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=timeout, poll_latency=self.poll_interval_s
            )
        except TimeExhausted as e:
            raise TimeoutError(f"transaction {tx_hash} not included after {timeout}s") from e

        block_number = int(receipt["blockNumber"])
        while self.w3.eth.block_number - block_number + 1 < confirmations:
            if time.monotonic() >= deadline:
                raise TimeoutError(
                    f"transaction {tx_hash} included but not confirmed {confirmations} times after {timeout}s"
                )
            time.sleep(self.poll_interval_s)

        out = {
            "transactionHash": tx_hash,
            "status": int(receipt["status"]),
            "blockNumber": block_number,
            "gasUsed": int(receipt["gasUsed"]),
            "contractAddress": receipt.get("contractAddress"),
        }
        if out["status"] == 0:
            out["revertReason"] = self._revert_reason(tx_hash, block_number)
        return out

    def call(self, address: str, abi: List[Dict[str, Any]], method: str, args: tuple = ()) -> Any:
        try:
            contract = self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)
            return getattr(contract.functions, method)(*args).call({"from": self.sender})
        except Exception as e:
            raise _translate_error(e) from e
