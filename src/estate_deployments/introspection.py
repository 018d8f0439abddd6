"""Read-only on-chain introspection over raw JSON-RPC."""

from typing import Any, Dict, List, Optional

import requests
from eth_utils import to_checksum_address

from .constants import EIP1967_IMPLEMENTATION_SLOT, ZERO_ADDRESS


class ChainInspector:
    """
    Inspects deployed contracts through a JSON-RPC endpoint.

    Code sizes are cached per address; implementation slots are not, since
    a proxy can be upgraded between calls.
    """

    def __init__(self, rpc_url: str, timeout: float = 30):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self._code_sizes: Dict[str, int] = {}
        self._request_id = 0

    def _rpc(self, method: str, params: List[Any]) -> Any:
        """
        Make one JSON-RPC call.

        Raises:
            ValueError: If the RPC returns an error
            RuntimeError: If a network or HTTP error occurs
        """
        self._request_id += 1
        try:
            response = requests.post(
                self.rpc_url,
                json={
                    "jsonrpc": "2.0",
                    "method": method,
                    "params": params,
                    "id": self._request_id,
                },
                timeout=self.timeout,
            )

            if response.status_code != 200:
                raise RuntimeError(f"RPC request failed with status {response.status_code}")

            result = response.json()

            if "error" in result:
                raise ValueError(f"RPC error: {result['error']}")

            return result["result"]

        except requests.RequestException as e:
            raise RuntimeError(f"Network error during RPC call: {e}") from e

    def code_size(self, address: str) -> int:
        """
        Size in bytes of the code deployed at `address` (0 for none).
        """
        key = address.lower()
        if key in self._code_sizes:
            return self._code_sizes[key]

        code_hex = self._rpc("eth_getCode", [to_checksum_address(address), "latest"])
        size = max(0, (len(code_hex) - 2) // 2) if code_hex else 0

        # Only positive results are stable; empty code may still appear later
        if size > 0:
            self._code_sizes[key] = size
        return size

    def has_code(self, address: str) -> bool:
        return self.code_size(address) > 0

    def implementation_address(self, proxy_address: str) -> Optional[str]:
        """
        Read the EIP-1967 implementation slot of a proxy.

        Returns:
            Checksummed implementation address, or None if the slot is empty
        """
        raw = self._rpc(
            "eth_getStorageAt",
            [to_checksum_address(proxy_address), EIP1967_IMPLEMENTATION_SLOT, "latest"],
        )
        if not raw:
            return None
        # Address is the low 20 bytes of the 32-byte word
        word = raw[2:] if raw.startswith("0x") else raw
        address = "0x" + word.rjust(64, "0")[-40:]
        if address == ZERO_ADDRESS:
            return None
        return to_checksum_address(address)
