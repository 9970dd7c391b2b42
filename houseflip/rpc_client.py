"""
houseflip - RPC Client

JSON-RPC client for a Solana-compatible ledger node.
"""

import requests
from typing import Any, Optional, List


class RPCError(Exception):
    """RPC call failed."""
    def __init__(self, code: int, message: str):
        self.code = code
        self.message = message
        super().__init__(f"RPC Error {code}: {message}")


class RPCClient:
    """
    JSON-RPC client for the ledger node.

    Usage:
        rpc = RPCClient("https://api.mainnet-beta.solana.com")
        height = rpc.getBlockHeight()
        lamports = rpc.getBalance("9xQe...")["value"]
    """

    def __init__(self, url: str = "https://api.mainnet-beta.solana.com",
                 timeout: int = 30, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()
        self._id = 0

    def _call(self, method: str, params: list = None) -> Any:
        """Make RPC call."""
        self._id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._id,
            "method": method,
            "params": params or []
        }

        try:
            response = self.session.post(
                self.url,
                json=payload,
                timeout=self.timeout
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise RPCError(-1, f"Connection failed: {e}")

        try:
            result = response.json()
        except ValueError as e:
            raise RPCError(-1, f"Invalid JSON response: {e}")

        if "error" in result and result["error"]:
            raise RPCError(result["error"].get("code", -1),
                           result["error"].get("message", "unknown error"))

        return result.get("result")

    # ═══════════════════════════════════════════════════════════════════════
    # LEDGER READS
    # ═══════════════════════════════════════════════════════════════════════

    def getTransaction(self, signature: str, commitment: str = "finalized") -> Optional[dict]:
        """
        Get parsed transaction by signature.

        Returns None while the transaction is unknown or below the
        requested commitment level.
        """
        return self._call("getTransaction", [signature, {
            "encoding": "jsonParsed",
            "commitment": commitment,
            "maxSupportedTransactionVersion": 0,
        }])

    def getBalance(self, address: str, commitment: str = "confirmed") -> dict:
        """Get account balance: {"context": {...}, "value": lamports}."""
        return self._call("getBalance", [address, {"commitment": commitment}])

    def getLatestBlockhash(self, commitment: str = "confirmed") -> dict:
        """Get {"value": {"blockhash": ..., "lastValidBlockHeight": ...}}."""
        return self._call("getLatestBlockhash", [{"commitment": commitment}])

    def getBlockHeight(self, commitment: str = "confirmed") -> int:
        """Get current block height."""
        return self._call("getBlockHeight", [{"commitment": commitment}])

    def getSignatureStatuses(self, signatures: List[str],
                             search_history: bool = False) -> dict:
        """
        Get signature statuses.

        Returns:
            {"value": [None | {"confirmationStatus": ..., "err": ...}, ...]}
        """
        return self._call("getSignatureStatuses", [
            signatures, {"searchTransactionHistory": search_history}
        ])

    # ═══════════════════════════════════════════════════════════════════════
    # LEDGER WRITES
    # ═══════════════════════════════════════════════════════════════════════

    def sendTransaction(self, encoded_tx: str, preflight_commitment: str = "confirmed",
                        skip_preflight: bool = False) -> str:
        """Broadcast a base64-encoded signed transaction. Returns its signature."""
        return self._call("sendTransaction", [encoded_tx, {
            "encoding": "base64",
            "skipPreflight": skip_preflight,
            "preflightCommitment": preflight_commitment,
        }])

    def test_connection(self) -> bool:
        """Test if RPC connection works."""
        try:
            self.getBlockHeight()
            return True
        except RPCError:
            return False
