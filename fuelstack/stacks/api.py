"""
Hiro Stacks API client (httpx).

Endpoints used:
    GET  /extended/v1/contract/{contract_id}/events
    GET  /v2/accounts/{address}?proof=0
    GET  /extended/v1/address/{address}/balances
    POST /v2/transactions
    GET  /extended/v1/tx/{txid}

Transport and status errors surface as ChainError.
"""

import asyncio
import json
import time
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ..constants import (
    CONNECTION_TIMEOUT,
    STACKS_EVENT_LIMIT,
    STACKS_TX_POLL_INTERVAL,
    STACKS_TX_TIMEOUT,
)
from ..exceptions import ChainError, TransactionFailedError
from ..logger import get_logger

logger = get_logger(__name__)

TX_SUCCESS = "success"
TX_PENDING = "pending"


class HiroClient:
    """
    Thin async wrapper over the Hiro API.

    Accepts an existing httpx.AsyncClient so tests can inject a
    MockTransport; otherwise owns its own client.
    """

    def __init__(
        self,
        api_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = CONNECTION_TIMEOUT,
    ):
        self.api_url = api_url.rstrip("/")
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.api_url}{path}"
        start_time = time.time()
        try:
            response = await self.client.get(url, params=params)
            logger.debug(f"GET {path} [{response.status_code}] ({time.time() - start_time:.3f}s)")
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            raise ChainError(f"GET {path} failed: {e}") from e
        except (json.JSONDecodeError, ValueError) as e:
            raise ChainError(f"GET {path} returned invalid JSON: {e}") from e

    # ── Events ────────────────────────────────────────────────────────

    async def get_contract_events(self, contract_id: str, limit: int = STACKS_EVENT_LIMIT) -> List[Dict[str, Any]]:
        """Most recent events of a contract, newest first."""
        data = await self._get(f"/extended/v1/contract/{contract_id}/events", {"limit": limit})
        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            raise ChainError(f"Unexpected events response for {contract_id}")
        return results

    # ── Accounts ──────────────────────────────────────────────────────

    async def get_account(self, address: str) -> Tuple[int, int]:
        """(STX balance in micro-STX, next nonce)"""
        data = await self._get(f"/v2/accounts/{address}", {"proof": 0})
        try:
            balance = data["balance"]
            balance = int(balance, 16) if isinstance(balance, str) and balance.startswith("0x") else int(balance)
            return balance, int(data["nonce"])
        except (KeyError, TypeError, ValueError) as e:
            raise ChainError(f"Unexpected account response for {address}: {e}") from e

    async def get_stx_balance(self, address: str) -> int:
        balance, _ = await self.get_account(address)
        return balance

    async def get_nonce(self, address: str) -> int:
        _, nonce = await self.get_account(address)
        return nonce

    async def get_fungible_balance(self, address: str, asset_identifier: str) -> int:
        """
        Balance of `asset_identifier` ("ADDR.contract::asset"); 0 if never held.

        Falls back to any asset of the same contract when the exact asset
        name is not listed.
        """
        data = await self._get(f"/extended/v1/address/{address}/balances")
        tokens = data.get("fungible_tokens", {}) if isinstance(data, dict) else {}
        entry = tokens.get(asset_identifier)
        if entry is None:
            prefix = asset_identifier.split("::")[0].lower() + "::"
            entry = next((v for k, v in tokens.items() if k.lower().startswith(prefix)), None)
        if entry is None:
            return 0
        try:
            return int(entry["balance"])
        except (KeyError, TypeError, ValueError) as e:
            raise ChainError(f"Unexpected balance entry for {asset_identifier}: {e}") from e

    # ── Transactions ──────────────────────────────────────────────────

    async def broadcast(self, raw_tx: bytes) -> str:
        """
        Submit a serialized transaction. Returns the txid.

        Raises:
            TransactionFailedError: the node rejected the transaction
        """
        try:
            response = await self.client.post(
                f"{self.api_url}/v2/transactions",
                content=raw_tx,
                headers={"Content-Type": "application/octet-stream"},
            )
        except httpx.HTTPError as e:
            raise ChainError(f"Broadcast failed: {e}") from e

        try:
            body = response.json()
        except (json.JSONDecodeError, ValueError):
            body = response.text

        if response.is_success and isinstance(body, str):
            return body.strip('"').removeprefix("0x")
        if isinstance(body, dict):
            reason = body.get("reason") or body.get("error") or "unknown"
            detail = body.get("reason_data") or ""
            raise TransactionFailedError(f"Broadcast rejected: {reason} {detail}".strip())
        raise TransactionFailedError(f"Broadcast rejected [{response.status_code}]: {body}")

    async def get_tx_status(self, txid: str) -> str:
        """tx_status of `txid`; "pending" while the API has not indexed it."""
        txid = txid if txid.startswith("0x") else f"0x{txid}"
        try:
            response = await self.client.get(f"{self.api_url}/extended/v1/tx/{txid}")
            if response.status_code == 404:
                return TX_PENDING
            response.raise_for_status()
            return response.json().get("tx_status", TX_PENDING)
        except httpx.HTTPError as e:
            raise ChainError(f"Status lookup for {txid} failed: {e}") from e
        except (json.JSONDecodeError, ValueError, AttributeError) as e:
            raise ChainError(f"Unexpected status response for {txid}: {e}") from e

    async def wait_for_tx(
        self,
        txid: str,
        timeout: float = STACKS_TX_TIMEOUT,
        poll_interval: float = STACKS_TX_POLL_INTERVAL,
    ) -> str:
        """
        Poll until `txid` leaves the pending state.

        Raises:
            TransactionFailedError: aborted (abort_by_response,
                abort_by_post_condition, ...) or still pending at `timeout`
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            try:
                status = await self.get_tx_status(txid)
            except ChainError as e:
                logger.warning(f"[stacks] {e}")
                status = TX_PENDING
            if status == TX_SUCCESS:
                return status
            if status != TX_PENDING:
                raise TransactionFailedError(f"Stacks tx {txid} failed: {status}")
            if loop.time() >= deadline:
                raise TransactionFailedError(f"Stacks tx {txid} not confirmed within {timeout}s")
            await asyncio.sleep(poll_interval)
