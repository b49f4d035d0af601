from __future__ import annotations

import asyncio
import itertools
from typing import Any, List, Optional, Sequence

import bittensor as bt
import httpx
from solders.pubkey import Pubkey

from validator_runner.errors import RpcError
from validator_runner.shared.enums import Commitment


class SolanaRpcClient:
    """
    Minimal async JSON-RPC client for a local validator.

    - Covers only what a test harness needs: funding, confirmation, balances, health
    - Retries transport errors with exponential backoff
    - `pubsub_url` is kept for callers that open their own subscriptions
    """

    def __init__(
        self,
        rpc_url: str,
        pubsub_url: str,
        commitment: Commitment = Commitment.PROCESSED,
        *,
        timeout_seconds: float = 30.0,
        max_retries: int = 2,
        confirm_poll_interval: float = 0.25,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.pubsub_url = pubsub_url
        self.commitment = Commitment(commitment)
        self.max_retries = max_retries
        self.confirm_poll_interval = confirm_poll_interval
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._ids = itertools.count(1)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "SolanaRpcClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Public helpers
    # ------------------------------------------------------------------
    async def get_health(self) -> str:
        return await self._call("getHealth")

    async def get_balance(self, address: Pubkey | str) -> int:
        result = await self._call(
            "getBalance", [str(address), {"commitment": self.commitment.value}]
        )
        return int(result["value"])

    async def get_slot(self) -> int:
        return int(await self._call("getSlot", [{"commitment": self.commitment.value}]))

    async def request_airdrop(self, address: Pubkey | str, lamports: int) -> str:
        return await self._call(
            "requestAirdrop",
            [str(address), int(lamports), {"commitment": self.commitment.value}],
        )

    async def get_signature_statuses(self, signatures: Sequence[str]) -> List[Optional[dict]]:
        result = await self._call(
            "getSignatureStatuses",
            [list(signatures), {"searchTransactionHistory": True}],
        )
        return list(result.get("value") or [])

    async def confirm_transaction(self, signature: str) -> dict:
        """Poll until `signature` reaches this client's commitment.

        Waits indefinitely; callers bound it with `asyncio.wait_for`.

        Raises:
            RpcError: the transaction landed with an error.
        """
        while True:
            statuses = await self.get_signature_statuses([signature])
            status = statuses[0] if statuses else None
            if status is not None:
                if status.get("err") is not None:
                    raise RpcError(f"transaction {signature} failed", data=status["err"])
                if self.commitment.satisfied_by(status.get("confirmationStatus")):
                    return status
            await asyncio.sleep(self.confirm_poll_interval)

    async def request_funding(self, address: Pubkey | str, lamports: int) -> str:
        """Airdrop `lamports` to `address` and wait for confirmation."""
        signature = await self.request_airdrop(address, lamports)
        bt.logging.debug({"rpc_airdrop_sent": {"address": str(address), "lamports": int(lamports), "signature": signature}})
        await self.confirm_transaction(signature)
        return signature

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------
    async def _call(self, method: str, params: Optional[list] = None) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method}
        if params is not None:
            payload["params"] = params
        body = await self._post_json(payload)
        error = body.get("error") if isinstance(body, dict) else None
        if error:
            raise RpcError(
                str(error.get("message", "unknown error")),
                code=error.get("code"),
                data=error.get("data"),
            )
        if not isinstance(body, dict) or "result" not in body:
            raise RpcError(f"malformed response to {method}: {body!r}")
        return body["result"]

    async def _post_json(self, payload: dict) -> Any:
        attempt = 0
        backoff = 0.25
        while True:
            try:
                resp = await self._client.post(self.rpc_url, json=payload)
                resp.raise_for_status()
                return resp.json()
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                if status < 500 or attempt >= self.max_retries:
                    raise
                bt.logging.debug({"rpc_http_retry": {"method": payload["method"], "status": status}})
                await asyncio.sleep(backoff)
            except (httpx.RequestError, httpx.TimeoutException):
                if attempt >= self.max_retries:
                    raise
                await asyncio.sleep(backoff)
            attempt += 1
            backoff *= 2


def default_client_factory(rpc_url: str, pubsub_url: str, commitment: Commitment) -> SolanaRpcClient:
    return SolanaRpcClient(rpc_url, pubsub_url, commitment)


__all__ = ["SolanaRpcClient", "default_client_factory"]
