from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import httpx

from .errors import TransientFetchError
from .project_constants import SIGNATURE_PAGE_SIZE


class RpcClient:
    """Async Solana JSON-RPC client covering the calls a presale sync needs."""

    def __init__(
        self,
        rpc_url: str,
        timeout_s: float = 60.0,
        commitment: str = "confirmed",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.commitment = commitment
        self.client = httpx.AsyncClient(timeout=timeout_s, transport=transport)

    async def close(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "RpcClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def get_signatures_for_address(
        self,
        address: str,
        before: Optional[str] = None,
        limit: int = SIGNATURE_PAGE_SIZE,
    ) -> List[Dict[str, Any]]:
        """Returns [{signature, blockTime, slot, err, ...}], newest first."""
        opts: Dict[str, Any] = {"limit": limit, "commitment": self.commitment}
        if before:
            opts["before"] = before
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "getSignaturesForAddress",
            "params": [address, opts],
        }
        data = await self._post(payload)
        return data.get("result") or []

    async def get_parsed_transactions(
        self, signatures: Sequence[str]
    ) -> List[Optional[Dict[str, Any]]]:
        """
        One JSON-RPC batch of getTransaction (jsonParsed) calls.
        Results come back in the order of `signatures`; unknown ones are None.
        """
        if not signatures:
            return []
        payload = [
            {
                "jsonrpc": "2.0",
                "id": i,
                "method": "getTransaction",
                "params": [
                    sig,
                    {
                        "encoding": "jsonParsed",
                        "commitment": self.commitment,
                        "maxSupportedTransactionVersion": 0,
                    },
                ],
            }
            for i, sig in enumerate(signatures)
        ]
        data = await self._post(payload)
        if not isinstance(data, list):
            raise TransientFetchError(f"RPC batch returned {type(data).__name__}, expected list")

        by_id: Dict[int, Optional[Dict[str, Any]]] = {}
        for item in data:
            if "error" in item:
                raise TransientFetchError(f"RPC error: {item['error']}")
            by_id[int(item["id"])] = item.get("result")
        return [by_id.get(i) for i in range(len(signatures))]

    async def _post(self, payload: Any) -> Any:
        try:
            resp = await self.client.post(self.rpc_url, json=payload)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise TransientFetchError(f"RPC request failed: {e}") from e
        if isinstance(data, dict) and "error" in data:
            raise TransientFetchError(f"RPC error: {data['error']}")
        return data
