"""Jupiter swap API client: quotes and serialized swap transactions."""

import base64
import logging
from typing import Any, Optional

import aiohttp

from dlmm_bot.services.errors import SwapRouterError

logger = logging.getLogger(__name__)


class JupiterClient:
    def __init__(self, base_url: str, api_key: str = "", timeout_seconds: float = 15.0):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.session: Optional[aiohttp.ClientSession] = None

    async def _ensure_session(self) -> None:
        if self.session is None or self.session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            headers = {"x-api-key": self.api_key} if self.api_key else None
            self.session = aiohttp.ClientSession(timeout=timeout, headers=headers)

    async def close(self) -> None:
        if self.session and not self.session.closed:
            await self.session.close()

    async def get_quote(
        self, input_mint: str, output_mint: str, amount: int, slippage_bps: int
    ) -> dict[str, Any]:
        await self._ensure_session()
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(amount),
            "slippageBps": str(slippage_bps),
        }
        async with self.session.get(f"{self.base_url}/quote", params=params) as resp:
            if resp.status != 200:
                body = await resp.text()
                raise SwapRouterError(f"Quote failed ({resp.status}): {body[:300]}")
            quote = await resp.json()
        if not quote.get("outAmount"):
            raise SwapRouterError(f"Quote without outAmount for {input_mint} -> {output_mint}")
        logger.debug(
            f"Quote {amount} {input_mint[:6]} -> {quote['outAmount']} {output_mint[:6]} "
            f"impact={quote.get('priceImpactPct')}"
        )
        return quote

    async def build_swap_transaction(self, quote: dict[str, Any], wallet: str) -> bytes:
        await self._ensure_session()
        body = {
            "quoteResponse": quote,
            "userPublicKey": wallet,
            "wrapAndUnwrapSol": True,
            "dynamicComputeUnitLimit": True,
            "prioritizationFeeLamports": "auto",
        }
        async with self.session.post(f"{self.base_url}/swap", json=body) as resp:
            if resp.status != 200:
                text = await resp.text()
                raise SwapRouterError(f"Swap build failed ({resp.status}): {text[:300]}")
            payload = await resp.json()
        encoded = payload.get("swapTransaction")
        if not encoded:
            raise SwapRouterError("Swap response missing swapTransaction")
        return base64.b64decode(encoded)
