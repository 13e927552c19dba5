"""Client for the DLMM SDK sidecar.

The pool SDK only exists for JavaScript, so bin reads and position
instruction building go through a small HTTP process running it. Transactions
come back base64-encoded, already signed by any fresh position keypair; the
wallet signature is added by the execution service.
"""

import base64
import logging
from typing import Any, Optional

import aiohttp

from dlmm_bot.services.collaborators import ActiveBin, OpenPositionTx, PoolInfo, PositionBin
from dlmm_bot.services.errors import PoolDataError, PositionNotFoundError

logger = logging.getLogger(__name__)


class DlmmSidecarClient:
    """PoolDataProvider and PositionBuilder over the sidecar's JSON API."""

    def __init__(self, base_url: str, timeout_seconds: float = 15.0):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.session: Optional[aiohttp.ClientSession] = None

    async def _ensure_session(self) -> None:
        if self.session is None or self.session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            self.session = aiohttp.ClientSession(timeout=timeout)

    async def close(self) -> None:
        if self.session and not self.session.closed:
            await self.session.close()

    async def _request(
        self,
        method: str,
        path: str,
        position_address: str | None = None,
        **kwargs,
    ) -> dict[str, Any]:
        await self._ensure_session()
        async with self.session.request(method, f"{self.base_url}{path}", **kwargs) as resp:
            if resp.status == 404 and position_address is not None:
                raise PositionNotFoundError(position_address)
            if resp.status >= 400:
                body = await resp.text()
                raise PoolDataError(f"{method} {path} failed ({resp.status}): {body[:300]}")
            return await resp.json()

    async def get_active_bin(self, pool_address: str) -> ActiveBin:
        data = await self._request("GET", f"/pools/{pool_address}/active-bin")
        return ActiveBin(bin_id=int(data["bin_id"]), bin_step=int(data["bin_step"]))

    async def get_pool_info(self, pool_address: str) -> PoolInfo:
        data = await self._request("GET", f"/pools/{pool_address}")
        return PoolInfo(
            pool_address=pool_address,
            token_x_mint=data["token_x_mint"],
            token_y_mint=data["token_y_mint"],
            token_x_decimals=int(data["token_x_decimals"]),
            token_y_decimals=int(data["token_y_decimals"]),
            bin_step=int(data["bin_step"]),
        )

    async def get_position_bins(
        self, pool_address: str, position_address: str, owner: str
    ) -> list[PositionBin]:
        data = await self._request(
            "GET",
            f"/pools/{pool_address}/positions/{position_address}",
            position_address=position_address,
            params={"owner": owner},
        )
        return [
            PositionBin(
                bin_id=int(b["bin_id"]),
                amount_x=int(b.get("amount_x") or 0),
                amount_y=int(b.get("amount_y") or 0),
            )
            for b in data.get("bins", [])
        ]

    async def build_open_position(
        self,
        pool_address: str,
        owner: str,
        range_interval: int,
        amount_x: int,
        amount_y: int,
    ) -> OpenPositionTx:
        data = await self._request(
            "POST",
            f"/pools/{pool_address}/positions/open",
            json={
                "owner": owner,
                "range_interval": range_interval,
                # Large integers travel as strings
                "amount_x": str(amount_x),
                "amount_y": str(amount_y),
            },
        )
        return OpenPositionTx(
            position_address=data["position_address"],
            transaction=base64.b64decode(data["transaction"]),
            min_bin_id=int(data["min_bin_id"]),
            max_bin_id=int(data["max_bin_id"]),
            active_bin_id=int(data["active_bin_id"]),
        )

    async def build_close_position(
        self, pool_address: str, position_address: str, owner: str
    ) -> bytes:
        data = await self._request(
            "POST",
            f"/pools/{pool_address}/positions/{position_address}/close",
            position_address=position_address,
            json={"owner": owner},
        )
        return base64.b64decode(data["transaction"])
