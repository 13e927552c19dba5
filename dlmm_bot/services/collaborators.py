"""Interfaces for the external collaborators the engine is built against.

Concrete adapters live in meteora_api, jupiter_client, dlmm_sidecar and
solana_client; tests substitute fakes.
"""

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class ActiveBin:
    bin_id: int
    bin_step: int


@dataclass(frozen=True)
class PositionBin:
    bin_id: int
    amount_x: int  # smallest units
    amount_y: int


@dataclass(frozen=True)
class PoolInfo:
    pool_address: str
    token_x_mint: str
    token_y_mint: str
    token_x_decimals: int
    token_y_decimals: int
    bin_step: int


@dataclass(frozen=True)
class PoolStats:
    volume_24h: float
    fee_bps: float
    liquidity: float


@dataclass(frozen=True)
class OpenPositionTx:
    position_address: str
    transaction: bytes
    min_bin_id: int
    max_bin_id: int
    active_bin_id: int


class PoolDataProvider(Protocol):
    async def get_active_bin(self, pool_address: str) -> ActiveBin: ...

    async def get_position_bins(
        self, pool_address: str, position_address: str, owner: str
    ) -> list[PositionBin]:
        """Raises PositionNotFoundError when the position no longer exists."""
        ...

    async def get_pool_info(self, pool_address: str) -> PoolInfo: ...


class PositionBuilder(Protocol):
    async def build_open_position(
        self,
        pool_address: str,
        owner: str,
        range_interval: int,
        amount_x: int,
        amount_y: int,
    ) -> OpenPositionTx: ...

    async def build_close_position(
        self, pool_address: str, position_address: str, owner: str
    ) -> bytes: ...


class PriceSource(Protocol):
    async def get_usd_price(self, pool_address: str) -> float | None: ...


class PoolStatsSource(Protocol):
    async def get_pool_stats(self, pool_address: str) -> PoolStats: ...


class SwapRouter(Protocol):
    async def get_quote(
        self, input_mint: str, output_mint: str, amount: int, slippage_bps: int
    ) -> dict[str, Any]: ...

    async def build_swap_transaction(self, quote: dict[str, Any], wallet: str) -> bytes: ...


class ExecutionService(Protocol):
    @property
    def wallet_address(self) -> str: ...

    async def submit(self, transaction: bytes) -> str:
        """Sign, send and confirm. Returns the signature."""
        ...


class WalletBalanceReader(Protocol):
    async def get_balance(self, owner: str, mint: str) -> int:
        """Smallest units; a missing token account reads as 0."""
        ...
