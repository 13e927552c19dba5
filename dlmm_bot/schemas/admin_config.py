"""Pydantic schema for the admin configuration document."""

from pydantic import BaseModel, Field


class PriceCorridor(BaseModel):
    upper: float = Field(default=4.0, gt=0, le=100)
    lower: float = Field(default=4.0, gt=0, le=100)


class PoolSelection(BaseModel):
    min_liquidity: float = Field(default=10_000.0, ge=0)
    min_volume_24h: float = Field(default=5_000.0, ge=0)
    preferred_bin_step: int | None = Field(default=None, gt=0)


class Monitoring(BaseModel):
    check_interval_ms: int = Field(default=30_000, ge=1_000)
    price_update_interval_ms: int = Field(default=10_000, ge=1_000)


class MirrorSwap(BaseModel):
    enabled: bool = True
    hedge_amount_percent: float = Field(default=50.0, gt=0, le=100)
    slippage_bps: int = Field(default=100, ge=1, le=5_000)
    min_price_change_percent: float = Field(default=0.1, gt=0)
    min_hedge_amount: float = Field(default=0.001, ge=0)  # USD notional
    significant_change_threshold_percent: float = Field(default=2.0, gt=0)


class Rebalance(BaseModel):
    balance_wait_attempts: int = Field(default=10, ge=5, le=30)
    balance_wait_delay_seconds: float = Field(default=3.0, ge=0)
    insufficient_balance_cooldown_seconds: float = Field(default=60.0, ge=0)


class AdminConfig(BaseModel):
    price_corridor_percent: PriceCorridor = Field(default_factory=PriceCorridor)
    stop_loss_percent: float = Field(default=-2.0, le=0, ge=-100)
    fee_check_percent: float = Field(default=50.0, ge=0, le=100)
    take_profit_percent: float = Field(default=2.0, ge=0)
    pool_selection: PoolSelection = Field(default_factory=PoolSelection)
    monitoring: Monitoring = Field(default_factory=Monitoring)
    mirror_swap: MirrorSwap = Field(default_factory=MirrorSwap)
    rebalance: Rebalance = Field(default_factory=Rebalance)

