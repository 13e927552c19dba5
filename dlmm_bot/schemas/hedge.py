"""Hedge swap record stored in a position's history."""

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

HedgeDirection = Literal["buy", "sell"]


class HedgeSwapRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    direction: HedgeDirection
    amount: float  # input token, human units
    notional_usd: float
    price: float
    price_change_percent: float  # vs. the position's initial price
    signature: str
    input_mint: str
    output_mint: str
