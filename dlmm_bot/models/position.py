"""Position model: persisted liquidity position state across restarts."""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON
from sqlmodel import SQLModel, Field, Column

from dlmm_bot.utils.constants import DEFAULT_TOKEN_X_DECIMALS, DEFAULT_TOKEN_Y_DECIMALS

STATUS_ACTIVE = "active"
STATUS_CLOSED = "closed"
STATUS_PENDING = "pending"


class Position(SQLModel, table=True):
    __tablename__ = "position"

    id: int | None = Field(default=None, primary_key=True)
    position_address: str = Field(index=True, unique=True)
    pool_address: str = Field(index=True)
    owner_address: str

    token_x_mint: str
    token_y_mint: str
    token_x_decimals: int = DEFAULT_TOKEN_X_DECIMALS
    token_y_decimals: int = DEFAULT_TOKEN_Y_DECIMALS

    # Funding snapshot in smallest units
    initial_token_x_amount: int = 0
    initial_token_y_amount: int = 0

    initial_price: float  # USD at open, never changed afterwards
    current_price: float | None = None
    lower_bound_price: float
    upper_bound_price: float

    min_bin_id: int
    max_bin_id: int
    bin_step: int

    status: str = Field(default=STATUS_ACTIVE, index=True)  # "active", "closed", "pending"
    opened_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    closed_at: datetime | None = None
    close_reason: str | None = None
    last_price_check: datetime | None = None

    accumulated_fees: float = 0.0
    last_hedge_price: float | None = None
    successor_address: str | None = None

    # Oldest first; capped at HEDGE_HISTORY_LIMIT records
    hedge_swaps_history: list[dict[str, Any]] = Field(
        default_factory=list, sa_column=Column(JSON)
    )

    @property
    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE

    @property
    def range_width(self) -> float:
        return self.upper_bound_price - self.lower_bound_price

    def short_address(self) -> str:
        return self.position_address[:8]
