"""DecisionLog model: per-tick decision journal for each position."""

from datetime import datetime, timezone
from typing import Any

from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON


class DecisionLog(SQLModel, table=True):
    __tablename__ = "decision_log"

    id: int | None = Field(default=None, primary_key=True)
    position_address: str | None = Field(default=None, index=True)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: str  # "success", "error", "skipped", "warning"
    action: str | None = None  # "close", "open_new", "hedge", "keep", "none", ...
    current_price: float | None = None
    lower_bound_price: float | None = None
    upper_bound_price: float | None = None
    message: str | None = None
    details: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
