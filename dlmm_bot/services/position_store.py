"""Position Store: SQLite-backed persistence for positions and the decision log.

Writes are last-write-wins per record. Each call opens its own session so the
store is safe to share between the monitor and the hedge jobs.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from dlmm_bot.models.decision_log import DecisionLog
from dlmm_bot.models.position import Position, STATUS_ACTIVE, STATUS_CLOSED
from dlmm_bot.schemas.hedge import HedgeSwapRecord
from dlmm_bot.utils.constants import HEDGE_HISTORY_LIMIT

logger = logging.getLogger(__name__)


def _safe_float(v: float | None) -> float | None:
    """Return None for inf/nan so they don't end up in the DB."""
    if v is None:
        return None
    if math.isinf(v) or math.isnan(v):
        return None
    return v


def append_capped(history: list[dict[str, Any]], record: dict[str, Any], limit: int = HEDGE_HISTORY_LIMIT) -> list[dict[str, Any]]:
    """New list with `record` appended, keeping only the newest `limit` entries."""
    return [*history, record][-limit:]


class PositionStore:
    def __init__(self, engine: Engine):
        self.engine = engine

    def load(self, status: str | None = None) -> list[Position]:
        with Session(self.engine) as session:
            stmt = select(Position).order_by(Position.opened_at)
            if status is not None:
                stmt = stmt.where(Position.status == status)
            return list(session.exec(stmt).all())

    def load_active(self) -> list[Position]:
        return self.load(status=STATUS_ACTIVE)

    def get(self, position_address: str) -> Position | None:
        with Session(self.engine) as session:
            return session.exec(
                select(Position).where(Position.position_address == position_address)
            ).first()

    def save(self, position: Position) -> Position:
        """Insert or overwrite the record for position.position_address."""
        with Session(self.engine) as session:
            existing = session.exec(
                select(Position.id).where(Position.position_address == position.position_address)
            ).first()
            position.id = existing
            merged = session.merge(position)
            session.commit()
            session.refresh(merged)
            position.id = merged.id
            return merged

    def update(self, position_address: str, **fields) -> Position | None:
        """Apply field updates to the stored record only."""
        with Session(self.engine) as session:
            position = session.exec(
                select(Position).where(Position.position_address == position_address)
            ).first()
            if position is None:
                return None
            for name, value in fields.items():
                setattr(position, name, value)
            session.add(position)
            session.commit()
            session.refresh(position)
            return position

    def remove(self, position_address: str) -> bool:
        with Session(self.engine) as session:
            position = session.exec(
                select(Position).where(Position.position_address == position_address)
            ).first()
            if position is None:
                return False
            session.delete(position)
            session.commit()
            return True

    def mark_closed(self, position_address: str, reason: str) -> Position | None:
        return self.update(
            position_address,
            status=STATUS_CLOSED,
            closed_at=datetime.now(timezone.utc),
            close_reason=reason,
        )

    def append_hedge_record(
        self, position_address: str, record: HedgeSwapRecord
    ) -> Position | None:
        """Append to the capped hedge history and move the persisted hedge anchor."""
        with Session(self.engine) as session:
            position = session.exec(
                select(Position).where(Position.position_address == position_address)
            ).first()
            if position is None:
                logger.warning(f"[{position_address[:8]}] Hedge record for unknown position dropped")
                return None
            # Reassign so the JSON column is flagged dirty
            position.hedge_swaps_history = append_capped(
                position.hedge_swaps_history or [], record.model_dump(mode="json")
            )
            position.last_hedge_price = record.price
            session.add(position)
            session.commit()
            session.refresh(position)
            return position

    def record_event(
        self,
        position_address: str | None,
        status: str,
        action: str | None = None,
        message: str | None = None,
        current_price: float | None = None,
        lower_bound_price: float | None = None,
        upper_bound_price: float | None = None,
        details: dict[str, Any] | None = None,
    ):
        """Write a DecisionLog entry."""
        with Session(self.engine) as session:
            log = DecisionLog(
                position_address=position_address,
                status=status,
                action=action,
                message=message,
                current_price=_safe_float(current_price),
                lower_bound_price=_safe_float(lower_bound_price),
                upper_bound_price=_safe_float(upper_bound_price),
                details=details,
            )
            session.add(log)
            session.commit()
