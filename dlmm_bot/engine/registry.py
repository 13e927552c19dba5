"""Per-position runtime state, owned by a single registry.

Each tracked position gets one PositionSlot holding its lock, its in-memory
hedge state and its failure timestamps. Slots are inserted when a position is
first monitored or hedged and removed when it closes.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from dlmm_bot.schemas.admin_config import AdminConfig

logger = logging.getLogger(__name__)

# Failure classes tracked per slot. Successor opens and hedge swaps cool down independently.
INSUFFICIENT_BALANCE = "insufficient_balance"
HEDGE_INSUFFICIENT_BALANCE = "hedge_insufficient_balance"


@dataclass
class HedgeState:
    """Incremental-hedge bookkeeping. Never persisted."""

    last_hedge_price: float | None = None
    last_hedge_amount: float | None = None
    last_hedge_direction: str | None = None
    hedge_count: int = 0
    accumulated_change_since_last_hedge: float = 0.0  # percentage points
    last_checked_price: float | None = None

    @property
    def has_hedged(self) -> bool:
        return self.last_hedge_price is not None or self.hedge_count > 0


@dataclass
class PositionSlot:
    position_address: str
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    hedge_state: HedgeState | None = None
    hedge_config: AdminConfig | None = None
    # failure class -> monotonic timestamp of the last occurrence
    failures: dict[str, float] = field(default_factory=dict)


class PositionRegistry:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._slots: dict[str, PositionSlot] = {}
        self._clock = clock

    def __contains__(self, position_address: str) -> bool:
        return position_address in self._slots

    def __len__(self) -> int:
        return len(self._slots)

    def get(self, position_address: str) -> PositionSlot | None:
        return self._slots.get(position_address)

    def ensure(self, position_address: str) -> PositionSlot:
        slot = self._slots.get(position_address)
        if slot is None:
            slot = PositionSlot(position_address=position_address)
            self._slots[position_address] = slot
            logger.debug(f"[{position_address[:8]}] Registered slot")
        return slot

    def remove(self, position_address: str) -> PositionSlot | None:
        slot = self._slots.pop(position_address, None)
        if slot is not None:
            logger.debug(f"[{position_address[:8]}] Removed slot")
        return slot

    def addresses(self) -> list[str]:
        return list(self._slots)

    def hedge_states(self) -> dict[str, HedgeState]:
        return {
            address: slot.hedge_state
            for address, slot in self._slots.items()
            if slot.hedge_state is not None
        }

    # -- failure cool-downs -------------------------------------------------

    def record_failure(self, position_address: str, failure: str):
        self.ensure(position_address).failures[failure] = self._clock()

    def clear_failure(self, position_address: str, failure: str):
        slot = self._slots.get(position_address)
        if slot is not None:
            slot.failures.pop(failure, None)

    def cooldown_remaining(self, position_address: str, failure: str, window_seconds: float) -> float:
        """Seconds left before `failure` may be retried; 0 when not cooling down."""
        slot = self._slots.get(position_address)
        if slot is None or failure not in slot.failures:
            return 0.0
        elapsed = self._clock() - slot.failures[failure]
        return max(0.0, window_seconds - elapsed)
