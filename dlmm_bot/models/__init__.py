"""Database models."""

from dlmm_bot.models.position import Position
from dlmm_bot.models.decision_log import DecisionLog

__all__ = [
    "Position",
    "DecisionLog",
]
