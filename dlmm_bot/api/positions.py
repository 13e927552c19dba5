"""Positions API: stored positions, hedge history, out-of-band hedge and manual close."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from dlmm_bot.api.deps import require_token, runtime_or_503
from dlmm_bot.database import get_session
from dlmm_bot.engine.runtime import Runtime
from dlmm_bot.models.position import Position

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/positions", tags=["positions"], dependencies=[Depends(require_token)])


def _get_or_404(session: Session, position_address: str) -> Position:
    position = session.exec(
        select(Position).where(Position.position_address == position_address)
    ).first()
    if not position:
        raise HTTPException(status_code=404, detail="Position not found")
    return position


@router.get("")
def list_positions(
    status: str | None = None,
    session: Session = Depends(get_session),
):
    stmt = select(Position).order_by(Position.opened_at.desc())
    if status is not None:
        stmt = stmt.where(Position.status == status)
    return session.exec(stmt).all()


@router.get("/{position_address}")
def get_position(position_address: str, session: Session = Depends(get_session)):
    """One position with its hedge history and live hedge state, if any."""
    from dlmm_bot.engine.runtime import get_runtime, has_runtime

    position = _get_or_404(session, position_address)
    hedge_state = None
    if has_runtime():
        slot = get_runtime().registry.get(position_address)
        if slot is not None and slot.hedge_state is not None:
            hedge_state = {
                "last_hedge_price": slot.hedge_state.last_hedge_price,
                "last_hedge_amount": slot.hedge_state.last_hedge_amount,
                "last_hedge_direction": slot.hedge_state.last_hedge_direction,
                "hedge_count": slot.hedge_state.hedge_count,
                "accumulated_change_since_last_hedge": slot.hedge_state.accumulated_change_since_last_hedge,
                "last_checked_price": slot.hedge_state.last_checked_price,
            }
    return {
        "position": position,
        "hedge_history": position.hedge_swaps_history or [],
        "hedge_state": hedge_state,
    }


@router.post("/{position_address}/hedge")
async def hedge_position(
    position_address: str,
    session: Session = Depends(get_session),
    runtime: Runtime = Depends(runtime_or_503),
):
    """Run one hedge tick now. The position must already be hedged."""
    _get_or_404(session, position_address)
    if not runtime.hedge_scheduler.is_armed(position_address):
        raise HTTPException(status_code=409, detail="Hedging is not armed for this position")
    outcome = await runtime.hedge_scheduler.hedge_now(position_address)
    if outcome is None:
        return {"status": "skipped", "message": "Tick skipped or failed; see logs"}
    return {"status": outcome.status, "reason": outcome.reason, "signature": outcome.signature}


@router.post("/{position_address}/close")
async def close_position(
    position_address: str,
    session: Session = Depends(get_session),
    runtime: Runtime = Depends(runtime_or_503),
):
    """Manually close an active position."""
    position = _get_or_404(session, position_address)
    if not position.is_active:
        raise HTTPException(status_code=409, detail=f"Position is {position.status}")
    try:
        closed = await runtime.monitor.close_now(position_address, "manual")
    except Exception as e:
        logger.error(f"Manual close of {position_address} failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return {"status": closed.status if closed else "unknown", "close_reason": closed.close_reason if closed else None}
