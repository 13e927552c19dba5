"""System API: health check, scheduler status, decision logs, manual trigger, emergency stop."""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session, select

from dlmm_bot.api.deps import require_token, runtime_or_503
from dlmm_bot.database import get_session
from dlmm_bot.engine.runtime import Runtime
from dlmm_bot.models.decision_log import DecisionLog

router = APIRouter(prefix="/api/system", tags=["system"])


@router.get("/health")
def health_check():
    return {"status": "ok"}


@router.get("/scheduler", dependencies=[Depends(require_token)])
def scheduler_status():
    """Current scheduler state with job details."""
    from dlmm_bot.engine.scheduler import get_scheduler_status
    return get_scheduler_status()


@router.post("/trigger/{position_address}", dependencies=[Depends(require_token)])
async def trigger_position(position_address: str, runtime: Runtime = Depends(runtime_or_503)):
    """Manually run one monitoring tick for a position."""
    if runtime.store.get(position_address) is None:
        raise HTTPException(status_code=404, detail="Position not found")
    try:
        decision = await runtime.monitor.process_position(position_address)
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
    if decision is None:
        return {"status": "skipped", "message": "Position inactive or price unavailable"}
    return {
        "status": "ok",
        "action": decision.action,
        "reason": decision.reason,
        "should_close_old": decision.should_close_old,
    }


@router.get("/logs", dependencies=[Depends(require_token)])
def decision_logs(
    position_address: str | None = None,
    status: str | None = None,
    limit: int = 100,
    offset: int = 0,
    session: Session = Depends(get_session),
):
    stmt = select(DecisionLog).order_by(DecisionLog.timestamp.desc())
    if position_address is not None:
        stmt = stmt.where(DecisionLog.position_address == position_address)
    if status is not None:
        stmt = stmt.where(DecisionLog.status == status)
    stmt = stmt.offset(offset).limit(limit)
    return session.exec(stmt).all()


class EmergencyStopRequest(BaseModel):
    close_positions: bool = True
    stop_monitoring: bool = True


@router.post("/emergency-stop", dependencies=[Depends(require_token)])
async def emergency_stop(body: EmergencyStopRequest, runtime: Runtime = Depends(runtime_or_503)):
    """Emergency stop: stop hedging, close all positions and/or stop monitoring."""
    from dlmm_bot.services.emergency_stop import run_emergency_stop

    return await run_emergency_stop(
        close_positions=body.close_positions,
        stop_monitoring=body.stop_monitoring,
    )
