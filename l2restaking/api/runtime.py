from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from ..agent_runtime import AgentRuntime, get_runtime

router = APIRouter(prefix="/runtime")


@router.get("/status")
async def runtime_status(runtime: AgentRuntime = Depends(get_runtime)) -> Dict[str, Any]:
    return runtime.status()


@router.get("/strategies")
async def list_strategies(runtime: AgentRuntime = Depends(get_runtime)) -> Dict[str, Any]:
    return {"items": runtime.list_strategies()}


@router.post("/strategies/{strategy_id}/tick")
async def run_strategy_now(strategy_id: str, runtime: AgentRuntime = Depends(get_runtime)) -> Dict[str, Any]:
    """Queue an immediate tick, e.g. to reconcile pending transactions without waiting for the poll."""
    if runtime.get_strategy(strategy_id) is None:
        raise HTTPException(status_code=404, detail="strategy not found")
    started = await runtime.run_strategy_now(strategy_id)
    if not started:
        raise HTTPException(status_code=409, detail="strategy already running")
    return {"queued": True}
