from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query

from ..core.operators import OperatorRegistry, get_operator_registry

router = APIRouter(prefix="/operators")


@router.get("")
async def list_operators(
    show_inactive: bool = Query(False, alias="showInactive"),
    registry: OperatorRegistry = Depends(get_operator_registry),
) -> List[Dict[str, Any]]:
    return [op.model_dump(by_alias=True) for op in registry.list_operators(include_inactive=show_inactive)]


@router.get("/{address}")
async def get_operator(address: str, registry: OperatorRegistry = Depends(get_operator_registry)) -> Dict[str, Any]:
    operator = registry.get(address)
    if operator is None:
        raise HTTPException(status_code=404, detail="Operator not found")
    return operator.model_dump(by_alias=True)
