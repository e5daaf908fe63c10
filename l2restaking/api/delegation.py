from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..core.recovery.errors import RecoverableError, UnrecoverableError
from ..core.signing.service import SigningService, get_signing_service
from .errors import to_http_exception

router = APIRouter(prefix="/delegation")


class DelegationSignRequest(BaseModel):
    staker: str = Field(..., description="Address delegating its stake")
    operator: str = Field(..., description="Operator the staker delegates to")
    expiry: Optional[int] = Field(default=None, description="Unix expiry; defaults to seven days out")


@router.post("/sign")
async def sign_delegation(
    request: DelegationSignRequest,
    signer: SigningService = Depends(get_signing_service),
) -> Dict[str, Any]:
    """Sign a DelegationApproval with the operator's registered key."""
    try:
        result = await signer.sign_delegation_approval(
            request.staker,
            request.operator,
            expiry=request.expiry,
        )
    except (RecoverableError, UnrecoverableError) as exc:
        raise to_http_exception(exc) from exc
    return result.model_dump(by_alias=True)
