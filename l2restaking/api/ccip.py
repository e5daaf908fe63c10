from typing import Any, Dict

from fastapi import APIRouter, Depends

from ..core.recovery.errors import RecoverableError, UnrecoverableError
from ..providers.ccip import CCIPClient, get_ccip_client
from .errors import to_http_exception

router = APIRouter(prefix="/ccip")


@router.get("/message/{message_id}")
async def get_ccip_message(message_id: str, ccip: CCIPClient = Depends(get_ccip_client)) -> Dict[str, Any]:
    try:
        message = await ccip.get_message(message_id)
    except (RecoverableError, UnrecoverableError) as exc:
        raise to_http_exception(exc) from exc
    return message.model_dump(by_alias=True, mode="json")
