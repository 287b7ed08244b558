# =======================================================================================
# keytrack/api/routes/qr.py - QR Code Endpoints
# =======================================================================================
from fastapi import APIRouter, Depends

from ...models.schemas import Actor, BatchReturnResponse, QRScanRequest, TokenValidationResponse
from ...services import qr_tokens
from ...services.key_transitions import KeyTransitionService
from ..dependencies import get_current_actor, get_transitions

router = APIRouter()


@router.post("/qr/batch-return", response_model=BatchReturnResponse)
def batch_return(
    request: QRScanRequest,
    transitions: KeyTransitionService = Depends(get_transitions),
    actor: Actor = Depends(get_current_actor),
):
    return transitions.batch_return(request.qr_data, actor)


@router.post("/qr/validate", response_model=TokenValidationResponse)
def validate_qr(request: QRScanRequest, actor: Actor = Depends(get_current_actor)):
    result = qr_tokens.validate(request.qr_data)
    return TokenValidationResponse(valid=result.valid, kind=result.kind, errors=result.errors)
