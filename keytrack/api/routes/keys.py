# =======================================================================================
# keytrack/api/routes/keys.py - Key Endpoints
# =======================================================================================
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query

from ...models.enums import KeyCategory, KeyStatus
from ...models.schemas import (
    Actor,
    CollectiveReturnRequest,
    KeyActionResponse,
    KeyCreateRequest,
    KeyFilter,
    KeyListResponse,
    KeyUpdateRequest,
    QRScanRequest,
)
from ...services.key_admin import KeyAdminService
from ...services.key_store import KeyStore
from ...services.key_transitions import KeyTransitionService
from ..dependencies import get_current_actor, get_key_admin, get_key_store, get_transitions

router = APIRouter()


def _listing(keys) -> KeyListResponse:
    return KeyListResponse(data=keys, total=len(keys))


# ---------- listings (static paths first so they win over /keys/{key_id}) ----------

@router.get("/keys", response_model=KeyListResponse)
def list_keys(
    status: Optional[KeyStatus] = None,
    category: Optional[KeyCategory] = None,
    department: Optional[str] = None,
    frequently_used: Optional[bool] = Query(None, alias="frequentlyUsed"),
    search: Optional[str] = None,
    store: KeyStore = Depends(get_key_store),
    actor: Actor = Depends(get_current_actor),
):
    key_filter = KeyFilter(status=status, category=category, department=department,
                           frequently_used=frequently_used, search=search)
    return _listing(store.list_keys(key_filter))


@router.get("/keys/my-taken", response_model=KeyListResponse)
def my_taken_keys(
    transitions: KeyTransitionService = Depends(get_transitions),
    actor: Actor = Depends(get_current_actor),
):
    return _listing(transitions.my_taken(actor))


@router.get("/keys/all-taken", response_model=KeyListResponse)
def all_taken_keys(
    transitions: KeyTransitionService = Depends(get_transitions),
    actor: Actor = Depends(get_current_actor),
):
    return _listing(transitions.all_taken(actor))


@router.get("/keys/frequently-used", response_model=KeyListResponse)
def frequently_used_keys(
    store: KeyStore = Depends(get_key_store),
    actor: Actor = Depends(get_current_actor),
):
    return _listing(store.list_keys(KeyFilter(frequently_used=True)))


@router.get("/keys/my-frequently-used", response_model=KeyListResponse)
def my_frequently_used_keys(
    transitions: KeyTransitionService = Depends(get_transitions),
    actor: Actor = Depends(get_current_actor),
):
    return _listing(transitions.most_used(actor))


# ---------- QR scanner ----------

@router.post("/keys/qr-scan/request", response_model=KeyActionResponse)
def qr_scan_request(
    request: QRScanRequest,
    transitions: KeyTransitionService = Depends(get_transitions),
    actor: Actor = Depends(get_current_actor),
):
    return transitions.scan_request(request.qr_data, actor)


@router.post("/keys/qr-scan/return", response_model=KeyActionResponse)
def qr_scan_return(
    request: QRScanRequest,
    transitions: KeyTransitionService = Depends(get_transitions),
    actor: Actor = Depends(get_current_actor),
):
    return transitions.scan_return(request.qr_data, actor)


# ---------- provisioning ----------

@router.post("/keys", response_model=KeyActionResponse, status_code=201)
def create_key(
    request: KeyCreateRequest,
    admin: KeyAdminService = Depends(get_key_admin),
    actor: Actor = Depends(get_current_actor),
):
    key = admin.create(request, actor)
    return KeyActionResponse(message="Key created successfully", data=key)


@router.put("/keys/{key_id}", response_model=KeyActionResponse)
def update_key(
    key_id: str,
    request: KeyUpdateRequest,
    admin: KeyAdminService = Depends(get_key_admin),
    actor: Actor = Depends(get_current_actor),
):
    key = admin.update(key_id, request, actor)
    return KeyActionResponse(message="Key updated successfully", data=key)


@router.delete("/keys/{key_id}", response_model=KeyActionResponse)
def delete_key(
    key_id: str,
    admin: KeyAdminService = Depends(get_key_admin),
    actor: Actor = Depends(get_current_actor),
):
    key = admin.delete(key_id, actor)
    return KeyActionResponse(message="Key deleted successfully", data=key)


# ---------- single key ----------

@router.get("/keys/{key_id}", response_model=KeyActionResponse)
def get_key(
    key_id: str,
    store: KeyStore = Depends(get_key_store),
    actor: Actor = Depends(get_current_actor),
):
    return KeyActionResponse(message="Key retrieved successfully", data=store.get_key(key_id))


@router.post("/keys/{key_id}/take", response_model=KeyActionResponse)
def take_key(
    key_id: str,
    transitions: KeyTransitionService = Depends(get_transitions),
    actor: Actor = Depends(get_current_actor),
):
    return transitions.take(key_id, actor)


@router.post("/keys/{key_id}/return", response_model=KeyActionResponse)
def return_key(
    key_id: str,
    transitions: KeyTransitionService = Depends(get_transitions),
    actor: Actor = Depends(get_current_actor),
):
    return transitions.return_key(key_id, actor)


@router.post("/keys/{key_id}/collective-return", response_model=KeyActionResponse)
def collective_return_key(
    key_id: str,
    request: Optional[CollectiveReturnRequest] = Body(None),
    transitions: KeyTransitionService = Depends(get_transitions),
    actor: Actor = Depends(get_current_actor),
):
    reason = request.reason if request else None
    return transitions.collective_return(key_id, actor, reason=reason)


@router.post("/keys/{key_id}/toggle-frequent", response_model=KeyActionResponse)
def toggle_frequent(
    key_id: str,
    transitions: KeyTransitionService = Depends(get_transitions),
    actor: Actor = Depends(get_current_actor),
):
    return transitions.toggle_frequent(key_id, actor)
