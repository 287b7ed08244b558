# =======================================================================================
# keytrack/client/api.py - HTTP Client for the Key API
# =======================================================================================
import logging
from typing import Any, Dict, List, Optional, Union

import httpx

from ..models.schemas import Actor, BatchReturnResponse, Key, KeyActionResponse, TokenValidationResponse
from ..utils.exceptions import KeyTrackError, error_from_code

logger = logging.getLogger(__name__)

QRData = Union[str, Dict[str, Any]]


class KeysApiClient:
    """Async client for the /api routes.

    Error bodies are turned back into the matching KeyTrackError subclass, so
    callers can tell KeyNotAvailable ("someone beat you to it") apart from
    other failures.
    """

    def __init__(self, base_url: str, token: Optional[str] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None, timeout: float = 10.0):
        self.token = token
        self._http = httpx.AsyncClient(base_url=base_url.rstrip("/"), transport=transport, timeout=timeout)

    async def __aenter__(self) -> "KeysApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------
    async def _request(self, method: str, path: str, **kwargs) -> Any:
        headers = kwargs.pop("headers", {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        response = await self._http.request(method, f"/api{path}", headers=headers, **kwargs)

        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = {}
            error = error_from_code(body.get("code"), body.get("message"))
            if type(error) is KeyTrackError:
                error.status_code = response.status_code
            logger.debug("%s %s -> %s %s", method, path, response.status_code, error.code)
            raise error
        return response.json()

    @staticmethod
    def _keys(body: Dict[str, Any]) -> List[Key]:
        return [Key.model_validate(item) for item in body.get("data", [])]

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------
    async def login(self, email: str, password: str) -> Actor:
        body = await self._request("POST", "/auth/login", json={"email": email, "password": password})
        self.token = body["token"]
        return Actor.model_validate(body["user"])

    async def me(self) -> Actor:
        body = await self._request("GET", "/auth/me")
        return Actor.model_validate(body["user"])

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def list_keys(self, **filters: Any) -> List[Key]:
        params = {k: v for k, v in filters.items() if v is not None}
        if "frequently_used" in params:
            params["frequentlyUsed"] = str(params.pop("frequently_used")).lower()
        return self._keys(await self._request("GET", "/keys", params=params))

    async def my_taken(self) -> List[Key]:
        return self._keys(await self._request("GET", "/keys/my-taken"))

    async def get_key(self, key_id: str) -> Key:
        body = await self._request("GET", f"/keys/{key_id}")
        return Key.model_validate(body["data"])

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    async def _action(self, path: str, json: Optional[Dict[str, Any]] = None) -> KeyActionResponse:
        return KeyActionResponse.model_validate(await self._request("POST", path, json=json))

    async def take(self, key_id: str) -> KeyActionResponse:
        return await self._action(f"/keys/{key_id}/take")

    async def return_key(self, key_id: str) -> KeyActionResponse:
        return await self._action(f"/keys/{key_id}/return")

    async def collective_return(self, key_id: str, reason: Optional[str] = None) -> KeyActionResponse:
        return await self._action(f"/keys/{key_id}/collective-return", {"reason": reason})

    async def toggle_frequent(self, key_id: str) -> KeyActionResponse:
        return await self._action(f"/keys/{key_id}/toggle-frequent")

    async def scan_request(self, qr_data: QRData) -> KeyActionResponse:
        return await self._action("/keys/qr-scan/request", {"qrData": qr_data})

    async def scan_return(self, qr_data: QRData) -> KeyActionResponse:
        return await self._action("/keys/qr-scan/return", {"qrData": qr_data})

    async def batch_return(self, qr_data: QRData) -> BatchReturnResponse:
        body = await self._request("POST", "/qr/batch-return", json={"qrData": qr_data})
        return BatchReturnResponse.model_validate(body)

    async def validate_qr(self, qr_data: QRData) -> TokenValidationResponse:
        body = await self._request("POST", "/qr/validate", json={"qrData": qr_data})
        return TokenValidationResponse.model_validate(body)
