# =======================================================================================
# keytrack/services/qr_tokens.py - QR Handoff Token Generator / Validator
# =======================================================================================
"""Handoff tokens carried in QR codes.

Tokens are not signed and the server keeps no ledger of issued or consumed
tokens. Expiry is an advisory countdown shown by the client. What stops a
stale or replayed token is the consuming transition re-reading the key's
status (a consumed request token finds the key already taken).
"""
import json
import secrets
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, Field, ValidationError

from ..config import config
from ..models.tokens import (
    BatchReturnToken,
    HandoffToken,
    RequestToken,
    ReturnToken,
    handoff_token_adapter,
)
from ..utils.clock import utcnow
from ..utils.exceptions import InvalidRequest, MalformedToken
from ..utils.validators import normalize_key_ids

RawToken = Union[str, bytes, Dict[str, Any]]


class ValidationResult(BaseModel):
    valid: bool
    kind: Optional[str] = None
    errors: List[str] = Field(default_factory=list)


def _new_token_id(prefix: str) -> str:
    return f"{prefix}-{secrets.token_hex(8)}"


# ----------------------------------------------------------------------
# Generation
# ----------------------------------------------------------------------
def generate_request_token(key_id: str, user_id: str) -> RequestToken:
    if not key_id:
        raise InvalidRequest("Key ID is required for QR generation")
    if not user_id:
        raise InvalidRequest("User ID is required for QR generation")
    return RequestToken(key_id=str(key_id), user_id=str(user_id),
                        token_id=_new_token_id("req"), issued_at=utcnow())


def generate_return_token(key_id: str, user_id: str) -> ReturnToken:
    if not key_id:
        raise InvalidRequest("Key ID is required for QR generation")
    if not user_id:
        raise InvalidRequest("User ID is required for QR generation")
    return ReturnToken(key_id=str(key_id), user_id=str(user_id),
                       token_id=_new_token_id("ret"), issued_at=utcnow())


def generate_batch_return_token(key_ids: Sequence[Any], user_id: str) -> BatchReturnToken:
    ids = normalize_key_ids(key_ids)
    if not ids:
        raise InvalidRequest("At least one key ID is required for batch return QR generation")
    if not user_id:
        raise InvalidRequest("User ID is required for QR generation")
    return BatchReturnToken(key_ids=ids, user_id=str(user_id),
                            token_id=_new_token_id("batch-ret"), issued_at=utcnow())


# ----------------------------------------------------------------------
# Parsing / validation
# ----------------------------------------------------------------------
def _decode(raw: RawToken) -> Any:
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if not isinstance(raw, str):
        raise MalformedToken("QR data must be a JSON object")
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MalformedToken("Invalid QR code format - not valid JSON") from exc


def _format_errors(exc: ValidationError) -> List[str]:
    errors = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err["loc"])
        errors.append(f"{location}: {err['msg']}" if location else err["msg"])
    return errors


def parse(raw: RawToken) -> HandoffToken:
    """Decode scanned QR data into a typed token or raise MalformedToken."""
    data = _decode(raw)
    if not isinstance(data, dict):
        raise MalformedToken("QR data must be a JSON object")
    try:
        return handoff_token_adapter.validate_python(data)
    except ValidationError as exc:
        raise MalformedToken("Invalid QR code data - " + "; ".join(_format_errors(exc))) from exc


def validate(raw: RawToken) -> ValidationResult:
    """Structural check only: no expiry, no single-use bookkeeping."""
    try:
        data = _decode(raw)
    except MalformedToken as exc:
        return ValidationResult(valid=False, errors=[exc.message])
    if not isinstance(data, dict):
        return ValidationResult(valid=False, errors=["QR data must be a JSON object"])

    kind = data.get("kind")
    try:
        token = handoff_token_adapter.validate_python(data)
    except ValidationError as exc:
        return ValidationResult(valid=False, kind=kind if isinstance(kind, str) else None,
                                errors=_format_errors(exc))
    return ValidationResult(valid=True, kind=token.kind)


def expect(token: HandoffToken, token_type: type) -> Any:
    """Narrow a parsed token to the kind an endpoint consumes."""
    if not isinstance(token, token_type):
        expected = token_type.model_fields["kind"].default
        raise MalformedToken(f"Expected a '{expected}' QR code, got '{token.kind}'")
    return token


# ----------------------------------------------------------------------
# Advisory countdown (client side)
# ----------------------------------------------------------------------
def default_ttl(token: HandoffToken) -> int:
    if isinstance(token, BatchReturnToken):
        return config.QR_BATCH_VALIDITY_SECONDS
    return config.QR_VALIDITY_SECONDS


def _age_seconds(token: HandoffToken, now: Optional[datetime]) -> float:
    issued = token.issued_at
    if issued.tzinfo is not None:
        issued = issued.astimezone(timezone.utc).replace(tzinfo=None)
    return ((now or utcnow()) - issued).total_seconds()


def seconds_remaining(token: HandoffToken, ttl: Optional[int] = None,
                      now: Optional[datetime] = None) -> int:
    ttl = default_ttl(token) if ttl is None else ttl
    return max(0, int(ttl - _age_seconds(token, now)))


def is_expired(token: HandoffToken, ttl: Optional[int] = None,
               now: Optional[datetime] = None) -> bool:
    ttl = default_ttl(token) if ttl is None else ttl
    return _age_seconds(token, now) >= ttl
