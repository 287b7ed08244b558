# =======================================================================================
# keytrack/models/schemas.py - Pydantic Models
# =======================================================================================
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from pydantic.alias_generators import to_camel

from .enums import KeyAction, KeyCategory, KeyStatus, Role, USER_SCOPED_ACTIONS
from ..utils.clock import utcnow


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ========== Core records ==========

class Holder(CamelModel):
    """The user currently holding a key."""
    user_id: str
    name: Optional[str] = None
    email: Optional[str] = None


class Key(CamelModel):
    """A physical key record."""
    id: str
    key_number: str
    key_name: str
    location: str
    category: KeyCategory = "other"
    department: str = "COMMON"
    description: str = ""
    status: KeyStatus = KeyStatus.AVAILABLE
    holder: Optional[Holder] = None
    taken_at: Optional[datetime] = None
    returned_at: Optional[datetime] = None
    frequently_used: bool = False
    is_active: bool = True

    @model_validator(mode="after")
    def _holder_matches_status(self) -> "Key":
        taken = self.status == KeyStatus.UNAVAILABLE
        if taken != (self.holder is not None):
            raise ValueError("holder must be set exactly when status is 'unavailable'")
        return self

    @property
    def is_taken(self) -> bool:
        return self.status == KeyStatus.UNAVAILABLE

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Key":
        holder = None
        if row["holder_user_id"] is not None:
            holder = Holder(
                user_id=row["holder_user_id"],
                name=row["holder_name"],
                email=row["holder_email"],
            )
        return cls(
            id=row["id"],
            key_number=row["key_number"],
            key_name=row["key_name"],
            location=row["location"],
            category=row["category"],
            department=row["department"],
            description=row["description"] or "",
            status=row["status"],
            holder=holder,
            taken_at=row["taken_at"],
            returned_at=row["returned_at"],
            frequently_used=bool(row["frequently_used"]),
            is_active=bool(row["is_active"]),
        )


class Actor(CamelModel):
    """Identity supplied by the auth collaborator for every request."""
    user_id: str
    name: str
    email: str
    role: Role

    def as_holder(self) -> Holder:
        return Holder(user_id=self.user_id, name=self.name, email=self.email)


class KeyFilter(BaseModel):
    status: Optional[KeyStatus] = None
    category: Optional[KeyCategory] = None
    department: Optional[str] = None
    frequently_used: Optional[bool] = None
    search: Optional[str] = None


class TransitionEvent(CamelModel):
    """Broadcast once per committed mutation; never persisted by the core."""
    action: KeyAction
    key: Key
    user_id: Optional[str] = None
    scanner_id: Optional[str] = None
    original_holder: Optional[Holder] = None
    reason: Optional[str] = None
    batch: bool = False
    timestamp: datetime = Field(default_factory=utcnow)

    @property
    def is_user_scoped(self) -> bool:
        return self.action in USER_SCOPED_ACTIONS

    def concerned_users(self) -> List[str]:
        """Users whose personal room should hear about this event."""
        if not self.is_user_scoped:
            return []
        users: List[str] = []
        candidates = [self.user_id, self.scanner_id]
        if self.original_holder is not None:
            candidates.append(self.original_holder.user_id)
        if self.key.holder is not None:
            candidates.append(self.key.holder.user_id)
        for user_id in candidates:
            if user_id and user_id not in users:
                users.append(user_id)
        return users

    def to_message(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ========== Key requests / responses ==========

class KeyCreateRequest(CamelModel):
    key_number: str = Field(..., min_length=1, max_length=50)
    key_name: str = Field(..., min_length=1, max_length=200)
    location: str = Field(..., min_length=1, max_length=200)
    category: KeyCategory = "other"
    department: str = "COMMON"
    description: str = ""
    frequently_used: bool = False


class KeyUpdateRequest(CamelModel):
    """Descriptive attributes only; status and holder are not editable here."""
    key_number: Optional[str] = Field(None, min_length=1, max_length=50)
    key_name: Optional[str] = Field(None, min_length=1, max_length=200)
    location: Optional[str] = Field(None, min_length=1, max_length=200)
    category: Optional[KeyCategory] = None
    department: Optional[str] = None
    description: Optional[str] = None


class CollectiveReturnRequest(CamelModel):
    reason: Optional[str] = Field(None, max_length=500)


class QRScanRequest(CamelModel):
    """Body posted by the scanner: the decoded QR text or the parsed object."""
    qr_data: Union[str, Dict[str, Any]]


class KeyListResponse(CamelModel):
    success: bool = True
    data: List[Key]
    total: int


class KeyActionResponse(CamelModel):
    success: bool = True
    message: str
    data: Key
    original_holder: Optional[Holder] = None
    scanned_by: Optional[str] = None


class BatchReturnItem(CamelModel):
    key_id: str
    success: bool
    message: str
    code: Optional[str] = None
    key: Optional[Key] = None


class BatchReturnResponse(CamelModel):
    success: bool
    message: str
    results: List[BatchReturnItem]


class TokenValidationResponse(CamelModel):
    valid: bool
    kind: Optional[str] = None
    errors: List[str] = Field(default_factory=list)


class ErrorResponse(CamelModel):
    success: bool = False
    code: str
    message: str


# ========== Auth ==========

class RegisterRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    password: str = Field(..., min_length=8)
    role: Role = Role.FACULTY


class LoginRequest(CamelModel):
    email: EmailStr
    password: str


class AuthResponse(CamelModel):
    token: Optional[str] = None
    message: Optional[str] = None
    user: Optional[Actor] = None


# ========== Health for dashboard ==========

class HealthResponse(CamelModel):
    status: str                 # "ok" | "error"
    data_available: bool
    message: Optional[str] = None


# ========== Dashboard ==========

class Summary(CamelModel):
    total_keys: int
    available_keys: int
    unavailable_keys: int
    frequently_used_keys: int
    connected_clients: int = 0


class SummaryResponse(CamelModel):
    summary: Summary
