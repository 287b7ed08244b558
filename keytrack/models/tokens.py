# =======================================================================================
# keytrack/models/tokens.py - QR Handoff Token Models
# =======================================================================================
from datetime import datetime
from typing import Annotated, List, Literal, Union

from pydantic import Field, TypeAdapter

from .schemas import CamelModel


class _TokenBase(CamelModel):
    user_id: str = Field(..., min_length=1)
    token_id: str = Field(..., min_length=1)
    issued_at: datetime

    def to_qr_payload(self) -> str:
        """JSON text encoded into the QR image."""
        return self.model_dump_json(by_alias=True)


class RequestToken(_TokenBase):
    """Faculty asks security to hand over one key."""
    kind: Literal["request"] = "request"
    key_id: str = Field(..., min_length=1)


class ReturnToken(_TokenBase):
    """Faculty hands one key back to security."""
    kind: Literal["return"] = "return"
    key_id: str = Field(..., min_length=1)


class BatchReturnToken(_TokenBase):
    """A volunteer returns several keys, possibly held by other people."""
    kind: Literal["batch-return"] = "batch-return"
    key_ids: List[str] = Field(..., min_length=1)


HandoffToken = Annotated[
    Union[RequestToken, ReturnToken, BatchReturnToken],
    Field(discriminator="kind"),
]

handoff_token_adapter: TypeAdapter = TypeAdapter(HandoffToken)
