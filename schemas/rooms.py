from typing import Any, Literal, Optional

from pydantic import BaseModel, field_validator

from models import Position, StoredModel
from stealth import is_valid_pin


class RoomRequest(StoredModel):
    room_code: Optional[str] = None  # omitted on create -> generated
    action: Literal["create", "join"]
    admin_pin: Optional[str] = None
    owner_email: Optional[str] = None
    creator_name: Optional[str] = None
    user_name: Optional[str] = None

    @field_validator("admin_pin")
    @classmethod
    def check_admin_pin(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not is_valid_pin(value):
            raise ValueError("admin pin must be 4 to 6 digits")
        return value


class RoomSummary(StoredModel):
    room_code: str
    created_at: str
    element_count: int
    message_count: int
    is_locked: bool
    has_admin: bool


class RoomLookupResponse(StoredModel):
    exists: bool
    token: Optional[str] = None
    room: Optional[RoomSummary] = None


class SyncRequest(BaseModel):
    action: str
    data: dict[str, Any] = {}


class MoveElementData(BaseModel):
    id: str
    position: Position


class RemoveElementData(BaseModel):
    id: str


class RoomAdminRequest(BaseModel):
    pin: str
    action: str
