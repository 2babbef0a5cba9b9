from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


ElementType = Literal["link", "image", "note"]


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class StoredModel(BaseModel):
    # camelCase on the wire and in storage, snake_case in Python
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Position(StoredModel):
    x: float
    y: float


class Size(StoredModel):
    width: float
    height: float


class CanvasElement(StoredModel):
    id: str
    type: ElementType
    content: str
    url: Optional[str] = None
    position: Position
    size: Optional[Size] = None
    created_at: str = Field(default_factory=utcnow_iso)
    created_by: str = "Anonymous"


class ChatMessage(StoredModel):
    id: str
    sender: str
    msg: str
    time: str  # display string from the client, not a canonical timestamp


class ActivityLog(StoredModel):
    action: str
    user: str
    ip: str
    timestamp: str = Field(default_factory=utcnow_iso)
    details: Optional[str] = None


class Room(StoredModel):
    room_code: str
    created_at: str
    last_activity: str
    elements: list[CanvasElement] = Field(default_factory=list)
    chat_log: list[ChatMessage] = Field(default_factory=list)
    admin_pin_hash: Optional[str] = None
    owner_email: Optional[str] = None
    creator_name: Optional[str] = None
    is_locked: bool = False
    member_count: int = 0
    activity_log: list[ActivityLog] = Field(default_factory=list)

    @property
    def has_admin(self) -> bool:
        return bool(self.admin_pin_hash)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    def public_dict(self) -> dict:
        """Room as served to clients: everything but the pin hash."""
        return self.model_dump(by_alias=True, exclude={"admin_pin_hash"})

    def summary(self) -> dict:
        return {
            "roomCode": self.room_code,
            "createdAt": self.created_at,
            "lastActivity": self.last_activity,
            "messageCount": len(self.chat_log),
            "elementCount": len(self.elements),
            "memberCount": self.member_count,
            "isLocked": self.is_locked,
            "hasAdmin": self.has_admin,
            "ownerEmail": self.owner_email,
            "creatorName": self.creator_name,
            "logCount": len(self.activity_log),
        }

    def detail(self) -> dict:
        return {
            "roomCode": self.room_code,
            "createdAt": self.created_at,
            "lastActivity": self.last_activity,
            "isLocked": self.is_locked,
            "memberCount": self.member_count,
            "messageCount": len(self.chat_log),
            "elementCount": len(self.elements),
            "ownerEmail": self.owner_email,
            "creatorName": self.creator_name,
            "activityLog": [entry.model_dump(by_alias=True) for entry in self.activity_log],
        }
