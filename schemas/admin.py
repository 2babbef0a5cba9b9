from pydantic import BaseModel, Field


class AdminRoomDetailRequest(BaseModel):
    room_code: str = Field(..., alias="roomCode")
