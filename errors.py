from fastapi import HTTPException


class RoomNotFound(HTTPException):
    def __init__(self, detail: str = "Room not found"):
        super().__init__(status_code=404, detail=detail)


class InvalidRoomCode(HTTPException):
    def __init__(self, detail: str = "Invalid room ID"):
        super().__init__(status_code=400, detail=detail)


class RoomLocked(HTTPException):
    def __init__(self, detail: str = "Room is locked"):
        super().__init__(status_code=423, detail=detail)


class Unauthorized(HTTPException):
    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(status_code=401, detail=detail)


class Forbidden(HTTPException):
    def __init__(self, detail: str = "Invalid admin pin"):
        super().__init__(status_code=403, detail=detail)
