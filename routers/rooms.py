from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError

from backend import RoomStore, get_room_store
from errors import RoomNotFound, InvalidRoomCode, RoomLocked, Forbidden
from models import CanvasElement, ChatMessage
from schemas.rooms import (
    RoomRequest, RoomLookupResponse, RoomSummary, SyncRequest, MoveElementData, RemoveElementData,
    RoomAdminRequest,
)
from stealth import decode_room_code, encode_room_code, generate_room_code, is_valid_room_code, verify_pin
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])


def get_client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for and forwarded_for.split(",")[0].strip():
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


def resolve_room_code(token: str) -> str:
    """Token from the URL -> room code. Validation runs on the decoded code."""
    room_code = decode_room_code(token)
    if not is_valid_room_code(room_code):
        logger.warning(f"Rejected invalid room token {token!r}")
        raise InvalidRoomCode()
    return room_code


def generate_unique_room_code(store: RoomStore) -> str:
    for _ in range(10):
        room_code = generate_room_code()
        if not store.exists(room_code):
            return room_code
    logger.error("Failed to generate a unique room code after 10 attempts")
    raise HTTPException(status_code=503, detail="Could not allocate a room code")


@rooms_router.get("/{token}", response_model=RoomLookupResponse)
async def get_room(token: str, store: RoomStore = Depends(get_room_store)):
    room_code = resolve_room_code(token)
    room = store.get(room_code)
    if not room:
        return RoomLookupResponse(exists=False)

    return RoomLookupResponse(
        exists=True,
        token=token,
        room=RoomSummary(
            room_code=room.room_code,
            created_at=room.created_at,
            element_count=len(room.elements),
            message_count=len(room.chat_log),
            is_locked=room.is_locked,
            has_admin=room.has_admin,
        ),
    )


@rooms_router.post("/")
async def create_or_join_room(body: RoomRequest, request: Request, store: RoomStore = Depends(get_room_store)):
    # { "roomCode": "Falcon99", "action": "create" | "join", "adminPin": "1234", "creatorName": "..." }
    # Response: { "success": true, "token": "RmFsY29uOTk", "room": {...}, "created": true }
    ip = get_client_ip(request)
    room_code = body.room_code
    if not room_code:
        if body.action != "create":
            raise HTTPException(status_code=400, detail="Missing room code")
        room_code = generate_unique_room_code(store)
    logger.info(f"Room {body.action} request for {room_code} from {ip}")

    if not is_valid_room_code(room_code):
        logger.warning(f"Room {body.action} failed: invalid room code {room_code!r}")
        raise InvalidRoomCode("Invalid room code format")

    exists = store.exists(room_code)
    token = encode_room_code(room_code)

    if body.action == "create":
        if exists:
            logger.warning(f"Room create failed: {room_code} already exists")
            raise HTTPException(status_code=409, detail="Room already exists")
        room = store.create(
            room_code,
            admin_pin=body.admin_pin,
            owner_email=body.owner_email,
            creator_name=body.creator_name,
            ip=ip,
        )
        return {"success": True, "token": token, "room": room.public_dict()}

    if not exists:
        # Joining an unused code opens the room
        room = store.create(room_code, creator_name=body.user_name or body.creator_name, ip=ip)
        return {"success": True, "token": token, "room": room.public_dict(), "created": True}

    room = store.get(room_code)
    if room and room.is_locked:
        logger.warning(f"Join rejected: room {room_code} is locked")
        raise RoomLocked()

    room = store.record_join(room_code, body.user_name or "Anonymous", ip) or room
    if not room:
        raise RoomNotFound()
    logger.info(f"Join successful for {room_code}: {room.member_count} joins so far")
    return {"success": True, "token": token, "room": room.public_dict()}


@rooms_router.get("/{token}/sync")
async def get_room_state(token: str, store: RoomStore = Depends(get_room_store)):
    room_code = resolve_room_code(token)
    room = store.get(room_code)
    if not room:
        raise RoomNotFound()
    state = room.public_dict()
    return {"elements": state["elements"], "chatLog": state["chatLog"]}


@rooms_router.post("/{token}/sync")
async def sync_room(token: str, body: SyncRequest, store: RoomStore = Depends(get_room_store)):
    room_code = resolve_room_code(token)
    if not store.get(room_code):
        raise RoomNotFound()

    try:
        if body.action == "add-message":
            store.add_chat_message(room_code, ChatMessage.model_validate(body.data))
        elif body.action == "add-element":
            store.add_element(room_code, CanvasElement.model_validate(body.data))
        elif body.action == "move-element":
            move = MoveElementData.model_validate(body.data)
            store.update_element_position(room_code, move.id, move.position)
        elif body.action == "remove-element":
            store.remove_element(room_code, RemoveElementData.model_validate(body.data).id)
        else:
            raise HTTPException(status_code=400, detail="Unknown action")
    except ValidationError as e:
        logger.warning(f"Sync {body.action} rejected for room {room_code}: {e.error_count()} invalid fields")
        raise HTTPException(status_code=400, detail="Invalid data")

    logger.debug(f"Sync {body.action} applied to room {room_code}")
    return {"success": True}


@rooms_router.post("/{token}/admin")
async def room_admin(token: str, body: RoomAdminRequest, request: Request, store: RoomStore = Depends(get_room_store)):
    room_code = resolve_room_code(token)
    room = store.get(room_code)
    if not room:
        raise RoomNotFound()

    ip = get_client_ip(request)
    if not room.admin_pin_hash or not verify_pin(body.pin, room.admin_pin_hash):
        logger.warning(f"Room admin failed: bad pin for room {room_code} from {ip}")
        raise Forbidden()

    action = body.action
    logger.info(f"Room admin action {action} on {room_code} from {ip}")

    if action == "verify":
        return {"success": True, "room": room.detail()}

    if action == "get-logs":
        return {"success": True, "logs": room.detail()["activityLog"]}

    if action == "delete":
        store.add_activity_log(room_code, "room_deleted", "Admin", ip)
        store.delete(room_code)
        return {"success": True, "message": "Room deleted"}

    changes = {
        "clear-chat": ({"chat_log": []}, "chat_cleared", "Chat cleared"),
        "lock": ({"is_locked": True}, "room_locked", "Room locked"),
        "unlock": ({"is_locked": False}, "room_unlocked", "Room unlocked"),
        "clear-canvas": ({"elements": []}, "canvas_cleared", "Canvas cleared"),
    }
    if action not in changes:
        raise HTTPException(status_code=400, detail="Unknown action")

    fields, logged_action, message = changes[action]
    store.update(room_code, **fields)
    store.add_activity_log(room_code, logged_action, "Admin", ip)
    return {"success": True, "message": message}
