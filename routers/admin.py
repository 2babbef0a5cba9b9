from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from backend import RoomStore, get_room_store
from constants import ADMIN_SECRET_KEY
from errors import RoomNotFound, Unauthorized
from schemas.admin import AdminRoomDetailRequest
from logging_config import get_logger

logger = get_logger(__name__)

admin_router = APIRouter(prefix="/admin", tags=["admin"])


def require_admin_key(
    key: Optional[str] = Query(None),
    x_admin_key: Optional[str] = Header(None),
):
    # Plain comparison against the configured secret, no sessions or rate limiting
    supplied = key or x_admin_key
    if not ADMIN_SECRET_KEY or supplied != ADMIN_SECRET_KEY:
        logger.warning("Admin request rejected: bad or missing admin key")
        raise Unauthorized()


@admin_router.get("", dependencies=[Depends(require_admin_key)])
async def list_rooms(store: RoomStore = Depends(get_room_store)):
    rooms = [room.summary() for room in store.list_all()]
    logger.info(f"Admin listing: {len(rooms)} rooms")
    return {
        "totalRooms": len(rooms),
        "totalMessages": sum(r["messageCount"] for r in rooms),
        "totalElements": sum(r["elementCount"] for r in rooms),
        "demoMode": store.is_demo,
        "rooms": rooms,
    }


@admin_router.delete("", dependencies=[Depends(require_admin_key)])
async def delete_room(room: Optional[str] = Query(None), store: RoomStore = Depends(get_room_store)):
    if not room:
        raise HTTPException(status_code=400, detail="Missing room code")
    store.delete(room)
    return {"success": True, "message": f"Room {room} deleted"}


@admin_router.post("", dependencies=[Depends(require_admin_key)])
async def room_detail(body: AdminRoomDetailRequest, store: RoomStore = Depends(get_room_store)):
    room = store.get(body.room_code)
    if not room:
        raise RoomNotFound()
    return room.detail()


@admin_router.api_route("/migrate", methods=["GET", "POST"], dependencies=[Depends(require_admin_key)])
async def migrate(store: RoomStore = Depends(get_room_store)):
    """Re-index every stored room and backfill documents missing admin fields."""
    result = store.rebuild_index()
    return {"success": True, "message": "Migration complete", **result}
