import json
from functools import wraps
from typing import Optional

import redis
from fastapi import Request
from pydantic import ValidationError

from constants import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD, ROOM_TTL, CHAT_LOG_LIMIT, ACTIVITY_LOG_LIMIT
from redis_keys import REDIS_ROOM_KEY, REDIS_ROOM_PATTERN, REDIS_ROOMS_INDEX_KEY
from models import Room, CanvasElement, ChatMessage, ActivityLog, Position, utcnow_iso
from stealth import hash_pin
from logging_config import get_logger

logger = get_logger(__name__)


def degrade_on_store_error(default=None):
    """Swallow Redis failures: log them and hand back `default` instead.

    `default` may be a zero-argument callable for mutable defaults.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            try:
                return func(self, *args, **kwargs)
            except redis.RedisError as e:
                logger.error(f"Redis {func.__name__} failed: {e}", exc_info=True)
                return default() if callable(default) else default
        return wrapper
    return decorator


class RoomStore:
    """Room documents keyed by room code, plus an index for listing them all.

    Subclasses only move raw JSON documents and index entries around; every
    room operation is built here on top of those primitives. Compound
    operations read the whole document, change it in memory and write the
    whole document back. There is no locking, so two writers racing on the
    same room can lose one of the updates.
    """

    is_demo = False
    backend_name = "base"

    # -- primitives -------------------------------------------------------

    def _load_raw(self, room_code: str) -> Optional[str]:
        raise NotImplementedError

    def _load_many_raw(self, room_codes: list) -> Optional[list]:
        """Documents for `room_codes` in order, None for missing ones.
        Returns None altogether when the store can't be read."""
        raise NotImplementedError

    def _store_raw(self, room_code: str, payload: str):
        raise NotImplementedError

    def _has(self, room_code: str) -> bool:
        raise NotImplementedError

    def _drop(self, room_code: str):
        raise NotImplementedError

    def _index_add(self, room_code: str):
        raise NotImplementedError

    def _index_members(self) -> set:
        raise NotImplementedError

    def _index_remove(self, room_codes: list):
        raise NotImplementedError

    def _scan_codes(self) -> list:
        raise NotImplementedError

    def ping(self) -> bool:
        raise NotImplementedError

    # -- rooms ------------------------------------------------------------

    @staticmethod
    def _parse(room_code: str, payload: Optional[str]) -> Optional[Room]:
        if payload is None:
            return None
        try:
            return Room.model_validate_json(payload)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable document for room {room_code}: {e}")
            return None

    def _save(self, room: Room):
        self._store_raw(room.room_code, room.to_json())

    def _apply(self, room: Room, **fields) -> Room:
        unknown = set(fields) - set(Room.model_fields)
        if unknown:
            raise ValueError(f"Unknown room fields: {sorted(unknown)}")
        merged = Room.model_validate({
            **room.model_dump(),
            **fields,
            "last_activity": utcnow_iso(),
        })
        self._save(merged)
        return merged

    def get(self, room_code: str) -> Optional[Room]:
        logger.debug(f"Fetching room {room_code}")
        room = self._parse(room_code, self._load_raw(room_code))
        if room is None:
            logger.debug(f"Room {room_code} not found")
        return room

    def exists(self, room_code: str) -> bool:
        return self._has(room_code)

    def create(self, room_code: str, admin_pin: Optional[str] = None, owner_email: Optional[str] = None,
               creator_name: Optional[str] = None, ip: str = "unknown") -> Room:
        """Write a fresh room for `room_code`, replacing whatever was there.

        Callers check `exists` first when they care. Only the hash of
        `admin_pin` is kept.
        """
        now = utcnow_iso()
        room = Room(
            room_code=room_code,
            created_at=now,
            last_activity=now,
            admin_pin_hash=hash_pin(admin_pin) if admin_pin else None,
            owner_email=owner_email,
            creator_name=creator_name,
            activity_log=[ActivityLog(
                action="room_created",
                user=creator_name or "Anonymous",
                ip=ip,
                timestamp=now,
            )],
        )
        self._save(room)
        self._index_add(room_code)
        logger.info(f"Room {room_code} created (admin={room.has_admin}, demo={self.is_demo})")
        return room

    def update(self, room_code: str, **fields):
        """Shallow-merge `fields` into the room and rewrite it. Silently does
        nothing if the room is gone."""
        room = self.get(room_code)
        if room is None:
            logger.debug(f"Update skipped: room {room_code} not found")
            return
        self._apply(room, **fields)
        logger.debug(f"Room {room_code} updated: {sorted(fields)}")

    def delete(self, room_code: str):
        logger.info(f"Deleting room {room_code}")
        self._drop(room_code)

    def list_all(self) -> list:
        """Every indexed room, most recently active first.

        Index entries whose document has expired are pruned on the way.
        """
        codes = sorted(self._index_members())
        if not codes:
            return []
        payloads = self._load_many_raw(codes)
        if payloads is None:
            return []

        rooms = []
        stale = []
        for code, payload in zip(codes, payloads):
            room = self._parse(code, payload)
            if room is None:
                stale.append(code)
            else:
                rooms.append(room)

        if stale:
            logger.info(f"Pruning {len(stale)} expired rooms from index: {stale}")
            self._index_remove(stale)

        rooms.sort(key=lambda r: r.last_activity, reverse=True)
        return rooms

    # -- canvas, chat, activity -------------------------------------------

    def add_element(self, room_code: str, element: CanvasElement):
        room = self.get(room_code)
        if room is None:
            return
        self._apply(room, elements=room.elements + [element])

    def update_element_position(self, room_code: str, element_id: str, position: Position):
        room = self.get(room_code)
        if room is None:
            return
        for element in room.elements:
            if element.id == element_id:
                element.position = position
                self._apply(room, elements=room.elements)
                return
        logger.debug(f"Element {element_id} not found in room {room_code}")

    def remove_element(self, room_code: str, element_id: str):
        room = self.get(room_code)
        if room is None:
            return
        self._apply(room, elements=[e for e in room.elements if e.id != element_id])

    def add_chat_message(self, room_code: str, message: ChatMessage):
        room = self.get(room_code)
        if room is None:
            return
        self._apply(room, chat_log=(room.chat_log + [message])[-CHAT_LOG_LIMIT:])

    def add_activity_log(self, room_code: str, action: str, user: str, ip: str, details: Optional[str] = None):
        room = self.get(room_code)
        if room is None:
            return
        entry = ActivityLog(action=action, user=user, ip=ip, details=details)
        self._apply(room, activity_log=(room.activity_log + [entry])[-ACTIVITY_LOG_LIMIT:])
        logger.debug(f"Activity {action} by {user} ({ip}) logged for room {room_code}")

    def record_join(self, room_code: str, user: str, ip: str) -> Optional[Room]:
        room = self.get(room_code)
        if room is None:
            return None
        entry = ActivityLog(action="user_joined", user=user, ip=ip)
        return self._apply(
            room,
            member_count=room.member_count + 1,
            activity_log=(room.activity_log + [entry])[-ACTIVITY_LOG_LIMIT:],
        )

    # -- maintenance ------------------------------------------------------

    def rebuild_index(self) -> dict:
        """Re-add every stored room to the index and backfill documents
        written before the admin fields existed."""
        codes = []
        updated = 0
        for code in self._scan_codes():
            codes.append(code)
            self._index_add(code)

            payload = self._load_raw(code)
            if payload is None:
                continue
            try:
                data = json.loads(payload)
            except json.JSONDecodeError:
                logger.warning(f"Skipping backfill of unreadable room {code}")
                continue
            if data.get("activityLog") is not None:
                continue

            data["activityLog"] = [ActivityLog(action="migrated", user="System", ip="migration").model_dump(by_alias=True)]
            if data.get("isLocked") is None:
                data["isLocked"] = False
            if data.get("memberCount") is None:
                data["memberCount"] = 0
            data["creatorName"] = data.get("creatorName") or "Unknown"
            self._store_raw(code, json.dumps(data))
            updated += 1

        logger.info(f"Index rebuilt: {len(codes)} rooms indexed, {updated} backfilled")
        return {"migrated": len(codes), "updated": updated, "rooms": codes}


class RedisRoomStore(RoomStore):
    """Rooms as JSON strings under `room:{code}` with a TTL refreshed on
    every write, indexed in the `rooms:index` set.

    Redis errors never escape: reads come back empty and writes are dropped,
    both logged.
    """

    backend_name = "redis"

    def __init__(self, redis_client: redis.Redis, ttl: int = ROOM_TTL):
        self.redis_client = redis_client
        self.ttl = ttl
        logger.info(f"Initializing RedisRoomStore with TTL {ttl} seconds")

    @staticmethod
    def _key(room_code: str) -> str:
        return REDIS_ROOM_KEY.format(slug=room_code)

    @degrade_on_store_error(default=None)
    def _load_raw(self, room_code):
        return self.redis_client.get(self._key(room_code))

    @degrade_on_store_error(default=None)
    def _load_many_raw(self, room_codes):
        return self.redis_client.mget([self._key(code) for code in room_codes])

    @degrade_on_store_error(default=None)
    def _store_raw(self, room_code, payload):
        if self.ttl:
            self.redis_client.set(self._key(room_code), payload, ex=self.ttl)
        else:
            self.redis_client.set(self._key(room_code), payload)

    @degrade_on_store_error(default=False)
    def _has(self, room_code):
        return self.redis_client.exists(self._key(room_code)) == 1

    @degrade_on_store_error(default=None)
    def _drop(self, room_code):
        deleted = self.redis_client.delete(self._key(room_code))
        unindexed = self.redis_client.srem(REDIS_ROOMS_INDEX_KEY, room_code)
        logger.debug(f"Room {room_code} deleted: record={deleted}, index={unindexed}")

    @degrade_on_store_error(default=None)
    def _index_add(self, room_code):
        self.redis_client.sadd(REDIS_ROOMS_INDEX_KEY, room_code)

    @degrade_on_store_error(default=set)
    def _index_members(self):
        return self.redis_client.smembers(REDIS_ROOMS_INDEX_KEY)

    @degrade_on_store_error(default=None)
    def _index_remove(self, room_codes):
        self.redis_client.srem(REDIS_ROOMS_INDEX_KEY, *room_codes)

    @degrade_on_store_error(default=list)
    def _scan_codes(self):
        prefix = REDIS_ROOM_KEY.format(slug="")
        return [key[len(prefix):] for key in self.redis_client.scan_iter(match=REDIS_ROOM_PATTERN, count=100)]

    @degrade_on_store_error(default=False)
    def ping(self):
        return bool(self.redis_client.ping())


class MemoryRoomStore(RoomStore):
    """Demo mode: documents live in this process only. No TTL, everything is
    gone on restart."""

    is_demo = True
    backend_name = "memory"

    def __init__(self):
        self._rooms = {}
        self._index = set()

    def _load_raw(self, room_code):
        return self._rooms.get(room_code)

    def _load_many_raw(self, room_codes):
        return [self._rooms.get(code) for code in room_codes]

    def _store_raw(self, room_code, payload):
        self._rooms[room_code] = payload

    def _has(self, room_code):
        return room_code in self._rooms

    def _drop(self, room_code):
        self._rooms.pop(room_code, None)
        self._index.discard(room_code)

    def _index_add(self, room_code):
        self._index.add(room_code)

    def _index_members(self):
        return set(self._index)

    def _index_remove(self, room_codes):
        self._index.difference_update(room_codes)

    def _scan_codes(self):
        return list(self._rooms)

    def ping(self):
        return True


def build_room_store() -> RoomStore:
    """Redis when REDIS_HOST is configured, otherwise the in-memory demo store."""
    if not REDIS_HOST:
        logger.warning("REDIS_HOST not set, running in demo mode: rooms are kept in memory and lost on restart")
        return MemoryRoomStore()

    redis_client = redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, decode_responses=True)
    store = RedisRoomStore(redis_client)
    if store.ping():
        logger.info(f"Redis client connected successfully to {REDIS_HOST}:{REDIS_PORT}")
    else:
        logger.warning(f"Redis at {REDIS_HOST}:{REDIS_PORT} is unreachable, serving degraded until it comes back")
    return store


def get_room_store(request: Request) -> RoomStore:
    return request.app.state.room_store
