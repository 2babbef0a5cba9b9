import os

REDIS_HOST = os.getenv("REDIS_HOST", None)  # unset -> demo mode (in-memory store)
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

ROOM_TTL_HOURS = int(os.getenv("ROOM_TTL_HOURS", 24))
ROOM_TTL = ROOM_TTL_HOURS * 60 * 60

CHAT_LOG_LIMIT = int(os.getenv("CHAT_LOG_LIMIT", 100))
ACTIVITY_LOG_LIMIT = int(os.getenv("ACTIVITY_LOG_LIMIT", 200))

ADMIN_SECRET_KEY = os.getenv("ADMIN_SECRET_KEY", None)
