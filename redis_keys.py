REDIS_ROOM_KEY = "room:{slug}" # room code - JSON room document, expires after ROOM_TTL
REDIS_ROOM_PATTERN = "room:*" # scan pattern used when rebuilding the index
REDIS_ROOMS_INDEX_KEY = "rooms:index" # set of room codes, pruned lazily on listing

# **Example `room:{code}` document fields**
# - `roomCode` = `{code}`
# - `createdAt` / `lastActivity` = ISO timestamps
# - `elements` = canvas elements, insertion order
# - `chatLog` = last CHAT_LOG_LIMIT chat messages
# - `adminPinHash` = sha256 hex of the admin pin (optional)
# - `isLocked` / `memberCount`
# - `activityLog` = last ACTIVITY_LOG_LIMIT admin/audit entries
