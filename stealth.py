"""
Room code obfuscation.

Room codes only ever appear in URLs as unpadded URL-safe base64 tokens, so a
link reads like an opaque path segment. This is cosmetic: anyone can decode a
token, it is not a secret.
"""
import base64
import binascii
import hashlib
import random
import re

from logging_config import get_logger

logger = get_logger(__name__)

ROOM_CODE_PATTERN = re.compile(r"[A-Za-z0-9_-]{3,32}")
PIN_PATTERN = re.compile(r"[0-9]{4,6}")

# No 0/O, 1/I/l
ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZabcdefghjkmnpqrstuvwxyz23456789"
ROOM_CODE_LENGTH = 8


def encode_room_code(room_code: str) -> str:
    """ "Falcon99" -> "RmFsY29uOTk" """
    encoded = base64.b64encode(room_code.encode("utf-8")).decode("ascii")
    return encoded.replace("+", "-").replace("/", "_").rstrip("=")


def decode_room_code(token: str) -> str:
    """Reverse of encode_room_code. Returns "" when the token can't be decoded."""
    try:
        padded = token + "=" * ((4 - len(token) % 4) % 4)
        raw = padded.replace("-", "+").replace("_", "/")
        return base64.b64decode(raw, validate=True).decode("utf-8")
    except (binascii.Error, ValueError) as e:
        logger.debug(f"Could not decode room token {token!r}: {e}")
        return ""


def is_valid_room_code(room_code: str) -> bool:
    return bool(room_code) and ROOM_CODE_PATTERN.fullmatch(room_code) is not None


def generate_room_code() -> str:
    # Codes are not credentials, a plain PRNG is enough
    return "".join(random.choices(ROOM_CODE_ALPHABET, k=ROOM_CODE_LENGTH))


def is_valid_pin(pin: str) -> bool:
    return bool(pin) and PIN_PATTERN.fullmatch(pin) is not None


def hash_pin(pin: str) -> str:
    return hashlib.sha256(pin.encode("utf-8")).hexdigest()


def verify_pin(pin: str, pin_hash: str) -> bool:
    # plain equality, not constant-time
    return hash_pin(pin) == pin_hash
