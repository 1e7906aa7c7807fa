import re
import time
import uuid

from constants import SIGNAL_KEY_PREFIX
from errors import InvalidRequest

SIGNAL_ROOM_PREFIX = SIGNAL_KEY_PREFIX + ":{room}:"  # room id - every record of the room
SIGNAL_HANDSHAKE_KEY = SIGNAL_KEY_PREFIX + ":{room}:{kind}"  # room id, offer|answer
SIGNAL_CANDIDATE_PREFIX = SIGNAL_KEY_PREFIX + ":{room}:{direction}:"  # room id, for-initiator|for-receiver
SIGNAL_CANDIDATE_KEY = SIGNAL_KEY_PREFIX + ":{room}:{direction}:{candidate_id}"  # unique per write

ROOM_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")
CANDIDATE_ID_PATTERN = re.compile(r"^[0-9]{13}-[0-9a-f]{32}$")

# **Key naming conventions**
# - `webrtc_signal:{room}:offer` - JSON session description, at most one
# - `webrtc_signal:{room}:answer` - JSON session description, at most one
# - `webrtc_signal:{room}:for-initiator:{id}` - candidate produced by the receiver
# - `webrtc_signal:{room}:for-receiver:{id}` - candidate produced by the initiator
#
# Candidate ids start with a millisecond timestamp so a sorted prefix listing
# returns candidates in write order.


def validate_room_id(room_id: str) -> str:
    if not room_id or not ROOM_ID_PATTERN.fullmatch(room_id):
        raise InvalidRequest(f"Invalid room id: {room_id!r}")
    return room_id


def validate_candidate_id(candidate_id: str) -> str:
    if not candidate_id or not CANDIDATE_ID_PATTERN.fullmatch(candidate_id):
        raise InvalidRequest(f"Invalid candidate id: {candidate_id!r}")
    return candidate_id


def new_candidate_id() -> str:
    return f"{int(time.time() * 1000):013d}-{uuid.uuid4().hex}"


def room_prefix(room_id: str) -> str:
    return SIGNAL_ROOM_PREFIX.format(room=validate_room_id(room_id))


def handshake_key(room_id: str, kind: str) -> str:
    return SIGNAL_HANDSHAKE_KEY.format(room=validate_room_id(room_id), kind=kind)


def candidate_prefix(room_id: str, direction: str) -> str:
    return SIGNAL_CANDIDATE_PREFIX.format(room=validate_room_id(room_id), direction=direction)


def candidate_key(room_id: str, direction: str, candidate_id: str) -> str:
    return SIGNAL_CANDIDATE_KEY.format(
        room=validate_room_id(room_id),
        direction=direction,
        candidate_id=validate_candidate_id(candidate_id),
    )


def candidate_id_from_key(key: str) -> str:
    return key.rsplit(":", 1)[-1]
