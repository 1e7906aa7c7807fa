import functools
import json
from typing import Any, List, Optional, Tuple

import redis

from constants import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD, REDIS_DB, SIGNAL_TTL_SECONDS
from errors import StoreUnavailable
from logging_config import get_logger
from redis_keys import (
    candidate_id_from_key,
    candidate_key,
    candidate_prefix,
    handshake_key,
    new_candidate_id,
    room_prefix,
)

logger = get_logger(__name__)

GLOB_SPECIAL = "\\*?[]"


def escape_glob(text: str) -> str:
    return "".join("\\" + c if c in GLOB_SPECIAL else c for c in text)


def store_call(func):
    """Translate redis transport failures into StoreUnavailable."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError) as e:
            logger.warning(f"Signal store unavailable during {func.__name__}: {e}")
            raise StoreUnavailable(f"Signal store unavailable: {e}") from e

    return wrapper


class SignalBackend:
    """Shared signal store on top of Redis.

    The generic contract is get/set/delete/list-by-prefix with last-write-wins
    semantics; the signaling operations below only ever touch one key per call,
    except for the prefix listing and the room sweep.
    """

    def __init__(self, redis_client: Optional[redis.Redis] = None, ttl: int = SIGNAL_TTL_SECONDS):
        if redis_client is None:
            logger.info(f"Initializing SignalBackend with connection to {REDIS_HOST}:{REDIS_PORT}/{REDIS_DB}")
            redis_client = redis.Redis(
                host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, db=REDIS_DB, decode_responses=True
            )
        self.redis_client = redis_client
        self.ttl = ttl

    @store_call
    def ping(self) -> bool:
        return bool(self.redis_client.ping())

    # Generic store contract

    @store_call
    def get(self, key: str) -> Optional[Any]:
        raw = self.redis_client.get(key)
        if raw is None:
            logger.debug(f"Key {key} not found")
            return None
        return self._decode(key, raw)

    @store_call
    def set(self, key: str, value: Any):
        self.redis_client.set(key, json.dumps(value), ex=self.ttl or None)
        logger.debug(f"Stored key {key}")

    @store_call
    def delete(self, key: str) -> bool:
        deleted = self.redis_client.delete(key)
        logger.debug(f"Deleted key {key}: existed={bool(deleted)}")
        return bool(deleted)

    @store_call
    def list(self, prefix: str) -> List[Tuple[str, Any]]:
        keys = sorted(self.redis_client.scan_iter(match=escape_glob(prefix) + "*"))
        if not keys:
            return []
        values = self.redis_client.mget(keys)
        # A key deleted between SCAN and MGET comes back as None
        entries = [(key, self._decode(key, raw)) for key, raw in zip(keys, values) if raw is not None]
        logger.debug(f"Listed {len(entries)} keys under {prefix}")
        return entries

    @staticmethod
    def _decode(key: str, raw: str) -> Any:
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning(f"Value under {key} is not JSON, returning it raw")
            return raw

    # Handshake records

    def store_handshake(self, room_id: str, kind: str, payload: dict):
        logger.info(f"Storing {kind} for room {room_id}")
        self.set(handshake_key(room_id, kind), payload)

    def get_handshake(self, room_id: str, kind: str) -> Optional[Any]:
        return self.get(handshake_key(room_id, kind))

    def delete_handshake(self, room_id: str, kind: str) -> bool:
        logger.info(f"Deleting {kind} for room {room_id}")
        return self.delete(handshake_key(room_id, kind))

    # Candidate records

    def add_candidate(self, room_id: str, direction: str, payload: dict) -> str:
        candidate_id = new_candidate_id()
        self.set(candidate_key(room_id, direction, candidate_id), payload)
        logger.info(f"Stored candidate {candidate_id} in {direction} for room {room_id}")
        return candidate_id

    def list_candidates(self, room_id: str, direction: str) -> List[Tuple[str, Any]]:
        entries = self.list(candidate_prefix(room_id, direction))
        return [(candidate_id_from_key(key), value) for key, value in entries]

    def delete_candidate(self, room_id: str, direction: str, candidate_id: str) -> bool:
        logger.debug(f"Deleting candidate {candidate_id} from {direction} for room {room_id}")
        return self.delete(candidate_key(room_id, direction, candidate_id))

    # Room maintenance

    def list_room(self, room_id: str) -> List[str]:
        return [key for key, _ in self.list(room_prefix(room_id))]

    def delete_room(self, room_id: str) -> int:
        """Delete every record under the room prefix. Returns the number of keys removed."""
        logger.info(f"Deleting every signaling record for room {room_id}")
        deleted = 0
        for key in self.list_room(room_id):
            if self.delete(key):
                logger.info(f"Deleted key {key}")
                deleted += 1
            else:
                logger.info(f"Key {key} already gone")
        logger.info(f"Room {room_id} swept: {deleted} keys deleted")
        return deleted


redis_backend = SignalBackend()


def get_signal_backend() -> SignalBackend:
    return redis_backend
