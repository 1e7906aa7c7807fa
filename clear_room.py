"""Delete every signaling record stored for a room.

Run it only while no session is active in the room, e.g.

    python clear_room.py default-room
"""

import argparse
import os
import sys

from logging_config import get_logger, setup_logging

logger = get_logger(__name__)


def clear_room(backend, room_id: str) -> int:
    deleted = backend.delete_room(room_id)
    if deleted:
        logger.info(f"Finished. Successfully deleted {deleted} entries.")
    else:
        logger.info(f"No entries found for room {room_id}. Nothing to delete.")
    return deleted


def main(argv=None) -> int:
    from constants import DEFAULT_ROOM

    parser = argparse.ArgumentParser(description="Clear the signaling records of a room")
    parser.add_argument("room", nargs="?", default=DEFAULT_ROOM, help="room id to clear")
    args = parser.parse_args(argv)

    setup_logging(log_level=os.getenv("LOG_LEVEL", "INFO"), log_file=os.getenv("LOG_FILE", None))

    from backend import redis_backend
    from errors import SignalingError

    try:
        clear_room(redis_backend, args.room)
    except SignalingError as e:
        logger.error(f"Could not clear room {args.room}: {type(e).__name__}: {e.detail}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
