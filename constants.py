import os

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)
REDIS_DB = int(os.getenv("REDIS_DB", 0))

REDIS_URL = f"redis://:{REDIS_PASSWORD}@{REDIS_HOST}:{REDIS_PORT}/{REDIS_DB}"

SIGNAL_KEY_PREFIX = os.getenv("SIGNAL_KEY_PREFIX", "webrtc_signal")
# 0 keeps records until they are consumed or swept
SIGNAL_TTL_SECONDS = int(os.getenv("SIGNAL_TTL_SECONDS", 0))
DEFAULT_ROOM = os.getenv("DEFAULT_ROOM", "default-room")

RELAY_URL = os.getenv("RELAY_URL", "http://localhost:8000")
POLL_INTERVAL_SECONDS = float(os.getenv("POLL_INTERVAL_SECONDS", 3.0))
STRAGGLER_POLLS = int(os.getenv("STRAGGLER_POLLS", 3))
STRAGGLER_INTERVAL_SECONDS = float(os.getenv("STRAGGLER_INTERVAL_SECONDS", 5.0))

ICE_SERVERS_URL = os.getenv("ICE_SERVERS_URL", None)
DEFAULT_STUN_URL = os.getenv("DEFAULT_STUN_URL", "stun:stun.l.google.com:19302")
