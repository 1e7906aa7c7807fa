from typing import Any, Dict, List

from constants import DEFAULT_STUN_URL
from errors import SignalingError
from logging_config import get_logger

logger = get_logger(__name__)


def fallback_ice_servers() -> List[Dict[str, Any]]:
    return [{"urls": DEFAULT_STUN_URL}]


async def fetch_ice_servers(relay) -> List[Dict[str, Any]]:
    """Ask the relay for ICE servers, falling back to plain STUN.

    A failed or empty lookup only reduces connectivity options, it never stops
    the session from starting.
    """
    try:
        servers = await relay.fetch_ice_servers()
    except SignalingError as e:
        logger.error(f"Failed to fetch ICE servers: {type(e).__name__}: {e.detail}")
        logger.info("Using default fallback ICE configuration.")
        return fallback_ice_servers()

    if not servers:
        logger.warning("Fetched ICE servers list is empty, using default fallback.")
        return fallback_ice_servers()

    logger.info(f"Using ICE servers: {', '.join(str(s.get('urls')) for s in servers)}")
    return servers
