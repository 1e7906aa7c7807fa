from typing import List

import httpx
from fastapi import APIRouter, HTTPException

from constants import DEFAULT_STUN_URL, ICE_SERVERS_URL
from logging_config import get_logger
from schemas.signals import IceServer

logger = get_logger(__name__)

ice_router = APIRouter(prefix="/api", tags=["ice"])

ICE_LOOKUP_TIMEOUT = 5.0


def default_ice_servers() -> List[IceServer]:
    return [IceServer(urls=DEFAULT_STUN_URL)]


async def lookup_ice_servers(url: str) -> List[IceServer]:
    """Fetch relay credentials from the upstream provider.

    The provider is expected to answer with a JSON list of
    ``{"urls", "username", "credential"}`` objects, or an object holding that
    list under ``iceServers``.
    """
    async with httpx.AsyncClient(timeout=ICE_LOOKUP_TIMEOUT) as client:
        resp = await client.get(url)
        resp.raise_for_status()
        data = resp.json()
    if isinstance(data, dict):
        data = data.get("iceServers", [])
    return [IceServer(**server) for server in data]


@ice_router.get("/ice-servers", response_model=List[IceServer])
async def get_ice_servers():
    if not ICE_SERVERS_URL:
        return default_ice_servers()
    try:
        servers = await lookup_ice_servers(ICE_SERVERS_URL)
    except Exception as e:
        logger.error(f"ICE server lookup against {ICE_SERVERS_URL} failed: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail="ICE server lookup failed")
    logger.info(f"Fetched {len(servers)} ICE servers from upstream")
    return servers
