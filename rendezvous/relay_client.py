from typing import Any, Dict, List, Optional, Tuple

import httpx

from constants import RELAY_URL
from errors import ERRORS_BY_NAME, InvalidRequest, NotFound, SignalingError, StoreUnavailable
from logging_config import get_logger
from schemas.signals import CandidateDirection, HandshakeKind, SignalKind

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 10.0


class RelayClient:
    """Client side of the signal relay request surface.

    Every method is a single stateless HTTP request. Failures come back as the
    shared error taxonomy: ``NotFound`` for an absent handshake,
    ``InvalidRequest`` for rejected input, ``StoreUnavailable`` when the relay
    or its store cannot be reached.
    """

    def __init__(self, base_url: str = RELAY_URL, client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self.http = client or httpx.AsyncClient(base_url=self.base_url, timeout=DEFAULT_TIMEOUT)

    async def aclose(self):
        if self._owns_client:
            await self.http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            resp = await self.http.request(method, path, **kwargs)
        except httpx.TransportError as e:
            raise StoreUnavailable(f"Relay unreachable: {e}") from e
        if resp.is_success:
            return resp
        raise self._error_for(resp)

    @staticmethod
    def _error_for(resp: httpx.Response) -> SignalingError:
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        detail = body.get("detail") or resp.text
        error_cls = ERRORS_BY_NAME.get(body.get("error"))
        if error_cls is not None:
            return error_cls(str(detail))
        if resp.status_code == 404:
            return NotFound(str(detail))
        if resp.status_code in (400, 422):
            return InvalidRequest(str(detail))
        return StoreUnavailable(f"Relay answered {resp.status_code}: {detail}")

    async def store_signal(self, room_id: str, kind: SignalKind, payload: Dict[str, Any]) -> Optional[str]:
        """Store an offer, answer or candidate. Returns the candidate id for candidates."""
        kind = SignalKind(kind)
        resp = await self._request(
            "POST", f"/rooms/{room_id}/signals", json={"type": kind.value, "payload": payload}
        )
        logger.debug(f"Stored {kind.value} for room {room_id}")
        return resp.json().get("candidate_id")

    async def fetch_handshake(self, room_id: str, kind: HandshakeKind) -> Any:
        kind = HandshakeKind(kind)
        resp = await self._request("GET", f"/rooms/{room_id}/signals/{kind.value}")
        return resp.json()["payload"]

    async def fetch_candidates(self, room_id: str, direction: CandidateDirection) -> List[Tuple[str, Any]]:
        direction = CandidateDirection(direction)
        resp = await self._request("GET", f"/rooms/{room_id}/candidates/{direction.value}")
        return [(entry["id"], entry["payload"]) for entry in resp.json()["candidates"]]

    async def delete_handshake(self, room_id: str, kind: HandshakeKind) -> bool:
        kind = HandshakeKind(kind)
        resp = await self._request("DELETE", f"/rooms/{room_id}/signals/{kind.value}")
        return resp.json()["deleted"]

    async def delete_candidate(self, room_id: str, direction: CandidateDirection, candidate_id: str) -> bool:
        direction = CandidateDirection(direction)
        resp = await self._request("DELETE", f"/rooms/{room_id}/candidates/{direction.value}/{candidate_id}")
        return resp.json()["deleted"]

    async def delete_room(self, room_id: str) -> int:
        resp = await self._request("DELETE", f"/rooms/{room_id}")
        return resp.json()["deleted"]

    async def fetch_ice_servers(self) -> List[Dict[str, Any]]:
        resp = await self._request("GET", "/api/ice-servers")
        return resp.json()
