from fastapi import APIRouter, Depends, Request

from backend import SignalBackend, get_signal_backend
from errors import NotFound
from logging_config import get_logger
from redis_keys import validate_candidate_id, validate_room_id
from schemas.signals import (
    CANDIDATE_DESTINATIONS,
    CandidateDirection,
    CandidateEntry,
    CandidateListResponse,
    DeleteResponse,
    DeleteRoomResponse,
    HandshakeKind,
    HandshakeResponse,
    RoomKeysResponse,
    StoreSignalRequest,
    StoreSignalResponse,
    is_candidate_kind,
)

logger = get_logger(__name__)

signals_router = APIRouter(prefix="/rooms", tags=["signals"])


def client_host(request: Request) -> str:
    return request.client.host if request and request.client else "unknown"


@signals_router.post("/{room_id}/signals", response_model=StoreSignalResponse)
async def store_signal(
    room_id: str,
    signal: StoreSignalRequest,
    request: Request,
    backend: SignalBackend = Depends(get_signal_backend),
):
    # POST /rooms/{room_id}/signals Body: { "type": "offer", "payload": {...} }
    # offer/answer overwrite the single record, candidates get a fresh id each
    validate_room_id(room_id)
    logger.info(f"Store {signal.type.value} request for room {room_id} from {client_host(request)}")

    if is_candidate_kind(signal.type):
        direction = CANDIDATE_DESTINATIONS[signal.type]
        candidate_id = backend.add_candidate(room_id, direction.value, signal.payload)
        return StoreSignalResponse(message="Signal stored", candidate_id=candidate_id)

    backend.store_handshake(room_id, signal.type.value, signal.payload)
    return StoreSignalResponse(message="Signal stored")


@signals_router.get("/{room_id}/signals/{kind}", response_model=HandshakeResponse)
async def fetch_handshake(
    room_id: str,
    kind: HandshakeKind,
    backend: SignalBackend = Depends(get_signal_backend),
):
    validate_room_id(room_id)
    payload = backend.get_handshake(room_id, kind.value)
    if payload is None:
        logger.debug(f"No {kind.value} stored for room {room_id}")
        raise NotFound(f"No {kind.value} for room {room_id}")
    logger.info(f"Retrieved {kind.value} for room {room_id}")
    return HandshakeResponse(type=kind, payload=payload)


@signals_router.delete("/{room_id}/signals/{kind}", response_model=DeleteResponse)
async def delete_handshake(
    room_id: str,
    kind: HandshakeKind,
    backend: SignalBackend = Depends(get_signal_backend),
):
    validate_room_id(room_id)
    deleted = backend.delete_handshake(room_id, kind.value)
    return DeleteResponse(message=f"Signal type '{kind.value}' deleted", deleted=deleted)


@signals_router.get("/{room_id}/candidates/{direction}", response_model=CandidateListResponse)
async def fetch_candidates(
    room_id: str,
    direction: CandidateDirection,
    backend: SignalBackend = Depends(get_signal_backend),
):
    validate_room_id(room_id)
    entries = backend.list_candidates(room_id, direction.value)
    logger.debug(f"Room {room_id} has {len(entries)} candidates {direction.value}")
    return CandidateListResponse(
        room_id=room_id,
        direction=direction,
        candidates=[CandidateEntry(id=candidate_id, payload=payload) for candidate_id, payload in entries],
    )


@signals_router.delete("/{room_id}/candidates/{direction}/{candidate_id}", response_model=DeleteResponse)
async def delete_candidate(
    room_id: str,
    direction: CandidateDirection,
    candidate_id: str,
    backend: SignalBackend = Depends(get_signal_backend),
):
    validate_room_id(room_id)
    validate_candidate_id(candidate_id)
    deleted = backend.delete_candidate(room_id, direction.value, candidate_id)
    return DeleteResponse(message=f"Candidate '{candidate_id}' deleted", deleted=deleted)


@signals_router.get("/{room_id}", response_model=RoomKeysResponse)
async def list_room(room_id: str, backend: SignalBackend = Depends(get_signal_backend)):
    validate_room_id(room_id)
    return RoomKeysResponse(room_id=room_id, keys=backend.list_room(room_id))


@signals_router.delete("/{room_id}", response_model=DeleteRoomResponse)
async def delete_room(
    room_id: str,
    request: Request,
    backend: SignalBackend = Depends(get_signal_backend),
):
    # Maintenance sweep, only meant to run while no session is active in the room
    validate_room_id(room_id)
    logger.info(f"Delete room request for {room_id} from {client_host(request)}")
    deleted = backend.delete_room(room_id)
    return DeleteRoomResponse(message=f"Room {room_id} cleared", deleted=deleted)
