from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, field_validator


class SignalKind(str, Enum):
    OFFER = "offer"
    ANSWER = "answer"
    CANDIDATE_FROM_INITIATOR = "candidate-from-initiator"
    CANDIDATE_FROM_RECEIVER = "candidate-from-receiver"


class HandshakeKind(str, Enum):
    OFFER = "offer"
    ANSWER = "answer"


class CandidateDirection(str, Enum):
    """Candidate collections, named after the peer that consumes them."""

    FOR_INITIATOR = "for-initiator"
    FOR_RECEIVER = "for-receiver"


class Role(str, Enum):
    INITIATOR = "initiator"
    RECEIVER = "receiver"


CANDIDATE_DESTINATIONS = {
    SignalKind.CANDIDATE_FROM_INITIATOR: CandidateDirection.FOR_RECEIVER,
    SignalKind.CANDIDATE_FROM_RECEIVER: CandidateDirection.FOR_INITIATOR,
}

OUTBOUND_CANDIDATE_KIND = {
    Role.INITIATOR: SignalKind.CANDIDATE_FROM_INITIATOR,
    Role.RECEIVER: SignalKind.CANDIDATE_FROM_RECEIVER,
}

INBOUND_DIRECTION = {
    Role.INITIATOR: CandidateDirection.FOR_INITIATOR,
    Role.RECEIVER: CandidateDirection.FOR_RECEIVER,
}


def is_candidate_kind(kind: SignalKind) -> bool:
    return kind in CANDIDATE_DESTINATIONS


class StoreSignalRequest(BaseModel):
    type: SignalKind
    payload: Dict[str, Any]

    @field_validator("payload")
    @classmethod
    def payload_not_empty(cls, value):
        if not value:
            raise ValueError("payload must be a non-empty object")
        return value


class StoreSignalResponse(BaseModel):
    message: str
    candidate_id: Optional[str] = None


class HandshakeResponse(BaseModel):
    type: HandshakeKind
    payload: Any


class CandidateEntry(BaseModel):
    id: str
    payload: Any


class CandidateListResponse(BaseModel):
    room_id: str
    direction: CandidateDirection
    candidates: List[CandidateEntry]


class DeleteResponse(BaseModel):
    message: str
    deleted: bool


class DeleteRoomResponse(BaseModel):
    message: str
    deleted: int


class RoomKeysResponse(BaseModel):
    room_id: str
    keys: List[str]


class IceServer(BaseModel):
    urls: Any
    username: Optional[str] = None
    credential: Optional[str] = None
