"""Peer connection interface driven by a rendezvous session, and its aiortc implementation."""

import json
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from aiortc import (
    RTCConfiguration,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
)
from aiortc.sdp import candidate_from_sdp

from logging_config import get_logger

logger = get_logger(__name__)

CHAT_CHANNEL_LABEL = "chat"

CONNECTED_STATES = ("connected",)
FAILED_STATES = ("failed",)


class NegotiationListener:
    """Observer registered against a negotiation surface. Every hook is optional."""

    def on_local_candidate(self, candidate: Dict[str, Any]):
        pass

    def on_connection_state(self, state: str):
        pass

    def on_track(self, track):
        pass

    def on_channel_open(self):
        pass

    def on_message(self, message: Any):
        pass


class NegotiationSurface(ABC):
    def __init__(self):
        self._listeners: List[NegotiationListener] = []

    def add_listener(self, listener: NegotiationListener):
        self._listeners.append(listener)

    def remove_listener(self, listener: NegotiationListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, event: str, *args):
        for listener in list(self._listeners):
            try:
                getattr(listener, event)(*args)
            except Exception as e:
                logger.error(f"Listener {listener!r} failed on {event}: {e}", exc_info=True)

    @abstractmethod
    async def create_offer(self) -> Dict[str, Any]:
        """Create and set the local offer, returning it as ``{"type", "sdp"}``."""

    @abstractmethod
    async def create_answer(self) -> Dict[str, Any]:
        """Create and set the local answer for the applied remote offer."""

    @abstractmethod
    async def apply_remote_description(self, description: Dict[str, Any]):
        pass

    @abstractmethod
    async def add_candidate(self, candidate: Dict[str, Any]):
        pass

    @property
    @abstractmethod
    def has_remote_description(self) -> bool:
        pass

    @property
    @abstractmethod
    def is_closed(self) -> bool:
        pass

    @abstractmethod
    async def close(self):
        """Close the connection and stop every local media resource."""


def build_configuration(ice_servers: Iterable[Dict[str, Any]]) -> RTCConfiguration:
    servers = [
        RTCIceServer(urls=s["urls"], username=s.get("username"), credential=s.get("credential"))
        for s in ice_servers
        if s.get("urls")
    ]
    return RTCConfiguration(iceServers=servers)


def candidates_from_sdp(sdp: str) -> List[Dict[str, Any]]:
    """Pull ``a=candidate`` lines out of a gathered SDP, one dict per candidate.

    The dicts have the shape of a browser ``RTCIceCandidate.toJSON()``.
    """
    found = []
    mids = {}
    mline_index = -1
    for line in sdp.splitlines():
        line = line.strip()
        if line.startswith("m="):
            mline_index += 1
        elif mline_index < 0:
            continue
        elif line.startswith("a=mid:"):
            mids[mline_index] = line[len("a=mid:"):]
        elif line.startswith("a=candidate:"):
            found.append((mline_index, line[2:]))
    # a=mid can appear after the candidates of its section
    return [
        {"candidate": text, "sdpMid": mids.get(index), "sdpMLineIndex": index}
        for index, text in found
    ]


class AiortcNegotiationSurface(NegotiationSurface):
    """Negotiation surface backed by an aiortc peer connection.

    aiortc gathers every local candidate before ``setLocalDescription``
    returns, so local candidates are emitted in one burst right after the
    local description is set, parsed out of the gathered SDP.
    """

    def __init__(self, ice_servers: Iterable[Dict[str, Any]] = (), tracks: Iterable[Any] = ()):
        super().__init__()
        self.pc = RTCPeerConnection(configuration=build_configuration(ice_servers))
        self.tracks = list(tracks)
        self.channel = None
        self._closed = False

        for track in self.tracks:
            self.pc.addTrack(track)

        @self.pc.on("connectionstatechange")
        async def on_connectionstatechange():
            state = self.pc.connectionState
            logger.info(f"Connection state changed to: {state}")
            self._emit("on_connection_state", state)

        @self.pc.on("track")
        def on_track(track):
            logger.info(f"Remote track received: {track.kind}")
            self._emit("on_track", track)

        @self.pc.on("datachannel")
        def on_datachannel(channel):
            logger.info(f"Received data channel '{channel.label}'")
            self._wire_channel(channel)

    def _wire_channel(self, channel):
        self.channel = channel

        @channel.on("open")
        def on_open():
            logger.info(f"Data channel '{channel.label}' is open.")
            self._emit("on_channel_open")

        @channel.on("message")
        def on_message(message):
            self._emit("on_message", message)

        @channel.on("close")
        def on_close():
            logger.info(f"Data channel '{channel.label}' is closed.")

        # The receiver's channel can already be open when it is announced
        if channel.readyState == "open":
            self._emit("on_channel_open")

    def send(self, message: Any):
        if not self.channel or self.channel.readyState != "open":
            logger.warning("Cannot send message, data channel is not open")
            return False
        if not isinstance(message, (str, bytes)):
            message = json.dumps(message)
        self.channel.send(message)
        return True

    async def _set_local(self, description: RTCSessionDescription) -> Dict[str, Any]:
        await self.pc.setLocalDescription(description)
        local = self.pc.localDescription
        for candidate in candidates_from_sdp(local.sdp):
            self._emit("on_local_candidate", candidate)
        return {"type": local.type, "sdp": local.sdp}

    async def create_offer(self) -> Dict[str, Any]:
        if self.channel is None:
            self._wire_channel(self.pc.createDataChannel(CHAT_CHANNEL_LABEL))
        return await self._set_local(await self.pc.createOffer())

    async def create_answer(self) -> Dict[str, Any]:
        return await self._set_local(await self.pc.createAnswer())

    async def apply_remote_description(self, description: Dict[str, Any]):
        await self.pc.setRemoteDescription(
            RTCSessionDescription(sdp=description["sdp"], type=description["type"])
        )

    async def add_candidate(self, candidate: Dict[str, Any]):
        text = candidate["candidate"]
        if text.startswith("candidate:"):
            text = text[len("candidate:"):]
        ice_candidate = candidate_from_sdp(text)
        ice_candidate.sdpMid = candidate.get("sdpMid")
        ice_candidate.sdpMLineIndex = candidate.get("sdpMLineIndex")
        try:
            await self.pc.addIceCandidate(ice_candidate)
        except ValueError as e:
            # Remote SDP from aiortc already carries end-of-candidates
            logger.debug(f"Remote candidate not added: {e}")

    @property
    def has_remote_description(self) -> bool:
        return self.pc.remoteDescription is not None

    @property
    def is_closed(self) -> bool:
        return self._closed or self.pc.connectionState == "closed"

    async def close(self):
        if self._closed:
            return
        self._closed = True
        if self.channel is not None:
            self.channel.close()
        for track in self.tracks:
            track.stop()
        await self.pc.close()


def remote_candidate_is_usable(payload: Optional[Any]) -> bool:
    """A candidate payload is applied only when it carries a candidate line."""
    return isinstance(payload, dict) and isinstance(payload.get("candidate"), str) and bool(payload["candidate"])
