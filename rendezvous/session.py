"""One participant's side of the rendezvous: role arbitration, polling and teardown."""

import asyncio
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from constants import DEFAULT_ROOM, POLL_INTERVAL_SECONDS, STRAGGLER_INTERVAL_SECONDS, STRAGGLER_POLLS
from errors import NegotiationFailure, NotFound, SignalingError, StoreUnavailable
from logging_config import get_logger
from redis_keys import validate_room_id
from rendezvous.negotiation import (
    CONNECTED_STATES,
    FAILED_STATES,
    NegotiationListener,
    NegotiationSurface,
    remote_candidate_is_usable,
)
from schemas.signals import INBOUND_DIRECTION, OUTBOUND_CANDIDATE_KIND, HandshakeKind, Role, SignalKind

logger = get_logger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    ROLE_UNKNOWN = "role-unknown"
    INITIATOR = "initiator"
    RECEIVER = "receiver"
    NEGOTIATING = "negotiating"
    CONNECTED = "connected"
    CLOSED = "closed"


# CLOSED is reachable from every state and left by none
ALLOWED_TRANSITIONS = {
    SessionState.IDLE: {SessionState.ROLE_UNKNOWN},
    SessionState.ROLE_UNKNOWN: {SessionState.INITIATOR, SessionState.RECEIVER},
    SessionState.INITIATOR: {SessionState.NEGOTIATING},
    SessionState.RECEIVER: {SessionState.NEGOTIATING},
    SessionState.NEGOTIATING: {SessionState.CONNECTED},
    SessionState.CONNECTED: set(),
    SessionState.CLOSED: set(),
}


class RendezvousSession(NegotiationListener):
    def __init__(
        self,
        relay,
        surface: NegotiationSurface,
        room_id: str = DEFAULT_ROOM,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        straggler_polls: int = STRAGGLER_POLLS,
        straggler_interval: float = STRAGGLER_INTERVAL_SECONDS,
    ):
        self.relay = relay
        self.surface = surface
        self.room_id = validate_room_id(room_id)
        self.poll_interval = poll_interval
        self.straggler_polls = straggler_polls
        self.straggler_interval = straggler_interval

        self.state = SessionState.IDLE
        self.role: Optional[Role] = None
        self.failure: Optional[NegotiationFailure] = None

        self._lock = asyncio.Lock()
        self._stop = asyncio.Event()
        self._connected = asyncio.Event()
        self._closed = asyncio.Event()
        self._closing = False
        self._surface_connected = False
        self._candidate_polling_done = False
        self._pending_candidates: List[Dict[str, Any]] = []
        self._poll_tasks: List[asyncio.Task] = []
        self._background: Set[asyncio.Task] = set()

        surface.add_listener(self)

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    @property
    def is_live(self) -> bool:
        return not self._stop.is_set() and not self.surface.is_closed

    @property
    def connected(self) -> bool:
        return self._connected.is_set()

    def _transition(self, new_state: SessionState) -> bool:
        old_state = self.state
        if old_state is SessionState.CLOSED:
            logger.debug(f"Room {self.room_id}: ignoring {new_state.value}, session already closed")
            return False
        if new_state is not SessionState.CLOSED and new_state not in ALLOWED_TRANSITIONS[old_state]:
            raise RuntimeError(f"Invalid session transition {old_state.value} -> {new_state.value}")
        self.state = new_state
        logger.info(f"Room {self.room_id}: {old_state.value} -> {new_state.value}")
        return True

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    # Role arbitration

    async def start(self) -> Role:
        """Arbitrate the role, publish the local description and start polling."""
        if self.state is not SessionState.IDLE:
            raise RuntimeError(f"Session already started (state {self.state.value})")
        self._transition(SessionState.ROLE_UNKNOWN)
        try:
            await self._arbitrate_role()
        except Exception as e:
            logger.error(f"Could not start session in room {self.room_id}: {e}", exc_info=True)
            await self.close()
            raise

        if not self.is_live:
            logger.info(f"Room {self.room_id}: closed during role arbitration")
            await self.close()
            return self.role
        if not self._transition(SessionState.NEGOTIATING):
            return self.role
        if self._surface_connected:
            self._mark_connected()
        await self._flush_pending_candidates()
        self._start_polling()
        return self.role

    async def _arbitrate_role(self):
        try:
            offer = await self.relay.fetch_handshake(self.room_id, HandshakeKind.OFFER)
        except NotFound:
            offer = None
        if not self.is_live:
            return

        if offer is None:
            self.role = Role.INITIATOR
            if not self._transition(SessionState.INITIATOR):
                return
            async with self._lock:
                local_offer = await self.surface.create_offer()
            if await self._publish_handshake(HandshakeKind.OFFER, local_offer):
                logger.info(f"Room {self.room_id}: published offer, waiting for an answer")
            return

        self.role = Role.RECEIVER
        if not self._transition(SessionState.RECEIVER):
            return
        async with self._lock:
            await self.surface.apply_remote_description(offer)
            local_answer = await self.surface.create_answer()
        if not await self._publish_handshake(HandshakeKind.ANSWER, local_answer):
            return
        # The initiator must not rely on the offer once an answer exists
        await self.relay.delete_handshake(self.room_id, HandshakeKind.OFFER)
        logger.info(f"Room {self.room_id}: answered the stored offer")

    async def _publish_handshake(self, kind: HandshakeKind, description: Dict[str, Any]) -> bool:
        """Store the local description. Returns False if teardown began before or during the write."""
        if not self.is_live:
            return False
        await self.relay.store_signal(self.room_id, SignalKind(kind.value), description)
        if self.is_live:
            return True
        # Teardown may already have cleared the room; take back what was just written
        await self._delete_handshake_quietly(kind)
        return False

    # Polling

    def _start_polling(self):
        if self.role is Role.INITIATOR:
            self._poll_tasks.append(asyncio.ensure_future(self._answer_loop()))
        self._poll_tasks.append(asyncio.ensure_future(self._candidate_loop()))

    async def wait_pollers(self):
        """Wait until both pollers have stopped on their own or through teardown."""
        current = asyncio.current_task()
        pollers = [task for task in self._poll_tasks if task is not current]
        if pollers:
            await asyncio.gather(*pollers, return_exceptions=True)

    async def _sleep(self, interval: float) -> bool:
        """Wait for the next tick. Returns False when teardown was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=interval)
        except asyncio.TimeoutError:
            return True
        return False

    async def _answer_loop(self):
        while self.is_live:
            if self.connected or await self.poll_answer_once():
                break
            if not await self._sleep(self.poll_interval):
                break
        logger.debug(f"Room {self.room_id}: answer polling stopped")

    async def poll_answer_once(self) -> bool:
        """One answer poll. Returns True once the remote description is in place."""
        if self.surface.has_remote_description:
            return True
        try:
            answer = await self.relay.fetch_handshake(self.room_id, HandshakeKind.ANSWER)
        except NotFound:
            logger.debug(f"Room {self.room_id}: no answer yet")
            return False
        except StoreUnavailable as e:
            logger.warning(f"Room {self.room_id}: answer poll failed, retrying next tick: {e.detail}")
            return False
        if not self.is_live:
            return True

        try:
            async with self._lock:
                await self.surface.apply_remote_description(answer)
        except Exception as e:
            self._fail(f"Could not apply answer: {e}")
            return True
        logger.info(f"Room {self.room_id}: applied answer")
        await self._delete_handshake_quietly(HandshakeKind.ANSWER)
        return True

    async def _candidate_loop(self):
        straggler_passes = 0
        while self.is_live:
            await self._flush_pending_candidates()
            await self.poll_candidates_once()
            if self.connected:
                if straggler_passes >= self.straggler_polls:
                    break
                straggler_passes += 1
                interval = self.straggler_interval
            else:
                interval = self.poll_interval
            if not await self._sleep(interval):
                break
        self._candidate_polling_done = True
        if self.is_live:
            await self._flush_pending_candidates()
        logger.debug(f"Room {self.room_id}: candidate polling stopped")

    async def poll_candidates_once(self) -> int:
        """Consume every candidate stored for this role. Returns how many were applied."""
        direction = INBOUND_DIRECTION[self.role]
        # Candidates wait in the store until there is a remote description to add them to
        if not self.surface.has_remote_description:
            return 0
        try:
            entries = await self.relay.fetch_candidates(self.room_id, direction)
        except SignalingError as e:
            logger.warning(f"Room {self.room_id}: candidate poll failed, retrying next tick: {e.detail}")
            return 0

        applied = 0
        for candidate_id, payload in entries:
            if not self.is_live:
                break
            if remote_candidate_is_usable(payload):
                try:
                    async with self._lock:
                        await self.surface.add_candidate(payload)
                    applied += 1
                except Exception as e:
                    logger.warning(f"Room {self.room_id}: could not apply candidate {candidate_id}: {e}")
            else:
                logger.warning(f"Room {self.room_id}: skipping malformed candidate {candidate_id}")
            try:
                await self.relay.delete_candidate(self.room_id, direction, candidate_id)
            except SignalingError as e:
                logger.warning(f"Room {self.room_id}: could not delete candidate {candidate_id}: {e.detail}")
        if entries:
            logger.info(f"Room {self.room_id}: applied {applied} of {len(entries)} candidates {direction.value}")
        return applied

    # Local candidates

    def on_local_candidate(self, candidate: Dict[str, Any]):
        if self.state is SessionState.CLOSED or self._closing:
            return
        if not remote_candidate_is_usable(candidate):
            logger.debug(f"Room {self.room_id}: local candidate without a candidate line, not sending")
            return
        if self.role is None:
            self._pending_candidates.append(candidate)
            return
        self._spawn(self._publish_candidate(candidate))

    async def _publish_candidate(self, candidate: Dict[str, Any]):
        if not self.is_live:
            return
        kind = OUTBOUND_CANDIDATE_KIND[self.role]
        try:
            await self.relay.store_signal(self.room_id, kind, candidate)
        except StoreUnavailable as e:
            if self._candidate_polling_done:
                logger.warning(f"Room {self.room_id}: could not publish candidate, dropping it: {e.detail}")
                return
            logger.warning(f"Room {self.room_id}: could not publish candidate, will retry: {e.detail}")
            self._pending_candidates.append(candidate)
        except SignalingError as e:
            logger.error(f"Room {self.room_id}: relay rejected candidate: {e.detail}")

    async def _flush_pending_candidates(self):
        if self.role is None or not self._pending_candidates:
            return
        pending, self._pending_candidates = self._pending_candidates, []
        logger.debug(f"Room {self.room_id}: publishing {len(pending)} buffered candidates")
        for candidate in pending:
            await self._publish_candidate(candidate)

    # Connection state

    def on_connection_state(self, state: str):
        if state in CONNECTED_STATES:
            self._surface_connected = True
            if self.state is SessionState.NEGOTIATING:
                self._mark_connected()
        elif state in FAILED_STATES:
            self._fail(f"Connection state changed to {state}")

    def _mark_connected(self):
        if self._transition(SessionState.CONNECTED):
            logger.info(f"Room {self.room_id}: connection established as {self.role.value}")
            self._connected.set()

    def _fail(self, reason: str):
        if self.failure is None:
            self.failure = NegotiationFailure(reason)
        logger.error(f"Room {self.room_id}: negotiation failed: {reason}")
        self._spawn(self.close())

    async def wait_connected(self, timeout: Optional[float] = None):
        """Wait until connected. Raises NegotiationFailure if the session ends first."""
        waiters = [asyncio.ensure_future(self._connected.wait()), asyncio.ensure_future(self._closed.wait())]
        try:
            await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()
        if self._connected.is_set():
            return
        if self.failure is not None:
            raise self.failure
        if self._closed.is_set():
            raise NegotiationFailure("Session closed before connecting")
        raise asyncio.TimeoutError(f"Not connected after {timeout}s")

    # Teardown

    async def close(self):
        """Tear the session down. Safe to call repeatedly; never raises."""
        if self._closing:
            await self._closed.wait()
            return
        self._closing = True
        self._stop.set()
        logger.info(f"Room {self.room_id}: hanging up session")

        try:
            await self.surface.close()
        except Exception as e:
            logger.error(f"Room {self.room_id}: error closing negotiation surface: {e}", exc_info=True)

        await self.wait_pollers()
        await self._cancel_background()

        # A session that never got a role has published nothing to clean up
        if self.role is not None:
            for kind in (HandshakeKind.OFFER, HandshakeKind.ANSWER):
                await self._delete_handshake_quietly(kind)

        self.surface.remove_listener(self)
        self._transition(SessionState.CLOSED)
        self._closed.set()
        logger.info(f"Room {self.room_id}: session terminated")

    async def _cancel_background(self):
        current = asyncio.current_task()
        pending = [task for task in self._background if task is not current]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _delete_handshake_quietly(self, kind: HandshakeKind):
        try:
            await self.relay.delete_handshake(self.room_id, kind)
        except Exception as e:
            logger.error(f"Room {self.room_id}: failed to clear {kind.value}: {e}")
