"""Headless chat peer.

Joins a room through the signal relay, negotiates a direct connection with
whoever else joins the same room, then relays stdin lines over the ``chat``
data channel and prints what the other side sends.

    RELAY_URL=http://localhost:8000 python peer.py --room default-room --name alice
"""

import argparse
import asyncio
import json
import os
import sys

from constants import DEFAULT_ROOM, RELAY_URL
from errors import NegotiationFailure, SignalingError
from logging_config import get_logger, setup_logging
from rendezvous.ice_servers import fetch_ice_servers
from rendezvous.negotiation import AiortcNegotiationSurface, NegotiationListener
from rendezvous.relay_client import RelayClient
from rendezvous.session import RendezvousSession

logger = get_logger(__name__)

CONNECT_TIMEOUT = 60.0


class ChatPrinter(NegotiationListener):
    def on_channel_open(self):
        print("[System]: Chat connected!", flush=True)

    def on_message(self, message):
        try:
            data = json.loads(message)
            print(f"[{data.get('sender') or 'Remote'}]: {data.get('message')}", flush=True)
        except (TypeError, ValueError, AttributeError):
            print(f"[Remote (raw)]: {message}", flush=True)


async def read_lines(queue: asyncio.Queue):
    loop = asyncio.get_running_loop()
    while True:
        line = await loop.run_in_executor(None, sys.stdin.readline)
        await queue.put(line)
        if not line:
            return


async def chat(surface: AiortcNegotiationSurface, session: RendezvousSession, name: str):
    queue: asyncio.Queue = asyncio.Queue()
    reader = asyncio.ensure_future(read_lines(queue))
    try:
        while session.is_live:
            try:
                line = await asyncio.wait_for(queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            if not line:
                break
            text = line.strip()
            if text:
                surface.send({"sender": name, "message": text})
    finally:
        reader.cancel()


async def run(room_id: str, name: str, relay_url: str) -> int:
    async with RelayClient(relay_url) as relay:
        ice_servers = await fetch_ice_servers(relay)
        surface = AiortcNegotiationSurface(ice_servers=ice_servers)
        surface.add_listener(ChatPrinter())
        session = RendezvousSession(relay, surface, room_id=room_id)
        try:
            role = await session.start()
            print(f"[System]: joined room {room_id} as {role.value}", flush=True)
            await session.wait_connected(timeout=CONNECT_TIMEOUT)
            await chat(surface, session, name)
        except (NegotiationFailure, SignalingError) as e:
            logger.error(f"Session failed: {type(e).__name__}: {e.detail}")
            return 1
        except asyncio.TimeoutError as e:
            logger.error(f"Session did not connect: {e}")
            return 1
        finally:
            await session.close()
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Headless rendezvous chat peer")
    parser.add_argument("--room", default=DEFAULT_ROOM)
    parser.add_argument("--name", default="Local")
    parser.add_argument("--relay-url", default=RELAY_URL)
    args = parser.parse_args(argv)

    setup_logging(log_level=os.getenv("LOG_LEVEL", "INFO"), log_file=os.getenv("LOG_FILE", None))
    try:
        return asyncio.run(run(args.room, args.name, args.relay_url))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
