"""
Ingestion and fan-out for the measurement channel.

Wire format, one UTF-8 text message per reading:

    <patientId:int>,<timestamp:int ms>,<kind>,<value:float>

Every peer gets its own bounded outbound queue drained by its own sender task,
so a slow or broken peer only ever loses its own messages.
"""

import asyncio
import logging
import math
import re
from typing import List, Optional, Set

from starlette.websockets import WebSocket

from .errors import ParseError
from .models import Measurement, VitalKind
from .store import MeasurementStore

logger = logging.getLogger(__name__)


_INT_RE = re.compile(r"[+-]?\d+", re.ASCII)
# saturation arrives as e.g. "97.0%"; one trailing percent sign is accepted
_VALUE_RE = re.compile(r"[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?%?", re.ASCII)


def parse_int(raw: str, text: str = "") -> int:
    raw = raw.strip()
    if not _INT_RE.fullmatch(raw):
        raise ParseError(f"not an integer: {raw!r}", raw=text)
    return int(raw)


def parse_value(raw: str, text: str = "") -> float:
    raw = raw.strip()
    if not _VALUE_RE.fullmatch(raw):
        raise ParseError(f"not a number: {raw!r}", raw=text)
    value = float(raw.rstrip("%"))
    if not math.isfinite(value):
        raise ParseError(f"non-finite value: {raw!r}", raw=text)
    return value


def parse_message(text: str) -> Measurement:
    parts = text.strip().split(",")
    if len(parts) != 4:
        raise ParseError(f"expected 4 fields, got {len(parts)}", raw=text)
    raw_pid, raw_ts, raw_kind, raw_value = parts
    patient_id = parse_int(raw_pid, text)
    timestamp = parse_int(raw_ts, text)
    value = parse_value(raw_value, text)
    try:
        kind = VitalKind(raw_kind.strip())
    except ValueError as e:
        raise ParseError(f"unknown measurement kind {raw_kind!r}", raw=text) from e
    return Measurement(patient_id=patient_id, kind=kind, value=value, timestamp=timestamp)


def ingest(store: MeasurementStore, text: str) -> Optional[Measurement]:
    """Parse and store one message. Malformed messages are logged and dropped."""
    try:
        m = parse_message(text)
    except ParseError as e:
        logger.warning("Dropping malformed message %r: %s", e.raw, e)
        return None
    store.append(m.patient_id, m.value, m.kind, m.timestamp)
    return m


class Peer:
    def __init__(self, ws: WebSocket, queue_size: int):
        self.ws = ws
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.task: Optional[asyncio.Task] = None
        self.alive = True

    @property
    def address(self) -> str:
        client = getattr(self.ws, "client", None)
        return f"{client.host}:{client.port}" if client else "unknown"


class ConnectionHub:
    def __init__(self, queue_size: int = 256, send_timeout: float = 2.0):
        self.queue_size = queue_size
        self.send_timeout = send_timeout
        self.peers: Set[Peer] = set()
        self.closing = False

    async def connect(self, ws: WebSocket) -> Optional[Peer]:
        if self.closing:
            await ws.close(code=1001)
            return None
        # visible to broadcast before accept; queued messages wait for the sender
        peer = Peer(ws, self.queue_size)
        self.peers.add(peer)
        try:
            await ws.accept()
        except Exception:
            self.peers.discard(peer)
            raise
        peer.task = asyncio.get_running_loop().create_task(self._sender(peer))
        logger.info("Client connected: %s (%d peers)", peer.address, len(self.peers))
        return peer

    async def disconnect(self, peer: Peer):
        self.peers.discard(peer)
        peer.alive = False
        if peer.task is not None and not peer.task.done():
            peer.task.cancel()
            try:
                await peer.task
            except asyncio.CancelledError:
                pass
        logger.info("Client disconnected: %s (%d peers)", peer.address, len(self.peers))

    def broadcast(self, message: str, sender: Optional[Peer] = None) -> int:
        """Queue message for every live peer except sender; returns the number queued."""
        queued = 0
        for peer in list(self.peers):
            if peer is sender or not peer.alive:
                continue
            try:
                peer.queue.put_nowait(message)
                queued += 1
            except asyncio.QueueFull:
                logger.warning("Outbound queue full for %s, dropping message %r", peer.address, message)
        return queued

    async def _sender(self, peer: Peer):
        while True:
            message = await peer.queue.get()
            if message is None:
                return
            try:
                await asyncio.wait_for(peer.ws.send_text(message), timeout=self.send_timeout)
            except asyncio.TimeoutError:
                logger.warning("Send to %s timed out after %ss", peer.address, self.send_timeout)
            except Exception as e:
                logger.warning("Send to %s failed: %s", peer.address, e)
                peer.alive = False
                return

    async def close(self):
        """Stop accepting, let queued messages drain, then close every socket."""
        self.closing = True
        peers: List[Peer] = list(self.peers)
        for peer in peers:
            if peer.alive:
                try:
                    await asyncio.wait_for(peer.queue.put(None), timeout=self.send_timeout)
                except asyncio.TimeoutError:
                    logger.warning("Could not drain queue for %s", peer.address)
        for peer in peers:
            if peer.task is not None:
                try:
                    await asyncio.wait_for(peer.task, timeout=self.send_timeout)
                except asyncio.TimeoutError:
                    logger.warning("Sender for %s did not finish in time", peer.address)
                except asyncio.CancelledError:
                    pass
            try:
                await peer.ws.close(code=1001)
            except Exception as e:
                logger.debug("Close of %s failed: %s", peer.address, e)
            peer.alive = False
        self.peers.clear()
        logger.info("Connection hub closed (%d peers)", len(peers))
