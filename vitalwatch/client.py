import asyncio
import logging
from typing import Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from .channel import ingest
from .store import MeasurementStore

logger = logging.getLogger(__name__)


class PatientStreamClient:
    """
    Keeps one connection to a measurement channel open, storing every message it
    receives. Dropped connections are retried on the background task with a fixed
    delay, giving up after `max_reconnect_attempts` consecutive failures.
    """

    def __init__(
        self,
        uri: str,
        store: MeasurementStore,
        reconnect_delay: float = 1.0,
        max_reconnect_attempts: int = 10,
        connect: Callable = websockets.connect,
        on_message: Optional[Callable[[str], None]] = None,
    ):
        self.uri = uri
        self.store = store
        self.reconnect_delay = reconnect_delay
        self.max_reconnect_attempts = max_reconnect_attempts
        self.on_message = on_message
        self._connect = connect
        self._ws = None
        self._connected = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.running = False
        self.connections = 0

    @property
    def connected(self) -> bool:
        return self._connected.is_set()

    def start(self) -> asyncio.Task:
        self.running = True
        self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    async def wait_connected(self, timeout: Optional[float] = None) -> bool:
        try:
            await asyncio.wait_for(self._connected.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def send(self, line: str) -> bool:
        ws = self._ws
        if ws is None:
            logger.warning("Not connected to %s, message not sent: %r", self.uri, line)
            return False
        try:
            await ws.send(line)
        except (ConnectionClosed, OSError) as e:
            logger.warning("Send to %s failed: %s", self.uri, e)
            return False
        return True

    def _handle(self, message):
        if isinstance(message, bytes):
            message = message.decode("utf-8", errors="replace")
        ingest(self.store, message)
        if self.on_message is not None:
            try:
                self.on_message(message)
            except Exception:
                logger.exception("on_message callback failed for %r", message)

    async def _open(self) -> bool:
        failures = 0
        while self.running:
            try:
                self._ws = await self._connect(self.uri)
                return True
            except (OSError, WebSocketException, asyncio.TimeoutError) as e:
                failures += 1
                if failures > self.max_reconnect_attempts:
                    logger.error("Giving up on %s after %d attempts: %s", self.uri, failures, e)
                    return False
                logger.warning("Connection to %s failed (attempt %d): %s", self.uri, failures, e)
                await asyncio.sleep(self.reconnect_delay)
        return False

    async def _run(self):
        while self.running:
            if not await self._open():
                break
            self.connections += 1
            self._connected.set()
            logger.info("Connected to %s", self.uri)
            try:
                async for message in self._ws:
                    self._handle(message)
            except ConnectionClosed as e:
                logger.warning("Connection to %s closed: %s", self.uri, e)
            finally:
                self._connected.clear()
                self._ws = None
            if self.running:
                logger.info("Disconnected from %s, reconnecting", self.uri)
                await asyncio.sleep(self.reconnect_delay)
        self.running = False

    async def stop(self):
        self.running = False
        ws = self._ws
        if ws is not None:
            try:
                await ws.close()
            except (ConnectionClosed, OSError) as e:
                logger.debug("Close of %s failed: %s", self.uri, e)
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
