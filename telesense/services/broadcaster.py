"""
Live stats push channel.

ConnectionManager  — WebSocket subscriber set with per-send isolation.
StatsBroadcaster   — asyncio task: every interval, recompute events/sec
                     and push the snapshot to every subscriber.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

from fastapi import WebSocket, status

from telesense.services.live_stats import LiveStats

logger = logging.getLogger(__name__)


class ConnectionManager:

    def __init__(self, send_timeout: float = 2.0):
        self.send_timeout = send_timeout
        self.connections: set[WebSocket] = set()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self.connections.add(websocket)
        logger.info("Stats subscriber connected (%d total)", len(self.connections))

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self.connections:
            self.connections.discard(websocket)
            logger.info("Stats subscriber disconnected (%d total)", len(self.connections))

    @property
    def has_subscribers(self) -> bool:
        return bool(self.connections)

    async def send(self, websocket: WebSocket, message: str) -> None:
        await asyncio.wait_for(websocket.send_text(message), timeout=self.send_timeout)

    async def _close(self, websocket: WebSocket) -> None:
        # Ends the endpoint receive loop so the client sees the drop and reconnects.
        try:
            await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        except Exception as exc:
            logger.debug("Closing dropped subscriber failed: %r", exc)

    async def broadcast(self, message: str) -> int:
        """Send to every subscriber concurrently. Returns the number of deliveries."""
        targets = list(self.connections)
        if not targets:
            return 0

        results = await asyncio.gather(
            *(self.send(ws, message) for ws in targets),
            return_exceptions=True,
        )
        delivered = 0
        for ws, result in zip(targets, results):
            if isinstance(result, BaseException):
                logger.warning("Dropping stats subscriber: %r", result)
                self.disconnect(ws)
                await self._close(ws)
            else:
                delivered += 1
        return delivered


class StatsBroadcaster:

    def __init__(
        self,
        stats: LiveStats,
        manager: ConnectionManager,
        interval: float = 1.0,
        top_n: int = 5,
    ):
        self.stats = stats
        self.manager = manager
        self.interval = interval
        self.top_n = top_n
        self._task: Optional[asyncio.Task] = None
        self.last_received = 0
        self.last_generation = stats.generation
        self.last_tick = time.monotonic()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def compute_events_per_second(self, now: Optional[float] = None) -> float:
        now = time.monotonic() if now is None else now
        generation, received = self.stats.received_reading()
        elapsed = now - self.last_tick

        # After a reset the counter restarts from zero: everything seen is new.
        delta = received if generation != self.last_generation else received - self.last_received
        eps = delta / elapsed if elapsed > 0 else 0.0

        self.last_received = received
        self.last_tick = now
        self.last_generation = generation
        return eps

    async def tick(self) -> int:
        self.stats.set_events_per_second(self.compute_events_per_second())
        if not self.manager.has_subscribers:
            return 0
        snapshot = self.stats.get_snapshot(self.top_n)
        return await self.manager.broadcast(snapshot.model_dump_json())

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.tick()
            except Exception:
                logger.exception("Stats broadcast tick failed")

    def start(self) -> None:
        if self._task is None or self._task.done():
            self.last_generation, self.last_received = self.stats.received_reading()
            self.last_tick = time.monotonic()
            self._task = asyncio.create_task(self._run(), name="stats-broadcaster")
            logger.info("Stats broadcaster started (interval %.1fs)", self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Stats broadcaster stopped")
