"""
Output sinks and the router that fans records out to them.

The transport behind a sink owns delivery guarantees. OutputRouter makes a
single fire-and-forget attempt per record: a failing sink is logged and
does not affect the other channel.
"""
from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Optional, Protocol

from pydantic import BaseModel

from telesense.core.errors import SinkDeliveryError
from telesense.schemas.outputs import BehaviorContext, VehicleEvent

logger = logging.getLogger(__name__)


class OutputSink(Protocol):
    name: str

    def send(self, record: BaseModel) -> None: ...


class MemorySink:
    """Keeps the most recent records in a bounded buffer."""

    def __init__(self, name: str, capacity: int = 1000):
        self.name = name
        self._records: deque[BaseModel] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def send(self, record: BaseModel) -> None:
        with self._lock:
            self._records.append(record)

    def records(self) -> list[BaseModel]:
        with self._lock:
            return list(self._records)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()


class LogSink:
    """Writes each record as one JSON line on the `telesense.sink.<name>` logger."""

    def __init__(self, name: str):
        self.name = name
        self._logger = logging.getLogger(f"telesense.sink.{name}")

    def send(self, record: BaseModel) -> None:
        try:
            self._logger.info(record.model_dump_json())
        except Exception as exc:
            raise SinkDeliveryError(self.name, f"Could not write record: {exc}") from exc


def make_sink(backend: str, name: str, capacity: int = 1000) -> OutputSink:
    if backend == "memory":
        return MemorySink(name, capacity=capacity)
    if backend == "log":
        return LogSink(name)
    raise ValueError(f"Unknown sink backend: {backend!r}")


class OutputRouter:
    """VehicleEvent → durable sink when present; BehaviorContext → coaching sink always."""

    def __init__(self, durable: OutputSink, coaching: OutputSink):
        self.durable = durable
        self.coaching = coaching

    def route(self, vehicle_event: Optional[VehicleEvent], context: BehaviorContext) -> None:
        if vehicle_event is not None:
            self._deliver(self.durable, vehicle_event)
        self._deliver(self.coaching, context)

    @staticmethod
    def _deliver(sink: OutputSink, record: BaseModel) -> None:
        try:
            sink.send(record)
        except Exception as exc:
            logger.warning("Delivery to sink %s failed: %s", sink.name, exc)
