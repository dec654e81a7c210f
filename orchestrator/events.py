"""Event sinks: push-encoded SSE frames to a live consumer and record them for replay."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone
import json
from typing import Any, AsyncIterator, Callable, List, Optional

from core import AgentRole, EventName, StoredEvent
from utils.exceptions import StreamFault


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def encode_payload(data: Any) -> str:
    if isinstance(data, str):
        return data
    return json.dumps(data, ensure_ascii=False, separators=(",", ":"), default=str)


def encode_sse(event: str, data: Any) -> bytes:
    """One push frame: named event, single data line, blank-line terminator."""
    return f"event: {event}\ndata: {encode_payload(data)}\n\n".encode("utf-8")


def _role_name(agent: Any) -> str:
    return agent.value if isinstance(agent, AgentRole) else str(agent)


class EventSink(ABC):
    """Ordered, append-only event channel with typed helpers."""

    def __init__(self, *, now: Optional[Callable[[], str]] = None) -> None:
        self._now = now or _utc_iso

    @abstractmethod
    def write_event(self, event: str, data: Any) -> None:
        """Push one event. Raises StreamFault when the consumer cannot accept it."""

    def close(self) -> None:
        """Signal stream completion to the consumer."""
        return None

    def log(self, agent: Any, message: str) -> None:
        self.write_event(EventName.LOG.value, {"ts": self._now(), "agent": _role_name(agent), "message": message})

    def raw(self, agent: Any, payload: Any) -> None:
        self.write_event(EventName.RAW.value, {"ts": self._now(), "agent": _role_name(agent), "payload": payload})

    def final(self, markdown: str) -> None:
        self.write_event(EventName.FINAL.value, {"ts": self._now(), "markdown": markdown})

    def error(self, message: str, details: Any = None) -> None:
        data = {"ts": self._now(), "message": message}
        if details is not None:
            data["details"] = details
        self.write_event(EventName.ERROR.value, data)

    def done(self) -> None:
        self.write_event(EventName.DONE.value, {"ts": self._now()})


class CallbackEventSink(EventSink):
    """Live sink that hands each encoded frame to a callable (stdout, test buffers)."""

    def __init__(
        self,
        emit: Callable[[bytes], Any],
        *,
        on_close: Optional[Callable[[], Any]] = None,
        now: Optional[Callable[[], str]] = None,
    ) -> None:
        super().__init__(now=now)
        self._emit = emit
        self._on_close = on_close
        self.closed = False

    def write_event(self, event: str, data: Any) -> None:
        if self.closed:
            raise StreamFault("stream already closed", {"event": event})
        try:
            self._emit(encode_sse(event, data))
        except StreamFault:
            raise
        except Exception as exc:
            raise StreamFault(f"consumer rejected '{event}' frame: {exc}", {"event": event}) from exc

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._on_close is not None:
            self._on_close()


class ChannelEventSink(EventSink):
    """Live sink backed by an asyncio.Queue, drained by a streaming HTTP response."""

    def __init__(self, *, maxsize: int = 0, now: Optional[Callable[[], str]] = None) -> None:
        super().__init__(now=now)
        self._queue: "asyncio.Queue[Optional[bytes]]" = asyncio.Queue(maxsize=maxsize)
        self.closed = False
        self.detached = False

    def detach(self) -> None:
        """Mark the consumer as gone; later writes fail with StreamFault."""
        self.detached = True

    def write_event(self, event: str, data: Any) -> None:
        if self.detached:
            raise StreamFault("consumer disconnected", {"event": event})
        if self.closed:
            raise StreamFault("stream already closed", {"event": event})
        try:
            self._queue.put_nowait(encode_sse(event, data))
        except asyncio.QueueFull as exc:
            raise StreamFault("consumer is not draining the stream", {"event": event}) from exc

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull as exc:
            raise StreamFault("consumer is not draining the stream", {"event": "close"}) from exc

    async def frames(self) -> AsyncIterator[bytes]:
        while True:
            frame = await self._queue.get()
            if frame is None:
                break
            yield frame


class RecordingEventSink(EventSink):
    """
    Records every event before forwarding it to the live sink.

    Timestamps are generated once per event here; the live frame is encoded
    from the very dict that gets recorded, so replay is byte-identical.
    """

    def __init__(self, live: EventSink, *, now: Optional[Callable[[], str]] = None) -> None:
        super().__init__(now=now)
        self._live = live
        self.events: List[StoredEvent] = []

    def write_event(self, event: str, data: Any) -> None:
        self.events.append(StoredEvent(event=event, data=data))
        self._live.write_event(event, data)

    def close(self) -> None:
        self._live.close()
