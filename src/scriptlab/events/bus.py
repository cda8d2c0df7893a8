"""Host/runner event channel.

A channel moves through ``unbound -> handshaking -> ready -> torn_down``.
Inbound and outbound events share one FIFO queue drained by a single worker
thread, so handlers never interleave and ``send``/``receive`` never block.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping
from uuid import uuid4

from ..errors import HandshakeTimeout, MalformedEvent, OriginMismatch, PlaygroundError, ProtocolError, UnhandledEvent
from ..logging import log_event
from ..models import Alert
from .envelope import Event, parse_event
from .types import EVENT_REGISTRY, RUNNER_READY, EventKey

logger = logging.getLogger(__name__)

Handler = Callable[[Event], None]
Transport = Callable[[dict[str, Any]], None]
AlertSink = Callable[[Alert], None]
DiagnosticSink = Callable[[dict[str, Any]], None]

DEFAULT_HANDSHAKE_TIMEOUT_S = 10.0

_INBOUND = "in"
_OUTBOUND = "out"
_STOP = object()


class ChannelState(str, Enum):
    UNBOUND = "unbound"
    HANDSHAKING = "handshaking"
    READY = "ready"
    TORN_DOWN = "torn_down"


def normalize_origin(origin: str | None) -> str:
    return (origin or "").strip().rstrip("/").lower()


def handshake_timeout_from_config(config: Mapping[str, Any]) -> float:
    section = config.get("scriptlab") or {}
    try:
        timeout_s = float(section.get("handshake_timeout_s", DEFAULT_HANDSHAKE_TIMEOUT_S))
    except (TypeError, ValueError) as exc:
        raise ValueError("scriptlab.handshake_timeout_s 必須是數字") from exc
    if timeout_s <= 0:
        raise ValueError("scriptlab.handshake_timeout_s 必須大於 0")
    return timeout_s


@dataclass
class EventChannel:
    transport: Transport | None = None
    alert_sink: AlertSink | None = None
    diagnostics: DiagnosticSink = log_event
    readiness_key: EventKey = RUNNER_READY
    channel_id: str = field(default_factory=lambda: uuid4().hex)
    _state: ChannelState = field(default=ChannelState.UNBOUND, init=False)
    _expected_origin: str | None = field(default=None, init=False)
    _handlers: dict[EventKey, Handler] = field(default_factory=dict, init=False)
    _queue: queue.Queue[Any] = field(default_factory=queue.Queue, init=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False)
    _timer: threading.Timer | None = field(default=None, init=False)
    _worker: threading.Thread | None = field(default=None, init=False)
    _error: ProtocolError | None = field(default=None, init=False)

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def expected_origin(self) -> str | None:
        return self._expected_origin

    @property
    def error(self) -> ProtocolError | None:
        return self._error

    def register(self, key: EventKey, handler: Handler) -> None:
        if key not in EVENT_REGISTRY:
            raise ValueError(f"未註冊的 event：{key}")
        with self._lock:
            if key in self._handlers:
                raise ValueError(f"event 已有 handler：{key}")
            self._handlers[key] = handler

    def unregister(self, key: EventKey) -> None:
        with self._lock:
            self._handlers.pop(key, None)

    def begin_handshake(self, origin: str, timeout_s: float = DEFAULT_HANDSHAKE_TIMEOUT_S) -> None:
        """Capture the peer origin and wait at most ``timeout_s`` for readiness."""
        if not normalize_origin(origin):
            raise ValueError("origin 不可為空")
        if timeout_s <= 0:
            raise ValueError("timeout_s 必須大於 0")
        with self._lock:
            if self._state is not ChannelState.UNBOUND:
                raise RuntimeError(f"channel 狀態為 {self._state.value}，無法開始 handshake")
            self._expected_origin = normalize_origin(origin)
            self._state = ChannelState.HANDSHAKING
            self._worker = threading.Thread(
                target=self._worker_loop,
                name=f"scriptlab-channel-{self.channel_id[:8]}",
                daemon=True,
            )
            self._worker.start()
            self._timer = threading.Timer(timeout_s, self._on_handshake_timeout)
            self._timer.daemon = True
            self._timer.start()
        self._report("channel_handshake_started", origin=self._expected_origin, timeout_s=timeout_s)

    def receive(self, message: Any, origin: str | None) -> bool:
        """Accept one inbound message; returns False when it was rejected."""
        with self._lock:
            if self._state in (ChannelState.UNBOUND, ChannelState.TORN_DOWN):
                self._report("channel_event_rejected", level="WARNING", reason=self._state.value)
                return False
            if normalize_origin(origin) != self._expected_origin:
                self.teardown(
                    "origin_mismatch",
                    OriginMismatch(f"來源 {origin!r} 與預期 {self._expected_origin!r} 不符"),
                )
                return False
            try:
                event = parse_event(message)
            except MalformedEvent as exc:
                self.teardown("malformed_event", exc)
                return False
            if self._state is ChannelState.HANDSHAKING:
                if event.key != self.readiness_key:
                    self.teardown("malformed_event", MalformedEvent(f"handshake 期間收到非預期的 {event.name}"))
                    return False
                self._mark_ready()
            self._queue.put((_INBOUND, event))
            return True

    def send(self, event: Event | dict[str, Any]) -> bool:
        """Queue an outbound event. Returns False when it is not sent."""
        try:
            parsed = parse_event(event)
        except MalformedEvent as exc:
            logger.warning("拒絕送出 event：%s", exc)
            self._report(
                "channel_send_rejected",
                level="WARNING",
                reason="malformed_event",
                message=str(exc),
            )
            return False
        with self._lock:
            if self._state is not ChannelState.READY:
                self._report(
                    "channel_send_rejected",
                    level="WARNING",
                    reason=self._state.value,
                    event_type=parsed.type,
                    action=parsed.action,
                )
                return False
            self._queue.put((_OUTBOUND, parsed))
            return True

    def teardown(self, reason: str = "closed", error: ProtocolError | None = None) -> None:
        """Close the channel and drop everything still queued."""
        with self._lock:
            if self._state is ChannelState.TORN_DOWN:
                return
            previous = self._state
            self._state = ChannelState.TORN_DOWN
            self._error = error
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            dropped = self._drain()
            if self._worker is not None:
                self._queue.put(_STOP)
        self._report(
            "channel_torn_down",
            level="ERROR" if error else "INFO",
            reason=reason,
            previous_state=previous.value,
            error=type(error).__name__ if error else None,
            message=str(error) if error else None,
            dropped=dropped,
        )
        if error is not None:
            logger.error("channel %s 已關閉：%s", self.channel_id, error)
            self._alert(error)

    def close(self, timeout: float = 5.0) -> None:
        self.teardown("closed")
        worker = self._worker
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout=timeout)

    def wait_for_idle(self, timeout: float | None = None) -> bool:
        start = time.monotonic()
        while True:
            if self._queue.unfinished_tasks == 0:
                return True
            if timeout is not None and (time.monotonic() - start) > timeout:
                return False
            time.sleep(0.01)

    def _mark_ready(self) -> None:
        self._state = ChannelState.READY
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._report("channel_ready", origin=self._expected_origin)

    def _on_handshake_timeout(self) -> None:
        with self._lock:
            if self._state is not ChannelState.HANDSHAKING:
                return
            self.teardown("handshake_timeout", HandshakeTimeout("runner 未在時限內回報就緒"))

    def _drain(self) -> int:
        dropped = 0
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return dropped
            if item is not _STOP:
                dropped += 1
            self._queue.task_done()

    def _worker_loop(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                direction, event = item
                if self._state is not ChannelState.READY:
                    continue
                if direction == _INBOUND:
                    self._dispatch(event)
                else:
                    self._deliver(event)
            finally:
                self._queue.task_done()

    def _dispatch(self, event: Event) -> None:
        handler = self._handlers.get(event.key)
        if handler is None:
            error = UnhandledEvent(f"沒有 handler 處理 {event.name}")
            logger.warning("%s", error)
            self._report(
                "channel_event_unhandled",
                level="WARNING",
                event_type=event.type,
                action=event.action,
                message=str(error),
            )
            return
        try:
            handler(event)
        except PlaygroundError as exc:
            self._report(
                "channel_handler_failed",
                level="WARNING",
                event_type=event.type,
                action=event.action,
                error=type(exc).__name__,
                message=str(exc),
            )
            self._alert(exc)
        except Exception as exc:  # noqa: BLE001
            logger.error("處理 %s 失敗：%s", event.name, exc, exc_info=True)
            self._report(
                "channel_handler_failed",
                level="ERROR",
                event_type=event.type,
                action=event.action,
                error=type(exc).__name__,
                message=str(exc),
            )

    def _deliver(self, event: Event) -> None:
        if self.transport is None:
            self._report("channel_send_dropped", level="WARNING", reason="no_transport", event_type=event.type)
            return
        try:
            self.transport(event.to_dict())
        except Exception as exc:  # noqa: BLE001
            logger.error("送出 %s 失敗：%s", event.name, exc, exc_info=True)
            self.teardown("transport_failed", ProtocolError(f"送出 {event.name} 失敗：{exc}"))

    def _alert(self, error: PlaygroundError) -> None:
        if self.alert_sink is None:
            return
        try:
            self.alert_sink(error.to_alert())
        except Exception as exc:  # noqa: BLE001
            logger.error("alert sink 失敗：%s", exc, exc_info=True)

    def _report(self, event: str, **fields: Any) -> None:
        payload = {"event": event, "channel_id": self.channel_id, **fields}
        try:
            self.diagnostics(payload)
        except Exception as exc:  # noqa: BLE001
            logger.error("診斷紀錄失敗：%s | %s", exc, payload)
