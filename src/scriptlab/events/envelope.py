"""The ``{type, action, data}`` envelope and its boundary validation."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Mapping

from ..errors import MalformedEvent
from .types import EVENT_REGISTRY, KNOWN_EVENT_TYPES, EventKey, EventSpec


@dataclass(frozen=True)
class Event:
    type: str
    action: int
    data: Mapping[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> EventKey:
        return (self.type, self.action)

    @property
    def name(self) -> str:
        spec = EVENT_REGISTRY.get(self.key)
        return spec.name if spec else f"{self.type}:{self.action}"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "action": self.action, "data": dict(self.data)}


def parse_event(raw: Any) -> Event:
    """Validate a wire message and return it narrowed to its registered payload.

    Fields the registry does not declare for the opcode are dropped, so a peer
    on a newer protocol version can add payload fields without breaking us.
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except (ValueError, RecursionError) as exc:
            raise MalformedEvent(f"event 不是合法 JSON：{exc}") from exc
    if isinstance(raw, Event):
        raw = raw.to_dict()
    if not isinstance(raw, Mapping):
        raise MalformedEvent("event 需為物件")

    event_type = raw.get("type")
    action = raw.get("action")
    if not isinstance(event_type, str) or event_type not in KNOWN_EVENT_TYPES:
        raise MalformedEvent(f"未知的 event type：{event_type!r}")
    if isinstance(action, bool) or not isinstance(action, int):
        raise MalformedEvent(f"event action 需為整數：{action!r}")
    spec = EVENT_REGISTRY.get((event_type, action))
    if spec is None:
        raise MalformedEvent(f"{event_type} 不支援 action {action}")

    data = raw.get("data")
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise MalformedEvent(f"{spec.name} 的 data 需為物件")
    return Event(type=event_type, action=action, data=_narrow(spec, data))


def build_event(key: EventKey, data: Mapping[str, Any] | None = None) -> Event:
    return parse_event({"type": key[0], "action": key[1], "data": dict(data or {})})


def _narrow(spec: EventSpec, data: Mapping[str, Any]) -> dict[str, Any]:
    missing = [name for name in spec.required if data.get(name) is None]
    if missing:
        raise MalformedEvent(f"{spec.name} 缺少必要欄位：{', '.join(sorted(missing))}")
    narrowed: dict[str, Any] = {}
    for name, expected in {**spec.optional, **spec.required}.items():
        if name not in data or data[name] is None:
            continue
        value = data[name]
        if not _matches(value, expected):
            raise MalformedEvent(f"{spec.name}.{name} 型別不正確")
        narrowed[name] = value
    return narrowed


def _matches(value: Any, expected: type | tuple[type, ...]) -> bool:
    if expected is object:
        return True
    if isinstance(value, bool) and expected is not bool:
        return False
    return isinstance(value, expected)
