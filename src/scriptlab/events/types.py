"""Versioned registry of host/runner event opcodes.

``(type, action)`` is the discriminant. Action numbers are only unique within
a type, so ``("runner", 1)`` and ``("state", 1)`` are unrelated opcodes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

PROTOCOL_VERSION = 1

EventKey = tuple[str, int]

RUNNER = "runner"
STATE = "state"
EDIT = "edit"
ALERT = "alert"
SETTINGS = "settings"

RUNNER_READY: EventKey = (RUNNER, 1)
RUNNER_ERROR: EventKey = (RUNNER, 2)
RUNNER_REFRESH: EventKey = (RUNNER, 3)
RUNNER_STATE: EventKey = (STATE, 1)
EDITOR_CONTENT: EventKey = (EDIT, 1)
EDITOR_VIEW_STATE: EventKey = (EDIT, 2)
EDITOR_SWITCH: EventKey = (EDIT, 3)
ALERT_SHOW: EventKey = (ALERT, 1)
ALERT_RESPONSE: EventKey = (ALERT, 2)
SETTINGS_THEME: EventKey = (SETTINGS, 1)
SETTINGS_LANGUAGE: EventKey = (SETTINGS, 2)
SETTINGS_ENV: EventKey = (SETTINGS, 3)


@dataclass(frozen=True)
class EventSpec:
    """Payload shape of one opcode. ``object`` accepts any value."""

    name: str
    required: Mapping[str, type | tuple[type, ...]] = field(default_factory=dict)
    optional: Mapping[str, type | tuple[type, ...]] = field(default_factory=dict)
    since: int = 1

    @property
    def fields(self) -> set[str]:
        return set(self.required) | set(self.optional)


EVENT_REGISTRY: dict[EventKey, EventSpec] = {
    RUNNER_READY: EventSpec("RUNNER_READY", optional={"snippetId": str, "version": int}),
    RUNNER_ERROR: EventSpec("RUNNER_ERROR", required={"message": str}, optional={"details": object}),
    RUNNER_REFRESH: EventSpec("RUNNER_REFRESH", optional={"snippetId": str}),
    RUNNER_STATE: EventSpec(
        "RUNNER_STATE",
        required={"snippet": Mapping, "origin": str, "host": str, "platform": str},
    ),
    EDITOR_CONTENT: EventSpec(
        "EDITOR_CONTENT",
        required={"view": str, "content": str},
        optional={"language": str},
    ),
    EDITOR_VIEW_STATE: EventSpec(
        "EDITOR_VIEW_STATE",
        required={"view": str},
        optional={"viewState": object, "model": object},
    ),
    EDITOR_SWITCH: EventSpec("EDITOR_SWITCH", required={"view": str}, optional={"name": str}),
    ALERT_SHOW: EventSpec("ALERT_SHOW", required={"title": str, "message": str, "actions": list}),
    ALERT_RESPONSE: EventSpec("ALERT_RESPONSE", required={"title": str, "action": str}),
    SETTINGS_THEME: EventSpec("SETTINGS_THEME", required={"theme": bool}),
    SETTINGS_LANGUAGE: EventSpec("SETTINGS_LANGUAGE", required={"language": str}),
    SETTINGS_ENV: EventSpec("SETTINGS_ENV", required={"env": str}),
}

KNOWN_EVENT_TYPES = {event_type for event_type, _ in EVENT_REGISTRY}


def actions_for(event_type: str) -> set[int]:
    return {action for kind, action in EVENT_REGISTRY if kind == event_type}


def lookup(key: EventKey) -> EventSpec | None:
    return EVENT_REGISTRY.get(key)


def describe(key: EventKey) -> dict[str, Any]:
    spec = EVENT_REGISTRY[key]
    return {
        "type": key[0],
        "action": key[1],
        "name": spec.name,
        "required": sorted(spec.required),
        "optional": sorted(spec.optional),
        "since": spec.since,
    }


__all__ = [
    "PROTOCOL_VERSION",
    "EventKey",
    "EventSpec",
    "EVENT_REGISTRY",
    "KNOWN_EVENT_TYPES",
    "RUNNER",
    "STATE",
    "EDIT",
    "ALERT",
    "SETTINGS",
    "RUNNER_READY",
    "RUNNER_ERROR",
    "RUNNER_REFRESH",
    "RUNNER_STATE",
    "EDITOR_CONTENT",
    "EDITOR_VIEW_STATE",
    "EDITOR_SWITCH",
    "ALERT_SHOW",
    "ALERT_RESPONSE",
    "SETTINGS_THEME",
    "SETTINGS_LANGUAGE",
    "SETTINGS_ENV",
    "actions_for",
    "lookup",
    "describe",
]
