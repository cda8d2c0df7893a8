"""Host/runner event protocol."""

from .bus import ChannelState, EventChannel, handshake_timeout_from_config, normalize_origin
from .envelope import Event, build_event, parse_event
from .types import (
    ALERT_RESPONSE,
    ALERT_SHOW,
    EDITOR_CONTENT,
    EDITOR_SWITCH,
    EDITOR_VIEW_STATE,
    EVENT_REGISTRY,
    KNOWN_EVENT_TYPES,
    PROTOCOL_VERSION,
    RUNNER_ERROR,
    RUNNER_READY,
    RUNNER_REFRESH,
    RUNNER_STATE,
    SETTINGS_ENV,
    SETTINGS_LANGUAGE,
    SETTINGS_THEME,
)

__all__ = [
    "ChannelState",
    "EventChannel",
    "normalize_origin",
    "handshake_timeout_from_config",
    "Event",
    "build_event",
    "parse_event",
    "PROTOCOL_VERSION",
    "EVENT_REGISTRY",
    "KNOWN_EVENT_TYPES",
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
]
