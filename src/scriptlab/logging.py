"""JSONL diagnostic sink for Script Lab."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from .storage import append_jsonl, resolve_data_dir

_LOGGER = logging.getLogger("scriptlab.logging")

PROTOCOL_EVENT_PREFIX = "channel_"


def log_event(event: dict[str, Any]) -> None:
    payload = _build_payload(event)
    try:
        _append_jsonl(_log_path("scriptlab.log"), payload)
        if str(payload.get("event", "")).startswith(PROTOCOL_EVENT_PREFIX):
            _append_jsonl(_log_path("events.log"), payload)
    except OSError as exc:
        _LOGGER.error("寫入診斷紀錄失敗：%s | %s", exc, payload)


def _build_payload(source: dict[str, Any]) -> dict[str, Any]:
    payload = dict(source)
    payload.setdefault("ts", _now_iso())
    payload.setdefault("level", "INFO")
    payload.setdefault("profile", None)
    payload.setdefault("channel_id", None)
    return payload


def _append_jsonl(path: Path, payload: dict[str, Any]) -> None:
    append_jsonl(path, payload)


def _log_path(filename: str) -> Path:
    return resolve_data_dir() / "logs" / filename


def _now_iso() -> str:
    return datetime.now().astimezone().isoformat(timespec="seconds")
