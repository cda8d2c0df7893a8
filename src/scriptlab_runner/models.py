"""Typed payloads for the runner HTTP API."""

from __future__ import annotations

from typing import Any, TypedDict


class RenderRequest(TypedDict, total=False):
    snippet: dict[str, Any]
    origin: str
    host: str
    platform: str
    returnUrl: str
    refreshUrl: str


class AlertPayload(TypedDict):
    title: str
    message: str
    actions: list[str]
