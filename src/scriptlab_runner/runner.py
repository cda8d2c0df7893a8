"""Render engine for the snippet runner service."""

from __future__ import annotations

import json
import logging
import time
import uuid
from pathlib import Path
from typing import Any

from scriptlab.config import ConfigLoader
from scriptlab.environment import Environment, EnvironmentRegistry, load_environment_file
from scriptlab.errors import OriginMismatch
from scriptlab.events.bus import normalize_origin
from scriptlab.models import RunnerState
from scriptlab.templates import (
    RoutingContext,
    assemble_outer_template,
    build_iframe_content,
    escape_for_embedding,
    render_outer_template,
)

from .config import RunnerSettings
from .models import RenderRequest

logger = logging.getLogger("scriptlab_runner")


def resolve_environment(settings: RunnerSettings) -> Environment:
    if settings.environment_file:
        return load_environment_file(Path(settings.environment_file).expanduser())
    resolution = ConfigLoader().resolve()
    return EnvironmentRegistry.from_config(resolution.effective).environment(settings.env)


class SnippetRunner:
    def __init__(self, settings: RunnerSettings, environment: Environment | None = None) -> None:
        self.settings = settings
        self.environment = environment or resolve_environment(settings)
        self._allowed_origins = {normalize_origin(origin) for origin in settings.allowed_origins}
        self._rendered = 0

    def health_snapshot(self) -> dict[str, Any]:
        return {
            "environment": self.environment.config.name,
            "rendered": self._rendered,
        }

    def render(self, request: RenderRequest) -> str:
        if not isinstance(request, dict):
            raise ValueError("request 需為物件")
        request_id = uuid.uuid4().hex
        snippet_bytes = len(json.dumps(request.get("snippet") or {}, ensure_ascii=False).encode("utf-8"))
        if snippet_bytes > self.settings.limits.max_snippet_bytes:
            raise ValueError("snippet 大小超過上限")

        state = RunnerState.from_dict(request)
        origin = normalize_origin(state.origin)
        if self._allowed_origins and origin not in self._allowed_origins:
            raise OriginMismatch(f"不允許的 origin：{state.origin}")
        if len(state.snippet.library_references()) > self.settings.limits.max_libraries:
            raise ValueError("libraries 數量超過上限")

        status = "error"
        start = time.monotonic()
        self._log_event("runner.render.start", request_id=request_id, host=state.host, platform=state.platform)
        try:
            routing = RoutingContext(
                iframe_content=escape_for_embedding(build_iframe_content(state.snippet)),
                return_url=request.get("returnUrl") or None,
                refresh_url=request.get("refreshUrl") or None,
                host=state.host,
                platform=state.platform,
            )
            data = assemble_outer_template(state.snippet, self.environment, routing)
            document = render_outer_template(data)
            status = "ok"
            self._rendered += 1
            return document
        finally:
            self._log_event(
                "runner.render.finish",
                request_id=request_id,
                status=status,
                snippet_bytes=snippet_bytes,
                duration_ms=int((time.monotonic() - start) * 1000),
            )

    def _log_event(self, event: str, **fields: Any) -> None:
        payload = {"event": event, **fields}
        logger.info(json.dumps(payload, ensure_ascii=False, sort_keys=True))
