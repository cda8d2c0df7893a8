"""Runtime settings for the snippet runner service."""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class RunnerLimits:
    max_snippet_bytes: int = 512 * 1024
    max_libraries: int = 64


@dataclass(frozen=True)
class RunnerSettings:
    host: str = "127.0.0.1"
    port: int = 3200
    env: str = "production"
    environment_file: str | None = None
    allowed_origins: tuple[str, ...] = ()
    limits: RunnerLimits = RunnerLimits()


def _split_origins(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


def load_settings() -> RunnerSettings:
    return RunnerSettings(
        host=os.environ.get("SCRIPTLAB_RUNNER_HOST", "127.0.0.1"),
        port=int(os.environ.get("SCRIPTLAB_RUNNER_PORT", "3200")),
        env=os.environ.get("SCRIPTLAB_ENV", "production"),
        environment_file=os.environ.get("SCRIPTLAB_ENVIRONMENT_FILE") or None,
        allowed_origins=_split_origins(os.environ.get("SCRIPTLAB_RUNNER_ALLOWED_ORIGINS", "")),
        limits=RunnerLimits(
            max_snippet_bytes=int(os.environ.get("SCRIPTLAB_RUNNER_MAX_SNIPPET_BYTES", str(512 * 1024))),
            max_libraries=int(os.environ.get("SCRIPTLAB_RUNNER_MAX_LIBRARIES", "64")),
        ),
    )
