"""Process-wide environment configuration.

The host injects its environment once, before any component starts. It is
turned into a frozen :class:`Environment` here and handed to components by
reference; nothing re-reads the raw global afterwards.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml

from .errors import EnvironmentBootstrapError, UnknownEnvironment

logger = logging.getLogger(__name__)

REQUIRED_CONFIG_FIELDS = ("clientId", "editorUrl", "tokenUrl", "runnerUrl", "feedbackUrl", "samplesUrl")
ENVIRONMENT_FILE_ENV = "SCRIPTLAB_ENVIRONMENT_FILE"


@dataclass(frozen=True)
class BuildInfo:
    name: str
    version: str
    timestamp: int
    author: str

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "version": self.version, "timestamp": self.timestamp, "author": self.author}

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "BuildInfo":
        try:
            return cls(
                name=str(raw["name"]),
                version=str(raw["version"]),
                timestamp=int(raw["timestamp"]),
                author=str(raw["author"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise EnvironmentBootstrapError(f"build 資訊不完整：{exc}") from exc


@dataclass(frozen=True)
class EnvironmentConfig:
    name: str
    client_id: str
    instrumentation_key: str
    editor_url: str
    token_url: str
    runner_url: str
    feedback_url: str
    samples_url: str

    def to_dict(self) -> dict[str, str]:
        return {
            "name": self.name,
            "clientId": self.client_id,
            "instrumentationKey": self.instrumentation_key,
            "editorUrl": self.editor_url,
            "tokenUrl": self.token_url,
            "runnerUrl": self.runner_url,
            "feedbackUrl": self.feedback_url,
            "samplesUrl": self.samples_url,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], *, name: str | None = None) -> "EnvironmentConfig":
        if not isinstance(raw, Mapping):
            raise EnvironmentBootstrapError("config 需為物件")
        missing = [key for key in REQUIRED_CONFIG_FIELDS if not isinstance(raw.get(key), str)]
        if missing:
            raise EnvironmentBootstrapError(f"config 缺少必要欄位：{', '.join(missing)}")
        return cls(
            name=str(raw.get("name") or name or ""),
            client_id=raw["clientId"],
            instrumentation_key=str(raw.get("instrumentationKey") or ""),
            editor_url=raw["editorUrl"],
            token_url=raw["tokenUrl"],
            runner_url=raw["runnerUrl"],
            feedback_url=raw["feedbackUrl"],
            samples_url=raw["samplesUrl"],
        )


@dataclass(frozen=True)
class Environment:
    config: EnvironmentConfig
    dev_mode: bool = False
    build: BuildInfo | None = None
    host: str | None = None
    platform: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"devMode": self.dev_mode, "config": self.config.to_dict()}
        if self.build is not None:
            payload["build"] = self.build.to_dict()
        if self.host is not None:
            payload["host"] = self.host
        if self.platform is not None:
            payload["platform"] = self.platform
        return payload


def bootstrap_environment(raw: Mapping[str, Any]) -> Environment:
    """Build the immutable environment from the host-provided global."""
    if not isinstance(raw, Mapping):
        raise EnvironmentBootstrapError("environment 需為物件")
    if raw.get("config") is None:
        raise EnvironmentBootstrapError("environment 缺少 config")
    build = raw.get("build")
    environment = Environment(
        config=EnvironmentConfig.from_dict(raw["config"]),
        dev_mode=bool(raw.get("devMode", False)),
        build=BuildInfo.from_dict(build) if build is not None else None,
        host=raw.get("host"),
        platform=raw.get("platform"),
    )
    logger.info("environment 已載入：%s", environment.config.name or "(unnamed)")
    return environment


def load_environment_file(path: Path | None = None) -> Environment:
    """Bootstrap from a YAML/JSON file, by default the one named in ``SCRIPTLAB_ENVIRONMENT_FILE``."""
    if path is None:
        env_path = os.environ.get(ENVIRONMENT_FILE_ENV, "").strip()
        if not env_path:
            raise EnvironmentBootstrapError(f"未設定 {ENVIRONMENT_FILE_ENV}")
        path = Path(env_path).expanduser()
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise EnvironmentBootstrapError(f"讀取 environment 失敗：{path}") from exc
    return bootstrap_environment(raw or {})


class EnvironmentRegistry:
    """Named environments a session may switch between."""

    def __init__(self, environments: Mapping[str, EnvironmentConfig]) -> None:
        self._environments = MappingProxyType(dict(environments))

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "EnvironmentRegistry":
        section = config.get("environments") if isinstance(config, Mapping) else None
        if not isinstance(section, Mapping):
            return cls({})
        return cls({name: EnvironmentConfig.from_dict(raw, name=name) for name, raw in section.items()})

    def names(self) -> list[str]:
        return sorted(self._environments)

    def __contains__(self, name: object) -> bool:
        return name in self._environments

    def get(self, name: str) -> EnvironmentConfig:
        try:
            return self._environments[name]
        except KeyError:
            raise UnknownEnvironment(name, self.names()) from None

    def environment(
        self,
        name: str,
        *,
        host: str | None = None,
        platform: str | None = None,
        dev_mode: bool = False,
        build: BuildInfo | None = None,
    ) -> Environment:
        return Environment(config=self.get(name), dev_mode=dev_mode, build=build, host=host, platform=platform)
