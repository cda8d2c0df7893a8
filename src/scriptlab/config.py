"""Layered YAML configuration for Script Lab."""

from __future__ import annotations

import os
from copy import deepcopy
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml

from .storage import atomic_write_text, resolve_data_dir

DEFAULT_CONFIG: dict[str, Any] = {
    "scriptlab": {
        "default_env": "production",
        "handshake_timeout_s": 10,
    },
    "environments": {
        "local": {
            "name": "local",
            "clientId": "",
            "instrumentationKey": "",
            "editorUrl": "https://localhost:3000",
            "tokenUrl": "https://localhost:3200/auth",
            "runnerUrl": "https://localhost:3200",
            "feedbackUrl": "https://github.com/OfficeDev/script-lab/issues",
            "samplesUrl": "https://raw.githubusercontent.com/OfficeDev/office-js-snippets/master",
        },
        "edge": {
            "name": "edge",
            "clientId": "",
            "instrumentationKey": "",
            "editorUrl": "https://script-lab-edge.azurewebsites.net",
            "tokenUrl": "https://script-lab-runner-edge.azurewebsites.net/auth",
            "runnerUrl": "https://script-lab-runner-edge.azurewebsites.net",
            "feedbackUrl": "https://github.com/OfficeDev/script-lab/issues",
            "samplesUrl": "https://raw.githubusercontent.com/OfficeDev/office-js-snippets/master",
        },
        "insiders": {
            "name": "insiders",
            "clientId": "",
            "instrumentationKey": "",
            "editorUrl": "https://script-lab-insiders.azurewebsites.net",
            "tokenUrl": "https://script-lab-runner-insiders.azurewebsites.net/auth",
            "runnerUrl": "https://script-lab-runner-insiders.azurewebsites.net",
            "feedbackUrl": "https://github.com/OfficeDev/script-lab/issues",
            "samplesUrl": "https://raw.githubusercontent.com/OfficeDev/office-js-snippets/deploy-beta",
        },
        "production": {
            "name": "production",
            "clientId": "",
            "instrumentationKey": "",
            "editorUrl": "https://script-lab.azureedge.net",
            "tokenUrl": "https://script-lab-runner.azureedge.net/auth",
            "runnerUrl": "https://script-lab-runner.azureedge.net",
            "feedbackUrl": "https://github.com/OfficeDev/script-lab/issues",
            "samplesUrl": "https://raw.githubusercontent.com/OfficeDev/office-js-snippets/deploy-prod",
        },
    },
}


def read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise RuntimeError(f"讀取設定檔失敗：{path}") from exc
    if not isinstance(data, dict):
        raise RuntimeError(f"設定檔格式不正確：{path}")
    return data


def write_yaml(path: Path, data: Mapping[str, Any]) -> None:
    try:
        atomic_write_text(path, yaml.safe_dump(dict(data), allow_unicode=True, sort_keys=False))
    except OSError as exc:
        raise RuntimeError(f"寫入設定檔失敗：{path}") from exc


def _assign_sources(value: Any, source: str) -> Any:
    if isinstance(value, dict):
        return {key: _assign_sources(val, source) for key, val in value.items()}
    return source


def _merge_with_sources(
    base: dict[str, Any],
    sources: dict[str, Any],
    updates: Mapping[str, Any],
    source: str,
) -> None:
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict) and isinstance(sources.get(key), dict):
            _merge_with_sources(base[key], sources[key], value, source)
        else:
            base[key] = deepcopy(value)
            sources[key] = _assign_sources(value, source)


@dataclass
class ConfigResolution:
    effective: dict[str, Any]
    sources: dict[str, Any]


class ConfigLoader:
    """Resolve defaults, ``config.yaml``, ``SCRIPTLAB_ENV`` and CLI overrides."""

    def __init__(self, data_dir: Path | None = None) -> None:
        self.data_dir = data_dir or resolve_data_dir()

    @property
    def global_config_path(self) -> Path:
        return self.data_dir / "config.yaml"

    def load_global(self) -> dict[str, Any]:
        return read_yaml(self.global_config_path)

    def resolve(self, cli_overrides: Mapping[str, Any] | None = None) -> ConfigResolution:
        effective = deepcopy(DEFAULT_CONFIG)
        sources = _assign_sources(DEFAULT_CONFIG, "default")

        _merge_with_sources(effective, sources, self.load_global(), "global")

        env_name = os.environ.get("SCRIPTLAB_ENV", "").strip()
        if env_name:
            _merge_with_sources(effective, sources, {"scriptlab": {"default_env": env_name}}, "env")

        if cli_overrides:
            _merge_with_sources(effective, sources, cli_overrides, "cli")

        return ConfigResolution(effective=effective, sources=sources)
