"""Session and settings store.

The store is the only writer of the live snippet and the user settings. The
event channel and the UI hand it events or requests; they never assign to
these entities themselves.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from pathlib import Path
from typing import Any, Mapping

from .config import read_yaml, write_yaml
from .environment import EnvironmentRegistry
from .errors import PlaygroundError, SectionMismatch, UnknownEnvironment
from .events.bus import (
    DEFAULT_HANDSHAKE_TIMEOUT_S,
    AlertSink,
    EventChannel,
    Transport,
    handshake_timeout_from_config,
)
from .events.envelope import Event, parse_event
from .events.types import (
    EDIT,
    EDITOR_CONTENT,
    EDITOR_SWITCH,
    EDITOR_VIEW_STATE,
    SETTINGS_ENV,
    SETTINGS_LANGUAGE,
    SETTINGS_THEME,
)
from .logging import log_event
from .models import SNIPPET_SECTIONS, EditorState, Profile, RunnerState, Settings, Snippet, SnippetSection, Tab
from .storage import resolve_data_dir, validate_profile_key

logger = logging.getLogger(__name__)

SETTINGS_FILENAME = "settings.yaml"


class SessionStore:
    def __init__(
        self,
        registry: EnvironmentRegistry,
        *,
        data_dir: Path | None = None,
        profile: Profile | None = None,
        default_env: str | None = None,
        handshake_timeout_s: float = DEFAULT_HANDSHAKE_TIMEOUT_S,
    ) -> None:
        self.registry = registry
        self.handshake_timeout_s = handshake_timeout_s
        self.data_dir = data_dir or resolve_data_dir()
        self._lock = threading.RLock()
        self._settings = Settings(profile=profile or Profile())
        if default_env:
            self._settings.env = default_env
        self._snippet: Snippet | None = None
        self._editors: dict[str, EditorState] = {}
        self._active_view: str | None = None

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        *,
        data_dir: Path | None = None,
        profile: Profile | None = None,
    ) -> "SessionStore":
        """Build a store from a resolved configuration mapping."""
        section = config.get("scriptlab") or {}
        default_env = section.get("default_env")
        return cls(
            EnvironmentRegistry.from_config(config),
            data_dir=data_dir,
            profile=profile,
            default_env=str(default_env) if default_env else None,
            handshake_timeout_s=handshake_timeout_from_config(config),
        )

    @property
    def settings(self) -> Settings:
        with self._lock:
            last_opened = self._settings.last_opened
            return replace(self._settings, last_opened=last_opened.copy() if last_opened is not None else None)

    @property
    def snippet(self) -> Snippet | None:
        with self._lock:
            return self._snippet.copy() if self._snippet is not None else None

    @property
    def active_view(self) -> str | None:
        return self._active_view

    @property
    def settings_path(self) -> Path:
        key = validate_profile_key(self._settings.profile.key)
        return self.data_dir / "profiles" / key / SETTINGS_FILENAME

    def load(self) -> Settings:
        """Read the persisted record once at startup and reopen ``lastOpened``."""
        with self._lock:
            path = self.settings_path
            raw = read_yaml(path)
            if not raw:
                return self.settings
            loaded = Settings.from_dict(raw)
            if loaded.env not in self.registry:
                logger.warning("設定中的環境 %s 不存在，改用 %s", loaded.env, self._settings.env)
                loaded.env = self._settings.env
            loaded.profile = self._settings.profile
            self._settings = loaded
            if loaded.last_opened is not None:
                self._set_live(loaded.last_opened.validate().copy())
            self._log("settings_loaded", path=str(path))
            return self.settings

    def save(self) -> Path:
        with self._lock:
            if self._snippet is not None:
                self._settings.last_opened = self._snippet.copy()
            path = self.settings_path
            write_yaml(path, self._settings.to_dict())
            self._log("settings_saved", path=str(path))
            return path

    def open(self, snippet: Snippet | Mapping[str, Any]) -> Snippet:
        """Make ``snippet`` the live snippet. Persisting is a separate ``save()``."""
        if not isinstance(snippet, Snippet):
            snippet = Snippet.from_dict(snippet)
        snippet.validate()
        with self._lock:
            live = snippet.copy()
            self._set_live(live)
            self._settings.last_opened = live.copy()
            self._log("snippet_opened", snippet=live.name, local=live.is_local)
            return live.copy()

    def apply_editor_event(self, event: Event | Mapping[str, Any]) -> Snippet:
        event = parse_event(event)
        if event.type != EDIT:
            raise SectionMismatch(event.data.get("view"))
        view = event.data.get("view")
        if view not in SNIPPET_SECTIONS:
            raise SectionMismatch(view)

        with self._lock:
            if self._snippet is None:
                raise PlaygroundError("尚未開啟任何 snippet")
            if event.key == EDITOR_CONTENT:
                self._snippet.write_section(view, event.data["content"], event.data.get("language"))
            editor = self._editors.setdefault(view, EditorState(name=view.title(), view=view))
            if event.key == EDITOR_CONTENT:
                self._sync_editor(editor, self._snippet.section(view))
                self._log("snippet_edited", view=view, last_modified=self._snippet.last_modified)
            elif event.key == EDITOR_VIEW_STATE:
                editor.view_state = event.data.get("viewState")
                editor.model = event.data.get("model")
            elif event.key == EDITOR_SWITCH:
                self._active_view = view
                if event.data.get("name"):
                    editor.name = event.data["name"]
            return self._snippet.copy()

    def switch_environment(self, name: str) -> str:
        if name not in self.registry:
            raise UnknownEnvironment(name, self.registry.names())
        with self._lock:
            previous = self._settings.env
            self._settings.env = name
        self._log("environment_switched", previous=previous, env=name)
        return name

    def set_theme(self, dark: bool) -> None:
        with self._lock:
            self._settings.theme = bool(dark)

    def set_language(self, language: str) -> None:
        if not isinstance(language, str) or not language.strip():
            raise ValueError("language 不可為空")
        with self._lock:
            self._settings.language = language.strip().lower()

    def set_profile(self, profile: Profile) -> None:
        validate_profile_key(profile.key)
        with self._lock:
            self._settings.profile = profile

    def editor_state(self, view: str) -> EditorState | None:
        with self._lock:
            editor = self._editors.get(view)
            return replace(editor) if editor is not None else None

    def tabs(self) -> list[Tab]:
        with self._lock:
            return [self._editors[view].to_tab() for view in SNIPPET_SECTIONS if view in self._editors]

    def runner_state(self, origin: str, host: str, platform: str) -> RunnerState:
        snippet = self.snippet
        if snippet is None:
            raise PlaygroundError("尚未開啟任何 snippet")
        return RunnerState(snippet=snippet, origin=origin, host=host, platform=platform)

    def bind(self, channel: EventChannel) -> None:
        """Route editor and settings opcodes arriving on ``channel`` into this store."""
        for key in (EDITOR_CONTENT, EDITOR_VIEW_STATE, EDITOR_SWITCH):
            channel.register(key, self.apply_editor_event)
        channel.register(SETTINGS_THEME, lambda event: self.set_theme(event.data["theme"]))
        channel.register(SETTINGS_LANGUAGE, lambda event: self.set_language(event.data["language"]))
        channel.register(SETTINGS_ENV, lambda event: self.switch_environment(event.data["env"]))

    def connect_runner(
        self,
        origin: str,
        transport: Transport,
        alert_sink: AlertSink | None = None,
    ) -> EventChannel:
        """Open a channel to the runner at ``origin``, bound to this store."""
        channel = EventChannel(transport=transport, alert_sink=alert_sink)
        self.bind(channel)
        channel.begin_handshake(origin, timeout_s=self.handshake_timeout_s)
        self._log("runner_connecting", channel_id=channel.channel_id, origin=origin)
        return channel

    def _set_live(self, snippet: Snippet) -> None:
        self._snippet = snippet
        self._editors = {}
        self._active_view = None
        for view in SNIPPET_SECTIONS:
            value = snippet.section(view)
            if value is None:
                continue
            editor = EditorState(name=view.title(), view=view)
            self._sync_editor(editor, value)
            self._editors[view] = editor

    @staticmethod
    def _sync_editor(editor: EditorState, value: SnippetSection | str | None) -> None:
        if isinstance(value, SnippetSection):
            editor.content = value.content
            editor.language = value.language
        else:
            editor.content = value

    def _log(self, event: str, **fields: Any) -> None:
        log_event({"event": event, "profile": self._settings.profile.key, **fields})
