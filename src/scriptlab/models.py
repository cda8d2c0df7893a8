"""Snippet, session and settings data model.

The wire shape of every entity is the flat camelCase dict the browser side
uses; ``to_dict``/``from_dict`` translate between that and the dataclasses
here. Optional fields that are absent on the wire stay absent after a round
trip, they are never materialized as empty strings.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field, replace
from typing import Any, Mapping

from .errors import InvalidLanguageTag, SectionMismatch

SECTION_LANGUAGES: dict[str, frozenset[str]] = {
    "script": frozenset({"typescript", "javascript"}),
    "template": frozenset({"html", "text"}),
    "style": frozenset({"css", "less", "scss"}),
}
DEFAULT_LANGUAGES = {"script": "typescript", "template": "html", "style": "css"}
LIBRARIES_VIEW = "libraries"
SNIPPET_SECTIONS = ("script", "template", "style", LIBRARIES_VIEW)

TEMPLATE_FIELDS = ("id", "gist", "author", "source", "name", "description")

_LIBRARY_SEPARATORS = re.compile(r"[\n;]")


def now_ms() -> int:
    return int(time.time() * 1000)


def normalize_language(section: str, language: Any) -> str:
    allowed = SECTION_LANGUAGES.get(section)
    if allowed is None:
        raise SectionMismatch(section)
    if not isinstance(language, str):
        raise InvalidLanguageTag(section, language)
    tag = language.strip().lower()
    if tag not in allowed:
        raise InvalidLanguageTag(section, language)
    return tag


def parse_libraries(text: str | None) -> list[str]:
    """Split a libraries block into references, keeping load order."""
    if not text:
        return []
    references = []
    for raw in _LIBRARY_SEPARATORS.split(text):
        line = raw.strip()
        if not line or line.startswith("#") or line.startswith("//"):
            continue
        references.append(line)
    return references


def _optional_str(raw: Mapping[str, Any], key: str) -> str | None:
    if key not in raw or raw[key] is None:
        return None
    value = raw[key]
    if not isinstance(value, str):
        raise ValueError(f"{key} 需為字串")
    return value


@dataclass(frozen=True)
class Template:
    """Identity and provenance of a piece of shared content."""

    id: str | None = None
    gist: str | None = None
    author: str | None = None
    source: str | None = None
    name: str | None = None
    description: str | None = None

    def reference(self) -> tuple[str, str] | None:
        # id wins when both are present; gist is then provenance only
        if self.id:
            return ("id", self.id)
        if self.gist:
            return ("gist", self.gist)
        return None

    def to_dict(self) -> dict[str, Any]:
        return {key: getattr(self, key) for key in TEMPLATE_FIELDS if getattr(self, key) is not None}

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Template":
        return cls(**{key: _optional_str(raw, key) for key in TEMPLATE_FIELDS})


@dataclass(frozen=True)
class SnippetSection:
    content: str
    language: str

    def __post_init__(self) -> None:
        if isinstance(self.language, str):
            object.__setattr__(self, "language", self.language.strip().lower())

    def to_dict(self) -> dict[str, str]:
        return {"content": self.content, "language": self.language}

    @classmethod
    def from_dict(cls, section: str, raw: Any) -> "SnippetSection":
        if not isinstance(raw, Mapping):
            raise ValueError(f"{section} 需為物件")
        content = raw.get("content")
        if not isinstance(content, str):
            raise ValueError(f"{section}.content 需為字串")
        return cls(content=content, language=normalize_language(section, raw.get("language")))


@dataclass
class Snippet:
    """User-authored script/template/style content plus its identity block."""

    identity: Template = field(default_factory=Template)
    script: SnippetSection | None = None
    template: SnippetSection | None = None
    style: SnippetSection | None = None
    libraries: str | None = None
    last_modified: int | None = None

    @property
    def name(self) -> str | None:
        return self.identity.name

    @property
    def author(self) -> str | None:
        return self.identity.author

    @property
    def is_local(self) -> bool:
        return self.identity.reference() is None

    def validate(self) -> "Snippet":
        for section in SECTION_LANGUAGES:
            value = getattr(self, section)
            if value is not None:
                normalize_language(section, value.language)
        return self

    def section(self, view: str) -> SnippetSection | str | None:
        if view not in SNIPPET_SECTIONS:
            raise SectionMismatch(view)
        return getattr(self, view)

    def library_references(self) -> list[str]:
        return parse_libraries(self.libraries)

    def touch(self) -> int:
        """Advance ``last_modified``; each call yields a strictly larger value."""
        current = now_ms()
        if self.last_modified is not None and current <= self.last_modified:
            current = self.last_modified + 1
        self.last_modified = current
        return current

    def write_section(self, view: str, content: str, language: str | None = None) -> None:
        """Replace one section's content, validating before any mutation."""
        if view not in SNIPPET_SECTIONS:
            raise SectionMismatch(view)
        if not isinstance(content, str):
            raise ValueError("content 需為字串")
        if view == LIBRARIES_VIEW:
            self.libraries = content
            self.touch()
            return
        existing: SnippetSection | None = getattr(self, view)
        if language is not None:
            tag = normalize_language(view, language)
        elif existing is not None:
            tag = existing.language
        else:
            tag = DEFAULT_LANGUAGES[view]
        setattr(self, view, SnippetSection(content=content, language=tag))
        self.touch()

    def copy(self) -> "Snippet":
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        payload = self.identity.to_dict()
        for section in SECTION_LANGUAGES:
            value = getattr(self, section)
            if value is not None:
                payload[section] = value.to_dict()
        if self.libraries is not None:
            payload["libraries"] = self.libraries
        if self.last_modified is not None:
            payload["lastModified"] = self.last_modified
        return payload

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Snippet":
        if not isinstance(raw, Mapping):
            raise ValueError("snippet 需為物件")
        sections = {
            section: SnippetSection.from_dict(section, raw[section])
            for section in SECTION_LANGUAGES
            if raw.get(section) is not None
        }
        last_modified = raw.get("lastModified")
        if last_modified is not None and (isinstance(last_modified, bool) or not isinstance(last_modified, int)):
            raise ValueError("lastModified 需為整數")
        return cls(
            identity=Template.from_dict(raw),
            libraries=_optional_str(raw, "libraries"),
            last_modified=last_modified,
            **sections,
        )


@dataclass(frozen=True)
class RunnerState:
    """Boot payload handed to a runner."""

    snippet: Snippet
    origin: str
    host: str
    platform: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "snippet": self.snippet.to_dict(),
            "origin": self.origin,
            "host": self.host,
            "platform": self.platform,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "RunnerState":
        missing = [key for key in ("snippet", "origin", "host", "platform") if raw.get(key) is None]
        if missing:
            raise ValueError(f"runner state 缺少必要欄位：{', '.join(missing)}")
        return cls(
            snippet=Snippet.from_dict(raw["snippet"]),
            origin=str(raw["origin"]),
            host=str(raw["host"]),
            platform=str(raw["platform"]),
        )


@dataclass(frozen=True)
class Tab:
    name: str | None = None
    language: str | None = None
    content: str | None = None

    def to_dict(self) -> dict[str, Any]:
        fields = (("name", self.name), ("language", self.language), ("content", self.content))
        return {key: value for key, value in fields if value is not None}


@dataclass
class EditorState:
    """One open editing surface. ``view_state`` and ``model`` are editor-owned."""

    name: str | None = None
    view: str | None = None
    content: str | None = None
    language: str | None = None
    view_state: Any = None
    model: Any = None

    def to_tab(self) -> Tab:
        return Tab(name=self.name, language=self.language, content=self.content)


@dataclass(frozen=True)
class Alert:
    """A user-facing decision; the first action is the default."""

    title: str
    message: str
    actions: list[str] = field(default_factory=lambda: ["OK"])

    def __post_init__(self) -> None:
        if not self.actions:
            raise ValueError("alert 至少需要一個 action")

    @property
    def default_action(self) -> str:
        return self.actions[0]

    def to_dict(self) -> dict[str, Any]:
        return {"title": self.title, "message": self.message, "actions": list(self.actions)}


@dataclass(frozen=True)
class Profile:
    login: str | None = None
    name: str | None = None
    avatar_url: str | None = None

    @property
    def key(self) -> str:
        return self.login or "default"

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.login is not None:
            payload["login"] = self.login
        if self.name is not None:
            payload["name"] = self.name
        if self.avatar_url is not None:
            payload["avatarUrl"] = self.avatar_url
        return payload

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> "Profile":
        raw = raw or {}
        return cls(
            login=_optional_str(raw, "login"),
            name=_optional_str(raw, "name"),
            avatar_url=_optional_str(raw, "avatarUrl"),
        )


@dataclass
class Settings:
    """Durable per-user state. ``theme`` True means the dark theme."""

    last_opened: Snippet | None = None
    profile: Profile = field(default_factory=Profile)
    theme: bool = False
    language: str = "en-us"
    env: str = "production"

    def to_dict(self) -> dict[str, Any]:
        return {
            "lastOpened": self.last_opened.to_dict() if self.last_opened is not None else None,
            "profile": self.profile.to_dict(),
            "theme": self.theme,
            "language": self.language,
            "env": self.env,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> "Settings":
        raw = raw or {}
        last_opened = raw.get("lastOpened")
        defaults = cls()
        return cls(
            last_opened=Snippet.from_dict(last_opened) if last_opened else None,
            profile=Profile.from_dict(raw.get("profile")),
            theme=bool(raw.get("theme", defaults.theme)),
            language=str(raw.get("language") or defaults.language),
            env=str(raw.get("env") or defaults.env),
        )
