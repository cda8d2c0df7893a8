"""Error taxonomy for the playground core.

Every error knows how to present itself as an :class:`~scriptlab.models.Alert`
so the UI layer never has to render a raw exception.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Alert


class PlaygroundError(RuntimeError):
    """Base class for playground errors."""

    title = "Script Lab"
    actions: tuple[str, ...] = ("OK",)

    def to_alert(self) -> "Alert":
        from .models import Alert

        return Alert(title=self.title, message=str(self), actions=list(self.actions))


class InvalidLanguageTag(PlaygroundError, ValueError):
    """Raised when a section language is outside its recognized tag set."""

    title = "Unsupported language"

    def __init__(self, section: str, language: str | None) -> None:
        super().__init__(f"{section} 不支援語言：{language!r}")
        self.section = section
        self.language = language


class SectionMismatch(PlaygroundError, ValueError):
    """Raised when an editor event targets an unknown snippet section."""

    title = "Unknown editor view"

    def __init__(self, view: str | None) -> None:
        super().__init__(f"找不到對應的 snippet 區段：{view!r}")
        self.view = view


class UnknownEnvironment(PlaygroundError, ValueError):
    """Raised when switching to an environment the registry does not know."""

    title = "Unknown environment"

    def __init__(self, name: str, known: list[str] | None = None) -> None:
        message = f"未知的環境：{name!r}"
        if known:
            message += f"（可用：{', '.join(known)}）"
        super().__init__(message)
        self.name = name
        self.known = list(known or [])


class ProtocolError(PlaygroundError):
    """Base class for errors that tear a channel down."""

    title = "Runner connection lost"
    actions = ("Reload", "Dismiss")


class HandshakeTimeout(ProtocolError):
    """Raised when the runner does not report readiness in time."""

    title = "Runner did not respond"


class OriginMismatch(ProtocolError):
    """Raised when an inbound event comes from an unexpected origin."""

    title = "Untrusted runner message"


class MalformedEvent(ProtocolError):
    """Raised when an inbound event does not match the protocol registry."""


class UnhandledEvent(PlaygroundError):
    """Reported when a registered event has no handler on this side."""

    title = "Unhandled runner event"


class UnsafeContent(PlaygroundError, ValueError):
    """Raised when iframe content or a routing URL is not safe to embed."""

    title = "Unable to render snippet"
    actions = ("Dismiss",)


class EnvironmentBootstrapError(PlaygroundError):
    """Raised when the host-provided environment is incomplete."""

    title = "Configuration error"
