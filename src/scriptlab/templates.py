"""Outer template assembly.

The outer template is the host-rendered document that embeds the runner
iframe. ``assemble_outer_template`` resolves every substitution into an
:class:`OuterTemplateData`; ``render_outer_template`` turns that into HTML.
"""

from __future__ import annotations

import html
import json
import re
from dataclasses import dataclass
from string import Template
from typing import Any
from urllib.parse import urlsplit

from .environment import Environment
from .errors import UnsafeContent
from .models import Snippet

OFFICE_JS_URL = "https://appsforoffice.microsoft.com/lib/1/hosted/office.js"
UNPKG_URL = "https://unpkg.com"
DEFAULT_HOST = "WEB"
UNTITLED_SNIPPET = "Untitled snippet"

_UNSAFE_EMBEDDING = re.compile(r"</script|<!--", re.IGNORECASE)
_SCRIPT_CLOSE = re.compile(r"</(script)", re.IGNORECASE)
_ROUTING_SCHEMES = ("http", "https")


@dataclass(frozen=True)
class HostProfile:
    is_office: bool
    office_js_ref: str = ""
    add_padding_right: bool = False


NON_OFFICE = HostProfile(is_office=False)

# Desktop task panes draw the personality menu over the top-right corner.
HOST_TABLE: dict[tuple[str, str], HostProfile] = {
    ("web", "*"): NON_OFFICE,
    ("excel", "*"): HostProfile(True, OFFICE_JS_URL),
    ("excel", "pc"): HostProfile(True, OFFICE_JS_URL, True),
    ("excel", "mac"): HostProfile(True, OFFICE_JS_URL, True),
    ("word", "*"): HostProfile(True, OFFICE_JS_URL),
    ("word", "pc"): HostProfile(True, OFFICE_JS_URL, True),
    ("word", "mac"): HostProfile(True, OFFICE_JS_URL, True),
    ("powerpoint", "*"): HostProfile(True, OFFICE_JS_URL),
    ("powerpoint", "pc"): HostProfile(True, OFFICE_JS_URL, True),
    ("powerpoint", "mac"): HostProfile(True, OFFICE_JS_URL, True),
    ("onenote", "*"): HostProfile(True, OFFICE_JS_URL),
    ("project", "*"): HostProfile(True, OFFICE_JS_URL),
    ("project", "pc"): HostProfile(True, OFFICE_JS_URL, True),
    ("outlook", "*"): HostProfile(True, OFFICE_JS_URL),
    ("outlook", "pc"): HostProfile(True, OFFICE_JS_URL, True),
    ("outlook", "mac"): HostProfile(True, OFFICE_JS_URL, True),
}


def resolve_host_profile(host: str | None, platform: str | None) -> HostProfile:
    host_key = (host or DEFAULT_HOST).strip().lower()
    platform_key = (platform or "").strip().lower()
    return HOST_TABLE.get((host_key, platform_key)) or HOST_TABLE.get((host_key, "*")) or NON_OFFICE


@dataclass(frozen=True)
class RoutingContext:
    """Per-request routing; ``iframe_content`` must already be escaped for embedding."""

    iframe_content: str
    return_url: str | None = None
    refresh_url: str | None = None
    host: str | None = None
    platform: str | None = None


@dataclass(frozen=True)
class OuterTemplateData:
    snippet_name: str
    snippet_author: str
    iframe_content: str
    host_lowercase: str
    return_url: str
    refresh_url: str
    office_js_ref_if_any: str
    is_office_snippet: bool
    add_padding_right: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "snippetName": self.snippet_name,
            "snippetAuthor": self.snippet_author,
            "iframeContent": self.iframe_content,
            "hostLowercase": self.host_lowercase,
            "returnUrl": self.return_url,
            "refreshUrl": self.refresh_url,
            "OfficeJsRefIfAny": self.office_js_ref_if_any,
            "isOfficeSnippet": self.is_office_snippet,
            "addPaddingRight": self.add_padding_right,
        }


def check_embeddable(content: str) -> str:
    if not isinstance(content, str):
        raise UnsafeContent("iframe content 需為字串")
    match = _UNSAFE_EMBEDDING.search(content)
    if match:
        raise UnsafeContent(f"iframe content 含有未跳脫的 {match.group(0)!r}")
    return content


def check_routing_url(url: str | None) -> str | None:
    if url is None or url == "":
        return None
    if not isinstance(url, str):
        raise UnsafeContent("routing URL 需為字串")
    parts = urlsplit(url.strip())
    if parts.scheme.lower() not in _ROUTING_SCHEMES or not parts.netloc:
        raise UnsafeContent(f"routing URL 只接受 http(s)：{url!r}")
    return url.strip()


def escape_for_embedding(document: str) -> str:
    """Encode ``document`` as a script string literal with no raw ``<``, ``>`` or ``&``."""
    literal = json.dumps(document, ensure_ascii=False)
    return literal.replace("<", "\\u003c").replace(">", "\\u003e").replace("&", "\\u0026")


def assemble_outer_template(snippet: Snippet, environment: Environment, routing: RoutingContext) -> OuterTemplateData:
    iframe_content = check_embeddable(routing.iframe_content)
    host = routing.host or environment.host or DEFAULT_HOST
    profile = resolve_host_profile(host, routing.platform or environment.platform)
    return OuterTemplateData(
        snippet_name=html.escape(snippet.name or UNTITLED_SNIPPET),
        snippet_author=html.escape(snippet.author or ""),
        iframe_content=iframe_content,
        host_lowercase=host.lower(),
        return_url=check_routing_url(routing.return_url) or environment.config.editor_url,
        refresh_url=check_routing_url(routing.refresh_url) or environment.config.runner_url,
        office_js_ref_if_any=profile.office_js_ref if profile.is_office else "",
        is_office_snippet=profile.is_office,
        add_padding_right=profile.add_padding_right,
    )


def library_tag(reference: str) -> str | None:
    """Map one libraries entry to a tag; type-definition entries produce none."""
    ref = reference.strip()
    if not ref or ref.startswith("@types/") or ref.startswith("dt~"):
        return None
    if ref.startswith(("http://", "https://", "//")):
        url = ref
    else:
        url = f"{UNPKG_URL}/{ref}"
    path = url.split("?", 1)[0].split("#", 1)[0].lower()
    escaped = html.escape(url, quote=True)
    if path.endswith(".css"):
        return f'<link rel="stylesheet" href="{escaped}" />'
    return f'<script src="{escaped}"></script>'


def build_iframe_content(snippet: Snippet) -> str:
    """Build the runner's inner document; libraries load in listed order."""
    lines = [
        "<!DOCTYPE html>",
        "<html>",
        "<head>",
        '<meta charset="UTF-8" />',
        f"<title>{html.escape(snippet.name or UNTITLED_SNIPPET)}</title>",
    ]
    for reference in snippet.library_references():
        tag = library_tag(reference)
        if tag:
            lines.append(tag)
    if snippet.style is not None:
        lines.append(f'<style data-language="{snippet.style.language}">')
        lines.append(snippet.style.content)
        lines.append("</style>")
    lines.extend(["</head>", "<body>"])
    if snippet.template is not None:
        if snippet.template.language == "html":
            lines.append(snippet.template.content)
        else:
            lines.append(f"<pre>{html.escape(snippet.template.content)}</pre>")
    if snippet.script is not None:
        lines.append(f'<script type="text/{snippet.script.language}">')
        lines.append(_SCRIPT_CLOSE.sub(r"<\\/\1", snippet.script.content))
        lines.append("</script>")
    lines.extend(["</body>", "</html>"])
    return "\n".join(lines)


OUTER_TEMPLATE = Template(
    """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1" />
  <title>${snippetName}</title>
  ${officeJsTag}
  <style>
    html, body { margin: 0; padding: 0; height: 100%; }
    body { display: flex; flex-direction: column; ${paddingRule} }
    #snippet-frame { flex: 1; border: 0; width: 100%; }
  </style>
</head>
<body class="host-${hostLowercase}">
  <header class="snippet-header">
    <span class="snippet-name">${snippetName}</span>
    <span class="snippet-author">${snippetAuthor}</span>
    <a class="return" href="${returnUrl}">Back</a>
    <a class="refresh" href="${refreshUrl}">Refresh</a>
  </header>
  <iframe id="snippet-frame" sandbox="allow-scripts allow-forms allow-modals allow-popups"></iframe>
  <script>
    document.getElementById("snippet-frame").srcdoc = ${iframeContent};
  </script>
</body>
</html>
"""
)


def render_outer_template(data: OuterTemplateData) -> str:
    office_tag = ""
    if data.office_js_ref_if_any:
        office_tag = f'<script src="{html.escape(data.office_js_ref_if_any, quote=True)}"></script>'
    return OUTER_TEMPLATE.safe_substitute(
        snippetName=data.snippet_name,
        snippetAuthor=data.snippet_author,
        officeJsTag=office_tag,
        paddingRule="padding-right: 20px;" if data.add_padding_right else "",
        hostLowercase=html.escape(data.host_lowercase, quote=True),
        returnUrl=html.escape(data.return_url, quote=True),
        refreshUrl=html.escape(data.refresh_url, quote=True),
        iframeContent=data.iframe_content,
    )
