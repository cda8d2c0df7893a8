"""Snippet runner service package."""

from .config import RunnerSettings, load_settings
from .runner import SnippetRunner

__all__ = ["RunnerSettings", "load_settings", "SnippetRunner"]
