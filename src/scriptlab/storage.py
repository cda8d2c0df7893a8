"""Durable storage helpers: atomic writes, locked JSONL appends, safe keys."""

from __future__ import annotations

import json
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

try:
    import fcntl  # type: ignore[attr-defined]
except ImportError:  # pragma: no cover - Windows fallback
    fcntl = None

_MAX_KEY_LENGTH = 128


def resolve_data_dir() -> Path:
    env_path = os.environ.get("SCRIPTLAB_HOME")
    if env_path:
        return Path(env_path).expanduser()
    return Path("~/.scriptlab").expanduser()


def atomic_write_text(path: Path, content: str, encoding: str = "utf-8") -> None:
    """Replace ``path`` with ``content`` so readers never observe a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_name = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding=encoding,
            dir=str(path.parent),
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as tmp_file:
            tmp_file.write(content)
            temp_name = tmp_file.name
        os.replace(temp_name, path)
    except OSError:
        if temp_name and os.path.exists(temp_name):
            os.unlink(temp_name)
        raise


@contextmanager
def file_lock(lock_path: Path) -> Iterator[None]:
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    with lock_path.open("a+") as handle:
        if fcntl:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
        try:
            yield
        finally:
            if fcntl:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


def append_jsonl(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    line = json.dumps(payload, ensure_ascii=False, default=str)
    with file_lock(path.with_suffix(f"{path.suffix}.lock")):
        with path.open("a", encoding="utf-8") as handle:
            handle.write(line)
            handle.write("\n")
            handle.flush()
            os.fsync(handle.fileno())


def validate_profile_key(value: str) -> str:
    """Return ``value`` if it is usable as a single path segment."""
    if not isinstance(value, str) or not value.strip():
        raise ValueError("profile 不可為空")
    if value.strip() != value or any(ch.isspace() or ord(ch) < 32 for ch in value):
        raise ValueError("profile 格式不正確")
    if value in {".", ".."} or ".." in value or len(value) > _MAX_KEY_LENGTH:
        raise ValueError("profile 格式不正確")
    separators = {"/", "\\", os.sep}
    if os.altsep:
        separators.add(os.altsep)
    if any(sep in value for sep in separators):
        raise ValueError("profile 格式不正確")
    return value
