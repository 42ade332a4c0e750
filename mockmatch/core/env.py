"""``.env`` loading for local runs; exported shell variables always take precedence."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterator

PROJECT_ROOT = Path(__file__).resolve().parents[2]


def iter_env_file(env_path: Path) -> Iterator[tuple[str, str]]:
    """Yield ``(key, value)`` pairs, skipping comments and lines without ``=``."""
    for raw_line in env_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        key = key.strip()
        if key:
            yield key, _unquote(value.strip())


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value


def load_env(path: Path | None = None) -> None:
    """
    Populate ``os.environ`` from ``.env`` and then ``.env.local``.

    ``.env.local`` may override ``.env`` but neither touches a variable the
    process already had. An explicit ``path`` loads only that file.
    """
    shell_keys = frozenset(os.environ)
    files = [path] if path is not None else [PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"]
    for env_path in files:
        if not env_path.exists():
            continue
        for key, value in iter_env_file(env_path):
            if key not in shell_keys:
                os.environ[key] = value


__all__ = ["PROJECT_ROOT", "iter_env_file", "load_env"]
