"""Best-effort `.env` loader.

Deployments usually set PAGERELAY_* / PORT-style variables in a `.env` next to
pyproject.toml. Values already present in os.environ always win.
"""

from __future__ import annotations

import os
from pathlib import Path


def _find_project_root(start: Path) -> Path:
    for candidate in (start, *start.parents):
        if (candidate / "pyproject.toml").exists():
            return candidate
    return start


def _parse_line(raw_line: str) -> tuple[str, str] | None:
    line = raw_line.strip()
    if not line or line.startswith("#"):
        return None
    line = line.removeprefix("export ").lstrip()
    key, sep, value = line.partition("=")
    key = key.strip()
    if not sep or not key:
        return None
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        value = value[1:-1]
    return key, value


def load_dotenv_if_present(*, dotenv_path: Path | None = None) -> int:
    """Load `.env` into os.environ without overriding existing entries.

    Supports blank lines, `#` comments, an optional leading `export ` and
    single/double quoted values (quotes stripped, no escape processing).

    Returns:
        Number of variables that were newly set (0 when no file exists).
    """
    if dotenv_path is None:
        dotenv_path = _find_project_root(Path(__file__).resolve().parent) / ".env"

    if not dotenv_path.is_file():
        return 0

    loaded = 0
    for raw_line in dotenv_path.read_text(encoding="utf-8").splitlines():
        parsed = _parse_line(raw_line)
        if parsed is None:
            continue
        key, value = parsed
        if key in os.environ:
            continue
        os.environ[key] = value
        loaded += 1
    return loaded
