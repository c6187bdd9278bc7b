"""Pins the test environment before ``marketplace_realtime.config`` is imported.

Values from ``.env.test`` win over the process environment so a developer's
shell or ``.env`` cannot point the suite at a real backend.
"""
from __future__ import annotations

import os
from pathlib import Path

TEST_ENV_FILE = Path(__file__).resolve().parent / ".env.test"


def _read_env_file(path: Path) -> dict[str, str]:
    values: dict[str, str] = {}
    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        values[key.strip()] = value.strip().strip('"')
    return values


if TEST_ENV_FILE.exists():
    os.environ.update(_read_env_file(TEST_ENV_FILE))
