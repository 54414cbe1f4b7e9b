"""Pytest bootstrap for local source imports plus shared content fixtures.

The ``pytest`` console script can run with a sys.path that excludes the
repository root. Ensure ``import server`` and ``import molesk_backend`` resolve
to the local sources.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parent.parent
PROJECT_ROOT_STR = str(PROJECT_ROOT)

if PROJECT_ROOT_STR not in sys.path:
    sys.path.insert(0, PROJECT_ROOT_STR)

from molesk_backend.config import Settings, build_settings  # noqa: E402


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def site_dir(tmp_path: Path) -> Path:
    root = tmp_path / "site"
    write(root / "Home.md", "---\ndate: 2024-05-01\n---\n# Welcome\n\nHello there.\n")
    write(root / "zz-last.md", "# Last\n")
    write(root / "guides" / "intro.md", "---\ndate: 2024-02-01\ndescription: Start here\n---\n# Intro\n")
    (root / "photo.png").write_bytes(b"\x89PNG\r\n\x1a\nfake")
    write(root / "data.json", "{}")
    return root


@pytest.fixture
def make_settings():
    def _make(root: Path, **options) -> Settings:
        options.setdefault("watch", False)
        options.setdefault("host", "127.0.0.1")
        options.setdefault("port", 8080)
        return build_settings(root, title=options.pop("title", "Site"), **options)

    return _make
