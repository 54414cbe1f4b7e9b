from __future__ import annotations

import os
import re
from pathlib import Path
from urllib.parse import quote

from .errors import PathTraversalError


# Same set encodeURIComponent leaves alone.
_URI_COMPONENT_SAFE = "-_.!~*'()"


def is_path_safe(base_path: str | Path, requested_path: str) -> bool:
    """Return True if ``requested_path`` joined onto ``base_path`` stays inside it.

    Pure path arithmetic: nothing is read from disk, so callers can reject a
    request before any file I/O on the unsafe path. Absolute components in
    ``requested_path`` replace the base when joined, which this also catches.
    """
    resolved_base = os.path.abspath(base_path)
    resolved_path = os.path.abspath(os.path.join(base_path, requested_path))
    return resolved_path == resolved_base or resolved_path.startswith(resolved_base + os.sep)


def safe_join(base_dir: Path, *parts: str) -> Path:
    """Join paths and ensure the result stays within base_dir.

    This defends against path traversal when serving user-controlled paths.
    """
    relative = os.path.join(*parts) if parts else ""
    if not is_path_safe(base_dir, relative):
        raise PathTraversalError()
    return Path(os.path.abspath(os.path.join(base_dir, relative)))


def escape_html(value: object) -> str:
    return (
        str(value)
        .replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&#039;")
    )


def capitalize(value: str) -> str:
    return value[:1].upper() + value[1:]


def encode_path_segments(relative_path: str) -> str:
    """Percent-encode each segment of a relative path, keeping ``/`` separators."""
    segments = relative_path.replace(os.sep, "/").split("/")
    return "/".join(quote(segment, safe=_URI_COMPONENT_SAFE) for segment in segments)


def download_slug(value: str) -> str:
    return re.sub(r"\s+", "_", value.lower())


def download_filename(title: str, path: Path) -> str:
    """Name offered for downloads: ``<site title>_<file name>``, lowercased."""
    return f"{download_slug(title)}_{download_slug(path.name)}"
