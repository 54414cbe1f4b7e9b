from __future__ import annotations

import functools
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .cache import ContentCache
from .config import Settings
from .errors import ContentNotFoundError
from .rendering import parse_metadata_only
from .security import capitalize, encode_path_segments, escape_html


logger = logging.getLogger(__name__)

EMPTY_TREE = "<ul></ul>"


@dataclass(frozen=True)
class FileEntry:
    name: str
    full_path: Path
    is_directory: bool
    date: Optional[str] = None
    content: Optional[str] = None


def _cmp(a: str, b: str) -> int:
    return (a > b) - (a < b)


def _compare_names(a: FileEntry, b: FileEntry) -> int:
    return _cmp(a.name.lower(), b.name.lower()) or _cmp(a.name, b.name)


def compare_entries(a: FileEntry, b: FileEntry) -> int:
    """Sibling ordering used by the sidebar.

    Two files compare by name unless both carry a date, then newest first.
    Directories come after files and compare by name among themselves. Mixed
    dated/undated files are only ordered pairwise; the listing is pre-sorted by
    name so the outcome is stable.
    """
    if not a.is_directory and not b.is_directory:
        if not a.date or not b.date:
            return _compare_names(a, b)
        return _cmp(b.date, a.date)
    if a.is_directory == b.is_directory:
        return _compare_names(a, b)
    return 1 if a.is_directory else -1


def sort_entries(entries: list[FileEntry]) -> list[FileEntry]:
    by_name = sorted(entries, key=lambda e: (e.name.lower(), e.name))
    return sorted(by_name, key=functools.cmp_to_key(compare_entries))


class FolderTreeBuilder:
    """Render the content root as a nested ``<ul>`` navigation fragment.

    Only the root call consults and fills the cache. Subtrees are rebuilt on
    every root cache miss.
    """

    def __init__(self, settings: Settings, cache: ContentCache) -> None:
        self.settings = settings
        self.cache = cache

    def _is_listed(self, name: str) -> bool:
        if name.startswith("."):
            return False
        stem = os.path.splitext(name)[0].lower()
        return stem not in self.settings.ignored_files

    def is_directory_valid(self, dir_path: Path) -> bool:
        """True if ``dir_path`` holds a markdown/text file at any depth."""
        for item in dir_path.iterdir():
            if item.name.startswith("."):
                continue
            if item.is_dir():
                if self.is_directory_valid(item):
                    return True
            elif self.settings.is_markdown(item.name):
                return True
        return False

    def _collect_items(self, directory: Path, content_root: Path, active_path: Optional[str]) -> list[FileEntry]:
        items: list[FileEntry] = []
        for item in directory.iterdir():
            if not self._is_listed(item.name):
                continue
            if item.is_dir():
                if not self.is_directory_valid(item):
                    continue
                content = self.generate(item, content_root, is_root=False, active_path=active_path)
                if not content.strip() or content.strip() == EMPTY_TREE:
                    continue
                items.append(FileEntry(name=item.name, full_path=item, is_directory=True, content=content))
            elif self.settings.is_markdown(item.name):
                try:
                    raw = item.read_text(encoding="utf-8", errors="replace")
                except OSError as exc:
                    logger.warning("Skipping %s in folder tree: %s", item, exc)
                    continue
                metadata = parse_metadata_only(raw)
                items.append(FileEntry(name=item.name, full_path=item, is_directory=False, date=metadata.date))
        return items

    def _folder_html(self, entry: FileEntry) -> str:
        safe_name = escape_html(capitalize(entry.name))
        return (
            f'<li class="folder open"><span><i class="fas fa-folder-open"></i> {safe_name}</span>'
            f"{entry.content}</li>"
        )

    def _file_html(self, entry: FileEntry, content_root: Path, active_path: Optional[str]) -> str:
        item_name = escape_html(capitalize(os.path.splitext(entry.name)[0]))
        relative = os.path.relpath(entry.full_path, content_root)
        href = f"/content/{encode_path_segments(relative)}"
        is_active = active_path is not None and relative.replace(os.sep, "/") == active_path
        active_attr = ' class="active"' if is_active else ""

        if item_name.lower() == "home":
            return f'<li class="folder"><a href="{href}"{active_attr}><i class="fas fa-home"></i> {item_name}</a></li>'

        date_html = f'<div class="file-date">{escape_html(entry.date)}</div>' if entry.date else ""
        return f'<li><a href="{href}"{active_attr}><i class="fas fa-file-alt"></i> {item_name}</a>{date_html}</li>'

    def generate(
        self,
        directory: Optional[Path] = None,
        content_root: Optional[Path] = None,
        is_root: bool = True,
        active_path: Optional[str] = None,
    ) -> str:
        directory = Path(directory or self.settings.content_root)
        content_root = Path(content_root or self.settings.content_root)
        cache_key = (str(directory), active_path)

        if is_root:
            cached = self.cache.get_tree(cache_key)
            if cached is not None:
                return cached

        try:
            items = self._collect_items(directory, content_root, active_path)
        except FileNotFoundError as exc:
            if is_root and not directory.exists():
                raise ContentNotFoundError(f"Content directory not found: {directory}") from exc
            raise

        parts = ["<ul>"]
        for entry in sort_entries(items):
            if entry.is_directory:
                parts.append(self._folder_html(entry))
            else:
                parts.append(self._file_html(entry, content_root, active_path))
        parts.append("</ul>")
        result = "".join(parts)

        if is_root:
            self.cache.set_tree(cache_key, result)
        return result

    def generate_or_empty(self, active_path: Optional[str] = None) -> str:
        """Tree for page rendering; a failed build degrades to an empty list."""
        try:
            return self.generate(active_path=active_path)
        except Exception:
            logger.exception("Failed to generate folder structure for %s", self.settings.content_root)
            return EMPTY_TREE
