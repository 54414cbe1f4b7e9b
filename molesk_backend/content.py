from __future__ import annotations

import base64
import logging
import mimetypes
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from markdown_it import MarkdownIt

from .cache import CachedImage, ContentCache
from .config import ERROR_MESSAGES, Settings
from .errors import (
    ContentNotFoundError,
    FeedUnavailableError,
    MimeTypeUnresolvedError,
    UnsupportedFileTypeError,
)
from .feed import FeedBuilder
from .rendering import build_renderer, metadata_to_html, parse_file_content
from .security import capitalize, download_filename, safe_join
from .tree import EMPTY_TREE, FolderTreeBuilder


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageAsset:
    path: Path
    mime_type: str


@dataclass(frozen=True)
class RenderedPage:
    html: str
    relative_path: str
    page_title: str


@dataclass(frozen=True)
class DownloadTarget:
    path: Path
    filename: str


class ContentResolver:
    """Decide how a request path under the content root is served.

    Owns the cache and the builders so route handlers stay thin; one instance
    is created per app and shared through ``app.state``.
    """

    def __init__(self, settings: Settings, cache: Optional[ContentCache] = None, md: Optional[MarkdownIt] = None) -> None:
        self.settings = settings
        self.cache = cache or ContentCache()
        self.md = md or build_renderer()
        self.tree_builder = FolderTreeBuilder(settings, self.cache)
        self.feed_builder = FeedBuilder(settings)

    @property
    def root(self) -> Path:
        return self.settings.content_root

    def _existing_file(self, request_path: str) -> Path:
        path = safe_join(self.root, request_path)
        if not path.is_file():
            raise ContentNotFoundError(f"No such file: {request_path}")
        return path

    def relative_path(self, path: Path) -> str:
        return os.path.relpath(path, self.root).replace(os.sep, "/")

    def resolve(self, request_path: str) -> ImageAsset | RenderedPage:
        """Map a decoded request path to an image or a rendered markdown page.

        Raises PathTraversalError before touching the filesystem, then
        UnsupportedFileTypeError, ContentNotFoundError or MimeTypeUnresolvedError.
        """
        candidate = safe_join(self.root, request_path)
        if self.settings.is_image(candidate.name):
            path = self._existing_file(request_path)
            mime_type, _ = mimetypes.guess_type(path.name)
            if not mime_type:
                raise MimeTypeUnresolvedError(f"Unable to determine MIME type for: {path.name}")
            return ImageAsset(path=path, mime_type=mime_type)
        if not self.settings.is_markdown(candidate.name):
            raise UnsupportedFileTypeError(f"Unsupported file extension: {candidate.name}")

        path = self._existing_file(request_path)
        raw = path.read_text(encoding="utf-8", errors="replace")
        document = parse_file_content(raw, self.md)
        stem = capitalize(path.stem.replace("-", " ").replace("_", " "))
        return RenderedPage(
            html=metadata_to_html(document.metadata) + document.content,
            relative_path=self.relative_path(path),
            page_title=f"{stem} - {self.settings.title}",
        )

    def download(self, request_path: str) -> DownloadTarget:
        candidate = safe_join(self.root, request_path)
        if not self.settings.is_markdown(candidate.name):
            raise UnsupportedFileTypeError()
        path = self._existing_file(request_path)
        return DownloadTarget(path=path, filename=download_filename(self.settings.title, path))

    def find_index_file(self) -> Path:
        """First markdown/text file at the root, case-insensitively by name."""
        if self.settings.single_file is not None:
            return self.settings.single_file
        try:
            names = os.listdir(self.root)
        except FileNotFoundError as exc:
            raise ContentNotFoundError(ERROR_MESSAGES["NO_VALID_FILES"]) from exc
        valid = sorted(
            (name for name in names if not name.startswith(".") and self.settings.is_markdown(name)),
            key=lambda name: (name.lower(), name),
        )
        if not valid:
            raise ContentNotFoundError(ERROR_MESSAGES["NO_VALID_FILES"])
        return self.root / valid[0]

    def index_url(self) -> str:
        relative = self.relative_path(self.find_index_file())
        return "/content/" + quote(relative)

    def folder_structure(self, active_path: Optional[str] = None) -> str:
        if self.settings.single_file is not None:
            return ""
        return self.tree_builder.generate_or_empty(active_path=active_path)

    def error_page_tree(self) -> str:
        try:
            return self.tree_builder.generate()
        except Exception:
            logger.exception("Failed to generate folder structure for error page")
            return EMPTY_TREE

    def rss_feed(self) -> str:
        """Cached feed XML; a failed build clears the cache and raises FeedUnavailableError."""
        if self.cache.feed is None:
            try:
                self.cache.feed = self.feed_builder.generate()
            except Exception as exc:
                self.cache.clear_feed()
                logger.exception("RSS feed generation failed")
                raise FeedUnavailableError() from exc
        return self.cache.feed

    def render_error(self, message: str) -> str:
        return self.md.render(message)

    def profile_image(self) -> Optional[CachedImage]:
        if self.settings.image is None:
            return None
        if self.cache.profile_image is None:
            data = self.settings.image.read_bytes()
            mime_type, _ = mimetypes.guess_type(self.settings.image.name)
            self.cache.profile_image = CachedImage(data=data, mime_type=mime_type or "image/png")
        return self.cache.profile_image

    def favicon_svg(self) -> Optional[str]:
        image = self.profile_image()
        if image is None:
            return None
        if self.cache.favicon_svg is None:
            encoded = base64.b64encode(image.data).decode("ascii")
            self.cache.favicon_svg = (
                '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 100 100">\n'
                '<defs><clipPath id="c"><circle cx="50" cy="50" r="50"/></clipPath></defs>\n'
                f'<image href="data:{image.mime_type};base64,{encoded}" width="100" height="100" '
                'clip-path="url(#c)" preserveAspectRatio="xMidYMid slice"/>\n'
                "</svg>"
            )
        return self.cache.favicon_svg
