from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from .security import capitalize


IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png")
MARKDOWN_EXTENSIONS = (".md", ".txt")

SOURCE_LINK = "https://github.com/tupakkatapa/molesk"

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080

# Fallback used when no directory is given (mirrors the `contents` dir next to the app).
DEFAULT_CONTENTS_DIR = Path(__file__).resolve().parent.parent / "contents"

ERROR_MESSAGES = {
    "UNSUPPORTED_FILE": "File type not supported",
    "NOT_FOUND": "# 404 Not Found\n\nThe requested resource could not be found.",
    "GENERIC_ERROR": "# Error\n\nAn unexpected error occurred. Please try again later.",
    "NO_VALID_FILES": "No valid files found in the directory",
}


def ensure_protocol(url: str) -> str:
    if url.startswith("http://") or url.startswith("https://"):
        return url
    return "https://" + url


@dataclass(frozen=True)
class SocialLink:
    icon_id: str
    href: str


def parse_social_link(value: str) -> SocialLink:
    """Parse an ``icon:url`` pair. Only the first colon separates the two."""
    icon, sep, href = value.partition(":")
    if not sep or not icon:
        raise ValueError(f"Invalid link format: {value}")
    return SocialLink(icon_id=icon, href=ensure_protocol(href))


@dataclass(frozen=True)
class Settings:
    content_root: Path
    title: str
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    single_file: Optional[Path] = None
    image: Optional[Path] = None
    social_links: tuple[SocialLink, ...] = ()
    show_source: bool = True
    show_rss: bool = True
    show_download: bool = True
    source_link: str = SOURCE_LINK
    ignored_files: tuple[str, ...] = ()
    image_extensions: tuple[str, ...] = IMAGE_EXTENSIONS
    markdown_extensions: tuple[str, ...] = MARKDOWN_EXTENSIONS
    watch: bool = True
    watch_interval: float = 1.0
    auto_open: bool = False

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def is_markdown(self, name: str) -> bool:
        return Path(name).suffix.lower() in self.markdown_extensions

    def is_image(self, name: str) -> bool:
        return Path(name).suffix.lower() in self.image_extensions


def default_title(content_root: Path, single_file: Optional[Path] = None) -> str:
    if single_file is not None:
        return capitalize(single_file.stem.replace("-", " ").replace("_", " "))
    return capitalize(content_root.name)


def build_settings(
    target: Optional[str | Path] = None,
    *,
    title: Optional[str] = None,
    links: Iterable[SocialLink] = (),
    ignored_files: Iterable[str] = (),
    image: Optional[str | Path] = None,
    **options,
) -> Settings:
    """Build settings for a directory or single markdown file.

    A markdown/text file switches to single-file mode: the content root becomes
    the file's parent and the browser auto-opens on it.
    """
    content_root = DEFAULT_CONTENTS_DIR
    single_file: Optional[Path] = None

    if target is not None:
        path = Path(target).resolve()
        if not path.exists():
            raise FileNotFoundError(f"Path does not exist: {path}")
        if path.is_file() and path.suffix.lower() in options.get("markdown_extensions", MARKDOWN_EXTENSIONS):
            single_file = path
            content_root = path.parent
            options.setdefault("auto_open", True)
        elif path.is_dir():
            content_root = path

    return Settings(
        content_root=content_root,
        title=title or default_title(content_root, single_file),
        single_file=single_file,
        image=Path(image).resolve() if image else None,
        social_links=tuple(links),
        ignored_files=tuple(name.lower() for name in ignored_files),
        **options,
    )


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str) -> list[str]:
    raw = os.environ.get(name) or ""
    return [item.strip() for item in raw.split(",") if item.strip()]


def settings_from_env() -> Settings:
    # Used by deployment entrypoints where there is no command line.
    links: list[SocialLink] = []
    for value in _env_list("MOLESK_LINKS"):
        try:
            links.append(parse_social_link(value))
        except ValueError:
            continue

    target = os.environ.get("MOLESK_CONTENTS_DIR") or None
    return build_settings(
        target,
        title=os.environ.get("MOLESK_TITLE") or None,
        links=links,
        ignored_files=_env_list("MOLESK_IGNORED_FILES"),
        image=os.environ.get("MOLESK_IMAGE") or None,
        host=os.environ.get("MOLESK_HOST", DEFAULT_HOST),
        port=int(os.environ.get("PORT") or os.environ.get("MOLESK_PORT") or DEFAULT_PORT),
        show_source=not _env_flag("MOLESK_NO_SOURCE", False),
        show_rss=not _env_flag("MOLESK_NO_RSS", False),
        show_download=not _env_flag("MOLESK_NO_DOWNLOAD", False),
        watch=_env_flag("MOLESK_WATCH", True),
        watch_interval=float(os.environ.get("MOLESK_WATCH_INTERVAL", "1.0")),
    )
