from __future__ import annotations

from dataclasses import dataclass
from typing import Hashable, Optional


@dataclass(frozen=True)
class CachedImage:
    data: bytes
    mime_type: str


class ContentCache:
    """Process-wide caches for rendered content, owned by the app instance.

    Tree fragments and the feed document are valid until ``invalidate`` is
    called; there is no TTL. Image bytes only depend on startup config and
    survive invalidation.
    """

    def __init__(self) -> None:
        self._trees: dict[Hashable, str] = {}
        self._feed: Optional[str] = None
        self.profile_image: Optional[CachedImage] = None
        self.favicon_svg: Optional[str] = None
        self.invalidations = 0

    def get_tree(self, key: Hashable) -> Optional[str]:
        return self._trees.get(key)

    def set_tree(self, key: Hashable, html: str) -> None:
        self._trees[key] = html

    @property
    def feed(self) -> Optional[str]:
        return self._feed

    @feed.setter
    def feed(self, xml: Optional[str]) -> None:
        self._feed = xml

    def clear_feed(self) -> None:
        self._feed = None

    def invalidate(self) -> None:
        self._trees.clear()
        self._feed = None
        self.invalidations += 1
