from __future__ import annotations

import logging
import os
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from email.utils import format_datetime
from pathlib import Path
from typing import Optional

from .config import Settings
from .rendering import parse_metadata_only
from .security import capitalize, encode_path_segments


logger = logging.getLogger(__name__)

ATOM_NS = "http://www.w3.org/2005/Atom"
DEFAULT_DESCRIPTION = "A new content piece is available."
XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'

ET.register_namespace("atom", ATOM_NS)


def title_from_filename(name: str) -> str:
    """``getting-started.md`` -> ``Getting Started``."""
    stem = name.split(".", 1)[0]
    return " ".join(capitalize(word) for word in stem.split("-"))


def category_for(relative_path: str) -> str:
    parts = [p for p in os.path.dirname(relative_path).split("/") if p]
    return " > ".join(parts)


def parse_pub_date(value: Optional[str]) -> datetime:
    if value:
        # fromisoformat only accepts a trailing "Z" from 3.11 on.
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            logger.warning("Unparseable feed date %r; using current time", value)
        else:
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed
    return datetime.now(timezone.utc)


class FeedBuilder:
    """Build an RSS 2.0 document from every markdown/text file under the root."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def _channel(self, description: str) -> tuple[ET.Element, ET.Element]:
        base_url = self.settings.base_url
        rss = ET.Element("rss", attrib={"version": "2.0"})
        channel = ET.SubElement(rss, "channel")

        ET.SubElement(channel, "title").text = self.settings.title
        ET.SubElement(channel, "description").text = description
        ET.SubElement(channel, "link").text = base_url
        ET.SubElement(
            channel,
            f"{{{ATOM_NS}}}link",
            attrib={"href": f"{base_url}/rss.xml", "rel": "self", "type": "application/rss+xml"},
        )
        ET.SubElement(channel, "lastBuildDate").text = format_datetime(datetime.now(timezone.utc))

        if self.settings.image:
            image = ET.SubElement(channel, "image")
            ET.SubElement(image, "url").text = f"{base_url}/profile-pic"
            ET.SubElement(image, "title").text = self.settings.title
            ET.SubElement(image, "link").text = base_url
        return rss, channel

    def _add_item(self, channel: ET.Element, file_path: Path) -> None:
        raw = file_path.read_text(encoding="utf-8")
        metadata = parse_metadata_only(raw)

        relative = os.path.relpath(file_path, self.settings.content_root).replace(os.sep, "/")
        url = f"{self.settings.base_url}/content/{encode_path_segments(relative)}"
        category = category_for(relative)

        item = ET.SubElement(channel, "item")
        ET.SubElement(item, "title").text = title_from_filename(file_path.name)
        ET.SubElement(item, "description").text = metadata.description or DEFAULT_DESCRIPTION
        ET.SubElement(item, "link").text = url
        ET.SubElement(item, "guid", attrib={"isPermaLink": "true"}).text = url
        if category:
            ET.SubElement(item, "category").text = category
        ET.SubElement(item, "pubDate").text = format_datetime(parse_pub_date(metadata.date))

    def _collect(self, directory: Path, channel: ET.Element) -> None:
        for entry in sorted(directory.iterdir(), key=lambda p: p.name):
            if entry.is_dir():
                self._collect(entry, channel)
            elif self.settings.is_markdown(entry.name):
                try:
                    self._add_item(channel, entry)
                except Exception as exc:
                    logger.warning("Error processing %s for RSS: %s", entry, exc)

    def generate(self) -> str:
        """Return the feed XML.

        A missing content root yields an empty but valid feed; other failures
        propagate so the route can answer with an unavailable status.
        """
        root = self.settings.content_root
        if not root.is_dir():
            logger.warning("Content directory %s missing; serving empty feed", root)
            rss, _ = self._channel(f"RSS feed for {self.settings.title}'s content (no content available)")
            return self._serialize(rss)

        rss, channel = self._channel(f"RSS feed for {self.settings.title}'s content")
        self._collect(root, channel)
        return self._serialize(rss)

    @staticmethod
    def _serialize(rss: ET.Element) -> str:
        ET.indent(rss)
        return XML_DECLARATION + ET.tostring(rss, encoding="unicode")
