"""Change detection for the content root.

Computes a cheap digest over every path under the root (name, mtime, size) and
polls it. A changed digest is published on a queue; a single consumer drains
the queue and clears the content caches. The caches only need an "invalidate
now" signal, so nothing here inspects which file changed.
"""
from __future__ import annotations

import asyncio
import hashlib
import logging
import os
from pathlib import Path
from typing import Optional

from starlette.concurrency import run_in_threadpool

from .cache import ContentCache


logger = logging.getLogger(__name__)


def _update_digest(digest, token: str) -> None:
    digest.update(token.encode("utf-8", errors="surrogateescape"))
    digest.update(b"\0")


def build_tree_signature(root: Path) -> str:
    """Digest of every entry under ``root``; raises OSError if root is unreadable."""
    root = Path(root)
    st = root.stat()
    digest = hashlib.sha256()
    _update_digest(digest, f"{st.st_mtime_ns}:{st.st_size}")

    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for name in sorted(dirnames + filenames):
            full = os.path.join(dirpath, name)
            try:
                entry = os.stat(full)
            except OSError:
                # Vanished between listing and stat; the next poll sees it settled.
                _update_digest(digest, f"{full}:missing")
                continue
            _update_digest(digest, f"{os.path.relpath(full, root)}:{entry.st_mtime_ns}:{entry.st_size}")
    return digest.hexdigest()


class CacheInvalidator:
    def __init__(self, root: Path, cache: ContentCache, interval: float = 1.0) -> None:
        self.root = Path(root)
        self.cache = cache
        self.interval = max(0.05, interval)
        self.events: asyncio.Queue[str] = asyncio.Queue()
        self._signature: Optional[str] = None
        self._tasks: list[asyncio.Task] = []

    def notify(self, reason: str = "change") -> None:
        """Publish a change event (the poller and tests both use this)."""
        self.events.put_nowait(reason)

    async def poll_once(self) -> bool:
        signature = await run_in_threadpool(build_tree_signature, self.root)
        changed = self._signature is not None and signature != self._signature
        self._signature = signature
        if changed:
            self.notify("change")
        return changed

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.poll_once()
            except OSError as exc:
                # Root removed or unreadable: treat as a change and keep watching.
                logger.warning("Watching %s failed: %s", self.root, exc)
                if self._signature is not None:
                    self._signature = None
                    self.notify("error")

    async def drain(self) -> None:
        while True:
            reason = await self.events.get()
            self.cache.invalidate()
            logger.debug("Content caches cleared (%s)", reason)
            self.events.task_done()

    async def start(self) -> bool:
        """Start polling; returns False (and only logs) if the root cannot be watched."""
        try:
            self._signature = await run_in_threadpool(build_tree_signature, self.root)
        except OSError as exc:
            logger.warning("Failed to set up file watcher on %s: %s", self.root, exc)
            return False
        self._tasks = [
            asyncio.create_task(self._poll_loop()),
            asyncio.create_task(self.drain()),
        ]
        return True

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
