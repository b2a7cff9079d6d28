"""Feedback directory watcher.

Uses ``watchfiles`` (Rust-backed) to observe the run's feedback directory
recursively and yields the contents of every newly written result file as an
async iterator.  Watching stops as soon as the run's :class:`CancellationToken`
is cancelled; ``watchfiles`` polls the token every ``step_ms`` milliseconds so
a pending wait is released promptly, without waiting for another file event.
"""
from __future__ import annotations

import asyncio
import logging
import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Iterable

from watchfiles import Change, awatch

logger = logging.getLogger(__name__)

# Suffixes producers use for files that are still being written.
_PARTIAL_SUFFIXES = ('.tmp', '.part', '~')


class CancellationToken:
    """One-shot cancellation signal for a single run."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def event(self) -> asyncio.Event:
        return self._event

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


@dataclass(frozen=True)
class FeedbackFile:
    path: Path
    content: bytes


class _FeedbackFilter:
    """watchfiles filter: only new or rewritten result files."""

    def __call__(self, change: Change, path: str) -> bool:
        if change not in (Change.added, Change.modified):
            return False
        name = os.path.basename(path)
        return not name.startswith('.') and not name.endswith(_PARTIAL_SUFFIXES)


def _ordered(paths: Iterable[str]) -> list[Path]:
    """Return the regular files among *paths*, oldest first.

    Files that vanished since the notification are dropped here.
    """
    stamped = []
    for path in set(paths):
        try:
            st = os.stat(path)
        except OSError:
            continue
        if stat.S_ISREG(st.st_mode):
            stamped.append((st.st_mtime_ns, path))
    return [Path(p) for _mtime, p in sorted(stamped)]


def _read_bytes(path: Path) -> bytes | None:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        # Deleted between notification and read; not an error.
        logger.debug('feedback file vanished before read: %s', path)
    except OSError:
        logger.debug('could not read feedback file %s', path, exc_info=True)
    return None


class FeedbackWatcher:
    """Yields the contents of result files created under a directory."""

    def __init__(self, debounce_ms: int = 50, step_ms: int = 50,
                 rescan_ms: int = 1000, force_polling: bool | None = None):
        self.debounce_ms = debounce_ms
        self.step_ms = step_ms
        self.rescan_ms = rescan_ms
        self.force_polling = force_polling

    async def _read(self, path: Path) -> FeedbackFile | None:
        loop = asyncio.get_running_loop()
        content = await loop.run_in_executor(None, _read_bytes, path)
        if content is None:
            return None
        return FeedbackFile(path=path, content=content)

    async def watch(self, directory: str | Path,
                    token: CancellationToken) -> AsyncIterator[FeedbackFile]:
        """Yield result files written under *directory* until *token* is cancelled.

        Files already present when the OS watch becomes live are yielded with
        the first batch, so nothing written between run start and watch setup
        is lost.  Cancellation ends the iteration normally.
        """
        root = Path(directory)
        if token.cancelled:
            return
        if not root.is_dir():
            logger.warning('feedback directory %s does not exist; not watching', root)
            return

        logger.info('Watching %s for feedback', root)
        accept = _FeedbackFilter()
        scanned = False
        try:
            # yield_on_timeout gives us an (empty) first batch once the OS
            # watch is live even if nothing has been written yet.
            async for changes in awatch(
                root,
                watch_filter=accept,
                debounce=self.debounce_ms,
                step=self.step_ms,
                stop_event=token.event,
                rust_timeout=self.rescan_ms,
                yield_on_timeout=True,
                recursive=True,
                force_polling=self.force_polling,
            ):
                paths = [p for _change, p in changes]
                if not scanned:
                    scanned = True
                    paths.extend(str(p) for p in root.rglob('*')
                                 if accept(Change.added, str(p)))
                for path in _ordered(paths):
                    if token.cancelled:
                        return
                    item = await self._read(path)
                    if item is not None and not token.cancelled:
                        yield item
        except FileNotFoundError:
            # The directory was removed underneath us (run already ended).
            logger.debug('feedback directory %s disappeared', root)
        logger.info('Stopped watching %s', root)
