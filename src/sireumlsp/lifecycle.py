"""
Run lifecycle: one watched verifier run per run slot.

State machine::

    Idle --start()--> Watching --end()--> Idle

``start()`` retires any active run first, clears the slot's annotations,
allocates the run's feedback directory and spawns a *pump* task that feeds
every result file through :func:`sireumlsp.events.decode` into the
:class:`~sireumlsp.annotations.AnnotationStore`.  ``end()`` cancels the run's
token; the pump removes the feedback directory once the watch has stopped.

Everything between two awaits in the pump (decode, apply, redraw) runs
without suspension, so the store needs no locking.
"""
from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tempfile
from pathlib import Path

from lsprotocol import types as lsp

from sireumlsp.annotations import AnnotationStore, ProtocolViolation
from sireumlsp.events import Category, DecodeError, ResultEvent, decode
from sireumlsp.watcher import CancellationToken, FeedbackFile, FeedbackWatcher

logger = logging.getLogger(__name__)

FEEDBACK_PREFIX = 'sireum-feedback-'


def _remove_directory(directory: Path | None) -> None:
    """Best-effort recursive delete of a run directory."""
    if directory is None:
        return
    try:
        shutil.rmtree(directory)
        logger.debug('removed feedback directory %s', directory)
    except FileNotFoundError:
        pass
    except OSError:
        logger.warning('Could not remove feedback directory %s', directory, exc_info=True)


def _empty_directory(directory: Path) -> None:
    """Delete what a retired run left in *directory*, keeping the directory."""
    try:
        children = list(directory.iterdir())
    except FileNotFoundError:
        return
    for child in children:
        if child.is_dir() and not child.is_symlink():
            _remove_directory(child)
        else:
            _discard(child)


def _discard(path: Path) -> bool:
    """Delete a processed result file; False if it is still on disk."""
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError:
        logger.debug('could not delete processed feedback file %s', path, exc_info=True)
        return False
    return True


def _log_task_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error('feedback pump failed', exc_info=exc)


class RunLifecycle:
    """Owns the watch of one run slot and the store it annotates."""

    def __init__(self, store: AnnotationStore, watcher: FeedbackWatcher | None = None,
                 slot: str = 'default'):
        self.slot = slot
        self.store = store
        self.watcher = watcher or FeedbackWatcher()
        self._token = CancellationToken()
        self._directory: Path | None = None
        self._task: asyncio.Task | None = None
        # Pumps that have not finished yet, including retired ones.
        self._tasks: set[asyncio.Task] = set()

    @property
    def watching(self) -> bool:
        return self._directory is not None

    @property
    def directory(self) -> Path | None:
        return self._directory

    @property
    def token(self) -> CancellationToken:
        return self._token

    # ------------------------------------------------------------------
    # Lifecycle signals
    # ------------------------------------------------------------------

    def start(self, directory: str | Path | None = None) -> Path:
        """Begin watching a fresh feedback directory and return its path.

        If *directory* is given (the client allocated it when building the
        command line) it is created if needed; otherwise a new temporary
        directory is allocated.
        """
        previous = self._directory
        if self.watching:
            logger.info('[%s] run started while another is active; retiring it', self.slot)
            self._retire()

        self.store.clear_all()

        if directory is None:
            root = self.store.settings.feedback_root
            directory = tempfile.mkdtemp(prefix=FEEDBACK_PREFIX, dir=root)
        directory = Path(directory)
        if directory == previous:
            # Leftovers of the retired run must not reach this one.
            _empty_directory(directory)
        directory.mkdir(parents=True, exist_ok=True)

        token = self._token = CancellationToken()
        self._directory = directory
        task = asyncio.ensure_future(self._pump(directory, token))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(_log_task_failure)
        self._task = task
        logger.info('[%s] run started; feedback in %s', self.slot, directory)
        return directory

    def end(self, exit_code: int | None = None) -> None:
        """Stop the active run; show the pass/fail summary if *exit_code* is given."""
        if self.watching:
            self._retire()
            logger.info('[%s] run ended (exit code %s)', self.slot, exit_code)
        else:
            logger.debug('[%s] end() with no active run', self.slot)
        self._token = CancellationToken()

        if exit_code is not None and self.store.settings.show_summary:
            self.store.host.show_message(
                lsp.MessageType.Info,
                'Logika verified' if exit_code == 0 else 'Ill-formed program',
            )

    def close(self) -> None:
        """End the run and remove its directory now, without waiting for the pump."""
        directory = self._directory
        self.end()
        _remove_directory(directory)

    def _retire(self) -> None:
        self._token.cancel()
        directory, task = self._directory, self._task
        self._directory = None
        self._task = None
        if task is None or task.done():
            _remove_directory(directory)
        # Otherwise the pump removes it as soon as its watch stops.

    async def wait_idle(self) -> None:
        """Wait until every pump, including retired ones, has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    # ------------------------------------------------------------------
    # Event flow
    # ------------------------------------------------------------------

    async def _pump(self, directory: Path, token: CancellationToken) -> None:
        # Applied files that could not be deleted, with the content applied.
        # A later file under the same name with new content is a new result.
        undeletable: dict[Path, bytes] = {}
        try:
            async for item in self.watcher.watch(directory, token):
                if token.cancelled:
                    break
                if undeletable.get(item.path) == item.content:
                    continue
                if self._process(item) and not _discard(item.path):
                    undeletable[item.path] = item.content
        finally:
            # A restart may have handed the same directory to the next run.
            if token.cancelled and directory != self._directory:
                _remove_directory(directory)

    def _process(self, item: FeedbackFile) -> bool:
        """Decode and apply one result file; False if it was left for a retry."""
        try:
            event = decode(item.content)
        except DecodeError as exc:
            # Possibly a partial write; a later notification retries it.
            logger.debug('[%s] skipping %s: %s', self.slot, item.path, exc)
            return False
        try:
            self.dispatch(event)
        except ProtocolViolation:
            if self.store.settings.strict_protocol:
                raise
            logger.error('[%s] producer contract violation in %s',
                         self.slot, item.path, exc_info=True)
        return True

    def dispatch(self, event: ResultEvent) -> None:
        """Route *event* to every open document it refers to."""
        if event.category in (Category.REPORT, Category.UNRECOGNIZED):
            self.store.apply(None, event)
            return
        loc = event.location
        if loc is None:
            logger.debug('[%s] %s event has no position', self.slot, event.category.value)
            return

        target = self.store.key(loc.uri)
        views = [uri for uri in self.store.host.visible_documents()
                 if self.store.key(uri) == target]
        # Spellings of one document share a bucket: apply once, redraw each.
        if views and self.store.apply(views[0], event):
            for uri in views:
                self.store.redraw(uri)
        if not views:
            logger.debug('[%s] %s is not open; dropping %s event',
                         self.slot, loc.uri, event.category.value)
