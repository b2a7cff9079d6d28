"""
Per-category annotation store.

Each event category owns one *bucket*: a decoration style handle created
lazily on the first event of that category, plus the entries accumulated for
every document during the current run.  All entries of one category share
the handle, so a single ``set_annotations`` call per (category, document)
repaints every marker of that kind.

The store never talks to the editor directly; it drives an
:class:`AnnotationHost`, which the language server implements with custom
notifications and ``window/showMessage``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Protocol, Sequence

from lsprotocol import types as lsp

from sireumlsp.config import Settings
from sireumlsp.documents import document_key
from sireumlsp.events import Category, CoverageEvent, ReportEvent, ResultEvent

logger = logging.getLogger(__name__)

ICON_SIZE = '75%'

# (light, dark) gutter icons per point-style category
_ICONS: dict[Category, tuple[str, str]] = {
    Category.QUERY_INFO: ('gutter-summoning@2x.png', 'gutter-summoning@2x_dark.png'),
    Category.PROOF_STATE: ('gutter-hint@2x.png', 'gutter-hint@2x_dark.png'),
    Category.VERIFICATION_INFO: ('gutter-logika-verified@2x.png',
                                 'gutter-logika-verified@2x_dark.png'),
}

# Report level → message severity; anything else is informational.
_REPORT_SEVERITY = {
    1: lsp.MessageType.Error,
    2: lsp.MessageType.Warning,
}


class ProtocolViolation(RuntimeError):
    """The producer sent an event the wire contract forbids."""


@dataclass(frozen=True)
class DecorationStyle:
    light_icon: str | None = None
    dark_icon: str | None = None
    icon_size: str | None = None
    background: str | None = None
    hover: bool = False
    whole_line: bool = True


@dataclass(frozen=True)
class AnnotationEntry:
    range: lsp.Range
    hover: str | None = None


class AnnotationHost(Protocol):
    """What the store needs from the editor side."""

    def create_style(self, style: DecorationStyle) -> str: ...

    def release_style(self, handle: str) -> None: ...

    def set_annotations(self, handle: str, uri: str,
                        entries: Sequence[AnnotationEntry]) -> None: ...

    def visible_documents(self) -> Iterable[str]: ...

    def show_message(self, severity: lsp.MessageType, message: str) -> None: ...


def style_for(category: Category, settings: Settings) -> DecorationStyle:
    """Return the decoration style used for *category*."""
    if category is Category.COVERAGE:
        return DecorationStyle(background=settings.coverage_color)
    light = dark = None
    icons = _ICONS.get(category)
    if icons is not None and settings.icons_dir:
        base = Path(settings.icons_dir)
        light, dark = str(base / icons[0]), str(base / icons[1])
    return DecorationStyle(
        light_icon=light,
        dark_icon=dark,
        icon_size=ICON_SIZE if dark else None,
        hover=True,
    )


def _line_range(line: int) -> lsp.Range:
    """A whole-line marker at 0-based *line*."""
    return lsp.Range(
        start=lsp.Position(line=line, character=0),
        end=lsp.Position(line=line, character=0),
    )


@dataclass
class _Bucket:
    handle: str
    # document key → entries in insertion order
    entries: dict[str, list[AnnotationEntry]] = field(default_factory=dict)


class AnnotationStore:
    """Accumulates annotations per category for one run slot."""

    def __init__(self, host: AnnotationHost, settings: Settings | None = None):
        self.host = host
        self.settings = settings or Settings()
        self._buckets: dict[Category, _Bucket] = {}
        self._coverage_lines: dict[str, set[int]] = {}
        # document key → editor URI last used for that document
        self._uris: dict[str, str] = {}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def key(self, uri: str) -> str:
        return document_key(uri, case_insensitive=self.settings.case_insensitive_uris)

    def categories(self) -> list[Category]:
        return list(self._buckets)

    def handle(self, category: Category) -> str | None:
        bucket = self._buckets.get(category)
        return bucket.handle if bucket else None

    def entries(self, category: Category, uri: str) -> list[AnnotationEntry]:
        bucket = self._buckets.get(category)
        if bucket is None:
            return []
        return list(bucket.entries.get(self.key(uri), ()))

    def coverage_lines(self, uri: str) -> frozenset[int]:
        """1-based lines already marked as covered in *uri*."""
        return frozenset(self._coverage_lines.get(self.key(uri), ()))

    def hover_at(self, uri: str, line: int) -> list[str]:
        """Hover texts of every entry on 0-based *line* of *uri*."""
        key = self.key(uri)
        texts = []
        for bucket in self._buckets.values():
            for entry in bucket.entries.get(key, ()):
                if entry.hover and entry.range.start.line <= line <= entry.range.end.line:
                    texts.append(entry.hover)
        return texts

    def is_empty(self) -> bool:
        return not self._buckets and not self._coverage_lines

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def _bucket(self, category: Category) -> _Bucket:
        bucket = self._buckets.get(category)
        if bucket is None:
            handle = self.host.create_style(style_for(category, self.settings))
            logger.debug('created style %s for %s', handle, category.value)
            bucket = self._buckets[category] = _Bucket(handle=handle)
        return bucket

    def apply(self, uri: str | None, event: ResultEvent) -> bool:
        """Add the annotations for *event* to document *uri*.

        Returns True if any entry was added.  Plain reports are surfaced as a
        message instead; a report that carries a position raises
        :class:`ProtocolViolation`.
        """
        category = event.category
        if category is Category.REPORT:
            return self._apply_report(event)
        if category is Category.UNRECOGNIZED:
            logger.debug('ignoring unrecognized event %r', event.type)
            return False
        if uri is None or event.location is None:
            logger.debug('ignoring %s event without a document position', category.value)
            return False

        key = self.key(uri)
        self._uris[key] = uri
        loc = event.location

        if isinstance(event, CoverageEvent):
            lines = self._coverage_lines.setdefault(key, set())
            new_lines = [ln for ln in range(loc.begin_line, loc.end_line + 1) if ln not in lines]
            if not new_lines:
                return False
            entries = self._bucket(category).entries.setdefault(key, [])
            for line in new_lines:
                lines.add(line)
                entries.append(AnnotationEntry(range=_line_range(max(0, line - 1))))
            return True

        entry = AnnotationEntry(
            range=_line_range(max(0, loc.begin_line - 1)),
            hover=event.hover_text,
        )
        self._bucket(category).entries.setdefault(key, []).append(entry)
        return True

    def _apply_report(self, event: ReportEvent) -> bool:
        if event.location is not None:
            raise ProtocolViolation(
                f'report carries a position ({event.location.uri}:'
                f'{event.location.begin_line}): {event.message!r}'
            )
        severity = _REPORT_SEVERITY.get(event.level, lsp.MessageType.Info)
        self.host.show_message(severity, event.message)
        return False

    def redraw(self, uri: str) -> None:
        """Push every accumulated entry for *uri* to the host."""
        key = self.key(uri)
        for bucket in self._buckets.values():
            entries = bucket.entries.get(key)
            if entries:
                self.host.set_annotations(bucket.handle, uri, list(entries))

    def clear_all(self) -> None:
        """Remove every rendered entry, release the styles and forget coverage."""
        if self._buckets:
            uris = dict(self._uris)
            for uri in self.host.visible_documents():
                uris.setdefault(self.key(uri), uri)
            for bucket in self._buckets.values():
                for uri in uris.values():
                    self.host.set_annotations(bucket.handle, uri, [])
                self.host.release_style(bucket.handle)
        self._buckets.clear()
        self._coverage_lines.clear()
        self._uris.clear()
