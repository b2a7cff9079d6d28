"""Shared fixtures: a recording annotation host and a feedback-file writer."""
from __future__ import annotations

import json
import os
from pathlib import Path

import pytest


class FakeHost:
    """Records everything the annotation store asks the editor to do."""

    def __init__(self, documents=()):
        self.documents: list[str] = list(documents)
        self.styles: dict[str, object] = {}
        self.released: list[str] = []
        self.rendered: dict[tuple[str, str], list] = {}
        self.set_calls: list[tuple[str, str, int]] = []
        self.messages: list[tuple[object, str]] = []

    def create_style(self, style):
        handle = f'style-{len(self.styles) + 1}'
        self.styles[handle] = style
        return handle

    def release_style(self, handle):
        self.released.append(handle)

    def set_annotations(self, handle, uri, entries):
        self.rendered[(handle, uri)] = list(entries)
        self.set_calls.append((handle, uri, len(entries)))

    def visible_documents(self):
        return list(self.documents)

    def show_message(self, severity, message):
        self.messages.append((severity, message))


@pytest.fixture
def host():
    return FakeHost(['file:///work/Foo.sc'])


@pytest.fixture
def drop(tmp_path):
    """Atomically place a JSON result record into a feedback directory."""
    staging = tmp_path / '.staging'
    staging.mkdir()

    def _drop(directory: Path, name: str, record) -> Path:
        src = staging / name
        payload = record if isinstance(record, str) else json.dumps(record)
        src.write_text(payload, encoding='utf-8')
        dest = Path(directory) / name
        dest.parent.mkdir(parents=True, exist_ok=True)
        os.replace(src, dest)
        return dest

    return _drop
