"""Tests for sireumlsp.watcher — the feedback directory watcher."""
from __future__ import annotations

import asyncio
import os
import time

from watchfiles import Change

from sireumlsp.watcher import (
    CancellationToken,
    FeedbackWatcher,
    _FeedbackFilter,
    _ordered,
    _read_bytes,
)


def _watcher():
    return FeedbackWatcher(debounce_ms=20, step_ms=20, rescan_ms=100)


async def _collect(watcher, directory, token, count, timeout=10.0):
    """Collect *count* files from the watch, then cancel it."""
    got = []

    async def consume():
        async for item in watcher.watch(directory, token):
            got.append(item)
            if len(got) >= count:
                token.cancel()

    await asyncio.wait_for(consume(), timeout)
    return got


class TestHelpers:
    def test_filter_accepts_new_and_modified(self):
        f = _FeedbackFilter()
        assert f(Change.added, '/fb/1.json')
        assert f(Change.modified, '/fb/sub/2.json')
        assert not f(Change.deleted, '/fb/1.json')

    def test_filter_skips_partial_and_hidden_files(self):
        f = _FeedbackFilter()
        assert not f(Change.added, '/fb/.1.json')
        assert not f(Change.added, '/fb/1.json.tmp')
        assert not f(Change.added, '/fb/1.json.part')

    def test_ordered_drops_vanished_and_directories(self, tmp_path):
        (tmp_path / 'sub').mkdir()
        first = tmp_path / 'b.json'
        second = tmp_path / 'a.json'
        first.write_text('1')
        second.write_text('2')
        os.utime(first, ns=(1_000_000_000, 1_000_000_000))
        os.utime(second, ns=(2_000_000_000, 2_000_000_000))
        paths = [str(second), str(first), str(tmp_path / 'sub'), str(tmp_path / 'gone.json')]
        assert _ordered(paths) == [first, second]

    def test_read_vanished_file(self, tmp_path):
        assert _read_bytes(tmp_path / 'missing.json') is None

    def test_token(self):
        token = CancellationToken()
        assert not token.cancelled
        token.cancel()
        assert token.cancelled
        assert token.event.is_set()


class TestWatch:
    def test_yields_files_in_nested_directories(self, tmp_path, drop):
        fb = tmp_path / 'fb'
        (fb / 'nested').mkdir(parents=True)

        async def scenario():
            token = CancellationToken()
            task = asyncio.ensure_future(_collect(_watcher(), fb, token, 2))
            await asyncio.sleep(0.3)
            drop(fb, 'one.json', {'n': 1})
            drop(fb / 'nested', 'two.json', {'n': 2})
            return await task

        got = asyncio.run(scenario())
        assert {item.path.name for item in got} == {'one.json', 'two.json'}
        assert all(item.content.startswith(b'{') for item in got)

    def test_preexisting_files_are_delivered(self, tmp_path, drop):
        fb = tmp_path / 'fb'
        fb.mkdir()
        drop(fb, 'early.json', {'n': 0})

        got = asyncio.run(_collect(_watcher(), fb, CancellationToken(), 1))
        assert [item.path.name for item in got] == ['early.json']

    def test_cancel_unblocks_idle_watch(self, tmp_path):
        fb = tmp_path / 'fb'
        fb.mkdir()

        async def scenario():
            token = CancellationToken()
            got = []

            async def consume():
                async for item in _watcher().watch(fb, token):
                    got.append(item)

            task = asyncio.ensure_future(consume())
            await asyncio.sleep(0.3)
            started = time.monotonic()
            token.cancel()
            await asyncio.wait_for(task, 5)
            return got, time.monotonic() - started

        got, elapsed = asyncio.run(scenario())
        assert got == []
        assert elapsed < 2.0

    def test_cancelled_token_yields_nothing(self, tmp_path, drop):
        fb = tmp_path / 'fb'
        fb.mkdir()
        drop(fb, 'early.json', {'n': 0})
        token = CancellationToken()
        token.cancel()

        async def scenario():
            return [item async for item in _watcher().watch(fb, token)]

        assert asyncio.run(scenario()) == []

    def test_missing_directory_yields_nothing(self, tmp_path):
        async def scenario():
            return [item async for item in _watcher().watch(tmp_path / 'nope', CancellationToken())]

        assert asyncio.run(scenario()) == []
