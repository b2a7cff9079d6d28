"""Tests for sireumlsp.events — result payload decoding."""
from __future__ import annotations

import json

import pytest

from sireumlsp.events import (
    Category,
    CoverageEvent,
    DecodeError,
    Location,
    ProofStateEvent,
    QueryInfoEvent,
    ReportEvent,
    UnrecognizedEvent,
    VerificationInfoEvent,
    decode,
)

URI = 'file:///work/Foo.sc'


def _pos(begin=10, end=None, uri=URI):
    pos = {'uriOpt': {'type': 'Some', 'value': uri}, 'beginLine': begin, 'beginColumn': 3}
    if end is not None:
        pos['endLine'] = end
        pos['endColumn'] = 1
    return pos


class TestKinds:
    def test_smt2_query(self):
        ev = decode(json.dumps({
            'type': 'Logika.Verify.Smt2Query', 'pos': _pos(), 'info': 'Valid', 'query': '(assert)',
        }))
        assert isinstance(ev, QueryInfoEvent)
        assert ev.category is Category.QUERY_INFO
        assert ev.hover_text == 'Valid\n(assert)'

    def test_state(self):
        ev = decode(json.dumps({'type': 'Logika.Verify.State', 'pos': _pos(), 'claims': 'x > 0'}))
        assert isinstance(ev, ProofStateEvent)
        assert ev.hover_text == 'x > 0'

    def test_info(self):
        ev = decode(json.dumps({'type': 'Logika.Verify.Info', 'pos': _pos(), 'message': 'ok'}))
        assert isinstance(ev, VerificationInfoEvent)
        assert ev.category.is_point

    def test_coverage_is_not_point(self):
        ev = decode(json.dumps({'type': 'Analysis.Coverage', 'pos': _pos(20, 22)}))
        assert isinstance(ev, CoverageEvent)
        assert not ev.category.is_point
        assert ev.location.begin_line == 20
        assert ev.location.end_line == 22

    def test_report(self):
        ev = decode(json.dumps({'type': 'Report', 'level': 2, 'message': 'careful'}))
        assert isinstance(ev, ReportEvent)
        assert ev.level == 2
        assert ev.message == 'careful'
        assert ev.location is None

    def test_report_text_alias(self):
        ev = decode(json.dumps({'type': 'Report', 'level': 1, 'text': 'boom'}))
        assert ev.message == 'boom'

    def test_unknown_kind_is_not_an_error(self):
        ev = decode(json.dumps({'type': 'Logika.Verify.Future', 'pos': _pos(), 'x': 1}))
        assert isinstance(ev, UnrecognizedEvent)
        assert ev.type == 'Logika.Verify.Future'
        assert ev.category is Category.UNRECOGNIZED

    def test_structured_claims_are_rendered_as_text(self):
        ev = decode(json.dumps({'type': 'Logika.Verify.State', 'pos': _pos(), 'claims': ['a', 'b']}))
        assert 'a' in ev.claims and 'b' in ev.claims

    def test_accepts_bytes(self):
        ev = decode(b'{"type": "Analysis.Coverage", "pos": null}')
        assert isinstance(ev, CoverageEvent)
        assert ev.location is None


class TestPositions:
    def test_direct_pos(self):
        ev = decode(json.dumps({'type': 'Analysis.Coverage', 'pos': _pos(5)}))
        assert ev.location == Location(uri=URI, begin_line=5, begin_column=3,
                                       end_line=5, end_column=3)

    def test_pos_opt_some(self):
        ev = decode(json.dumps({
            'type': 'Analysis.Coverage', 'posOpt': {'type': 'Some', 'value': _pos(7)},
        }))
        assert ev.location.begin_line == 7

    def test_pos_opt_none(self):
        ev = decode(json.dumps({'type': 'Report', 'level': 3, 'message': 'm',
                                'posOpt': {'type': 'None'}}))
        assert ev.location is None

    def test_missing_pos_is_absent(self):
        ev = decode(json.dumps({'type': 'Logika.Verify.Info', 'message': 'm'}))
        assert ev.location is None

    def test_plain_uri_field(self):
        pos = {'uri': URI, 'beginLine': 4}
        ev = decode(json.dumps({'type': 'Analysis.Coverage', 'pos': pos}))
        assert ev.location.uri == URI
        assert ev.location.begin_column == 0
        assert ev.location.end_line == 4

    def test_position_without_uri_is_absent(self):
        pos = {'uriOpt': {'type': 'None'}, 'beginLine': 4}
        ev = decode(json.dumps({'type': 'Analysis.Coverage', 'pos': pos}))
        assert ev.location is None


class TestMalformed:
    @pytest.mark.parametrize('raw', [
        '',
        '{"type": "Report", ',
        '[1, 2, 3]',
        '{"level": 1}',
        '{"type": 3}',
        b'\xff\xfe\x00',
    ])
    def test_decode_error(self, raw):
        with pytest.raises(DecodeError):
            decode(raw)

    def test_non_integer_line(self):
        pos = {'uri': URI, 'beginLine': 'ten'}
        with pytest.raises(DecodeError):
            decode(json.dumps({'type': 'Analysis.Coverage', 'pos': pos}))

    def test_missing_begin_line(self):
        with pytest.raises(DecodeError):
            decode(json.dumps({'type': 'Analysis.Coverage', 'pos': {'uri': URI}}))

    def test_inverted_range(self):
        pos = {'uri': URI, 'beginLine': 9, 'endLine': 3}
        with pytest.raises(DecodeError):
            decode(json.dumps({'type': 'Analysis.Coverage', 'pos': pos}))

    @pytest.mark.parametrize('level', ['high', None, 2.5, True])
    def test_odd_report_level_is_informational(self, level):
        ev = decode(json.dumps({'type': 'Report', 'level': level, 'message': 'm'}))
        assert ev.level == 3
        assert ev.message == 'm'

    def test_missing_report_level_is_informational(self):
        assert decode(json.dumps({'type': 'Report', 'message': 'm'})).level == 3

    def test_decode_error_is_value_error(self):
        assert issubclass(DecodeError, ValueError)
