"""
Result-event decoding.

The external verifier drops one JSON record per file into the feedback
directory.  Every record carries a ``type`` discriminator and, for kinds that
are tied to a source position, a position record.  Producers are not
consistent about how the position is shaped:

* ``{"pos": {...}}`` – a direct position record;
* ``{"posOpt": {"type": "Some", "value": {...}}}`` – an optional wrapper;
* ``{"posOpt": {"type": "None"}}`` or ``{"posOpt": null}`` – no position.

The document URI inside a position record is wrapped the same way
(``uriOpt``).  :func:`decode` unwraps both so that downstream code only ever
sees a flat :class:`Location` or ``None``.

Unknown discriminators decode to :class:`UnrecognizedEvent` rather than an
error so new verifier event kinds do not break older servers.
"""
from __future__ import annotations

import enum
import json
from dataclasses import dataclass
from typing import ClassVar, Union


class DecodeError(ValueError):
    """Raised when a result payload cannot be decoded into an event."""


class Category(str, enum.Enum):
    """Event kinds, valued by their wire discriminator."""
    QUERY_INFO = 'Logika.Verify.Smt2Query'
    PROOF_STATE = 'Logika.Verify.State'
    VERIFICATION_INFO = 'Logika.Verify.Info'
    COVERAGE = 'Analysis.Coverage'
    REPORT = 'Report'
    UNRECOGNIZED = ''

    @property
    def is_point(self) -> bool:
        """True for kinds rendered as one gutter marker per reported line."""
        return self in _POINT_CATEGORIES


_POINT_CATEGORIES = frozenset({
    Category.QUERY_INFO,
    Category.PROOF_STATE,
    Category.VERIFICATION_INFO,
})

# Report levels: 1 error, 2 warning, anything else informational.
INFO_LEVEL = 3


@dataclass(frozen=True)
class Location:
    uri: str
    begin_line: int      # 1-based
    begin_column: int    # 1-based, 0 when unknown
    end_line: int        # 1-based
    end_column: int


@dataclass(frozen=True)
class QueryInfoEvent:
    category: ClassVar[Category] = Category.QUERY_INFO
    location: Location | None
    info: str
    query: str

    @property
    def hover_text(self) -> str:
        return f'{self.info}\n{self.query}'


@dataclass(frozen=True)
class ProofStateEvent:
    category: ClassVar[Category] = Category.PROOF_STATE
    location: Location | None
    claims: str

    @property
    def hover_text(self) -> str:
        return self.claims


@dataclass(frozen=True)
class VerificationInfoEvent:
    category: ClassVar[Category] = Category.VERIFICATION_INFO
    location: Location | None
    message: str

    @property
    def hover_text(self) -> str:
        return self.message


@dataclass(frozen=True)
class CoverageEvent:
    category: ClassVar[Category] = Category.COVERAGE
    location: Location | None


@dataclass(frozen=True)
class ReportEvent:
    category: ClassVar[Category] = Category.REPORT
    location: Location | None
    level: int
    message: str


@dataclass(frozen=True)
class UnrecognizedEvent:
    category: ClassVar[Category] = Category.UNRECOGNIZED
    location: Location | None
    type: str
    raw: dict


ResultEvent = Union[
    QueryInfoEvent,
    ProofStateEvent,
    VerificationInfoEvent,
    CoverageEvent,
    ReportEvent,
    UnrecognizedEvent,
]
PointEvent = Union[QueryInfoEvent, ProofStateEvent, VerificationInfoEvent]


# ---------------------------------------------------------------------------
# Optional-wrapper helpers
# ---------------------------------------------------------------------------

def _unwrap_option(value):
    """Return the payload of an optional wrapper, or *value* itself if unwrapped.

    ``None`` and ``{"type": "None"}`` both mean "no value".
    """
    if value is None:
        return None
    if isinstance(value, dict):
        tag = value.get('type')
        if tag == 'None':
            return None
        if tag == 'Some' or (set(value) <= {'type', 'value'} and 'value' in value):
            return value.get('value')
    return value


def _int_field(record: dict, key: str, default: int | None = None) -> int:
    value = record.get(key)
    if value is None and default is not None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise DecodeError(f'position field {key!r} must be an integer, got {value!r}')
    return value


def _decode_location(record: dict) -> Location | None:
    if 'pos' in record:
        pos = _unwrap_option(record['pos'])
    else:
        pos = _unwrap_option(record.get('posOpt'))
    if pos is None:
        return None
    if not isinstance(pos, dict):
        raise DecodeError(f'position must be an object, got {type(pos).__name__}')

    uri = _unwrap_option(pos['uriOpt']) if 'uriOpt' in pos else pos.get('uri')
    if uri is None:
        return None
    if not isinstance(uri, str):
        raise DecodeError(f'position uri must be a string, got {type(uri).__name__}')

    begin_line = _int_field(pos, 'beginLine')
    begin_column = _int_field(pos, 'beginColumn', 0)
    end_line = _int_field(pos, 'endLine', begin_line)
    end_column = _int_field(pos, 'endColumn', begin_column)
    if end_line < begin_line:
        raise DecodeError(f'position ends before it begins ({begin_line} > {end_line})')
    return Location(
        uri=uri,
        begin_line=begin_line,
        begin_column=begin_column,
        end_line=end_line,
        end_column=end_column,
    )


def _text(record: dict, *keys: str) -> str:
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value if isinstance(value, str) else json.dumps(value, indent=2)
    return ''


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def decode(raw: bytes | str) -> ResultEvent:
    """Decode one result payload into a :class:`ResultEvent`.

    Raises :class:`DecodeError` if *raw* is not a JSON object with a string
    ``type`` field, or if its position record is malformed.
    """
    try:
        record = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DecodeError(f'invalid JSON: {exc}') from exc
    if not isinstance(record, dict):
        raise DecodeError(f'expected a JSON object, got {type(record).__name__}')
    tag = record.get('type')
    if not isinstance(tag, str):
        raise DecodeError('missing "type" discriminator')

    try:
        location = _decode_location(record)
    except KeyError as exc:
        raise DecodeError(f'position is missing field {exc}') from exc

    try:
        category = Category(tag)
    except ValueError:
        category = Category.UNRECOGNIZED

    if category is Category.QUERY_INFO:
        return QueryInfoEvent(
            location=location,
            info=_text(record, 'info'),
            query=_text(record, 'query'),
        )
    if category is Category.PROOF_STATE:
        return ProofStateEvent(location=location, claims=_text(record, 'claims'))
    if category is Category.VERIFICATION_INFO:
        return VerificationInfoEvent(location=location, message=_text(record, 'message'))
    if category is Category.COVERAGE:
        return CoverageEvent(location=location)
    if category is Category.REPORT:
        level = record.get('level')
        if isinstance(level, bool) or not isinstance(level, int):
            # Unknown or missing levels are informational.
            level = INFO_LEVEL
        return ReportEvent(
            location=location,
            level=level,
            message=_text(record, 'message', 'text'),
        )
    return UnrecognizedEvent(location=location, type=tag, raw=record)
