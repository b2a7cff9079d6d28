"""Serialise decoration styles and annotation entries for the client.

The payloads mirror VS Code's ``DecorationRenderOptions`` and
``DecorationOptions`` so the extension can pass them straight to
``createTextEditorDecorationType`` / ``setDecorations``.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from lsprotocol import types as lsp

    from sireumlsp.annotations import AnnotationEntry, DecorationStyle


def _theme(icon: str | None, style: DecorationStyle) -> dict:
    theme = {}
    if icon:
        theme['gutterIconPath'] = icon
        if style.icon_size:
            theme['gutterIconSize'] = style.icon_size
    if style.background:
        theme['backgroundColor'] = style.background
        theme['overviewRulerColor'] = style.background
    return theme


def decoration_options(style: DecorationStyle) -> dict:
    """Return the ``DecorationRenderOptions`` for *style*."""
    return {
        'isWholeLine': style.whole_line,
        'light': _theme(style.light_icon, style),
        'dark': _theme(style.dark_icon, style),
    }


def _range(rng: lsp.Range) -> dict:
    return {
        'start': {'line': rng.start.line, 'character': rng.start.character},
        'end': {'line': rng.end.line, 'character': rng.end.character},
    }


def hover_markdown(text: str) -> str:
    """Wrap verifier output in a raw fence so Markdown leaves it alone."""
    return f'~~~raw~~~\n{text}\n~~~'


def decorations_payload(entries: Sequence[AnnotationEntry]) -> list[dict]:
    """Return the ``DecorationOptions`` list for *entries*."""
    return [
        {
            'range': _range(e.range),
            'hoverMessage': hover_markdown(e.hover) if e.hover else None,
        }
        for e in entries
    ]
