"""
Hover handler.

When the cursor rests on a line that carries verifier annotations, return the
hover text of every annotation on that line, so clients that do not render
decoration hover messages still show query, proof-state and info details.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

from lsprotocol import types as lsp

from sireumlsp.handlers.decorations import hover_markdown

if TYPE_CHECKING:
    from sireumlsp.annotations import AnnotationStore


def get_hover(stores: Iterable[AnnotationStore], uri: str,
              position: lsp.Position) -> lsp.Hover | None:
    """Return a Markdown hover for *position* in *uri*, or None."""
    texts: list[str] = []
    for store in stores:
        texts.extend(store.hover_at(uri, position.line))
    if not texts:
        return None
    return lsp.Hover(
        contents=lsp.MarkupContent(
            kind=lsp.MarkupKind.Markdown,
            value='\n\n---\n\n'.join(hover_markdown(t) for t in texts),
        ),
        range=lsp.Range(
            start=lsp.Position(line=position.line, character=0),
            end=lsp.Position(line=position.line + 1, character=0),
        ),
    )
