"""
Document identity.

The verifier reports positions with whatever URI or path spelling it was
given on the command line, while the editor names open documents by its own
``file://`` URI.  The two routinely differ in percent-encoding, drive-letter
case and (on Windows and macOS) path case, so documents are matched by a
normalised key rather than by string equality.
"""
from __future__ import annotations

import os
import sys
from urllib.parse import unquote, urlparse

from pygls.uris import to_fs_path

# Platforms whose default filesystems are case-insensitive.
CASE_INSENSITIVE_DEFAULT = sys.platform in ('win32', 'darwin')


def document_key(identity: str, *, case_insensitive: bool | None = None) -> str:
    """Return a comparison key for a document URI or filesystem path."""
    if case_insensitive is None:
        case_insensitive = CASE_INSENSITIVE_DEFAULT

    scheme = urlparse(identity).scheme
    if scheme == 'file':
        path = to_fs_path(identity) or unquote(urlparse(identity).path)
    elif len(scheme) > 1:
        # Non-file URIs (untitled:, vscode-vfs:, ...) are compared verbatim
        # apart from percent-encoding.
        key = unquote(identity)
        return key.casefold() if case_insensitive else key
    else:
        # Bare path; a one-letter "scheme" is a Windows drive letter.
        path = identity

    path = os.path.normpath(path).replace('\\', '/')
    return path.casefold() if case_insensitive else path


def same_document(a: str, b: str, *, case_insensitive: bool | None = None) -> bool:
    """True if *a* and *b* name the same document."""
    return (document_key(a, case_insensitive=case_insensitive)
            == document_key(b, case_insensitive=case_insensitive))
