"""
sireumlsp Language Server.

Registers LSP capabilities, receives run start/end signals from the client
and renders verifier feedback as decorations, hovers and messages.
"""
from __future__ import annotations

import itertools
import logging
from typing import Iterable, Sequence

from pygls.lsp.server import LanguageServer
from pygls.uris import to_fs_path
from lsprotocol import types as lsp

logger = logging.getLogger(__name__)

from sireumlsp import __version__
from sireumlsp.annotations import AnnotationEntry, AnnotationStore, DecorationStyle
from sireumlsp.config import Settings, SettingsResolver
from sireumlsp.handlers import decoration_options, decorations_payload, get_hover
from sireumlsp.lifecycle import RunLifecycle
from sireumlsp.watcher import FeedbackWatcher

CREATE_DECORATION_TYPE = '$/sireumlsp/createDecorationType'
DISPOSE_DECORATION_TYPE = '$/sireumlsp/disposeDecorationType'
SET_DECORATIONS = '$/sireumlsp/setDecorations'

DEFAULT_SLOT = 'default'


# ---------------------------------------------------------------------------
# Host adapter
# ---------------------------------------------------------------------------

class LanguageServerHost:
    """:class:`~sireumlsp.annotations.AnnotationHost` backed by an LSP client.

    Styles and decorations travel as custom notifications; reports use
    ``window/showMessage``.  Open documents stand in for visible editors.
    """

    def __init__(self, ls: LanguageServer):
        self._ls = ls
        self._ids = itertools.count(1)

    def _notify(self, method: str, params: dict) -> None:
        try:
            self._ls.protocol.notify(method, params)
        except Exception:
            # Protocol not connected (e.g. during unit tests)
            logger.debug('could not send %s', method, exc_info=True)

    def create_style(self, style: DecorationStyle) -> str:
        handle = f'sireumlsp.decoration.{next(self._ids)}'
        self._notify(CREATE_DECORATION_TYPE, {
            'id': handle,
            'options': decoration_options(style),
        })
        return handle

    def release_style(self, handle: str) -> None:
        self._notify(DISPOSE_DECORATION_TYPE, {'id': handle})

    def set_annotations(self, handle: str, uri: str,
                        entries: Sequence[AnnotationEntry]) -> None:
        self._notify(SET_DECORATIONS, {
            'uri': uri,
            'id': handle,
            'decorations': decorations_payload(entries),
        })

    def visible_documents(self) -> Iterable[str]:
        try:
            return list(self._ls.workspace.text_documents)
        except (AttributeError, RuntimeError):
            # Workspace is not available before initialize.
            return []

    def show_message(self, severity: lsp.MessageType, message: str) -> None:
        try:
            self._ls.window_show_message(lsp.ShowMessageParams(type=severity, message=message))
        except Exception:
            logger.debug('could not show message %r', message, exc_info=True)


# ---------------------------------------------------------------------------
# Server instance + per-session state
# ---------------------------------------------------------------------------

server = LanguageServer(
    'sireumlsp', __version__,
    text_document_sync_kind=lsp.TextDocumentSyncKind.Incremental,
)

_host = LanguageServerHost(server)

# Command-line defaults; every resolver built for the session starts from them.
_defaults = Settings()

# Settings resolver: replaced on initialize once the workspace root is known.
_resolver = SettingsResolver()

# One run lifecycle (and annotation store) per run slot.
_runs: dict[str, RunLifecycle] = {}


def configure_defaults(settings: Settings) -> None:
    """Install server-wide defaults below the project file and client options."""
    global _defaults, _resolver
    _defaults = settings
    _resolver = SettingsResolver(workspace_root=_resolver.workspace_root, defaults=settings)
    _apply_settings(_resolver.settings)


def _make_watcher(settings: Settings) -> FeedbackWatcher:
    return FeedbackWatcher(debounce_ms=settings.debounce_ms, step_ms=settings.step_ms)


def _lifecycle(slot: str | None) -> RunLifecycle:
    """Return the lifecycle for *slot*, creating it on first use."""
    slot = slot or DEFAULT_SLOT
    run = _runs.get(slot)
    if run is None:
        settings = _resolver.settings
        store = AnnotationStore(_host, settings)
        run = _runs[slot] = RunLifecycle(store, _make_watcher(settings), slot=slot)
    return run


def _apply_settings(settings: Settings) -> None:
    """Push new settings to every slot; style changes apply from the next run."""
    for run in _runs.values():
        run.store.settings = settings
        run.watcher.debounce_ms = settings.debounce_ms
        run.watcher.step_ms = settings.step_ms
    _apply_log_level(settings.log_level)


def _apply_log_level(raw: str | None) -> None:
    """Set the root logger level from a string like 'debug', 'warning', etc."""
    if not raw:
        return
    level = getattr(logging, raw.upper(), None)
    if isinstance(level, int):
        logging.getLogger().setLevel(level)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

@server.feature(lsp.INITIALIZE)
def on_initialize(params: lsp.InitializeParams):
    global _resolver
    workspace_root = None
    if params.root_uri:
        workspace_root = to_fs_path(params.root_uri) or params.root_uri

    _resolver = SettingsResolver(workspace_root=workspace_root, defaults=_defaults)
    opts = getattr(params, 'initialization_options', None)
    _apply_settings(_resolver.update_client(opts))


@server.feature(lsp.WORKSPACE_DID_CHANGE_CONFIGURATION)
def did_change_configuration(params: lsp.DidChangeConfigurationParams):
    """Handle live config changes (e.g. user changes ``sireum.iconsDir``)."""
    settings = getattr(params, 'settings', None) or {}
    _apply_settings(_resolver.update_client(settings))


@server.feature(lsp.SHUTDOWN)
def on_shutdown(params=None):
    """End every active run so no feedback directory outlives the server."""
    for run in _runs.values():
        run.close()


# ---------------------------------------------------------------------------
# Text document synchronisation
# ---------------------------------------------------------------------------

@server.feature(lsp.TEXT_DOCUMENT_DID_OPEN)
def did_open(params: lsp.DidOpenTextDocumentParams):
    """Re-render feedback that arrived before the document was revealed."""
    uri = params.text_document.uri
    for run in _runs.values():
        run.store.redraw(uri)


# ---------------------------------------------------------------------------
# Hover
# ---------------------------------------------------------------------------

@server.feature(lsp.TEXT_DOCUMENT_HOVER)
def hover(params: lsp.HoverParams) -> lsp.Hover | None:
    stores = [run.store for run in _runs.values()]
    return get_hover(stores, params.text_document.uri, params.position)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

# The extension calls, around the verifier task's process lifetime:
#   client.sendRequest('workspace/executeCommand',
#                      {command: 'sireumlsp.runStarted', arguments: [slot, dir?]})
#   client.sendRequest('workspace/executeCommand',
#                      {command: 'sireumlsp.runEnded', arguments: [slot, exitCode?]})

@server.command('sireumlsp.runStarted')
def cmd_run_started(slot: str = DEFAULT_SLOT, directory: str = None):
    """Start watching for *slot*; returns the feedback directory to pass the verifier."""
    return str(_lifecycle(slot).start(directory))


@server.command('sireumlsp.runEnded')
def cmd_run_ended(slot: str = DEFAULT_SLOT, exit_code: int = None):
    """Stop the run for *slot* and show the pass/fail summary."""
    _lifecycle(slot).end(exit_code)


@server.command('sireumlsp.clear')
def cmd_clear():
    """Remove every verifier annotation from every document."""
    for run in _runs.values():
        run.store.clear_all()
