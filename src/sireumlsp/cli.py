"""
sireumlsp – command-line entry point.

Usage
-----
    sireumlsp                                 # stdio (what editors launch)
    sireumlsp --tcp 2087 --log-level DEBUG    # attach a client by hand
    sireumlsp --feedback-root /scratch/logika --strict-protocol

Options other than the transport seed the server defaults; a project's
``.sireumlsp.toml`` and the client's ``sireum`` settings still override them.
"""
from __future__ import annotations

import argparse
import logging
import sys

from sireumlsp.config import Settings

LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog='sireumlsp',
        description='Language server that renders Sireum Logika verification feedback.',
    )
    transport = p.add_mutually_exclusive_group()
    transport.add_argument('--stdio', action='store_true',
                           help='Talk to the client over stdin/stdout (the default)')
    transport.add_argument('--tcp', metavar='PORT', type=int,
                           help='Serve a single client on 127.0.0.1:PORT instead')

    run = p.add_argument_group('run defaults')
    run.add_argument('--feedback-root', metavar='DIR',
                     help='Parent directory for per-run feedback directories '
                          '(default: the system temp dir)')
    run.add_argument('--icons-dir', metavar='DIR',
                     help='Directory holding the gutter icon images')
    run.add_argument('--strict-protocol', action='store_true',
                     help='Stop a run when the verifier sends a plain report '
                          'that carries a source position, instead of logging it')
    run.add_argument('--no-summary', dest='show_summary', action='store_false',
                     help='Do not show the pass/fail message when a run ends')

    p.add_argument('--log-level', metavar='LEVEL', default='WARNING', choices=LOG_LEVELS,
                   type=str.upper, help='Logging level written to stderr (default: WARNING)')
    p.add_argument('--version', action='store_true',
                   help='Print the sireumlsp version and exit')
    return p


def _settings_from_args(args: argparse.Namespace) -> Settings:
    """Server defaults implied by the command line."""
    return Settings(
        feedback_root=args.feedback_root,
        icons_dir=args.icons_dir,
        strict_protocol=args.strict_protocol,
        show_summary=args.show_summary,
        log_level=args.log_level,
    )


def sireumlsp(argv: list[str] | None = None) -> None:
    """Entry point for the ``sireumlsp`` command."""
    args = _build_parser().parse_args(argv)

    if args.version:
        from sireumlsp import __version__
        print(f'sireumlsp {__version__}')
        return

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(levelname)s %(name)s: %(message)s',
        stream=sys.stderr,
    )

    from sireumlsp.server import configure_defaults, server

    configure_defaults(_settings_from_args(args))
    if args.tcp is not None:
        server.start_tcp('127.0.0.1', args.tcp)
    else:
        server.start_io()


if __name__ == '__main__':
    sireumlsp()
