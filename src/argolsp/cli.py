"""
Command line for the argolsp language server.

Editors normally start ``argolsp`` with no arguments and talk to it over
stdio.  The render and logging options below seed the settings cascade
(see :mod:`argolsp.settings`): they override ``.argolsp.toml`` and are in
turn overridden by what the client sends in ``initializationOptions`` or
``workspace/didChangeConfiguration``.

    argolsp --tcp 2087 --log-level debug
    argolsp --helm-path ~/bin/helm --cache-dir /tmp/argolsp-cache
    argolsp --no-render            # never shell out to helm
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'

# argparse dests that are also ServerSettings fields.
_SETTING_ARGS = ('helm_path', 'cache_dir', 'render_enabled', 'render_timeout', 'max_chart_depth', 'log_level')


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog='argolsp',
        description='Language server for Argo Workflows manifests and Helm charts.',
    )
    p.add_argument('--version', action='version', version=f'%(prog)s {_version()}')

    transport = p.add_mutually_exclusive_group()
    transport.add_argument('--stdio', action='store_true', help='talk LSP over stdin/stdout (the default)')
    transport.add_argument('--tcp', metavar='PORT', type=int, help='listen on 127.0.0.1:PORT instead of stdio')

    render = p.add_argument_group('helm rendering')
    render.add_argument('--helm-path', metavar='PATH', help='helm binary used to render charts (default: helm)')
    render.add_argument('--no-render', dest='render_enabled', action='store_const', const=False,
                        help='skip helm template rendering')
    render.add_argument('--render-timeout', metavar='SECONDS', type=float, help='limit for one helm run')
    render.add_argument('--cache-dir', metavar='DIR', type=Path,
                        help='where rendered charts are cached (default: ~/.cache/argolsp)')
    render.add_argument('--max-chart-depth', metavar='N', type=int,
                        help='how deep below a workspace root to look for charts')

    p.add_argument('--log-level', metavar='LEVEL', type=str.upper,
                   choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                   help='root logger level; logs go to stderr (default: WARNING)')
    return p


def _version() -> str:
    from argolsp import __version__
    return __version__


def settings_overrides(args: argparse.Namespace) -> dict[str, object]:
    """The settings named on the command line, leaving out flags that were not given."""
    return {name: getattr(args, name) for name in _SETTING_ARGS if getattr(args, name) is not None}


def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    # stdout carries the protocol; every log record goes to stderr.
    logging.basicConfig(format=LOG_FORMAT, stream=sys.stderr)

    from argolsp import server as srv
    srv.configure(settings_overrides(args))

    if args.tcp is not None:
        srv.server.start_tcp('127.0.0.1', args.tcp)
    else:
        srv.server.start_io()


if __name__ == '__main__':
    main()
