"""pkg-config and configure wrappers."""
import argparse

from crossrun.app import Application


def setup_parser(parser):
    """Setup argument parser for pkg-config/configure commands"""
    parser.add_argument(
        'args',
        nargs=argparse.REMAINDER,
        help='Arguments for the wrapped tool'
    )


def setup_configure_parser(parser):
    """Setup argument parser for configure command"""
    parser.add_argument(
        '--use-host',
        action='store_true',
        help='Pass --host=<cpu>-fuchsia-elf to configure'
    )
    setup_parser(parser)


def execute(args, app=None):
    """Execute pkg-config or configure, returning the tool's exit status"""
    app = app or Application(args)
    profile = app.profile()
    tool_args = list(args.args)
    if args.trailing is not None:
        tool_args += ['--', *args.trailing]

    if args.action == 'configure':
        return app.wrappers.run_configure(profile, tool_args,
                                          use_host=getattr(args, 'use_host', False))
    return app.wrappers.run_pkg_config(profile, tool_args)
