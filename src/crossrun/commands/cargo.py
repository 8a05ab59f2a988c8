"""Run the build tool with arbitrary arguments in the cross environment."""
import argparse

from crossrun.app import Application


def setup_parser(parser):
    """Setup argument parser for cargo command"""
    parser.add_argument(
        '--release',
        action='store_true',
        help='Select the release build profile'
    )
    parser.add_argument(
        'args',
        nargs=argparse.REMAINDER,
        help='Arguments for the build tool (e.g. check, doc, update)'
    )


def execute(args, app=None):
    """Execute cargo command, returning the build tool's exit status"""
    app = app or Application(args)
    profile = app.profile(release=args.release)
    tool_args = list(args.args)
    if args.trailing is not None:
        tool_args += ['--', *args.trailing]
    return app.coordinator(profile).cargo(profile, tool_args)
