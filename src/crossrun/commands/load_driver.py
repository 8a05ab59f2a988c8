"""Build a driver, push it to the target and load it."""
import argparse

from crossrun.app import Application


def setup_parser(parser):
    """Setup argument parser for load-driver command"""
    parser.add_argument(
        '--release',
        action='store_true',
        help='Build the driver in release mode'
    )
    parser.add_argument(
        'args',
        nargs=argparse.REMAINDER,
        help='Extra arguments for the build tool'
    )


def execute(args, app=None):
    """Execute load-driver command"""
    app = app or Application(args)
    try:
        profile = app.profile(release=args.release)
        app.coordinator(profile).load_driver(profile, args.args, device_name=app.device_name)
        return 0
    finally:
        app.close()
