"""Rerun the tests on the target whenever the sources change."""
import argparse

from crossrun.app import Application


def setup_parser(parser):
    """Setup argument parser for autotest command"""
    parser.add_argument(
        '--release',
        action='store_true',
        help='Build tests in release mode'
    )
    parser.add_argument(
        'args',
        nargs=argparse.REMAINDER,
        help='Build tool arguments; arguments after -- go to each test binary'
    )


def execute(args, app=None):
    """Execute autotest command (returns when interrupted)"""
    app = app or Application(args)
    try:
        profile = app.profile(release=args.release)
        app.coordinator(profile).autotest(
            profile,
            app.source_watcher(),
            app.time,
            args=args.args,
            test_args=args.trailing or [],
            device_name=app.device_name,
        )
        return 0
    finally:
        app.close()
