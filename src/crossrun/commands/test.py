"""Build the tests and run every test binary on the target."""
import argparse

from crossrun.app import Application


def setup_parser(parser):
    """Setup argument parser for test command"""
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
    """Execute test command"""
    app = app or Application(args)
    try:
        profile = app.profile(release=args.release)
        results = app.coordinator(profile).test(
            profile,
            args.args,
            test_args=args.trailing or [],
            device_name=app.device_name,
        )
        app.log.info(f"{len(results)} test binary(ies) passed")
        return 0
    finally:
        app.close()
