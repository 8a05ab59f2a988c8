"""Build the program and run it on the target."""
import argparse

from crossrun.app import Application


def setup_parser(parser):
    """Setup argument parser for run command"""
    parser.add_argument(
        '--release',
        action='store_true',
        help='Build in release mode'
    )
    parser.add_argument(
        'args',
        nargs=argparse.REMAINDER,
        help='Build tool arguments; arguments after -- go to the program'
    )


def execute(args, app=None):
    """Execute run command.

    Returns:
        0 when the program exits 0 on the target. A non-zero remote exit
        raises RemoteCommandFailed, whose exit code is the program's.
    """
    app = app or Application(args)
    try:
        profile = app.profile(release=args.release)
        app.coordinator(profile).run(
            profile,
            args.args,
            binary_args=args.trailing or [],
            device_name=app.device_name,
        )
        return 0
    finally:
        app.close()
