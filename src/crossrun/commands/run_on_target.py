"""Runner hook: push an already-built binary and run it on the target.

The build tool invokes this through CARGO_TARGET_<TRIPLE>_RUNNER as
`crossrun --arch <cpu> --release-os run-on-target [--release] <binary> <args...>`.
"""
import argparse

from crossrun.app import Application


def setup_parser(parser):
    """Setup argument parser for run-on-target command"""
    parser.add_argument(
        '--release',
        action='store_true',
        help='Binary was built in release mode'
    )
    parser.add_argument(
        'binary',
        help='Path to the built binary'
    )
    parser.add_argument(
        'args',
        nargs=argparse.REMAINDER,
        help='Arguments for the binary'
    )


def execute(args, app=None):
    """Execute run-on-target command"""
    app = app or Application(args)
    binary_args = list(args.args)
    if args.trailing is not None:
        binary_args += ['--', *args.trailing]
    try:
        profile = app.profile(release=args.release)
        app.coordinator(profile).run_on_target(
            profile, args.binary, binary_args, device_name=app.device_name
        )
        return 0
    finally:
        app.close()
