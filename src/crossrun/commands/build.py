"""Build commands: build, build-tests and the raw build tool passthrough."""
import argparse

from crossrun.app import Application


def setup_parser(parser):
    """Setup argument parser for build and build-tests commands"""
    parser.add_argument(
        '--release',
        action='store_true',
        help='Build artifacts in release mode'
    )
    parser.add_argument(
        'args',
        nargs=argparse.REMAINDER,
        help='Extra arguments for the build tool'
    )
    parser.set_defaults(tests=False)


def execute(args, app=None):
    """Execute build command"""
    app = app or Application(args)
    profile = app.profile(release=args.release)
    artifacts = app.coordinator(profile).build(profile, args.args, tests=args.tests)

    kind = "test binaries" if args.tests else "artifacts"
    app.log.info(f"Built {len(artifacts)} {kind} for {profile.triple}")
    for artifact in artifacts:
        app.log.info(f"  {artifact.package_name}: {artifact.path}")
    return 0
