"""
crossrun CLI - build, deploy and run programs on a target OS device or emulator

A command-line interface that cross-builds a project for the target,
finds a running target on the network, pushes the artifact and runs it
there with output streamed back.
"""
import argparse
import sys

__version__ = "1.0.0"

# Commands whose unrecognized options belong to the wrapped tool
PASSTHROUGH_COMMANDS = {
    'build', 'build-tests', 'run', 'test', 'run-on-target', 'cargo',
    'pkg-config', 'configure', 'autotest', 'load-driver',
}


def _split_trailing(argv):
    """Split argv at the first `--`; trailing is None when there is none."""
    if '--' in argv:
        index = argv.index('--')
        return argv[:index], argv[index + 1:]
    return argv, None


def build_parser():
    """Construct the argument parser with every subcommand"""
    from crossrun.commands import (
        autotest, build, cargo, devices, emulator,
        load_driver, run, run_on_target, test, wrappers
    )

    parser = argparse.ArgumentParser(
        prog='crossrun',
        description='crossrun: cross-build, deploy and run on target devices',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  crossrun build                        # Cross-build the project
  crossrun run -- --flag                # Build, push and run with arguments
  crossrun test                         # Run every test binary on the target
  crossrun --device-name dev-box ssh    # Shell on a named target
  crossrun start -N                     # Boot an emulator with networking
  crossrun list-devices                 # Targets answering discovery

Environment:
  CROSSRUN_ROOT         Target OS build tree
  CROSSRUN_DEVICE_NAME  Default target name
  CROSSRUN_DEBUG_OS=1   Use the debug image and its credentials
  CROSSRUN_CONFIG       Config file path
        '''
    )
    parser.add_argument('--config', help='Config file (default: ./crossrun.yaml)')
    parser.add_argument('--arch', choices=['x64', 'arm64'],
                        help='Target cpu (default: from the build tree, else x64)')
    os_group = parser.add_mutually_exclusive_group()
    os_group.add_argument('--release-os', dest='release_os', action='store_true',
                          default=None, help='Use the release target image')
    os_group.add_argument('--debug-os', dest='release_os', action='store_false',
                          help='Use the debug target image and credentials')
    parser.add_argument('--device-name', '-d', help='Target to use (exact name)')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Print every command crossrun runs')

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')
    handlers = {}

    def add(name, module, help_text, setup=None, **defaults):
        sub = subparsers.add_parser(name, help=help_text)
        (setup or module.setup_parser)(sub)
        sub.set_defaults(action=name, **defaults)
        handlers[name] = module

    add('build', build, 'Cross-build the project')
    add('build-tests', build, 'Cross-build the test binaries', tests=True)
    add('run', run, 'Build and run the program on the target')
    add('test', test, 'Build and run the tests on the target')
    add('run-on-target', run_on_target, 'Push and run an already-built binary')
    add('cargo', cargo, 'Run the build tool in the cross environment')
    add('autotest', autotest, 'Rerun the tests whenever sources change')
    add('load-driver', load_driver, 'Build, push and load a driver')
    add('start', emulator, 'Start an emulator')
    add('stop', emulator, 'Stop all emulators')
    add('restart', emulator, 'Restart the emulator')
    add('enable-networking', emulator, 'Bring up the emulator network interface')
    add('list-devices', devices, 'List targets answering discovery')
    add('ssh', devices, 'Open a shell on the target')
    add('pkg-config', wrappers, 'Run pkg-config for the target')
    add('configure', wrappers, 'Run ./configure for the target',
        setup=wrappers.setup_configure_parser)

    return parser, handlers


def main(argv=None):
    """Main CLI entry point"""
    from crossrun.exceptions import CrossrunError, exit_status

    parser, handlers = build_parser()
    argv = list(sys.argv[1:] if argv is None else argv)
    head, trailing = _split_trailing(argv)

    args, extras = parser.parse_known_args(head)
    if not args.command:
        parser.print_help()
        sys.exit(1)
    if extras:
        if args.command not in PASSTHROUGH_COMMANDS:
            parser.error(f"unrecognized arguments: {' '.join(extras)}")
        args.args = extras + list(getattr(args, 'args', []))
    args.trailing = trailing

    # Dispatch to command handler
    try:
        sys.exit(exit_status(handlers[args.command].execute(args)))
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(130)
    except CrossrunError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(e.exit_code)
