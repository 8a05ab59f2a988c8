"""Emulator commands: start, stop, restart, enable-networking."""
from crossrun.app import Application


def setup_parser(parser):
    """Setup argument parser for emulator commands"""
    parser.add_argument(
        '--networking', '-N',
        action='store_true',
        help='Enable host networking once the emulator is up (start/restart)'
    )


def execute(args, app=None):
    """Execute an emulator command selected by args.action"""
    app = app or Application(args)
    manager = app.emulator

    if args.action == 'stop':
        manager.stop()
        return 0
    if args.action == 'enable-networking':
        manager.enable_networking()
        return 0

    profile = app.profile()
    if args.action == 'restart':
        instance = manager.restart(profile)
    else:
        instance = manager.start(profile)

    if getattr(args, 'networking', False):
        instance = manager.enable_networking()
    app.log.info(
        f"Emulator {profile.out_dir_name} running (pid {instance.pid}, "
        f"networking {'on' if instance.networked else 'off'})"
    )
    return 0
