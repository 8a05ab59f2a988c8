"""Target commands: list-devices and ssh."""
from crossrun.app import Application


def setup_parser(parser):
    """Setup argument parser for target commands"""
    pass


def execute(args, app=None):
    """Execute list-devices or ssh, selected by args.action"""
    app = app or Application(args)
    profile = app.profile()

    if args.action == 'list-devices':
        targets = app.resolver(profile.target_cpu).list_targets()
        if not targets:
            app.log.info("No targets found")
            return 0
        for target in targets:
            note = "" if target.reachable else "  (static, not probed)"
            app.log.info(f"{target.name:<24} {target.address}{note}")
        return 0

    try:
        status = app.coordinator(profile).shell(
            device_name=app.device_name,
            debug_mode=not profile.release_os,
        )
        return status.code
    finally:
        app.close()
