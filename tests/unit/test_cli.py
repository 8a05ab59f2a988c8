"""Unit tests for the argument parser, dispatch and exit status mapping."""
import argparse
import pytest
from unittest.mock import Mock

import crossrun
from crossrun import build_parser, main
from crossrun.app import Application
from crossrun.commands import cargo, devices, emulator, run, run_on_target
from crossrun.core.protocols import Logger
from crossrun.devices import Target
from crossrun.exceptions import BuildError, NoTargetFound, RemoteCommandFailed
from crossrun.sdk import BuildProfile


@pytest.fixture
def captured(monkeypatch):
    """Replace a command's execute with a recorder; returns the namespace list."""
    calls = []

    def patch(module, result=0):
        def fake_execute(args, app=None):
            calls.append(args)
            if isinstance(result, BaseException):
                raise result
            return result
        monkeypatch.setattr(module, "execute", fake_execute)
        return calls

    return patch


class TestParser:
    def test_global_options(self):
        parser, _ = build_parser()

        args = parser.parse_args(["--arch", "arm64", "--debug-os", "-d", "dev-box", "ssh"])

        assert args.arch == "arm64"
        assert args.release_os is False
        assert args.device_name == "dev-box"
        assert args.command == "ssh"

    def test_os_flags_default_to_unset(self):
        parser, _ = build_parser()
        assert parser.parse_args(["stop"]).release_os is None

    def test_os_flags_exclusive(self):
        parser, _ = build_parser()
        with pytest.raises(SystemExit):
            parser.parse_args(["--release-os", "--debug-os", "stop"])

    def test_build_tests_sets_flag(self):
        parser, _ = build_parser()

        args = parser.parse_args(["build-tests"])

        assert args.tests is True
        assert args.action == "build-tests"

    def test_emulator_networking_flag(self):
        parser, _ = build_parser()
        args = parser.parse_args(["start", "-N"])
        assert args.networking is True
        assert args.action == "start"

    def test_every_command_has_handler(self):
        parser, handlers = build_parser()
        assert set(handlers) >= crossrun.PASSTHROUGH_COMMANDS
        assert {"start", "stop", "restart", "enable-networking",
                "list-devices", "ssh"} <= set(handlers)


class TestMain:
    def test_no_command_prints_help(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main([])

        assert exc_info.value.code == 1
        assert "crossrun" in capsys.readouterr().out

    def test_trailing_arguments_split(self, captured):
        calls = captured(run)

        with pytest.raises(SystemExit) as exc_info:
            main(["run", "--release", "--bin", "hello", "--", "--greet", "x"])

        assert exc_info.value.code == 0
        args = calls[0]
        assert args.release is True
        assert args.args == ["--bin", "hello"]
        assert args.trailing == ["--greet", "x"]

    def test_no_separator_means_no_trailing(self, captured):
        calls = captured(cargo)

        with pytest.raises(SystemExit):
            main(["cargo", "check"])

        assert calls[0].trailing is None
        assert calls[0].args == ["check"]

    def test_run_on_target_binary(self, captured):
        calls = captured(run_on_target)

        with pytest.raises(SystemExit):
            main(["run-on-target", "/w/deps/hello-1a2b", "--nocapture"])

        assert calls[0].binary == "/w/deps/hello-1a2b"
        assert calls[0].args == ["--nocapture"]

    def test_unknown_option_rejected_for_other_commands(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["stop", "--bogus"])

        assert exc_info.value.code == 2
        assert "--bogus" in capsys.readouterr().err

    def test_command_exit_status_passed_through(self, captured):
        captured(cargo, result=101)

        with pytest.raises(SystemExit) as exc_info:
            main(["cargo", "build"])

        assert exc_info.value.code == 101

    def test_tool_killed_by_signal(self, captured):
        captured(cargo, result=-9)

        with pytest.raises(SystemExit) as exc_info:
            main(["cargo", "build"])

        assert exc_info.value.code == 137

    def test_build_killed_by_signal(self, captured):
        captured(run, result=BuildError("cargo terminated", returncode=-15))

        with pytest.raises(SystemExit) as exc_info:
            main(["run"])

        assert exc_info.value.code == 143

    def test_error_reported_with_stage_exit_code(self, captured, capsys):
        captured(run, result=NoTargetFound(2.0))

        with pytest.raises(SystemExit) as exc_info:
            main(["run"])

        assert exc_info.value.code == 3
        assert capsys.readouterr().err.startswith("Error: No target found")

    def test_remote_exit_code_becomes_ours(self, captured):
        captured(run, result=RemoteCommandFailed(42, "/tmp/crossrun/debug-x64/hello"))

        with pytest.raises(SystemExit) as exc_info:
            main(["run"])

        assert exc_info.value.code == 42

    def test_interrupt(self, captured):
        captured(run, result=KeyboardInterrupt())

        with pytest.raises(SystemExit) as exc_info:
            main(["run"])

        assert exc_info.value.code == 130


class TestCommandExecute:
    def create_app(self):
        app = Mock(spec=Application)
        app.profile.return_value = BuildProfile()
        app.device_name = "dev-box"
        app.log = Mock(spec=Logger)
        return app

    def test_run_forwards_program_arguments_and_closes(self):
        app = self.create_app()
        args = argparse.Namespace(release=False, args=["--bin", "hello"], trailing=["-v"])

        assert run.execute(args, app=app) == 0

        app.coordinator.return_value.run.assert_called_once_with(
            BuildProfile(), ["--bin", "hello"], binary_args=["-v"], device_name="dev-box")
        app.close.assert_called_once()

    def test_run_closes_on_failure(self):
        app = self.create_app()
        app.coordinator.return_value.run.side_effect = RemoteCommandFailed(1)
        args = argparse.Namespace(release=False, args=[], trailing=None)

        with pytest.raises(RemoteCommandFailed):
            run.execute(args, app=app)

        app.close.assert_called_once()

    def test_cargo_keeps_separator_for_tool(self):
        app = self.create_app()
        app.coordinator.return_value.cargo.return_value = 0
        args = argparse.Namespace(release=True, args=["test"], trailing=["--nocapture"])

        cargo.execute(args, app=app)

        app.profile.assert_called_once_with(release=True)
        app.coordinator.return_value.cargo.assert_called_once_with(
            BuildProfile(), ["test", "--", "--nocapture"])

    def test_start_with_networking(self):
        app = self.create_app()
        args = argparse.Namespace(action="start", networking=True)

        assert emulator.execute(args, app=app) == 0

        app.emulator.start.assert_called_once_with(BuildProfile())
        app.emulator.enable_networking.assert_called_once_with()

    def test_list_devices_marks_static_targets(self):
        app = self.create_app()
        app.resolver.return_value.list_targets.return_value = [
            Target(name="dev-box", address="10.0.0.1"),
            Target(name="10.0.0.9", address="10.0.0.9", reachable=False),
        ]

        assert devices.execute(argparse.Namespace(action="list-devices"), app=app) == 0

        lines = [c[0][0] for c in app.log.info.call_args_list]
        assert lines[0].endswith("10.0.0.1")
        assert lines[1].endswith("(static, not probed)")

    def test_stop_needs_no_profile(self):
        app = self.create_app()

        emulator.execute(argparse.Namespace(action="stop", networking=False), app=app)

        app.emulator.stop.assert_called_once_with()
        app.profile.assert_not_called()
