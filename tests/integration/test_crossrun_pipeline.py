"""Integration tests for the run pipeline with a real build tree on disk.

Filesystem, YAML config, layout discovery, resolver, pipeline and ssh
transport are the real implementations. Only the external processes
(cargo, ssh, scp) and the discovery socket are scripted.
"""

import argparse
import io
import json
import shutil
import socket
import tempfile
import pytest
from pathlib import Path
from unittest.mock import Mock

from crossrun.app import Application
from crossrun.commands import run
from crossrun.core import RealFileSystemService
from crossrun.core.protocols import EnvironmentProvider, Logger, ProcessResult
from crossrun.exceptions import ConfigurationError, NoTargetFound


class ScriptedProcesses:
    """Answers cargo/ssh/scp the way a healthy host and target would."""

    def __init__(self, executable, remote_stdout=b"Hello, target!\n"):
        self.executable = executable
        self.remote_stdout = remote_stdout
        self.commands = []

    def run(self, cmd, **kwargs):
        self.commands.append(cmd)
        if cmd[0] == "cargo":
            message = json.dumps({
                "reason": "compiler-artifact",
                "target": {"name": "hello", "kind": ["bin"]},
                "profile": {"test": False},
                "executable": str(self.executable),
                "filenames": [str(self.executable)],
            })
            return ProcessResult(returncode=0, stdout=message + "\n")
        return ProcessResult(returncode=0)

    def popen(self, cmd, **kwargs):
        self.commands.append(cmd)
        handle = Mock()
        handle.stdout = io.BytesIO(self.remote_stdout)
        handle.stderr = io.BytesIO(b"CROSSRUN_PID=77\n")
        handle.wait.return_value = 0
        return handle


class AnnouncingSocket:
    def __init__(self, names):
        self.replies = [(f"crossrun:target {name}\n".encode(), (address, 33340))
                        for name, address in names]
        self.closed = False

    def sendto(self, data, address):
        return len(data)

    def settimeout(self, value):
        pass

    def recvfrom(self, bufsize):
        if not self.replies:
            raise socket.timeout("timed out")
        return self.replies.pop(0)

    def close(self):
        self.closed = True


class StillClock:
    def current_time(self):
        return 0.0

    def sleep(self, seconds):
        pass


class RecordingStreams:
    def __init__(self):
        self.stdout = b""

    def write_stdout(self, data):
        self.stdout += data

    def write_stderr(self, data):
        pass


class TestRunPipelineIntegration:
    """`crossrun run` from argument namespace to streamed remote output."""

    def setup_method(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.root = self.temp_dir / "fuchsia"
        self.project = self.temp_dir / "hello"
        self.home = self.temp_dir / "home"

        (self.root / "out" / "release-x64" / "ssh-keys").mkdir(parents=True)
        (self.root / "out" / "release-x64" / "ssh-keys" / "id_ed25519").write_text("key")
        (self.root / "out" / "build-zircon" / "build-user-x86-64" / "sysroot").mkdir(parents=True)
        clang_bin = self.root / "buildtools" / "linux-x64" / "clang" / "bin"
        clang_bin.mkdir(parents=True)
        (clang_bin / "clang").write_text("")
        (self.project / "src").mkdir(parents=True)
        self.home.mkdir()

        self.executable = self.project / "target" / "x86_64-unknown-fuchsia" / "debug" / "hello"

    def teardown_method(self):
        if self.temp_dir.exists():
            shutil.rmtree(self.temp_dir)

    def create_app(self, processes, names=(("dev-box", "192.168.3.53"),), config=None):
        if config is not None:
            (self.project / "crossrun.yaml").write_text(config)
        env = Mock(spec=EnvironmentProvider)
        env.get_environ.return_value = {"CROSSRUN_ROOT": str(self.root), "PATH": "/usr/bin"}
        env.get_cwd.return_value = self.project
        env.get_home.return_value = self.home
        env.get_system_type.return_value = "Linux"

        sockets = Mock()
        sockets.broadcast_socket.return_value = AnnouncingSocket(names)
        self.streams = RecordingStreams()

        args = argparse.Namespace(config=None, arch=None, release_os=None, device_name=None,
                                  verbose=False)
        return Application(
            args,
            filesystem=RealFileSystemService(),
            process_executor=processes,
            env_provider=env,
            time_provider=StillClock(),
            socket_factory=sockets,
            streams=self.streams,
            logger=Mock(spec=Logger),
        )

    def run_args(self, trailing=None):
        return argparse.Namespace(release=False, args=[], trailing=trailing)

    def test_hello_on_single_target(self):
        processes = ScriptedProcesses(self.executable)
        app = self.create_app(processes, config="build:\n  strip: false\n")

        assert run.execute(self.run_args(["--greet"]), app=app) == 0

        assert self.streams.stdout == b"Hello, target!\n"
        scp = [c for c in processes.commands if c[0] == "scp"]
        assert scp[0][-2:] == [str(self.executable),
                               "fuchsia@192.168.3.53:/tmp/crossrun/debug-x64/hello"]
        key = str(self.root / "out" / "release-x64" / "ssh-keys" / "id_ed25519")
        assert all(key in c for c in processes.commands if c[0] in ("ssh", "scp"))
        assert "exec sh -c '/tmp/crossrun/debug-x64/hello --greet'" in processes.commands[-2][-1]
        # Session closed once the command finished
        assert processes.commands[-1][-3:-1] == ["-O", "exit"]

    def test_build_environment_targets_device(self):
        processes = ScriptedProcesses(self.executable)
        app = self.create_app(processes, config="build:\n  strip: false\n")

        run.execute(self.run_args(), app=app)

        cargo = processes.commands[0]
        assert cargo[:4] == ["cargo", "build", "--target", "x86_64-unknown-fuchsia"]

    def test_strip_uses_tree_objcopy(self):
        processes = ScriptedProcesses(self.executable)
        app = self.create_app(processes)

        run.execute(self.run_args(), app=app)

        objcopy = str(self.root / "buildtools" / "linux-x64" / "clang" / "bin" / "llvm-objcopy")
        assert [objcopy, "--strip-sections", str(self.executable),
                f"{self.executable}_stripped"] in processes.commands

    def test_no_target_stops_before_ssh(self):
        processes = ScriptedProcesses(self.executable)
        app = self.create_app(processes, names=(), config="build:\n  strip: false\n")

        with pytest.raises(NoTargetFound):
            run.execute(self.run_args(), app=app)

        assert not any(c[0] in ("ssh", "scp") for c in processes.commands)

    def test_invalid_config_file(self):
        processes = ScriptedProcesses(self.executable)
        app = self.create_app(processes, config="transport:\n  prot: 2222\n")

        with pytest.raises(ConfigurationError, match="prot"):
            run.execute(self.run_args(), app=app)

        assert processes.commands == []

    def test_missing_toolchain(self):
        shutil.rmtree(self.root / "buildtools")
        processes = ScriptedProcesses(self.executable)
        app = self.create_app(processes)

        with pytest.raises(ConfigurationError, match="Clang not found"):
            run.execute(self.run_args(), app=app)
