"""
EmulatorManager - start, stop and network local qemu emulators.

State is never cached: every query re-derives it from the process table
(`pgrep -a -f qemu-system-`) and the bridge interface (`ip`), so an
emulator started or killed outside crossrun is reported correctly.
"""

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from crossrun.core.protocols import (
    FileSystemService,
    Logger,
    ProcessExecutor,
    TimeProvider,
    ToolLocator,
)
from crossrun.emulator.base import EmulatorInstance, EmulatorState
from crossrun.exceptions import EmulatorError, NetworkingError, StartError
from crossrun.sdk.layout import TargetLayout
from crossrun.sdk.profile import BuildProfile, SUPPORTED_CPUS
from crossrun.utils.config import EmulatorConfig

PROCESS_PATTERN = "qemu-system-"
LOG_FILE_NAME = "emulator.log"
POLL_INTERVAL = 0.5
STOP_TIMEOUT = 5.0
LOG_TAIL_LINES = 40

# Per-cpu machine flags; the network device is attached to a host tap interface
MACHINE_ARGS = {
    "x64": ["-machine", "q35", "-cpu", "Haswell,+smap,-check,-fsgsbase"],
    "arm64": ["-machine", "virt,gic-version=3", "-cpu", "cortex-a53"],
}
NET_DEVICE = {
    "x64": "e1000",
    "arm64": "virtio-net-pci",
}


@dataclass(frozen=True)
class EmulatorProcess:
    """One line of the process table that looks like an emulator."""
    pid: int
    command_line: str

    @property
    def binary(self) -> str:
        return Path(self.command_line.split()[0]).name

    @property
    def target_cpu(self) -> Optional[str]:
        for cpu, (_, _, qemu_binary) in SUPPORTED_CPUS.items():
            if self.binary == qemu_binary:
                return cpu
        return None

    def uses_path_under(self, directory: Path) -> bool:
        """True when an argument is a path inside directory."""
        prefix = f"{directory}/"
        return any(arg.startswith(prefix) for arg in self.command_line.split()[1:])


class EmulatorManager:
    """
    Lifecycle of local emulators.

    Args:
        process_executor: Runs pgrep/kill/ip and spawns qemu
        filesystem: Checks boot images, writes the emulator log
        tool_locator: Finds the qemu binary on PATH
        time_provider: Bounds the start/stop waits
        logger: Logger
        root: Target OS build tree
        config: Emulator section of the config
        log_dir: Where emulator.log is written
    """

    def __init__(
        self,
        process_executor: ProcessExecutor,
        filesystem: FileSystemService,
        tool_locator: ToolLocator,
        time_provider: TimeProvider,
        logger: Logger,
        root: Path,
        config: EmulatorConfig,
        log_dir: Path,
    ):
        self.process = process_executor
        self.fs = filesystem
        self.tools = tool_locator
        self.time = time_provider
        self.log = logger
        self.root = Path(root)
        self.config = config
        self.log_dir = Path(log_dir)

    @property
    def log_path(self) -> Path:
        return self.log_dir / LOG_FILE_NAME

    def list_processes(self) -> List[EmulatorProcess]:
        """Every running emulator booted from this build tree, whatever profile.

        Other qemu instances on the host (libvirt guests, other trees) are
        not ours and are left out.
        """
        result = self.process.run(["pgrep", "-a", "-f", PROCESS_PATTERN], capture_output=True)
        # pgrep exits 1 when nothing matched
        if result.returncode == 1:
            return []
        if result.returncode != 0:
            raise EmulatorError(
                f"Could not list processes (pgrep exit {result.returncode}): "
                f"{result.stderr.strip()}"
            )

        processes = []
        for line in result.stdout.splitlines():
            parts = line.strip().split(None, 1)
            if len(parts) != 2 or not parts[0].isdigit():
                continue
            proc = EmulatorProcess(pid=int(parts[0]), command_line=parts[1])
            if proc.target_cpu is not None and proc.uses_path_under(self.root / "out"):
                processes.append(proc)
        return processes

    def _matching(self, profile: BuildProfile) -> List[EmulatorProcess]:
        out_dir = TargetLayout(self.root, profile).target_out_dir
        return [
            p for p in self.list_processes()
            if p.binary == profile.qemu_binary and p.uses_path_under(out_dir)
        ]

    def _is_networked(self) -> bool:
        iface = self.config.interface
        link = self.process.run(["ip", "-o", "link", "show", "dev", iface], capture_output=True)
        if link.returncode != 0:
            return False
        flags = link.stdout.split("<", 1)[-1].split(">", 1)[0].split(",")
        if "UP" not in flags:
            return False

        addr = self.process.run(["ip", "-o", "addr", "show", "dev", iface], capture_output=True)
        return addr.returncode == 0 and f"inet {self.config.host_address}" in addr.stdout

    def status(self, profile: Optional[BuildProfile] = None) -> EmulatorInstance:
        """
        Current state of the emulator for profile (any emulator when None).
        """
        processes = self._matching(profile) if profile else self.list_processes()
        if not processes:
            return EmulatorInstance(
                pid=None,
                target_cpu=profile.target_cpu if profile else "x64",
                release_os=profile.release_os if profile else True,
            )

        proc = processes[0]
        instance = EmulatorInstance(
            pid=proc.pid,
            target_cpu=profile.target_cpu if profile else proc.target_cpu,
            release_os=profile.release_os if profile else "/out/debug-" not in proc.command_line,
            state=EmulatorState.RUNNING,
        )
        if self._is_networked():
            instance.mark_networked()
        return instance

    def build_command(self, qemu: str, profile: BuildProfile) -> List[str]:
        layout = TargetLayout(self.root, profile)
        cmd = [
            qemu,
            "-kernel", str(layout.target_out_dir / self.config.kernel_image),
            "-initrd", str(layout.target_out_dir / self.config.boot_image),
            "-m", str(self.config.memory),
            "-smp", str(self.config.cpus),
            "-nographic",
        ]
        cmd.extend(MACHINE_ARGS[profile.target_cpu])
        cmd.extend([
            "-netdev",
            f"type=tap,ifname={self.config.interface},script=no,downscript=no,id=net0",
            "-device", f"{NET_DEVICE[profile.target_cpu]},netdev=net0",
        ])
        cmd.extend(self.config.extra_args)
        return cmd

    def _log_tail(self) -> str:
        try:
            lines = self.fs.read_file(self.log_path).splitlines()
        except OSError:
            return "(could not read emulator log)"
        return "\n".join(lines[-LOG_TAIL_LINES:]) or "(emulator log is empty)"

    def start(self, profile: BuildProfile) -> EmulatorInstance:
        """
        Boot the profile's image in a detached emulator.

        Raises:
            StartError: Already running, qemu missing, image missing, or the
                emulator exited/never appeared within start_timeout
        """
        running = self._matching(profile)
        if running:
            raise StartError(
                f"An emulator for {profile.out_dir_name} is already running "
                f"(pid {running[0].pid})\n"
                f"Use 'crossrun restart' to replace it or 'crossrun stop' first."
            )

        qemu = self.tools.find_tool(profile.qemu_binary)
        if qemu is None:
            raise StartError(
                f"Emulator binary not found: {profile.qemu_binary}\n"
                f"Install QEMU and ensure it is in PATH."
            )

        layout = TargetLayout(self.root, profile)
        missing = [
            str(layout.target_out_dir / name)
            for name in (self.config.kernel_image, self.config.boot_image)
            if not self.fs.exists(layout.target_out_dir / name)
        ]
        if missing:
            raise StartError(
                "Boot image(s) missing:\n" + "\n".join(f"  {m}" for m in missing) +
                f"\nBuild the {profile.out_dir_name} image first."
            )

        instance = EmulatorInstance(pid=None, target_cpu=profile.target_cpu,
                                    release_os=profile.release_os)
        instance.transition(EmulatorState.STARTING)

        cmd = self.build_command(qemu, profile)
        self.log.debug(f"Emulator: {' '.join(cmd)}")
        self.fs.mkdir(self.log_dir)
        with self.fs.open(self.log_path, "wb") as log_file:
            handle = self.process.popen(
                cmd,
                stdout=log_file,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                start_new_session=True,
            )

        deadline = self.time.current_time() + self.config.start_timeout
        while self.time.current_time() < deadline:
            exit_code = handle.poll()
            if exit_code is not None:
                instance.transition(EmulatorState.STOPPED)
                raise StartError(
                    f"Emulator exited during startup (exit {exit_code})\n\n"
                    f"Emulator log ({self.log_path}):\n{self._log_tail()}"
                )
            matching = self._matching(profile)
            if matching:
                instance.pid = matching[0].pid
                instance.transition(EmulatorState.RUNNING)
                self.log.info(f"Emulator started (pid {instance.pid}), log: {self.log_path}")
                return instance
            self.time.sleep(POLL_INTERVAL)

        handle.terminate()
        instance.transition(EmulatorState.STOPPED)
        raise StartError(
            f"Emulator did not appear within {self.config.start_timeout:g}s\n\n"
            f"Emulator log ({self.log_path}):\n{self._log_tail()}"
        )

    def _signal(self, pids: List[int], signal_name: str) -> None:
        for pid in pids:
            result = self.process.run(["kill", f"-{signal_name}", str(pid)], capture_output=True)
            # A process that already exited is not an error
            if result.returncode != 0:
                self.log.debug(f"kill -{signal_name} {pid}: {result.stderr.strip()}")

    def stop(self) -> List[int]:
        """
        Stop every emulator process. Stopping nothing is a no-op.

        Returns:
            Pids that were running when stop began
        """
        pids = [p.pid for p in self.list_processes()]
        if not pids:
            self.log.info("No emulator running")
            return []

        self._signal(pids, "TERM")

        deadline = self.time.current_time() + STOP_TIMEOUT
        survivors = list(pids)
        while survivors and self.time.current_time() < deadline:
            self.time.sleep(POLL_INTERVAL)
            alive = {p.pid for p in self.list_processes()}
            survivors = [pid for pid in pids if pid in alive]

        if survivors:
            self.log.warning(f"Emulator did not exit on TERM, killing: {survivors}")
            self._signal(survivors, "KILL")

        self.log.info(f"Stopped emulator(s): {', '.join(str(p) for p in pids)}")
        return pids

    def restart(self, profile: BuildProfile) -> EmulatorInstance:
        self.stop()
        return self.start(profile)

    def enable_networking(self) -> EmulatorInstance:
        """
        Bring up the bridge interface with the host address.

        Raises:
            NetworkingError: No emulator running, or a step failed
        """
        instance = self.status()
        if not instance.running:
            raise NetworkingError(
                "No emulator is running\n"
                "Start one first: crossrun start"
            )
        if instance.networked:
            self.log.info(f"Networking already enabled on {self.config.interface}")
            return instance

        iface = self.config.interface
        steps = [
            ["sudo", "ip", "link", "set", iface, "up"],
            ["sudo", "ip", "addr", "replace", self.config.host_address, "dev", iface],
        ]
        for cmd in steps:
            self.log.debug(f"Networking: {' '.join(cmd)}")
            result = self.process.run(cmd, capture_output=True)
            if result.returncode != 0:
                raise NetworkingError(
                    f"Failed to configure {iface}\n"
                    f"Command: {' '.join(cmd)}\n"
                    f"Error: {result.stderr.strip()}"
                )

        instance.mark_networked()
        self.log.info(f"Networking enabled: {iface} {self.config.host_address}")
        return instance
