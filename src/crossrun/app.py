"""Service wiring for the CLI.

Application turns parsed command line arguments plus the environment into
the configured components each command needs. Collaborators default to the
production implementations and can be replaced for testing.
"""

from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from crossrun.coordinator import PipelineCoordinator
from crossrun.core import (
    ConsoleLogger,
    RealFileSystemService,
    SubprocessExecutor,
    SystemEnvironmentProvider,
    SystemTimeProvider,
    SystemToolLocator,
    TerminalStreams,
    UdpSocketFactory,
    YamlConfigLoader,
)
from crossrun.deploy import RemoteExecutionPipeline, SSHTransport
from crossrun.devices import BroadcastProbe, LayoutCredentials, Target, TargetResolver, ToolProbe
from crossrun.emulator import EmulatorManager
from crossrun.sdk import BuildProfile, EnvironmentConfigurator, ToolWrappers
from crossrun.sdk.layout import find_target_root, read_build_config
from crossrun.utils.build_helper import BuildToolRunner, SourceWatcher
from crossrun.utils.config import CrossrunConfig, load_config

DEVICE_NAME_ENV_VAR = "CROSSRUN_DEVICE_NAME"
DEBUG_OS_ENV_VAR = "CROSSRUN_DEBUG_OS"
WATCHED_PATHS = ("src", "tests", "Cargo.toml")


def split_args(rest: Sequence[str]) -> Tuple[List[str], List[str]]:
    """Split `a b -- c d` into (["a", "b"], ["c", "d"])."""
    rest = list(rest)
    if "--" in rest:
        index = rest.index("--")
        return rest[:index], rest[index + 1:]
    return rest, []


class Application:
    """
    Lazily built services for one CLI invocation.

    Args:
        args: Parsed arguments (global options: config, arch, release_os,
            device_name, verbose)
    """

    def __init__(
        self,
        args,
        filesystem=None,
        process_executor=None,
        env_provider=None,
        time_provider=None,
        tool_locator=None,
        socket_factory=None,
        streams=None,
        logger=None,
    ):
        self.args = args
        self.fs = filesystem or RealFileSystemService()
        self.process = process_executor or SubprocessExecutor()
        self.env = env_provider or SystemEnvironmentProvider()
        self.time = time_provider or SystemTimeProvider()
        self.tools = tool_locator or SystemToolLocator()
        self.sockets = socket_factory or UdpSocketFactory()
        self.streams = streams or TerminalStreams()
        self.log = logger or ConsoleLogger(verbose=getattr(args, "verbose", False))
        self._config: Optional[CrossrunConfig] = None
        self._root: Optional[Path] = None
        self._pipeline: Optional[RemoteExecutionPipeline] = None

    @property
    def config(self) -> CrossrunConfig:
        if self._config is None:
            loader = YamlConfigLoader(self.fs)
            self._config = load_config(loader, self.fs, self.env, getattr(self.args, "config", None))
        return self._config

    def _flag_release_os(self) -> Optional[bool]:
        """--release-os/--debug-os, then CROSSRUN_DEBUG_OS; None when unspecified."""
        release_os = getattr(self.args, "release_os", None)
        if release_os is not None:
            return release_os
        if self.env.get_environ().get(DEBUG_OS_ENV_VAR) == "1":
            return False
        return None

    @property
    def root(self) -> Path:
        if self._root is None:
            preliminary = BuildProfile(
                target_cpu=getattr(self.args, "arch", None) or "x64",
                release_os=self._flag_release_os() is not False,
            )
            self._root = find_target_root(self.fs, self.env, preliminary)
        return self._root

    def profile(self, release: bool = False) -> BuildProfile:
        """
        Build profile for this invocation.

        Command line flags win; the build tree's .config supplies whatever
        they leave open.
        """
        target_cpu = getattr(self.args, "arch", None)
        release_os = self._flag_release_os()
        if target_cpu is None or release_os is None:
            build_config = read_build_config(self.fs, self.root)
            if build_config is not None:
                if target_cpu is None:
                    target_cpu = build_config.target_cpu
                if release_os is None:
                    release_os = build_config.is_release
        return BuildProfile(
            target_cpu=target_cpu or "x64",
            release=release,
            release_os=True if release_os is None else release_os,
        )

    @property
    def device_name(self) -> Optional[str]:
        return getattr(self.args, "device_name", None) or \
            self.env.get_environ().get(DEVICE_NAME_ENV_VAR) or None

    @property
    def configurator(self) -> EnvironmentConfigurator:
        return EnvironmentConfigurator(self.fs, self.root, self.env.get_home(),
                                       self.env.get_system_type())

    @property
    def wrappers(self) -> ToolWrappers:
        return ToolWrappers(self.configurator, self.process, self.env, self.fs, self.log)

    @property
    def build_tool(self) -> BuildToolRunner:
        return BuildToolRunner(self.process, self.log, self.env.get_environ(),
                               tool=self.config.build.tool)

    def resolver(self, target_cpu: str = "x64") -> TargetResolver:
        discovery = self.config.discovery
        if discovery.method == "tool":
            command = list(discovery.tool)
            if not Path(command[0]).is_absolute() and "/" in command[0]:
                command[0] = str(self.root / command[0])
            probe = ToolProbe(self.process, self.log, command)
        else:
            probe = BroadcastProbe(self.sockets, self.time, self.log,
                                   port=discovery.port,
                                   broadcast_address=discovery.broadcast_address)

        transport = self.config.transport
        return TargetResolver(
            probe,
            LayoutCredentials(self.fs, self.root, target_cpu),
            self.log,
            timeout=discovery.timeout,
            static_address=transport.device_address,
            user=transport.user,
            port=transport.port,
        )

    def _transport(self, target: Target) -> SSHTransport:
        transport = self.config.transport
        return SSHTransport(
            target,
            self.process,
            self.log,
            self.streams,
            connect_timeout=transport.connect_timeout,
            strict_host_key_checking=transport.strict_host_key_checking,
        )

    @property
    def pipeline(self) -> RemoteExecutionPipeline:
        if self._pipeline is None:
            self._pipeline = RemoteExecutionPipeline(self._transport, self.log,
                                                     self.config.transport.remote_dir)
        return self._pipeline

    def coordinator(self, profile: BuildProfile) -> PipelineCoordinator:
        return PipelineCoordinator(
            self.configurator,
            self.build_tool,
            self.resolver(profile.target_cpu),
            self.pipeline,
            self.log,
            self.config,
        )

    @property
    def emulator(self) -> EmulatorManager:
        return EmulatorManager(
            self.process,
            self.fs,
            self.tools,
            self.time,
            self.log,
            self.root,
            self.config.emulator,
            self.env.get_home() / ".crossrun" / "logs",
        )

    def source_watcher(self) -> SourceWatcher:
        cwd = self.env.get_cwd()
        return SourceWatcher(self.fs, [cwd / p for p in WATCHED_PATHS])

    def close(self) -> None:
        if self._pipeline is not None:
            self._pipeline.close()
