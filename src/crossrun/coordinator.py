"""
PipelineCoordinator - build, resolve, push and run as one operation.

Every operation runs its stages in order and stops at the first failure,
re-raising the stage's own error unchanged. The only retry is a single
re-push after a TransferError caused by a dropped session.
"""

import shlex
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from crossrun.core.protocols import Logger, TimeProvider
from crossrun.deploy.base import ExitStatus, RemoteArtifact
from crossrun.deploy.pipeline import RemoteExecutionPipeline, remote_command
from crossrun.devices.base import Target
from crossrun.devices.resolver import TargetResolver
from crossrun.exceptions import BuildError, CrossrunError, TransferError
from crossrun.sdk.environment import EnvironmentConfigurator
from crossrun.sdk.profile import BuildProfile
from crossrun.utils.build_helper import BuildArtifact, BuildToolRunner, SourceWatcher
from crossrun.utils.config import CrossrunConfig

AUTOTEST_POLL_INTERVAL = 1.0


def _describe(artifacts: Sequence[BuildArtifact]) -> str:
    return ", ".join(a.package_name for a in artifacts) or "(none)"


class PipelineCoordinator:
    """
    Drives the Build → Resolve → Push → Exec sequence.

    Args:
        configurator: Produces the cross environment for a profile
        build_tool: Runs the external build tool
        resolver: Selects the target
        pipeline: Pushes and runs on targets
        logger: Logger
        config: Loaded configuration
    """

    def __init__(
        self,
        configurator: EnvironmentConfigurator,
        build_tool: BuildToolRunner,
        resolver: TargetResolver,
        pipeline: RemoteExecutionPipeline,
        logger: Logger,
        config: CrossrunConfig,
    ):
        self.configurator = configurator
        self.build_tool = build_tool
        self.resolver = resolver
        self.pipeline = pipeline
        self.log = logger
        self.config = config

    def build(self, profile: BuildProfile, args: Sequence[str] = (),
              tests: bool = False) -> List[BuildArtifact]:
        env = self.configurator.configure(profile)
        return self.build_tool.build(env, profile, args, tests=tests)

    def cargo(self, profile: BuildProfile, args: Sequence[str]) -> int:
        """Run the build tool with arbitrary arguments in the cross environment."""
        env = self.configurator.configure(profile)
        return self.build_tool.passthrough(env, args)

    def _resolve(self, profile: BuildProfile, device_name: Optional[str]) -> Target:
        return self.resolver.resolve(device_name, debug_mode=not profile.release_os)

    def _prepare(self, profile: BuildProfile, path: Path) -> Path:
        if not self.config.build.strip:
            return path
        return self.build_tool.strip(self.configurator.layout(profile), path)

    def _push(self, artifact: RemoteArtifact, target: Target, profile: BuildProfile,
              device_name: Optional[str], remote_dir: Optional[str] = None) -> Tuple[str, Target]:
        """Push, retrying once on a fresh session if the old one went stale."""
        try:
            return self.pipeline.push(artifact, target, remote_dir), target
        except TransferError as e:
            if not e.stale_session:
                raise
            self.log.warning(f"Session to {target.name} dropped, reconnecting")
            self.pipeline.reset(target)
            target = self._resolve(profile, device_name)
            return self.pipeline.push(artifact, target, remote_dir), target

    def _deploy_and_run(self, profile: BuildProfile, local_path: Path, remote_name: str,
                        binary_args: Sequence[str], target: Target,
                        device_name: Optional[str]) -> ExitStatus:
        artifact = RemoteArtifact(self._prepare(profile, local_path), remote_name, profile)
        destination, target = self._push(artifact, target, profile, device_name)
        return self.pipeline.exec(remote_command(destination, binary_args), target)

    def run(self, profile: BuildProfile, args: Sequence[str] = (),
            binary_args: Sequence[str] = (), device_name: Optional[str] = None) -> ExitStatus:
        """
        Build the program, then run it on the target.

        Raises:
            BuildError: Build failed, or it did not produce exactly one executable
            ResolutionError, TransferError, TransportError, RemoteCommandFailed
        """
        executables = [a for a in self.build(profile, args)
                       if not a.is_test and not a.is_library]
        if len(executables) != 1:
            raise BuildError(
                f"Expected exactly one executable, build produced: {_describe(executables)}\n"
                f"Select one with: crossrun run --bin <name>"
            )
        executable = executables[0]

        target = self._resolve(profile, device_name)
        return self._deploy_and_run(profile, executable.path, executable.package_name,
                                    binary_args, target, device_name)

    def test(self, profile: BuildProfile, args: Sequence[str] = (),
             test_args: Sequence[str] = (), device_name: Optional[str] = None) -> List[ExitStatus]:
        """Build the test binaries and run each on the target; the first failure aborts."""
        binaries = self.build(profile, args, tests=True)
        if not binaries:
            self.log.info("No test binaries were built")
            return []

        target = self._resolve(profile, device_name)
        results = []
        for binary in binaries:
            self.log.info(f"Running {binary.path.name} on {target.name}")
            # Test binary file names carry a hash, package names may repeat
            results.append(self._deploy_and_run(profile, binary.path, binary.path.name,
                                                test_args, target, device_name))
        return results

    def run_on_target(self, profile: BuildProfile, binary: str,
                      binary_args: Sequence[str] = (),
                      device_name: Optional[str] = None) -> ExitStatus:
        """Push and run an already-built binary (the build tool's runner hook)."""
        path = Path(binary)
        target = self._resolve(profile, device_name)
        return self._deploy_and_run(profile, path, path.name, binary_args, target, device_name)

    def shell(self, device_name: Optional[str] = None, debug_mode: bool = False) -> ExitStatus:
        target = self.resolver.resolve(device_name, debug_mode=debug_mode)
        return self.pipeline.shell(target)

    def load_driver(self, profile: BuildProfile, args: Sequence[str] = (),
                    device_name: Optional[str] = None) -> ExitStatus:
        """
        Build a driver shared library, push it and load it on the target.

        Raises:
            BuildError: Build failed or did not produce exactly one shared library
        """
        libraries = [a for a in self.build(profile, args) if a.is_library]
        if len(libraries) != 1:
            raise BuildError(
                f"Expected exactly one shared library, build produced: "
                f"{_describe(libraries)}\n"
                f"Drivers must be built as crate-type = [\"cdylib\"]."
            )
        library = libraries[0]

        target = self._resolve(profile, device_name)
        artifact = RemoteArtifact(library.path, library.path.name, profile)
        destination, target = self._push(artifact, target, profile, device_name,
                                         remote_dir=self.config.driver.remote_dir)
        command = self.config.driver.load_command.format(path=shlex.quote(destination))
        return self.pipeline.exec(command, target)

    def autotest(self, profile: BuildProfile, watcher: SourceWatcher,
                 time_provider: TimeProvider, args: Sequence[str] = (),
                 test_args: Sequence[str] = (), device_name: Optional[str] = None,
                 poll_interval: float = AUTOTEST_POLL_INTERVAL) -> None:
        """
        Run the tests, then again on every source change, until Ctrl-C.

        Failures are reported and watching continues.
        """
        self.log.info("Watching for changes (Ctrl-C to stop)")
        try:
            pending = True
            while True:
                if pending:
                    pending = False
                    try:
                        self.test(profile, args, test_args, device_name)
                        self.log.info("Tests passed")
                    except CrossrunError as e:
                        self.log.error(str(e))
                time_provider.sleep(poll_interval)
                if watcher.changed():
                    self.log.info("Change detected, rerunning tests")
                    pending = True
        except KeyboardInterrupt:
            self.log.info("Stopped watching")
