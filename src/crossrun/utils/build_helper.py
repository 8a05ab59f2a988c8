"""Build tool helpers: cross builds, artifact discovery and change detection"""
import json
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from crossrun.core.protocols import FileSystemService, Logger, ProcessExecutor
from crossrun.exceptions import BuildError
from crossrun.sdk.environment import CrossEnvironment
from crossrun.sdk.layout import TargetLayout
from crossrun.sdk.profile import BuildProfile

MESSAGE_FORMAT = "--message-format=json-render-diagnostics"


@dataclass(frozen=True)
class BuildArtifact:
    """An executable or shared library produced by the build tool.

    Attributes:
        package_name: Name of the build target that produced it
        path: Local path of the artifact
        is_test: True for test harness binaries
        is_library: True for shared libraries (drivers)
    """
    package_name: str
    path: Path
    is_test: bool = False
    is_library: bool = False


def parse_build_messages(output: str) -> List[BuildArtifact]:
    """
    Extract executable artifacts from the build tool's JSON message stream.

    Executables and cdylib shared objects are kept; lines that are not JSON
    objects and all other messages are skipped.
    """
    artifacts = []
    for line in output.splitlines():
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            message = json.loads(line)
        except json.JSONDecodeError:
            continue

        if message.get("reason") != "compiler-artifact":
            continue
        target = message.get("target") or {}
        profile = message.get("profile") or {}
        executable = message.get("executable")
        if executable:
            artifacts.append(BuildArtifact(
                package_name=target.get("name", Path(executable).name),
                path=Path(executable),
                is_test=bool(profile.get("test", False)),
            ))
        elif "cdylib" in target.get("kind", []):
            for filename in message.get("filenames", []):
                if filename.endswith(".so"):
                    artifacts.append(BuildArtifact(
                        package_name=target.get("name", Path(filename).stem),
                        path=Path(filename),
                        is_library=True,
                    ))
    return artifacts


class BuildToolRunner:
    """Runs the external build tool (cargo) inside a cross environment."""

    def __init__(self, process_executor: ProcessExecutor, logger: Logger,
                 base_env: Dict[str, str], tool: str = "cargo"):
        self.process = process_executor
        self.log = logger
        self.base_env = base_env
        self.tool = tool

    def build(
        self,
        env: CrossEnvironment,
        profile: BuildProfile,
        extra_args: Sequence[str] = (),
        tests: bool = False,
        cwd: Optional[str] = None,
    ) -> List[BuildArtifact]:
        """
        Build for the target and return the artifacts produced.

        Args:
            env: Cross environment from the configurator
            profile: Selects --target and --release
            extra_args: Passed through to the build tool
            tests: Build test binaries (test --no-run) instead of the program
            cwd: Project directory (defaults to the working directory)

        Raises:
            BuildError: If the build tool exits non-zero
        """
        cmd = [self.tool, "test", "--no-run"] if tests else [self.tool, "build"]
        cmd += ["--target", profile.triple]
        if profile.release:
            cmd.append("--release")
        cmd.append(MESSAGE_FORMAT)
        cmd += list(extra_args)

        self.log.debug(f"Build: {' '.join(cmd)}")

        # Only stdout is captured; rendered diagnostics on stderr reach the terminal
        result = self.process.run(
            cmd,
            capture_output=False,
            stdout=subprocess.PIPE,
            cwd=cwd,
            env=env.apply(self.base_env),
        )
        if result.returncode != 0:
            raise BuildError(
                f"{self.tool} {'test --no-run' if tests else 'build'} failed "
                f"with exit status {result.returncode}",
                returncode=result.returncode,
            )

        artifacts = parse_build_messages(result.stdout)
        if tests:
            artifacts = [a for a in artifacts if a.is_test]
        for artifact in artifacts:
            self.log.debug(f"  artifact: {artifact.package_name} -> {artifact.path}")
        return artifacts

    def passthrough(self, env: CrossEnvironment, args: Sequence[str]) -> int:
        """Run `<tool> <args>` in the cross environment and return its exit status."""
        cmd = [self.tool, *args]
        self.log.debug(f"Build tool: {' '.join(cmd)}")
        result = self.process.run(cmd, capture_output=False, env=env.apply(self.base_env))
        return result.returncode

    def strip(self, layout: TargetLayout, path: Union[str, Path]) -> Path:
        """
        Write a section-stripped copy of path next to it (<path>_stripped).

        Raises:
            BuildError: If the strip tool fails
        """
        source = Path(path)
        stripped = source.with_name(f"{source.name}_stripped")
        cmd = [str(layout.strip_tool), "--strip-sections", str(source), str(stripped)]
        self.log.debug(f"Strip: {' '.join(cmd)}")

        result = self.process.run(cmd, capture_output=True)
        if result.returncode != 0:
            raise BuildError(
                f"Stripping {source} failed\n"
                f"Command: {' '.join(cmd)}\n"
                f"Error: {result.stderr.strip()}",
                returncode=result.returncode,
            )
        return stripped


class SourceWatcher:
    """
    Detects source changes by comparing modification time snapshots.

    Args:
        filesystem: Filesystem service
        roots: Directories to scan recursively, or individual files
        patterns: Glob patterns matched inside directories
    """

    def __init__(self, filesystem: FileSystemService, roots: Sequence[Union[str, Path]],
                 patterns: Sequence[str] = ("*.rs",)):
        self.fs = filesystem
        self.roots = [Path(r) for r in roots]
        self.patterns = list(patterns)
        self._snapshot = self.snapshot()

    def snapshot(self) -> Dict[Path, float]:
        mtimes = {}
        for root in self.roots:
            if self.fs.is_file(root):
                mtimes[root] = self.fs.mtime(root)
            elif self.fs.is_dir(root):
                for pattern in self.patterns:
                    for path in self.fs.rglob(root, pattern):
                        mtimes[path] = self.fs.mtime(path)
        return mtimes

    def changed(self) -> bool:
        """True when a watched file was added, removed or modified since last call."""
        current = self.snapshot()
        if current != self._snapshot:
            self._snapshot = current
            return True
        return False
