"""pkg-config and autotools configure wrappers.

Both run the real tool with the target environment injected and hand back
its exit status; the tool's own output goes straight to the terminal.
"""

from typing import List

from crossrun.core.protocols import (
    EnvironmentProvider,
    FileSystemService,
    Logger,
    ProcessExecutor,
)
from crossrun.exceptions import ConfigurationError
from crossrun.sdk.environment import EnvironmentConfigurator
from crossrun.sdk.profile import BuildProfile


class ToolWrappers:
    """Runs pkg-config and configure scoped to a build profile."""

    def __init__(
        self,
        configurator: EnvironmentConfigurator,
        process_executor: ProcessExecutor,
        env_provider: EnvironmentProvider,
        filesystem: FileSystemService,
        logger: Logger,
    ):
        self.configurator = configurator
        self.process = process_executor
        self.env = env_provider
        self.fs = filesystem
        self.log = logger

    def run_pkg_config(self, profile: BuildProfile, args: List[str]) -> int:
        """Run pkg-config against the target's metadata directory."""
        cross_env = self.configurator.pkg_config_environment(profile)
        cmd = ["pkg-config", *args]
        self.log.debug(f"pkg-config: {' '.join(cmd)} (PKG_CONFIG_LIBDIR="
                       f"{cross_env.variables['PKG_CONFIG_LIBDIR']})")

        result = self.process.run(
            cmd,
            capture_output=False,
            env=cross_env.apply(self.env.get_environ()),
        )
        return result.returncode

    def run_configure(self, profile: BuildProfile, args: List[str],
                      use_host: bool = False) -> int:
        """Run ./configure in the working directory for the target.

        Raises:
            ConfigurationError: If there is no configure script or the
                toolchain layout is missing
        """
        cwd = self.env.get_cwd()
        script = cwd / "configure"
        if not self.fs.is_file(script):
            raise ConfigurationError(
                f"No configure script in {cwd}\n"
                f"Run this command from the top of an autotools project.",
                path=str(script),
            )

        base_env = self.env.get_environ()
        cross_env = self.configurator.configure_script_environment(
            profile,
            use_host=use_host,
            prior_ldflags=base_env.get("LDFLAGS", ""),
        )
        cmd = [str(script), *cross_env.args, *args]

        self.log.debug(f"CFLAGS: {cross_env.variables['CFLAGS']}")
        self.log.debug(f"LDFLAGS: {cross_env.variables['LDFLAGS']}")
        self.log.debug(f"configure: {' '.join(cmd)}")

        result = self.process.run(
            cmd,
            capture_output=False,
            cwd=str(cwd),
            env=cross_env.apply(base_env),
        )
        return result.returncode
