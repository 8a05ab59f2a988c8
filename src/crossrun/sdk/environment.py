"""
Cross-compilation environment assembly.

EnvironmentConfigurator turns a BuildProfile into a CrossEnvironment: the
variables and flags the build tool, pkg-config and autotools configure need
to target the device instead of the host. The result depends only on the
profile and the fixed build tree layout, so identical profiles always give
identical mappings.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Tuple

from crossrun.core.protocols import FileSystemService
from crossrun.exceptions import ConfigurationError
from crossrun.sdk.layout import TargetLayout
from crossrun.sdk.profile import BuildProfile, TARGET_OS

# Host-only search paths; any of these would let host libraries or headers
# into a target-bound artifact.
HOST_SEARCH_PATH_VARIABLES = (
    "LIBRARY_PATH",
    "CPATH",
    "C_INCLUDE_PATH",
    "CPLUS_INCLUDE_PATH",
    "OBJC_INCLUDE_PATH",
    "PKG_CONFIG_SYSROOT_DIR",
    # cargo prefers these over CARGO_TARGET_<TRIPLE>_RUSTFLAGS
    "RUSTFLAGS",
    "CARGO_ENCODED_RUSTFLAGS",
)

RUNNER_COMMAND = "crossrun"


@dataclass(frozen=True)
class CrossEnvironment:
    """
    Environment for a cross build.

    Attributes:
        variables: Environment variable name -> value, sorted by name
        flags: Extra compiler/linker flags for the target
        args: Extra arguments for the wrapped tool (configure --host/--prefix)
    """
    variables: Mapping[str, str] = field(default_factory=dict)
    flags: Tuple[str, ...] = ()
    args: Tuple[str, ...] = ()

    def apply(self, base_env: Mapping[str, str]) -> Dict[str, str]:
        """Overlay variables on a copy of base_env with host search paths removed."""
        env = {
            name: value for name, value in base_env.items()
            if name not in HOST_SEARCH_PATH_VARIABLES
        }
        env.update(self.variables)
        return env


def _sorted(variables: Dict[str, str]) -> Dict[str, str]:
    return {name: variables[name] for name in sorted(variables)}


class EnvironmentConfigurator:
    """Builds CrossEnvironments from the target build tree layout.

    Args:
        filesystem: Used only to validate that the layout is present
        root: Target OS build tree root
        home: User home; native dependencies live under ~/.crossrun
        host_system: platform.system() of the host
    """

    def __init__(self, filesystem: FileSystemService, root: Path, home: Path,
                 host_system: str = "Linux"):
        self.fs = filesystem
        self.root = Path(root)
        self.home = Path(home)
        self.host_system = host_system

    def layout(self, profile: BuildProfile) -> TargetLayout:
        return TargetLayout(self.root, profile, self.host_system)

    def cross_root(self, profile: BuildProfile) -> Path:
        """Install prefix for natively built C dependencies of this cpu."""
        return self.home / ".crossrun" / "native_deps" / profile.target_cpu

    def pkg_config_path(self, profile: BuildProfile) -> Path:
        return self.cross_root(profile) / "lib" / "pkgconfig"

    def _require(self, path: Path, what: str) -> None:
        if not self.fs.exists(path):
            raise ConfigurationError(
                f"{what} not found at {path}\n"
                f"Build the target OS tree first (is {self.root} a complete build?)",
                path=str(path),
            )

    def pkg_config_environment(self, profile: BuildProfile) -> CrossEnvironment:
        """Variables that scope pkg-config to the target metadata directory."""
        return CrossEnvironment(variables=_sorted(self._pkg_config_variables(profile)))

    def _pkg_config_variables(self, profile: BuildProfile) -> Dict[str, str]:
        return {
            "PKG_CONFIG_PATH": "",
            "PKG_CONFIG_LIBDIR": str(self.pkg_config_path(profile)),
            "PKG_CONFIG_ALL_STATIC": "1",
            "PKG_CONFIG_ALLOW_CROSS": "1",
        }

    def configure_script_environment(
        self,
        profile: BuildProfile,
        use_host: bool = False,
        prior_ldflags: str = "",
    ) -> CrossEnvironment:
        """Variables and arguments for an autotools configure invocation."""
        layout = self.layout(profile)
        self._require(layout.sysroot, "Sysroot")
        self._require(layout.clang, "Clang")

        cross_root = self.cross_root(profile)
        common_c_flags = (
            f"--sysroot={layout.sysroot} --target={profile.triple} -fPIC "
            f"-I{cross_root / 'include'}"
        )
        ld_flags = f"{prior_ldflags} {common_c_flags} -L{cross_root / 'lib'}".strip()

        variables = {
            "CC": str(layout.clang),
            "CXX": str(layout.clang_cpp),
            "RANLIB": str(layout.ranlib),
            "LD": str(layout.linker),
            "AR": str(layout.archiver),
            "CFLAGS": common_c_flags,
            "CXXFLAGS": common_c_flags,
            "CPPFLAGS": common_c_flags,
            "LDFLAGS": ld_flags,
        }
        variables.update(self._pkg_config_variables(profile))

        args = []
        if use_host:
            args.append(f"--host={profile.linker_cpu}-{TARGET_OS}-elf")
        args.append(f"--prefix={cross_root}")

        return CrossEnvironment(
            variables=_sorted(variables),
            flags=tuple(common_c_flags.split()),
            args=tuple(args),
        )

    def configure(self, profile: BuildProfile) -> CrossEnvironment:
        """Full environment for the external build tool.

        Raises:
            ConfigurationError: If the sysroot or clang toolchain is missing
        """
        layout = self.layout(profile)
        self._require(layout.sysroot, "Sysroot")
        self._require(layout.clang, "Clang")

        triple = profile.triple
        triple_env = triple.upper().replace("-", "_")
        triple_cc = triple.replace("-", "_")
        target_flags = (f"--target={triple}", f"--sysroot={layout.sysroot}")

        rustflags = " ".join([
            f"-C link-arg=--target={triple}",
            f"-C link-arg=--sysroot={layout.sysroot}",
            f"-L native={layout.shared_libs_dir}",
        ])
        runner = [RUNNER_COMMAND, "--arch", profile.target_cpu]
        runner.append("--release-os" if profile.release_os else "--debug-os")
        runner.append("run-on-target")
        if profile.release:
            runner.append("--release")

        variables = {
            "CARGO_BUILD_TARGET": triple,
            f"CARGO_TARGET_{triple_env}_LINKER": str(layout.clang),
            f"CARGO_TARGET_{triple_env}_RUSTFLAGS": rustflags,
            f"CARGO_TARGET_{triple_env}_RUNNER": " ".join(runner),
            f"CC_{triple_cc}": str(layout.clang),
            f"CXX_{triple_cc}": str(layout.clang_cpp),
            f"AR_{triple_cc}": str(layout.archiver),
            f"CFLAGS_{triple_cc}": " ".join(target_flags),
            f"CXXFLAGS_{triple_cc}": " ".join(target_flags),
        }
        variables.update(self._pkg_config_variables(profile))

        if self.fs.exists(layout.rust_bin / "rustc"):
            variables["RUSTC"] = str(layout.rust_bin / "rustc")
            variables["RUSTDOC"] = str(layout.rust_bin / "rustdoc")

        return CrossEnvironment(variables=_sorted(variables), flags=target_flags)
