"""Unit tests for the cross-compilation environment.

Uses a mocked filesystem so the build tree layout can be switched on and
off per test without touching disk.
"""
import pytest
from pathlib import Path
from unittest.mock import Mock

from crossrun.core.protocols import (
    EnvironmentProvider,
    FileSystemService,
    Logger,
    ProcessExecutor,
)
from crossrun.exceptions import ConfigurationError
from crossrun.sdk import (
    BuildProfile,
    CrossEnvironment,
    EnvironmentConfigurator,
    TargetLayout,
    ToolWrappers,
)
from crossrun.sdk.environment import HOST_SEARCH_PATH_VARIABLES

from fakes import process_result

ROOT = Path("/fuchsia")
HOME = Path("/home/dev")


def create_mock_filesystem(paths=()):
    """Mock FileSystemService where exactly `paths` exist."""
    fs = Mock(spec=FileSystemService)
    existing = {str(p) for p in paths}
    fs.exists.side_effect = lambda p: str(p) in existing
    fs.is_file.side_effect = lambda p: str(p) in existing
    fs.is_dir.side_effect = lambda p: str(p) in existing
    return fs


def complete_tree(profile):
    layout = TargetLayout(ROOT, profile)
    return [layout.sysroot, layout.clang]


class TestBuildProfile:
    """Derived names for each cpu and build selection."""

    def test_x64_defaults(self):
        profile = BuildProfile()
        assert profile.triple == "x86_64-unknown-fuchsia"
        assert profile.out_dir_name == "release-x64"
        assert profile.remote_namespace == "debug-x64"

    def test_arm64_debug_os(self):
        profile = BuildProfile("arm64", release=True, release_os=False)
        assert profile.triple == "aarch64-unknown-fuchsia"
        assert profile.out_dir_name == "debug-arm64"
        assert profile.remote_namespace == "release-arm64"
        assert profile.qemu_binary == "qemu-system-aarch64"

    def test_unknown_cpu_rejected(self):
        with pytest.raises(ValueError, match="Unsupported target cpu"):
            BuildProfile("riscv64")


class TestTargetLayout:
    def test_paths(self):
        layout = TargetLayout(ROOT, BuildProfile())
        assert layout.target_out_dir == ROOT / "out/release-x64"
        assert layout.sysroot == ROOT / "out/build-zircon/build-user-x86-64/sysroot"
        assert layout.clang == ROOT / "buildtools/linux-x64/clang/bin/clang"
        assert layout.shared_libs_dir == ROOT / "out/release-x64/x64-shared"
        assert layout.ssh_key == ROOT / "out/release-x64/ssh-keys/id_ed25519"

    def test_mac_toolchain(self):
        layout = TargetLayout(ROOT, BuildProfile(), host_system="Darwin")
        assert layout.toolchain == ROOT / "buildtools/mac-x64/clang"


class TestConfigure:
    """EnvironmentConfigurator.configure()"""

    def setup_method(self):
        self.profile = BuildProfile()
        self.fs = create_mock_filesystem(complete_tree(self.profile))
        self.configurator = EnvironmentConfigurator(self.fs, ROOT, HOME)

    def test_toolchain_variables(self):
        env = self.configurator.configure(self.profile)
        v = env.variables
        clang = str(ROOT / "buildtools/linux-x64/clang/bin/clang")

        assert v["CARGO_BUILD_TARGET"] == "x86_64-unknown-fuchsia"
        assert v["CARGO_TARGET_X86_64_UNKNOWN_FUCHSIA_LINKER"] == clang
        assert v["CC_x86_64_unknown_fuchsia"] == clang
        assert v["AR_x86_64_unknown_fuchsia"].endswith("llvm-ar")
        assert "--sysroot=" in v["CFLAGS_x86_64_unknown_fuchsia"]

    def test_rustflags_link_against_target(self):
        rustflags = self.configurator.configure(self.profile).variables[
            "CARGO_TARGET_X86_64_UNKNOWN_FUCHSIA_RUSTFLAGS"]
        assert "-C link-arg=--target=x86_64-unknown-fuchsia" in rustflags
        assert f"-L native={ROOT / 'out/release-x64/x64-shared'}" in rustflags

    def test_runner_reuses_profile(self):
        profile = BuildProfile("x64", release=True, release_os=False)
        self.fs = create_mock_filesystem(complete_tree(profile))
        configurator = EnvironmentConfigurator(self.fs, ROOT, HOME)

        runner = configurator.configure(profile).variables[
            "CARGO_TARGET_X86_64_UNKNOWN_FUCHSIA_RUNNER"]
        assert runner == "crossrun --arch x64 --debug-os run-on-target --release"

    def test_pkg_config_scoped_to_target(self):
        v = self.configurator.configure(self.profile).variables
        assert v["PKG_CONFIG_PATH"] == ""
        assert v["PKG_CONFIG_LIBDIR"] == str(HOME / ".crossrun/native_deps/x64/lib/pkgconfig")
        assert v["PKG_CONFIG_ALLOW_CROSS"] == "1"

    def test_flags(self):
        env = self.configurator.configure(self.profile)
        assert env.flags == (
            "--target=x86_64-unknown-fuchsia",
            f"--sysroot={ROOT / 'out/build-zircon/build-user-x86-64/sysroot'}",
        )

    def test_deterministic_and_sorted(self):
        first = self.configurator.configure(self.profile)
        second = self.configurator.configure(self.profile)
        assert first == second
        assert list(first.variables) == sorted(first.variables)

    def test_no_host_search_paths_in_variables(self):
        env = self.configurator.configure(self.profile)
        assert not set(HOST_SEARCH_PATH_VARIABLES) & set(env.variables)

    def test_rust_toolchain_when_present(self):
        layout = TargetLayout(ROOT, self.profile)
        fs = create_mock_filesystem(complete_tree(self.profile) + [layout.rust_bin / "rustc"])
        env = EnvironmentConfigurator(fs, ROOT, HOME).configure(self.profile)
        assert env.variables["RUSTC"] == str(layout.rust_bin / "rustc")
        assert "RUSTC" not in self.configurator.configure(self.profile).variables

    def test_missing_sysroot(self):
        layout = TargetLayout(ROOT, self.profile)
        configurator = EnvironmentConfigurator(create_mock_filesystem([layout.clang]), ROOT, HOME)

        with pytest.raises(ConfigurationError) as exc_info:
            configurator.configure(self.profile)

        assert exc_info.value.path == str(layout.sysroot)
        assert exc_info.value.exit_code == 2

    def test_missing_toolchain(self):
        layout = TargetLayout(ROOT, self.profile)
        configurator = EnvironmentConfigurator(create_mock_filesystem([layout.sysroot]), ROOT, HOME)

        with pytest.raises(ConfigurationError, match="Clang not found"):
            configurator.configure(self.profile)


class TestCrossEnvironmentApply:
    def test_host_search_paths_removed(self):
        env = CrossEnvironment(variables={"CC": "/tc/clang"})
        base = {"PATH": "/usr/bin", "LIBRARY_PATH": "/usr/lib", "CPATH": "/usr/include",
                "PKG_CONFIG_SYSROOT_DIR": "/"}

        applied = env.apply(base)

        assert applied == {"PATH": "/usr/bin", "CC": "/tc/clang"}

    def test_host_rustflags_cannot_shadow_target_rustflags(self):
        target_flags = "CARGO_TARGET_X86_64_UNKNOWN_FUCHSIA_RUSTFLAGS"
        env = CrossEnvironment(variables={target_flags: "-L native=/fuchsia/out/x64"})
        base = {"RUSTFLAGS": "-L /usr/lib/x86_64-linux-gnu",
                "CARGO_ENCODED_RUSTFLAGS": "-L\x1f/usr/lib"}

        applied = env.apply(base)

        assert "RUSTFLAGS" not in applied
        assert "CARGO_ENCODED_RUSTFLAGS" not in applied
        assert applied[target_flags] == "-L native=/fuchsia/out/x64"

    def test_does_not_mutate_base(self):
        base = {"CPATH": "/usr/include"}
        CrossEnvironment(variables={"CC": "clang"}).apply(base)
        assert base == {"CPATH": "/usr/include"}

    def test_variables_override_base(self):
        applied = CrossEnvironment(variables={"PKG_CONFIG_PATH": ""}).apply(
            {"PKG_CONFIG_PATH": "/usr/lib/pkgconfig"})
        assert applied["PKG_CONFIG_PATH"] == ""


class TestConfigureScriptEnvironment:
    def setup_method(self):
        self.profile = BuildProfile("arm64")
        self.configurator = EnvironmentConfigurator(
            create_mock_filesystem(complete_tree(self.profile)), ROOT, HOME)
        self.cross_root = HOME / ".crossrun/native_deps/arm64"

    def test_compiler_variables_and_prefix(self):
        env = self.configurator.configure_script_environment(self.profile)

        assert env.variables["CC"].endswith("bin/clang")
        assert env.variables["LD"].endswith("llvm-lld")
        assert "--target=aarch64-unknown-fuchsia -fPIC" in env.variables["CFLAGS"]
        assert env.variables["CPPFLAGS"] == env.variables["CFLAGS"]
        assert env.args == (f"--prefix={self.cross_root}",)

    def test_use_host_adds_host_triple(self):
        env = self.configurator.configure_script_environment(self.profile, use_host=True)
        assert env.args == ("--host=aarch64-fuchsia-elf", f"--prefix={self.cross_root}")

    def test_prior_ldflags_preserved(self):
        env = self.configurator.configure_script_environment(self.profile, prior_ldflags="-lfoo")
        ldflags = env.variables["LDFLAGS"]
        assert ldflags.startswith("-lfoo --sysroot=")
        assert ldflags.endswith(f"-L{self.cross_root / 'lib'}")

    def test_pkg_config_environment_needs_no_sysroot(self):
        configurator = EnvironmentConfigurator(create_mock_filesystem(), ROOT, HOME)
        env = configurator.pkg_config_environment(self.profile)
        assert env.variables["PKG_CONFIG_ALL_STATIC"] == "1"


class TestToolWrappers:
    """pkg-config and configure wrappers pass the tool's exit status through."""

    def setup_method(self):
        self.profile = BuildProfile()
        self.fs = create_mock_filesystem(complete_tree(self.profile) + ["/src/proj/configure"])
        self.process = Mock(spec=ProcessExecutor)
        self.env = Mock(spec=EnvironmentProvider)
        self.env.get_environ.return_value = {"PATH": "/usr/bin", "CPATH": "/usr/include",
                                             "LDFLAGS": "-L/opt"}
        self.env.get_cwd.return_value = Path("/src/proj")
        self.wrappers = ToolWrappers(
            EnvironmentConfigurator(self.fs, ROOT, HOME),
            self.process, self.env, self.fs, Mock(spec=Logger),
        )

    def test_pkg_config_exit_status_passes_through(self):
        self.process.run.return_value = process_result(1)

        assert self.wrappers.run_pkg_config(self.profile, ["--libs", "zlib"]) == 1

        cmd = self.process.run.call_args[0][0]
        env = self.process.run.call_args[1]["env"]
        assert cmd == ["pkg-config", "--libs", "zlib"]
        assert "CPATH" not in env
        assert env["PKG_CONFIG_LIBDIR"].endswith("lib/pkgconfig")

    def test_configure_runs_script_with_prefix(self):
        self.process.run.return_value = process_result(0)

        assert self.wrappers.run_configure(self.profile, ["--disable-shared"]) == 0

        cmd = self.process.run.call_args[0][0]
        kwargs = self.process.run.call_args[1]
        assert cmd[0] == "/src/proj/configure"
        assert cmd[-1] == "--disable-shared"
        assert any(a.startswith("--prefix=") for a in cmd)
        assert kwargs["cwd"] == "/src/proj"
        assert kwargs["env"]["LDFLAGS"].startswith("-L/opt ")

    def test_configure_without_script(self):
        self.env.get_cwd.return_value = Path("/elsewhere")

        with pytest.raises(ConfigurationError, match="No configure script"):
            self.wrappers.run_configure(self.profile, [])
        self.process.run.assert_not_called()
