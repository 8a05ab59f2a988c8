"""Build profile: architecture plus debug/release selections."""

from dataclasses import dataclass

TARGET_OS = "fuchsia"

# target_cpu -> (linker cpu, zircon build name, qemu binary)
SUPPORTED_CPUS = {
    "x64": ("x86_64", "x86-64", "qemu-system-x86_64"),
    "arm64": ("aarch64", "arm64", "qemu-system-aarch64"),
}


@dataclass(frozen=True)
class BuildProfile:
    """
    The one active build selection for an invocation.

    Attributes:
        target_cpu: "x64" or "arm64"
        release: Build the artifact in release mode (build tool --release)
        release_os: Use the release target image and its credentials;
            False selects the debug image/credential set
    """
    target_cpu: str = "x64"
    release: bool = False
    release_os: bool = True

    def __post_init__(self):
        if self.target_cpu not in SUPPORTED_CPUS:
            raise ValueError(
                f"Unsupported target cpu: {self.target_cpu} "
                f"(expected one of: {', '.join(sorted(SUPPORTED_CPUS))})"
            )

    @property
    def linker_cpu(self) -> str:
        return SUPPORTED_CPUS[self.target_cpu][0]

    @property
    def zircon_cpu(self) -> str:
        return SUPPORTED_CPUS[self.target_cpu][1]

    @property
    def qemu_binary(self) -> str:
        return SUPPORTED_CPUS[self.target_cpu][2]

    @property
    def triple(self) -> str:
        return f"{self.linker_cpu}-unknown-{TARGET_OS}"

    @property
    def out_dir_name(self) -> str:
        prefix = "release" if self.release_os else "debug"
        return f"{prefix}-{self.target_cpu}"

    @property
    def build_variant(self) -> str:
        return "release" if self.release else "debug"

    @property
    def remote_namespace(self) -> str:
        """Directory component that keeps pushes of different profiles apart."""
        return f"{self.build_variant}-{self.target_cpu}"
