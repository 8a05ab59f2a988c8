"""Host access seams shared by every crossrun component.

``protocols`` declares what the resolver, emulator manager, remote pipeline
and coordinator need from the host machine; ``implementations`` provides the
versions backed by the real system. Components receive them as constructor
arguments, which keeps each one testable against fakes.
"""

from crossrun.core.protocols import (
    Logger,
    FileSystemService,
    ProcessExecutor,
    ProcessHandle,
    ProcessResult,
    TimeProvider,
    EnvironmentProvider,
    ToolLocator,
    ConfigLoader,
    DatagramSocket,
    SocketFactory,
    ConsoleStreams,
)

from crossrun.core.implementations import (
    ConsoleLogger,
    RealFileSystemService,
    SubprocessExecutor,
    SubprocessHandle,
    SystemTimeProvider,
    SystemEnvironmentProvider,
    SystemToolLocator,
    YamlConfigLoader,
    UdpSocketFactory,
    TerminalStreams,
)

__all__ = [
    # Protocols
    "Logger",
    "FileSystemService",
    "ProcessExecutor",
    "ProcessHandle",
    "ProcessResult",
    "TimeProvider",
    "EnvironmentProvider",
    "ToolLocator",
    "ConfigLoader",
    "DatagramSocket",
    "SocketFactory",
    "ConsoleStreams",
    # Implementations
    "ConsoleLogger",
    "RealFileSystemService",
    "SubprocessExecutor",
    "SubprocessHandle",
    "SystemTimeProvider",
    "SystemEnvironmentProvider",
    "SystemToolLocator",
    "YamlConfigLoader",
    "UdpSocketFactory",
    "TerminalStreams",
]
