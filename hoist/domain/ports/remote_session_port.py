"""
Remote Session Port

Architectural Intent:
- Port interface for one authenticated connection to the target host
- The session owns its transport exclusively; only its holder issues commands
- Non-zero exit status is the only command failure signal; stderr output alone is not
- Implemented by FabricSession (SSH) and by in-memory fakes in tests
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from hoist.domain.value_objects.remote_command import RemoteCommand
from hoist.domain.value_objects.target_host import TargetHost


@dataclass(frozen=True)
class CommandResult:
    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@dataclass(frozen=True)
class Credentials:
    password: str = ""
    key_filename: str = ""

    def __repr__(self) -> str:
        return (
            f"Credentials(password={'***' if self.password else ''!r}, "
            f"key_filename={self.key_filename!r})"
        )


class RemoteSessionPort(ABC):
    @property
    @abstractmethod
    def is_connected(self) -> bool:
        pass

    @abstractmethod
    async def run(self, command: RemoteCommand, check: bool = True) -> CommandResult:
        """
        Runs a command on the host.
        Raises CommandError on non-zero exit when check is True.
        """
        pass

    @abstractmethod
    async def put_file(self, local_path: Path, remote_path: str) -> None:
        """
        Uploads a local file. Raises TransferError on failure.
        """
        pass

    @abstractmethod
    async def dispose(self) -> None:
        """
        Closes the transport. Safe to call more than once.
        """
        pass


class RemoteConnectorPort(ABC):
    @abstractmethod
    async def connect(
        self, target: TargetHost, credentials: Credentials, timeout: float
    ) -> RemoteSessionPort:
        """
        Opens an authenticated session. Raises RemoteConnectionError on failure.
        """
        pass
