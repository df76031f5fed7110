"""
Error Taxonomy

Architectural Intent:
- Every failure a deployment can meet is classified into an ErrorKind
- The orchestrator routes on kind (precheck vs rollback), never on message text
- Adapters translate library exceptions into this hierarchy at the boundary
"""

from __future__ import annotations
from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    CONFIG = "config"
    CONNECTION = "connection"
    RESOURCE = "resource"
    COMMAND = "command"
    TRANSFER = "transfer"
    BACKUP = "backup"
    UPDATE = "update"
    SUPERVISOR = "supervisor"
    ROLLBACK = "rollback"
    INTERNAL = "internal"


class HoistError(Exception):
    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


class ConfigError(HoistError):
    """Missing or invalid configuration. Never retried."""

    kind = ErrorKind.CONFIG


class RemoteConnectionError(HoistError):
    kind = ErrorKind.CONNECTION


class ResourceError(HoistError):
    """Remote host cannot take the deployment (disk, runtime, layout)."""

    kind = ErrorKind.RESOURCE


class NotProvisionedError(ResourceError):
    pass


class CommandError(HoistError):
    kind = ErrorKind.COMMAND

    def __init__(
        self,
        command: str,
        exit_code: Optional[int],
        stderr: str = "",
        cause: Optional[BaseException] = None,
    ) -> None:
        detail = stderr.strip() or "no stderr"
        if exit_code is None:
            message = f"Command did not complete: {command} ({detail})"
        else:
            message = f"Command exited with status {exit_code}: {command} ({detail})"
        super().__init__(message, cause)
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr


class TransferError(HoistError):
    kind = ErrorKind.TRANSFER


class BackupError(HoistError):
    kind = ErrorKind.BACKUP


class UpdateError(HoistError):
    kind = ErrorKind.UPDATE

    def __init__(self, step: str, cause: BaseException) -> None:
        super().__init__(f"Update step '{step}' failed: {cause}", cause)
        self.step = step


class SupervisorError(HoistError):
    kind = ErrorKind.SUPERVISOR


class RollbackError(HoistError):
    """Restoring the previous deployment failed; the host needs an operator."""

    kind = ErrorKind.ROLLBACK


def classify(error: BaseException) -> ErrorKind:
    if isinstance(error, HoistError):
        return error.kind
    return ErrorKind.INTERNAL
