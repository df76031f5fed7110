"""
Fabric Adapter

Architectural Intent:
- Infrastructure adapter implementing RemoteSessionPort and RemoteConnectorPort via Fabric/SSH
- Blocking Fabric calls run in the default executor and are awaited one at a time
- Library exceptions are translated into the hoist error taxonomy here and nowhere else

Security:
- SSH connections use connect_timeout; password or key file come from config,
  with agent and default keys as fallback
- Every argument is quoted by RemoteCommand.render() before it reaches the shell
"""

import asyncio
import logging
from pathlib import Path
from fabric import Connection
from hoist.domain.errors import CommandError, RemoteConnectionError, TransferError
from hoist.domain.ports.remote_session_port import (
    CommandResult,
    Credentials,
    RemoteConnectorPort,
    RemoteSessionPort,
)
from hoist.domain.value_objects.remote_command import RemoteCommand
from hoist.domain.value_objects.target_host import TargetHost

logger = logging.getLogger(__name__)


async def _blocking(fn, *args, **kwargs):
    return await asyncio.get_event_loop().run_in_executor(None, lambda: fn(*args, **kwargs))


class FabricSession(RemoteSessionPort):
    """One open SSH connection, owned by whoever called connect()."""

    def __init__(self, connection: Connection) -> None:
        self._connection = connection
        self._disposed = False

    @property
    def is_connected(self) -> bool:
        return not self._disposed and bool(self._connection.is_connected)

    async def run(self, command: RemoteCommand, check: bool = True) -> CommandResult:
        rendered = command.render()
        logger.debug("run: %s", rendered)
        try:
            result = await _blocking(
                self._connection.run, rendered, hide=True, warn=True, in_stream=False
            )
        except Exception as e:
            raise CommandError(str(command), None, str(e), cause=e) from e

        outcome = CommandResult(
            stdout=result.stdout or "", stderr=result.stderr or "", exit_code=result.exited
        )
        if not outcome.ok:
            if check:
                raise CommandError(str(command), outcome.exit_code, outcome.stderr)
        elif outcome.stderr.strip():
            logger.warning("Command completed with warnings: %s: %s", command, outcome.stderr.strip())
        return outcome

    async def put_file(self, local_path: Path, remote_path: str) -> None:
        logger.debug("put: %s -> %s", local_path, remote_path)
        try:
            await _blocking(self._connection.put, str(local_path), remote=remote_path)
        except Exception as e:
            raise TransferError(f"Upload of {local_path} to {remote_path} failed: {e}", e) from e

    async def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        try:
            await _blocking(self._connection.close)
        except Exception as e:
            logger.warning("Error closing SSH connection: %s", e)


class FabricConnector(RemoteConnectorPort):
    def _get_connection(
        self, target: TargetHost, credentials: Credentials, timeout: float
    ) -> Connection:
        connect_kwargs = {"allow_agent": True, "look_for_keys": True}
        if credentials.password:
            connect_kwargs["password"] = credentials.password
        if credentials.key_filename:
            connect_kwargs["key_filename"] = credentials.key_filename
        return Connection(
            host=target.host,
            user=target.user,
            port=target.port,
            connect_timeout=timeout,
            connect_kwargs=connect_kwargs,
        )

    async def connect(
        self, target: TargetHost, credentials: Credentials, timeout: float
    ) -> RemoteSessionPort:
        logger.info("Connecting to %s...", target)
        connection = self._get_connection(target, credentials, timeout)
        try:
            await _blocking(connection.open)
        except Exception as e:
            try:
                connection.close()
            except Exception as close_error:
                logger.debug("Ignoring close error after failed connect: %s", close_error)
            raise RemoteConnectionError(f"Could not connect to {target}: {e}", e) from e
        logger.info("Connected to %s", target)
        return FabricSession(connection)
