"""
Deployment Context

Architectural Intent:
- Explicit value threaded through every step function of one run
- Holds the run's config, its single remote session and the retry executor
- ctx.run() is the only path to the host, so every command is retried uniformly
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Optional
from hoist.application.retry import RetryingExecutor
from hoist.domain.ports.remote_session_port import (
    CommandResult,
    RemoteConnectorPort,
    RemoteSessionPort,
)
from hoist.domain.value_objects.remote_command import RemoteCommand
from hoist.infrastructure.config import DeploymentConfig


@dataclass(frozen=True)
class DeploymentContext:
    config: DeploymentConfig
    session: RemoteSessionPort
    executor: RetryingExecutor

    @property
    def target_dir(self) -> str:
        return self.config.deploy.target_dir.rstrip("/") or "/"

    @property
    def runtime(self) -> Optional[str]:
        return self.config.runtime.version or None

    async def run(self, command: RemoteCommand, check: bool = True) -> CommandResult:
        return await self.executor.execute(
            lambda: self.session.run(command, check=check),
            idempotency=command.idempotency,
            description=str(command),
        )

    async def put_file(self, local_path: Path, remote_path: str) -> None:
        await self.executor.execute(
            lambda: self.session.put_file(local_path, remote_path),
            description=f"upload of {local_path.name}",
        )


async def connect_with_retry(
    connector: RemoteConnectorPort, config: DeploymentConfig, executor: RetryingExecutor
) -> RemoteSessionPort:
    target = config.target.to_host()
    return await executor.execute(
        lambda: connector.connect(
            target, config.target.credentials(), config.target.connect_timeout
        ),
        description=f"connect to {target}",
    )


@asynccontextmanager
async def open_context(
    connector: RemoteConnectorPort, config: DeploymentConfig, executor: RetryingExecutor
) -> AsyncIterator[DeploymentContext]:
    """Connects for the duration of the block; the session is disposed on every exit."""
    session = await connect_with_retry(connector, config, executor)
    try:
        yield DeploymentContext(config=config, session=session, executor=executor)
    finally:
        await session.dispose()
