"""
Rollback Deployment Use Case

Architectural Intent:
- Compensating action for a failed deployment: put the snapshot back in place
  and bring the restored version online
- A sentinel snapshot means nothing existed before, so rollback removes the target
- Rollback failures are reported as RollbackError, never folded into the
  deployment error that triggered them, and are never retried as a whole
- RollbackDeployment is the operator-initiated variant: connect, pick a
  snapshot (named or newest), restore, disconnect
"""

import logging
import posixpath
from typing import Optional
from hoist.application.context import DeploymentContext, open_context
from hoist.application.retry import RetryingExecutor
from hoist.application.services.backup import BackupManager
from hoist.application.services.supervisor import ProcessSupervisorBridge
from hoist.domain.errors import HoistError, ResourceError, RollbackError
from hoist.domain.ports.remote_session_port import RemoteConnectorPort
from hoist.domain.services.command_builder import CommandBuilder
from hoist.domain.value_objects.snapshot import BackupSnapshot
from hoist.infrastructure.config import DeploymentConfig

logger = logging.getLogger(__name__)


class RollbackCoordinator:
    def __init__(self, supervisor: ProcessSupervisorBridge):
        self.supervisor = supervisor

    async def rollback(
        self, ctx: DeploymentContext, target_dir: str, snapshot: BackupSnapshot
    ) -> None:
        logger.warning("Attempting rollback of %s to %s...", target_dir, snapshot)
        try:
            await ctx.run(CommandBuilder.remove_tree(target_dir))
            if snapshot.is_sentinel:
                logger.warning("Rollback completed: removed %s (no previous version existed)", target_dir)
                return
            await ctx.run(CommandBuilder.rename(snapshot.path, target_dir))
            logger.warning("Rollback completed: %s restored from %s", target_dir, snapshot)
            await self.supervisor.restart(ctx, ctx.config.supervisor.service_name)
        except HoistError as e:
            raise RollbackError(f"Rollback to {snapshot} failed: {e}", e) from e


class RollbackDeployment:
    def __init__(
        self,
        connector: RemoteConnectorPort,
        backup_manager: BackupManager,
        coordinator: RollbackCoordinator,
    ):
        self.connector = connector
        self.backup_manager = backup_manager
        self.coordinator = coordinator

    async def execute(
        self,
        config: DeploymentConfig,
        snapshot_path: Optional[str] = None,
        executor: Optional[RetryingExecutor] = None,
    ) -> BackupSnapshot:
        executor = executor or RetryingExecutor(config.retry.to_policy())
        async with open_context(self.connector, config, executor) as ctx:
            if snapshot_path:
                available = await self.backup_manager.list_snapshots(ctx, ctx.target_dir)
                wanted = posixpath.normpath(snapshot_path)
                snapshot = next((s for s in available if s.path == wanted), None)
                if snapshot is None:
                    raise ResourceError(f"Snapshot {snapshot_path} not found next to {ctx.target_dir}")
            else:
                snapshot = await self.backup_manager.latest(ctx, ctx.target_dir)
                if snapshot is None:
                    raise ResourceError(f"No snapshots of {ctx.target_dir} exist")
            await self.coordinator.rollback(ctx, ctx.target_dir, snapshot)
            return snapshot
