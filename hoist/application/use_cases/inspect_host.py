"""
Inspect Host Use Case

Architectural Intent:
- Read-only view of the target host: the preflight checks and the snapshot list
- Never mutates the host; safe to run against production at any time
"""

import logging
from dataclasses import dataclass, field
from typing import Optional
from hoist.application.context import open_context
from hoist.application.retry import RetryingExecutor
from hoist.application.services.backup import BackupManager
from hoist.application.services.preflight import PreflightGuard
from hoist.domain.errors import HoistError
from hoist.domain.ports.remote_session_port import RemoteConnectorPort
from hoist.domain.value_objects.snapshot import BackupSnapshot
from hoist.infrastructure.config import DeploymentConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreflightReport:
    passed: bool
    error: Optional[HoistError] = None
    snapshots: tuple[BackupSnapshot, ...] = field(default=())


class InspectHost:
    def __init__(
        self,
        connector: RemoteConnectorPort,
        preflight: PreflightGuard,
        backup_manager: BackupManager,
    ):
        self.connector = connector
        self.preflight = preflight
        self.backup_manager = backup_manager

    async def preflight_only(
        self, config: DeploymentConfig, executor: Optional[RetryingExecutor] = None
    ) -> PreflightReport:
        """Runs every check a deployment would, without packaging or mutating anything."""
        try:
            self.preflight.validate(config, check_project=False)
            executor = executor or RetryingExecutor(config.retry.to_policy())
            async with open_context(self.connector, config, executor) as ctx:
                await self.preflight.run_remote_checks(ctx)
                snapshots = await self.backup_manager.list_snapshots(ctx, ctx.target_dir)
        except HoistError as e:
            logger.error("Preflight failed [%s]: %s", e.kind.value, e)
            return PreflightReport(passed=False, error=e)
        logger.info("Preflight passed for %s", config.target.host)
        return PreflightReport(passed=True, snapshots=tuple(snapshots))

    async def list_snapshots(
        self, config: DeploymentConfig, executor: Optional[RetryingExecutor] = None
    ) -> list[BackupSnapshot]:
        self.preflight.validate(config, check_project=False)
        executor = executor or RetryingExecutor(config.retry.to_policy())
        async with open_context(self.connector, config, executor) as ctx:
            return await self.backup_manager.list_snapshots(ctx, ctx.target_dir)
