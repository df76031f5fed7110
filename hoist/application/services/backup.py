"""
Backup Manager

Architectural Intent:
- Snapshots the remote target directory before anything destructive happens
- The copy finishes before backup() returns; later steps assume it is complete
- Only a target confirmed missing or empty yields the sentinel snapshot; a probe
  that cannot tell (permissions, I/O, dropped channel) is a BackupError
- A snapshot is always a fresh copy: an existing path of the same name is
  never copied into
- Snapshots are never deleted here; retention is an operator concern
"""

import logging
import posixpath
import re
from datetime import datetime
from typing import Callable, Optional
from hoist.application.context import DeploymentContext
from hoist.domain.errors import BackupError, CommandError
from hoist.domain.services.command_builder import CommandBuilder
from hoist.domain.value_objects.snapshot import (
    BackupSnapshot,
    NO_SNAPSHOT,
    SNAPSHOT_INFIX,
)

logger = logging.getLogger(__name__)

# `test` exits 1 for "false"; anything else means it could not answer
_TEST_FALSE = 1


class BackupManager:
    def __init__(self, clock: Callable[[], datetime] = datetime.now) -> None:
        self._clock = clock

    async def _exists(self, ctx: DeploymentContext, path: str) -> bool:
        result = await ctx.run(CommandBuilder.path_exists(path), check=False)
        if result.ok:
            return True
        if result.exit_code == _TEST_FALSE:
            return False
        raise BackupError(
            f"Unable to determine whether {path} exists (exit {result.exit_code}): "
            f"{result.stderr.strip()}"
        )

    async def _needs_copy(self, ctx: DeploymentContext, target_dir: str) -> bool:
        probe = await ctx.run(CommandBuilder.first_entry(target_dir), check=False)
        if probe.ok:
            return bool(probe.stdout.strip())
        if not await self._exists(ctx, target_dir):
            return False
        raise BackupError(
            f"Unable to inspect {target_dir} before backup (exit {probe.exit_code}): "
            f"{probe.stderr.strip()}"
        )

    async def backup(self, ctx: DeploymentContext, target_dir: str) -> BackupSnapshot:
        logger.info("Backing up remote directory %s...", target_dir)
        if not await self._needs_copy(ctx, target_dir):
            logger.info("No backup needed (%s is empty or doesn't exist)", target_dir)
            return NO_SNAPSHOT

        snapshot = BackupSnapshot.for_target(target_dir, self._clock())
        if await self._exists(ctx, snapshot.path):
            raise BackupError(f"Snapshot path {snapshot} already exists; refusing to copy into it")
        try:
            await ctx.run(CommandBuilder.copy_tree(target_dir, snapshot.path))
        except CommandError as e:
            await self._discard_partial(ctx, snapshot)
            raise BackupError(f"Backup of {target_dir} to {snapshot} failed: {e}", e) from e

        logger.info("Backup created at: %s", snapshot)
        return snapshot

    async def _discard_partial(self, ctx: DeploymentContext, snapshot: BackupSnapshot) -> None:
        try:
            await ctx.run(CommandBuilder.remove_tree(snapshot.path))
        except CommandError as e:
            logger.error("Could not remove partial backup %s: %s", snapshot, e)

    async def list_snapshots(self, ctx: DeploymentContext, target_dir: str) -> list[BackupSnapshot]:
        """Existing snapshots of target_dir, oldest first."""
        target_dir = posixpath.normpath(target_dir)
        parent, base = posixpath.split(target_dir)
        pattern = re.compile(re.escape(base + SNAPSHOT_INFIX) + r"\d{8}_\d{6}$")

        result = await ctx.run(
            CommandBuilder.find_siblings(parent, f"{base}{SNAPSHOT_INFIX}*"), check=False
        )
        paths = sorted(
            line.strip() for line in result.stdout.splitlines()
            if pattern.match(posixpath.basename(line.strip()))
        )
        return [BackupSnapshot(p) for p in paths]

    async def latest(self, ctx: DeploymentContext, target_dir: str) -> Optional[BackupSnapshot]:
        snapshots = await self.list_snapshots(ctx, target_dir)
        return snapshots[-1] if snapshots else None
