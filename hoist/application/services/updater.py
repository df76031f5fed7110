"""
Project Updater

Architectural Intent:
- Installs a packaged artifact over the remote target directory
- Preserved paths (uploads, environment config, data) are never overwritten
- Sub-steps run strictly in order; the first failure aborts the update and is
  reported as one UpdateError naming the sub-step
- Database migrations are out of scope: the migrate sub-step is a hook that
  does nothing unless a callable is supplied
"""

import logging
import posixpath
from typing import Awaitable, Callable, Iterable, Optional
from hoist.application.context import DeploymentContext
from hoist.domain.errors import UpdateError
from hoist.domain.services.command_builder import CommandBuilder
from hoist.domain.value_objects.artifact import Artifact

logger = logging.getLogger(__name__)

ARCHIVE_NAME = ".hoist-update.zip"

MigrationHook = Callable[[DeploymentContext], Awaitable[None]]


def extraction_excludes(preserve_paths: Iterable[str]) -> list[str]:
    patterns = []
    for path in preserve_paths:
        path = path.strip("/")
        if path:
            patterns += [path, f"{path}/*"]
    return patterns


class ProjectUpdater:
    def __init__(self, migrations: Optional[MigrationHook] = None) -> None:
        self._migrations = migrations

    async def update(
        self,
        ctx: DeploymentContext,
        artifact: Artifact,
        target_dir: str,
        preserve_paths: tuple[str, ...],
    ) -> None:
        deploy = ctx.config.deploy
        archive = posixpath.join(target_dir, ARCHIVE_NAME)

        async def prepare():
            await ctx.run(CommandBuilder.make_dirs(target_dir))

        async def transfer():
            await ctx.put_file(artifact.path, archive)

        async def extract():
            await ctx.run(CommandBuilder.extract_zip(
                archive, target_dir, extraction_excludes(preserve_paths)
            ))

        async def cleanup_archive():
            await ctx.run(CommandBuilder.remove_file(archive))

        async def ensure_paths():
            for rel in deploy.ensure_paths:
                path = posixpath.join(target_dir, rel)
                await ctx.run(CommandBuilder.make_dirs(path))
                await ctx.run(CommandBuilder.change_mode("755", path))

        async def migrate():
            if self._migrations is None:
                logger.debug("No migration hook configured; skipping")
                return
            await self._migrations(ctx)

        async def install_dependencies():
            await ctx.run(CommandBuilder.project_command(
                deploy.install_command, cwd=target_dir, runtime=ctx.runtime
            ))

        async def build():
            await ctx.run(CommandBuilder.project_command(
                deploy.build_command, cwd=target_dir, runtime=ctx.runtime,
                env=deploy.build_environment(),
            ))

        async def permissions():
            if not deploy.fix_permissions:
                return
            await ctx.run(CommandBuilder.change_owner(ctx.config.target.username, target_dir))
            await ctx.run(CommandBuilder.change_mode("755", target_dir, recursive=True))

        steps = [
            ("prepare", prepare),
            ("transfer", transfer),
            ("extract", extract),
            ("cleanup_archive", cleanup_archive),
            ("ensure_paths", ensure_paths),
            ("migrate", migrate),
            ("install_dependencies", install_dependencies),
            ("build", build),
            ("permissions", permissions),
        ]
        for name, action in steps:
            logger.info("Update step: %s", name)
            try:
                await action()
            except Exception as e:
                raise UpdateError(name, e) from e
        logger.info("Remote project updated from %s", artifact)
