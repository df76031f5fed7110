"""
Preflight Guard

Architectural Intent:
- Everything that can be checked before the host is mutated is checked here
- validate() is purely local: it runs before any connection is attempted
- Remote checks only read (test, df, grep, node --version); a failure here
  needs no rollback because nothing has changed yet
"""

import logging
import posixpath
import re
from pathlib import Path
from hoist.application.context import DeploymentContext
from hoist.domain.errors import (
    CommandError,
    ConfigError,
    NotProvisionedError,
    ResourceError,
)
from hoist.domain.services.command_builder import CommandBuilder
from hoist.infrastructure.config import DeploymentConfig

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"v?(\d+\.\d+\.\d+)")
_KB_PER_GB = 1024 * 1024


def parse_available_kb(df_output: str) -> int:
    """Available-space column of POSIX `df -Pk` output, in KiB."""
    lines = [line for line in df_output.splitlines() if line.strip()]
    if len(lines) < 2:
        raise ResourceError(f"Unexpected df output: {df_output.strip()!r}")
    columns = lines[-1].split()
    if len(columns) < 6:
        raise ResourceError(f"Unexpected df output: {lines[-1]!r}")
    try:
        return int(columns[3])
    except ValueError as e:
        raise ResourceError(f"Unable to parse free space from: {lines[-1]!r}", e) from e


class PreflightGuard:
    def validate(self, config: DeploymentConfig, check_project: bool = True) -> None:
        missing = []
        if not config.target.host:
            missing.append("target.host")
        if not config.target.username:
            missing.append("target.username")
        if not (config.target.password or config.target.key_filename):
            missing.append("target.password or target.key_filename")
        if not config.deploy.target_dir:
            missing.append("deploy.target_dir")
        if not config.supervisor.service_name:
            missing.append("supervisor.service_name")
        if missing:
            raise ConfigError(f"Missing required configuration: {', '.join(missing)}")

        config.target.to_host()
        config.retry.to_policy()
        config.deploy.build_environment()

        target_dir = posixpath.normpath(config.deploy.target_dir)
        if not posixpath.isabs(target_dir) or target_dir == "/":
            raise ConfigError(
                f"deploy.target_dir must be an absolute path below /, got {config.deploy.target_dir!r}"
            )
        if config.deploy.min_free_gb < 0:
            raise ConfigError("deploy.min_free_gb cannot be negative")
        if not config.supervisor.start_command:
            raise ConfigError("supervisor.start_command cannot be empty")
        for path in config.deploy.preserve_paths + config.deploy.ensure_paths:
            if posixpath.isabs(path) or ".." in path.split("/"):
                raise ConfigError(f"Project paths must be relative and inside the project: {path!r}")

        if not check_project:
            return
        manifest = Path(config.deploy.project_dir) / config.deploy.manifest_file
        if not manifest.is_file():
            raise ConfigError(f"{manifest} not found. Are you in the correct directory?")

    async def _volume_path(self, ctx: DeploymentContext, path: str) -> str:
        """Nearest existing ancestor of path (path itself when it exists)."""
        candidate = posixpath.normpath(path)
        while candidate != "/":
            probe = await ctx.run(CommandBuilder.path_exists(candidate), check=False)
            if probe.ok:
                return candidate
            candidate = posixpath.dirname(candidate)
        return candidate

    async def check_disk_space(self, ctx: DeploymentContext, path: str, min_free_gb: float) -> None:
        volume_path = await self._volume_path(ctx, path)
        result = await ctx.run(CommandBuilder.disk_free(volume_path))
        free_gb = parse_available_kb(result.stdout) / _KB_PER_GB
        logger.info("Free space on volume of %s: %.2f GB", path, free_gb)
        if free_gb < min_free_gb:
            raise ResourceError(
                f"Not enough disk space on the volume of {path}: "
                f"{free_gb:.2f} GB available, {min_free_gb:g} GB required"
            )

    async def check_installed(self, ctx: DeploymentContext, path: str) -> bool:
        manifest = posixpath.join(path, ctx.config.deploy.manifest_file)
        marker = ctx.config.deploy.install_marker
        if marker:
            probe = CommandBuilder.file_contains(manifest, marker)
        else:
            probe = CommandBuilder.file_exists(manifest)
        result = await ctx.run(probe, check=False)
        return result.ok

    async def check_runtime(self, ctx: DeploymentContext, expected: str) -> None:
        try:
            result = await ctx.run(CommandBuilder.runtime_version(expected))
        except CommandError as e:
            raise ResourceError(f"Runtime {expected} is not available on the host: {e}", e) from e

        match = _VERSION_RE.search(result.stdout)
        if not match:
            raise ResourceError(
                f"Unable to determine runtime version from output: {result.stdout.strip()!r}"
            )
        actual = match.group(1)
        if actual != expected.lstrip("v"):
            raise ResourceError(f"Runtime version mismatch. Expected {expected}, got {actual}")
        logger.info("Runtime version %s is active", actual)

    async def run_remote_checks(self, ctx: DeploymentContext) -> None:
        deploy = ctx.config.deploy
        await self.check_disk_space(ctx, ctx.target_dir, deploy.min_free_gb)

        installed = await self.check_installed(ctx, ctx.target_dir)
        if not installed and deploy.require_existing_install:
            raise NotProvisionedError(
                f"No application is installed in {ctx.target_dir}. "
                "Set it up manually before deploying, or allow fresh installs "
                "with deploy.require_existing_install=false."
            )
        if not installed:
            logger.warning("No existing installation in %s; performing a fresh install", ctx.target_dir)

        if ctx.runtime:
            await self.check_runtime(ctx, ctx.runtime)
