"""
Process Supervisor Bridge

Architectural Intent:
- Brings the deployed service up through pm2, idempotently:
  reload when pm2 already knows the service, start it otherwise
- Persists the process list after every restart so a host reboot keeps it
- Runtime version after restart is a sanity check that only warns
"""

import logging
import re
from hoist.application.context import DeploymentContext
from hoist.domain.errors import HoistError, SupervisorError
from hoist.domain.services.command_builder import CommandBuilder

logger = logging.getLogger(__name__)

_RUNTIME_LINE_RE = re.compile(r"node(?:\.js)? version", re.IGNORECASE)


class ProcessSupervisorBridge:
    async def is_registered(self, ctx: DeploymentContext, service_name: str) -> bool:
        result = await ctx.run(
            CommandBuilder.supervisor_describe(service_name, ctx.runtime), check=False
        )
        return result.ok

    async def restart(self, ctx: DeploymentContext, service_name: str) -> None:
        try:
            if await self.is_registered(ctx, service_name):
                logger.info("Reloading %s with pm2...", service_name)
                await ctx.run(CommandBuilder.supervisor_reload(service_name, ctx.runtime))
            else:
                logger.info("Starting %s with pm2...", service_name)
                await ctx.run(CommandBuilder.supervisor_start(
                    service_name,
                    ctx.config.supervisor.start_command,
                    cwd=ctx.target_dir,
                    runtime=ctx.runtime,
                ))
            await ctx.run(CommandBuilder.supervisor_save(ctx.runtime))
        except HoistError as e:
            raise SupervisorError(f"Restart of {service_name} failed: {e}", e) from e

    async def update_startup(self, ctx: DeploymentContext) -> None:
        logger.info("Updating pm2 startup script...")
        await ctx.run(CommandBuilder.supervisor_unstartup(ctx.runtime), check=False)
        result = await ctx.run(CommandBuilder.supervisor_startup(ctx.runtime), check=False)
        if not result.ok:
            # pm2 asks for a privileged follow-up command when not run as root
            logger.warning(
                "pm2 startup needs manual follow-up: %s",
                (result.stdout or result.stderr).strip(),
            )

    async def verify_runtime_version(
        self, ctx: DeploymentContext, service_name: str, expected: str
    ) -> bool:
        result = await ctx.run(
            CommandBuilder.supervisor_info(service_name, ctx.runtime), check=False
        )
        line = next(
            (l.strip() for l in result.stdout.splitlines() if _RUNTIME_LINE_RE.search(l)),
            "",
        )
        logger.info("pm2 runtime for %s: %s", service_name, line or "unknown")
        if result.ok and expected.lstrip("v") in line:
            return True
        logger.warning(
            "pm2 is not using the expected runtime for %s. Expected %s, got %r",
            service_name, expected, line,
        )
        return False
