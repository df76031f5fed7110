"""
Deploy Project Use Case

Architectural Intent:
- The deployment saga: validate, package, connect, preflight, back up,
  update, restart, verify
- Owns the run's single session and single artifact and releases both on
  every exit path, success or failure
- Failures are routed on the classified error kind and on whether a snapshot
  exists: before the snapshot nothing has changed and the run ends in
  FAILED_PRECHECK; after it every failure is compensated by a rollback
- A destructive step never runs without a recorded snapshot (real or sentinel)
"""

from __future__ import annotations
import asyncio
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional
from hoist.application.context import DeploymentContext, connect_with_retry
from hoist.application.orchestration.step_pipeline import (
    DeploymentStep,
    StepOutcome,
    run_step,
)
from hoist.application.retry import RetryingExecutor
from hoist.application.services.backup import BackupManager
from hoist.application.services.preflight import PreflightGuard
from hoist.application.services.supervisor import ProcessSupervisorBridge
from hoist.application.services.updater import ProjectUpdater
from hoist.application.use_cases.rollback_deployment import RollbackCoordinator
from hoist.domain.entities.deployment import (
    Deployment,
    DeploymentResult,
    DeploymentState,
    InvalidTransition,
)
from hoist.domain.errors import ErrorKind, HoistError, RollbackError
from hoist.domain.ports.artifact_packager_port import ArtifactPackagerPort
from hoist.domain.ports.event_bus_port import EventBusPort
from hoist.domain.ports.remote_session_port import RemoteConnectorPort, RemoteSessionPort
from hoist.domain.value_objects.artifact import Artifact
from hoist.infrastructure.config import DeploymentConfig
from hoist.infrastructure.telemetry.otel_exporter import OTELExporter

logger = logging.getLogger(__name__)

S = DeploymentState


def requires_rollback(kind: Optional[ErrorKind], has_snapshot: bool) -> bool:
    """
    Compensate whenever a snapshot exists, whatever the error kind.
    Before the snapshot the host is untouched and there is nothing to undo.
    """
    if kind is not None:
        logger.debug("Routing %s failure (snapshot=%s)", kind.value, has_snapshot)
    return has_snapshot


@dataclass
class _Run:
    deployment: Deployment
    config: DeploymentConfig
    executor: Optional[RetryingExecutor] = None
    artifact: Optional[Artifact] = None
    session: Optional[RemoteSessionPort] = None
    context: Optional[DeploymentContext] = None
    published: int = 0


class DeploymentOrchestrator:
    def __init__(
        self,
        packager: ArtifactPackagerPort,
        connector: RemoteConnectorPort,
        preflight: PreflightGuard,
        backup_manager: BackupManager,
        updater: ProjectUpdater,
        supervisor: ProcessSupervisorBridge,
        rollback: RollbackCoordinator,
        event_bus: Optional[EventBusPort] = None,
        telemetry: Optional[OTELExporter] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.packager = packager
        self.connector = connector
        self.preflight = preflight
        self.backup_manager = backup_manager
        self.updater = updater
        self.supervisor = supervisor
        self.rollback = rollback
        self.event_bus = event_bus
        self.telemetry = telemetry
        self._sleep = sleep

    async def execute(self, config: DeploymentConfig) -> DeploymentResult:
        run = _Run(deployment=Deployment(run_id=uuid.uuid4().hex[:12]), config=config)
        logger.info("Deployment %s started", run.deployment.run_id)
        try:
            await self._forward(run)
        finally:
            await self._release(run)
            await self._publish(run)

        result = run.deployment.to_result()
        self._report(result)
        if self.telemetry is not None:
            self.telemetry.record_outcome(result.outcome.value, result.failed_step)
            self.telemetry.flush()
        return result

    def _steps(self, run: _Run) -> list[DeploymentStep]:
        config = run.config

        async def validate():
            self.preflight.validate(config)
            run.executor = RetryingExecutor(config.retry.to_policy(), sleep=self._sleep)

        async def package():
            logger.info("Packaging %s...", Path(config.deploy.project_dir).resolve())
            run.artifact = self.packager.package(
                Path(config.deploy.project_dir), config.deploy.exclude
            )

        async def connect():
            run.session = await connect_with_retry(self.connector, config, run.executor)
            run.context = DeploymentContext(
                config=config, session=run.session, executor=run.executor
            )

        async def preflight():
            await self.preflight.run_remote_checks(run.context)

        async def backup():
            snapshot = await self.backup_manager.backup(run.context, run.context.target_dir)
            run.deployment = run.deployment.record_snapshot(snapshot)

        async def update():
            await self.updater.update(
                run.context, run.artifact, run.context.target_dir,
                config.deploy.preserve_paths,
            )

        async def restart():
            await self.supervisor.restart(run.context, config.supervisor.service_name)
            if config.supervisor.update_startup:
                await self.supervisor.update_startup(run.context)

        async def verify():
            expected = config.runtime.version
            if not (expected and config.supervisor.verify_runtime):
                return
            ok = await self.supervisor.verify_runtime_version(
                run.context, config.supervisor.service_name, expected
            )
            if not ok:
                run.deployment = run.deployment.warn(
                    f"Service {config.supervisor.service_name} is not reporting runtime {expected}"
                )

        return [
            DeploymentStep("validate", S.VALIDATING, validate),
            DeploymentStep("package", S.PACKAGING, package),
            DeploymentStep("connect", S.CONNECTING, connect),
            DeploymentStep("preflight", S.PREFLIGHT, preflight),
            DeploymentStep("backup", S.BACKING_UP, backup),
            DeploymentStep("update", S.UPDATING, update, mutating=True),
            DeploymentStep("restart", S.RESTARTING, restart, mutating=True),
            DeploymentStep("verify", S.VERIFYING, verify),
        ]

    async def _forward(self, run: _Run) -> None:
        for step in self._steps(run):
            # Checked before entering the step's state, while FAILED_PRECHECK is still legal
            if step.mutating and not run.deployment.has_snapshot:
                error = InvalidTransition(f"Step {step.name} would mutate the host without a snapshot")
                await self._fail(run, StepOutcome(step.name, 0.0, error=error))
                return
            if run.deployment.state is not step.state:
                run.deployment = run.deployment.advance(step.state)
                await self._publish(run)

            outcome = await self._run_step(step)
            if not outcome.ok:
                await self._fail(run, outcome)
                return

        run.deployment = run.deployment.advance(S.SUCCEEDED)

    async def _run_step(self, step: DeploymentStep) -> StepOutcome:
        span = self.telemetry.start_span(f"deploy.{step.name}") if self.telemetry else None
        outcome = await run_step(step)
        if self.telemetry is not None:
            self.telemetry.record_step(step.name, outcome.duration_ms, outcome.ok)
            self.telemetry.end_span(span, outcome.error)
        return outcome

    async def _fail(self, run: _Run, outcome: StepOutcome) -> None:
        deployment = run.deployment
        if not requires_rollback(outcome.kind, deployment.has_snapshot):
            run.deployment = deployment.fail_precheck(outcome.step, outcome.error)
            return

        run.deployment = deployment.begin_rollback(outcome.step, outcome.error)
        await self._publish(run)
        try:
            await self.rollback.rollback(run.context, run.context.target_dir, deployment.snapshot)
        except Exception as e:
            if not isinstance(e, HoistError):
                e = RollbackError(f"Rollback to {deployment.snapshot} failed: {e}", e)
            logger.critical("Rollback failed: %s", e)
            run.deployment = run.deployment.fail_rollback(e)
            return
        run.deployment = run.deployment.complete_rollback()

    async def _release(self, run: _Run) -> None:
        if run.session is not None:
            try:
                await run.session.dispose()
            except Exception as e:
                logger.error("Error disposing remote session: %s", e)
            run.session = None
        if run.artifact is not None:
            self.packager.discard(run.artifact)
            run.artifact = None

    async def _publish(self, run: _Run) -> None:
        events = run.deployment.domain_events[run.published:]
        run.published = len(run.deployment.domain_events)
        if self.event_bus is not None and events:
            await self.event_bus.publish(list(events))

    def _report(self, result: DeploymentResult) -> None:
        for warning in result.warnings:
            logger.warning("Warning: %s", warning)
        if result.succeeded:
            logger.info(result.summary())
        elif result.rollback_error is not None:
            logger.critical(result.summary())
        else:
            logger.error(result.summary())
