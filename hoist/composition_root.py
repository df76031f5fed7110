"""
Composition Root

Architectural Intent:
- Dependency injection composition root for hoist
- Single place where all adapters and use cases are wired together
- No adapter instantiation should occur outside this module

Design Decisions:
- Uses a simple dataclass container instead of a DI framework
- Telemetry is created from config and stays disabled without an endpoint
"""

import logging
from dataclasses import dataclass
from typing import Optional
from hoist.application.services.backup import BackupManager
from hoist.application.services.preflight import PreflightGuard
from hoist.application.services.supervisor import ProcessSupervisorBridge
from hoist.application.services.updater import ProjectUpdater
from hoist.application.use_cases.deploy_project import DeploymentOrchestrator
from hoist.application.use_cases.inspect_host import InspectHost
from hoist.application.use_cases.rollback_deployment import (
    RollbackCoordinator,
    RollbackDeployment,
)
from hoist.domain.entities.deployment import DeploymentFinished, DeploymentStateChanged
from hoist.infrastructure.adapters.fabric_session import FabricConnector
from hoist.infrastructure.adapters.zip_packager import ZipPackager
from hoist.infrastructure.config import DeploymentConfig
from hoist.infrastructure.event_bus import EventBus
from hoist.infrastructure.telemetry.otel_exporter import OTELExporter, create_exporter

logger = logging.getLogger(__name__)


async def log_state_change(event: DeploymentStateChanged) -> None:
    logger.debug("[%s] %s -> %s", event.aggregate_id, event.from_state, event.to_state)


async def log_finished(event: DeploymentFinished) -> None:
    logger.info("[%s] finished: %s", event.aggregate_id, event.outcome)


@dataclass
class HoistContainer:
    """DI container holding all wired dependencies."""

    connector: FabricConnector
    packager: ZipPackager
    event_bus: EventBus
    telemetry: OTELExporter
    deploy: DeploymentOrchestrator
    rollback: RollbackDeployment
    inspect: InspectHost


def create_container(config: Optional[DeploymentConfig] = None) -> HoistContainer:
    """Create and wire all dependencies."""
    config = config or DeploymentConfig()
    connector = FabricConnector()
    packager = ZipPackager()
    event_bus = EventBus()
    event_bus.subscribe(DeploymentStateChanged, log_state_change)
    event_bus.subscribe(DeploymentFinished, log_finished)
    telemetry = create_exporter(
        endpoint=config.telemetry.endpoint,
        service_name=config.telemetry.service_name,
        insecure=config.telemetry.insecure,
    )

    preflight = PreflightGuard()
    backup_manager = BackupManager()
    supervisor = ProcessSupervisorBridge()
    coordinator = RollbackCoordinator(supervisor)

    deploy = DeploymentOrchestrator(
        packager=packager,
        connector=connector,
        preflight=preflight,
        backup_manager=backup_manager,
        updater=ProjectUpdater(),
        supervisor=supervisor,
        rollback=coordinator,
        event_bus=event_bus,
        telemetry=telemetry,
    )

    return HoistContainer(
        connector=connector,
        packager=packager,
        event_bus=event_bus,
        telemetry=telemetry,
        deploy=deploy,
        rollback=RollbackDeployment(connector, backup_manager, coordinator),
        inspect=InspectHost(connector, preflight, backup_manager),
    )
