"""
Deployment Step Services

Architectural Intent:
- One service per deployment concern; each talks to the host only through
  the DeploymentContext it is handed
"""

from hoist.application.services.backup import BackupManager
from hoist.application.services.preflight import PreflightGuard
from hoist.application.services.supervisor import ProcessSupervisorBridge
from hoist.application.services.updater import ProjectUpdater

__all__ = [
    "BackupManager",
    "PreflightGuard",
    "ProcessSupervisorBridge",
    "ProjectUpdater",
]
