"""
Domain Ports Package

Architectural Intent:
- Contains port interfaces (abstract contracts) for external dependencies
- Ports define what the deployment needs, adapters implement how
"""

from hoist.domain.ports.remote_session_port import (
    CommandResult,
    Credentials,
    RemoteConnectorPort,
    RemoteSessionPort,
)
from hoist.domain.ports.artifact_packager_port import ArtifactPackagerPort
from hoist.domain.ports.event_bus_port import EventBusPort

__all__ = [
    "ArtifactPackagerPort",
    "CommandResult",
    "Credentials",
    "EventBusPort",
    "RemoteConnectorPort",
    "RemoteSessionPort",
]
