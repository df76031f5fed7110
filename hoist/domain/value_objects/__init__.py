"""
Domain Value Objects

Architectural Intent:
- Immutable, self-validating values shared by every layer
"""

from hoist.domain.value_objects.artifact import Artifact
from hoist.domain.value_objects.remote_command import Idempotency, RemoteCommand
from hoist.domain.value_objects.retry_policy import RetryPolicy
from hoist.domain.value_objects.snapshot import BackupSnapshot, NO_SNAPSHOT
from hoist.domain.value_objects.target_host import TargetHost

__all__ = [
    "Artifact",
    "BackupSnapshot",
    "Idempotency",
    "NO_SNAPSHOT",
    "RemoteCommand",
    "RetryPolicy",
    "TargetHost",
]
