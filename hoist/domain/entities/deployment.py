"""
Deployment Module

Architectural Intent:
- Deployment aggregate is the consistency boundary for one promotion run
- Lifecycle managed through state transitions enforced by domain methods
- All state changes produce new instances to ensure auditability
- Domain events published for cross-context communication (logging, telemetry)

State machine:
    VALIDATING -> PACKAGING -> CONNECTING -> PREFLIGHT -> BACKING_UP
        -> UPDATING -> RESTARTING -> VERIFYING -> SUCCEEDED
    Before a snapshot exists every failure ends in FAILED_PRECHECK.
    Once a snapshot exists every failure goes through ROLLING_BACK
    into ROLLED_BACK or ROLLBACK_FAILED.
"""

from __future__ import annotations
import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
from hoist.domain.errors import HoistError, classify
from hoist.domain.events.event_base import DomainEvent
from hoist.domain.value_objects.snapshot import BackupSnapshot


class DeploymentState(Enum):
    VALIDATING = "validating"
    PACKAGING = "packaging"
    CONNECTING = "connecting"
    PREFLIGHT = "preflight"
    BACKING_UP = "backing_up"
    UPDATING = "updating"
    RESTARTING = "restarting"
    VERIFYING = "verifying"
    SUCCEEDED = "succeeded"
    ROLLING_BACK = "rolling_back"
    ROLLED_BACK = "rolled_back"
    ROLLBACK_FAILED = "rollback_failed"
    FAILED_PRECHECK = "failed_precheck"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL


class Outcome(Enum):
    SUCCEEDED = "succeeded"
    ROLLED_BACK = "rolled_back"
    ROLLBACK_FAILED = "rollback_failed"
    FAILED_PRECHECK = "failed_precheck"


S = DeploymentState

_TERMINAL = frozenset({S.SUCCEEDED, S.ROLLED_BACK, S.ROLLBACK_FAILED, S.FAILED_PRECHECK})

_TRANSITIONS: dict[DeploymentState, frozenset[DeploymentState]] = {
    S.VALIDATING: frozenset({S.PACKAGING, S.FAILED_PRECHECK}),
    S.PACKAGING: frozenset({S.CONNECTING, S.FAILED_PRECHECK}),
    S.CONNECTING: frozenset({S.PREFLIGHT, S.FAILED_PRECHECK}),
    S.PREFLIGHT: frozenset({S.BACKING_UP, S.FAILED_PRECHECK}),
    # A backup that never materialised leaves nothing to restore.
    S.BACKING_UP: frozenset({S.UPDATING, S.ROLLING_BACK, S.FAILED_PRECHECK}),
    S.UPDATING: frozenset({S.RESTARTING, S.ROLLING_BACK}),
    S.RESTARTING: frozenset({S.VERIFYING, S.ROLLING_BACK}),
    S.VERIFYING: frozenset({S.SUCCEEDED, S.ROLLING_BACK}),
    S.ROLLING_BACK: frozenset({S.ROLLED_BACK, S.ROLLBACK_FAILED}),
}

_OUTCOMES = {
    S.SUCCEEDED: Outcome.SUCCEEDED,
    S.ROLLED_BACK: Outcome.ROLLED_BACK,
    S.ROLLBACK_FAILED: Outcome.ROLLBACK_FAILED,
    S.FAILED_PRECHECK: Outcome.FAILED_PRECHECK,
}

EXIT_CODES = {
    Outcome.SUCCEEDED: 0,
    Outcome.FAILED_PRECHECK: 1,
    Outcome.ROLLED_BACK: 2,
    Outcome.ROLLBACK_FAILED: 3,
}


class InvalidTransition(HoistError):
    pass


@dataclass(frozen=True)
class DeploymentStateChanged(DomainEvent):
    from_state: str = ""
    to_state: str = ""


@dataclass(frozen=True)
class DeploymentFinished(DomainEvent):
    outcome: str = ""
    failed_step: Optional[str] = None
    error_message: Optional[str] = None
    rollback_error_message: Optional[str] = None


@dataclass(frozen=True)
class DeploymentResult:
    """Terminal record of one run."""

    outcome: Outcome
    failed_step: Optional[str] = None
    error: Optional[BaseException] = None
    rollback_error: Optional[BaseException] = None
    snapshot: Optional[BackupSnapshot] = None
    warnings: tuple[str, ...] = ()
    history: tuple[DeploymentState, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.outcome is Outcome.SUCCEEDED

    @property
    def exit_code(self) -> int:
        return EXIT_CODES[self.outcome]

    def summary(self) -> str:
        if self.outcome is Outcome.SUCCEEDED:
            text = "Deployment succeeded"
            if self.snapshot is not None and not self.snapshot.is_sentinel:
                text += f" (previous version kept at {self.snapshot})"
            return text

        kind = classify(self.error).value if self.error else "unknown"
        text = f"Deployment failed at step '{self.failed_step}' [{kind}]: {self.error}"
        if self.outcome is Outcome.FAILED_PRECHECK:
            return text + "; nothing was changed on the host"
        if self.outcome is Outcome.ROLLED_BACK:
            return text + f"; rolled back to {self.snapshot}"
        return (
            text + f"; ROLLBACK FAILED: {self.rollback_error}. "
            "The host may be partially restored and needs manual attention"
        )


@dataclass(frozen=True)
class Deployment:
    run_id: str
    state: DeploymentState = DeploymentState.VALIDATING
    history: tuple[DeploymentState, ...] = (DeploymentState.VALIDATING,)
    snapshot: Optional[BackupSnapshot] = None
    failed_step: Optional[str] = None
    error: Optional[BaseException] = None
    rollback_error: Optional[BaseException] = None
    warnings: tuple[str, ...] = ()
    domain_events: tuple[DomainEvent, ...] = field(default=(), repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def has_snapshot(self) -> bool:
        return self.snapshot is not None

    def advance(self, to_state: DeploymentState) -> "Deployment":
        allowed = _TRANSITIONS.get(self.state, frozenset())
        if to_state not in allowed:
            raise InvalidTransition(
                f"Illegal deployment transition {self.state.name} -> {to_state.name}"
            )
        event = DeploymentStateChanged(
            aggregate_id=self.run_id,
            from_state=self.state.value,
            to_state=to_state.value,
        )
        changed = dataclasses.replace(
            self,
            state=to_state,
            history=self.history + (to_state,),
            domain_events=self.domain_events + (event,),
        )
        if to_state.is_terminal:
            changed = changed._finished()
        return changed

    def record_snapshot(self, snapshot: BackupSnapshot) -> "Deployment":
        if self.state is not DeploymentState.BACKING_UP:
            raise InvalidTransition("Snapshots are only recorded while BACKING_UP")
        return dataclasses.replace(self, snapshot=snapshot)

    def warn(self, message: str) -> "Deployment":
        return dataclasses.replace(self, warnings=self.warnings + (message,))

    def fail_precheck(self, step: str, error: BaseException) -> "Deployment":
        if self.has_snapshot:
            raise InvalidTransition("A snapshot exists; failures must roll back")
        return dataclasses.replace(self, failed_step=step, error=error).advance(
            DeploymentState.FAILED_PRECHECK
        )

    def begin_rollback(self, step: str, error: BaseException) -> "Deployment":
        if not self.has_snapshot:
            raise InvalidTransition("Cannot roll back without a snapshot")
        return dataclasses.replace(self, failed_step=step, error=error).advance(
            DeploymentState.ROLLING_BACK
        )

    def complete_rollback(self) -> "Deployment":
        return self.advance(DeploymentState.ROLLED_BACK)

    def fail_rollback(self, error: BaseException) -> "Deployment":
        return dataclasses.replace(self, rollback_error=error).advance(
            DeploymentState.ROLLBACK_FAILED
        )

    def to_result(self) -> DeploymentResult:
        if not self.is_terminal:
            raise InvalidTransition(f"Deployment still in progress ({self.state.name})")
        return DeploymentResult(
            outcome=_OUTCOMES[self.state],
            failed_step=self.failed_step,
            error=self.error,
            rollback_error=self.rollback_error,
            snapshot=self.snapshot,
            warnings=self.warnings,
            history=self.history,
        )

    def _finished(self) -> "Deployment":
        event = DeploymentFinished(
            aggregate_id=self.run_id,
            outcome=_OUTCOMES[self.state].value,
            failed_step=self.failed_step,
            error_message=str(self.error) if self.error else None,
            rollback_error_message=(
                str(self.rollback_error) if self.rollback_error else None
            ),
        )
        return dataclasses.replace(self, domain_events=self.domain_events + (event,))
