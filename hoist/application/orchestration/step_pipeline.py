"""
Step Pipeline

Architectural Intent:
- Deployment steps are totally ordered; step N+1 never starts before step N succeeded
- A step's failure is returned as a StepOutcome carrying the classified error
  kind, so the orchestrator routes on values rather than on unwinding
- Unexpected exceptions are classified as INTERNAL; cancellation still propagates
"""

from __future__ import annotations
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional
from hoist.domain.entities.deployment import DeploymentState
from hoist.domain.errors import ErrorKind, HoistError, classify

logger = logging.getLogger(__name__)


@dataclass
class DeploymentStep:
    name: str
    state: DeploymentState
    action: Callable[[], Awaitable[Any]]
    mutating: bool = False


@dataclass(frozen=True)
class StepOutcome:
    step: str
    duration_ms: float
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> Optional[ErrorKind]:
        return classify(self.error) if self.error is not None else None


async def run_step(step: DeploymentStep) -> StepOutcome:
    started = time.monotonic()
    logger.info("Step %s started", step.name)
    try:
        value = await step.action()
    except HoistError as e:
        elapsed = (time.monotonic() - started) * 1000
        logger.error("Step %s failed [%s]: %s", step.name, e.kind.value, e)
        return StepOutcome(step.name, elapsed, error=e)
    except Exception as e:
        elapsed = (time.monotonic() - started) * 1000
        logger.exception("Step %s failed with an unexpected error", step.name)
        return StepOutcome(step.name, elapsed, error=e)
    elapsed = (time.monotonic() - started) * 1000
    logger.info("Step %s finished in %.0f ms", step.name, elapsed)
    return StepOutcome(step.name, elapsed, value=value)
