"""
Application Orchestration Package

Architectural Intent:
- Sequential step execution for the deployment saga
"""

from hoist.application.orchestration.step_pipeline import (
    DeploymentStep,
    StepOutcome,
    run_step,
)

__all__ = ["DeploymentStep", "StepOutcome", "run_step"]
