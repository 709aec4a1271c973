"""Run state models for a deployment in progress.

A :class:`DeploymentRunState` is an immutable snapshot. The orchestrator
publishes a new snapshot on every transition instead of mutating fields in
place, so observers never see a half-updated state.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from velodeploy.lib.errors import DeploymentError, DeploymentErrorKind


class DeploymentStep(str, Enum):
    """Ordered deployment pipeline steps.

    Declaration order is execution order.
    """

    PREPARATION = "preparation"
    ACQUISITION = "acquisition"
    DIRECTORY_PROVISIONING = "directory_provisioning"
    CONFIGURATION_GENERATION = "configuration_generation"
    SERVICE_REGISTRATION = "service_registration"
    SERVICE_START = "service_start"
    VERIFICATION = "verification"

    @property
    def label(self) -> str:
        """Human-readable step name."""
        return STEP_LABELS[self]

    @property
    def checkpoint(self) -> float:
        """Overall progress reached once this step completes."""
        return STEP_CHECKPOINTS[self]


STEP_LABELS: dict[DeploymentStep, str] = {
    DeploymentStep.PREPARATION: "Preparation",
    DeploymentStep.ACQUISITION: "Acquisition",
    DeploymentStep.DIRECTORY_PROVISIONING: "Directories",
    DeploymentStep.CONFIGURATION_GENERATION: "Configuration",
    DeploymentStep.SERVICE_REGISTRATION: "Service Installation",
    DeploymentStep.SERVICE_START: "Startup",
    DeploymentStep.VERIFICATION: "Verification",
}

STEP_CHECKPOINTS: dict[DeploymentStep, float] = {
    DeploymentStep.PREPARATION: 0.1,
    DeploymentStep.ACQUISITION: 0.4,
    DeploymentStep.DIRECTORY_PROVISIONING: 0.5,
    DeploymentStep.CONFIGURATION_GENERATION: 0.6,
    DeploymentStep.SERVICE_REGISTRATION: 0.8,
    DeploymentStep.SERVICE_START: 0.9,
    DeploymentStep.VERIFICATION: 1.0,
}


class StepState(str, Enum):
    """Lifecycle state of a single step."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class StepError(BaseModel):
    """Serializable view of a deployment error."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: DeploymentErrorKind = Field(..., description="Failure category")
    message: str = Field(..., description="Human-readable message")
    recovery_suggestion: str = Field(..., description="Suggested remedy")

    @classmethod
    def from_exception(cls, error: DeploymentError) -> StepError:
        """Build a StepError from a raised DeploymentError."""
        return cls(
            kind=error.kind,
            message=error.message,
            recovery_suggestion=error.recovery_suggestion,
        )


class StepStatus(BaseModel):
    """Status of one step; ``error`` is set only when the step failed."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    state: StepState = Field(default=StepState.PENDING)
    error: StepError | None = Field(default=None)

    @classmethod
    def failed(cls, error: StepError) -> StepStatus:
        """Create a failed status carrying ``error``."""
        return cls(state=StepState.FAILED, error=error)


def _all_pending() -> dict[DeploymentStep, StepStatus]:
    return {step: StepStatus() for step in DeploymentStep}


class DeploymentRunState(BaseModel):
    """Snapshot of a deployment run.

    Attributes:
        progress: Overall progress between 0.0 and 1.0
        status_message: Human-readable status line
        steps: Status of every step, keyed by step
        is_deploying: Whether a run is in flight
        last_error: Error of the most recent failure, if any
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    progress: float = Field(default=0.0, ge=0.0, le=1.0)
    status_message: str = Field(default="")
    steps: dict[DeploymentStep, StepStatus] = Field(default_factory=_all_pending)
    is_deploying: bool = Field(default=False)
    last_error: StepError | None = Field(default=None)

    @classmethod
    def initial(cls) -> DeploymentRunState:
        """Return an idle state with every step pending."""
        return cls()

    def status_of(self, step: DeploymentStep) -> StepStatus:
        """Return the status of ``step``."""
        return self.steps[step]

    def with_step(
        self, step: DeploymentStep, status: StepStatus, **changes: object
    ) -> DeploymentRunState:
        """Return a copy with ``step`` set to ``status`` and other fields updated."""
        steps = dict(self.steps)
        steps[step] = status
        return self.model_copy(update={"steps": steps, **changes})

    @property
    def failed_step(self) -> DeploymentStep | None:
        """The step that failed in this run, if any."""
        for step, status in self.steps.items():
            if status.state == StepState.FAILED:
                return step
        return None

    @property
    def completed_steps(self) -> list[DeploymentStep]:
        """Steps that completed, in execution order."""
        return [
            step
            for step in DeploymentStep
            if self.steps[step].state == StepState.COMPLETED
        ]
