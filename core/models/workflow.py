from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Any
from uuid import uuid4

from core.models.errors import ProvisionerError, ValidationError
from core.models.resource import ProvisionedResource, ResourceKind


class WorkflowPhase(Enum):
    """Workflow execution phases."""
    PROVISION = "provision"
    CONFIGURE = "configure"
    VALIDATE = "validate"


class StepStatus(Enum):
    """Outcome of one remote configuration step."""
    CHANGED = "changed"
    UNCHANGED = "unchanged"
    FAILED = "failed"


@dataclass(frozen=True)
class RemoteTarget:
    """Host the configurator works on."""
    instance_id: str
    address: str


@dataclass(frozen=True)
class CommandOutput:
    """Exit status and output of a remote command."""
    exit_status: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


@dataclass
class ProvisionResult:
    """Everything the provisioner produced, including what failed."""

    public_address: Optional[str] = None
    bucket_name: Optional[str] = None
    instance_id: Optional[str] = None
    resources: List[ProvisionedResource] = field(default_factory=list)
    errors: List[ProvisionerError] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.errors and self.public_address is not None

    @property
    def first_error(self) -> Optional[ProvisionerError]:
        return self.errors[0] if self.errors else None

    def track(self, resource: ProvisionedResource) -> ProvisionedResource:
        self.resources.append(resource)
        return resource

    def add_error(self, error: ProvisionerError) -> None:
        self.errors.append(error)

    def get_resource(self, kind: ResourceKind) -> Optional[ProvisionedResource]:
        for resource in self.resources:
            if resource.kind == kind:
                return resource
        return None

    @property
    def completed_resources(self) -> List[ProvisionedResource]:
        return [r for r in self.resources if r.is_active]

    def to_target(self) -> RemoteTarget:
        if not self.succeeded:
            raise ValueError("Provisioning did not complete; no remote target available")
        return RemoteTarget(instance_id=self.instance_id, address=self.public_address)

    def outputs(self) -> Dict[str, Any]:
        return {
            "public_ip": self.public_address,
            "bucket_name": self.bucket_name,
            "instance_id": self.instance_id,
        }


@dataclass
class StepResult:
    """Result of a single configuration step."""
    name: str
    status: StepStatus
    detail: str = ""

    @property
    def changed(self) -> bool:
        return self.status == StepStatus.CHANGED


@dataclass
class ConfigurationOutcome:
    """Terminal record of the remote configuration run."""

    service_started: bool = False
    validation_response: Optional[str] = None
    steps: List[StepResult] = field(default_factory=list)
    validation_error: Optional[ValidationError] = None

    @property
    def succeeded(self) -> bool:
        return self.service_started

    @property
    def validated(self) -> bool:
        return self.service_started and self.validation_error is None

    @property
    def changed_steps(self) -> List[str]:
        return [step.name for step in self.steps if step.changed]


@dataclass
class WorkflowResult:
    """Complete run: provisioning, configuration and the first fatal error."""

    workflow_id: str = field(default_factory=lambda: str(uuid4()))
    start_time: datetime = field(default_factory=datetime.utcnow)
    end_time: Optional[datetime] = None

    provision: ProvisionResult = field(default_factory=ProvisionResult)
    configuration: Optional[ConfigurationOutcome] = None

    failed_phase: Optional[WorkflowPhase] = None
    error: Optional[ProvisionerError] = None

    @property
    def duration(self) -> Optional[timedelta]:
        """Calculate total workflow duration."""
        if self.end_time:
            return self.end_time - self.start_time
        return None

    def mark_failed(self, phase: WorkflowPhase, error: ProvisionerError) -> None:
        if self.error is None:
            self.failed_phase = phase
            self.error = error
        self.end_time = datetime.utcnow()

    def mark_finished(self) -> None:
        self.end_time = datetime.utcnow()
