"""Core data models for the provisioner."""

from .config import ProvisionConfig, AWSConfig, ExistingResourcePolicy
from .resource import (
    ResourceKind,
    ResourceStatus,
    ResourceSpecSet,
    ProvisionedResource,
)
from .workflow import (
    ProvisionResult,
    ConfigurationOutcome,
    StepResult,
    StepStatus,
    RemoteTarget,
    WorkflowResult,
    WorkflowPhase,
)

__all__ = [
    'ProvisionConfig',
    'AWSConfig',
    'ExistingResourcePolicy',
    'ResourceKind',
    'ResourceStatus',
    'ResourceSpecSet',
    'ProvisionedResource',
    'ProvisionResult',
    'ConfigurationOutcome',
    'StepResult',
    'StepStatus',
    'RemoteTarget',
    'WorkflowResult',
    'WorkflowPhase',
]
