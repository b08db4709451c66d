"""Core interfaces for the provisioner."""

from .config_interface import IConfigService
from .provisioner_interface import IProvisionerService
from .configurator_interface import IConfiguratorService
from .transport_interface import IRemoteTransport
from .workflow_interface import IWorkflowOrchestrator

__all__ = [
    'IConfigService',
    'IProvisionerService',
    'IConfiguratorService',
    'IRemoteTransport',
    'IWorkflowOrchestrator',
]
