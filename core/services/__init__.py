"""Core business services for the provisioner."""

from .config_service import ConfigService
from .descriptor_service import build_resource_specs
from .provisioner_service import ProvisionerService
from .configurator_service import ConfiguratorService
from .report_service import ReportService

__all__ = [
    'ConfigService',
    'build_resource_specs',
    'ProvisionerService',
    'ConfiguratorService',
    'ReportService',
]
