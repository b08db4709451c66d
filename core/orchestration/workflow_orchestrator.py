import asyncio
import logging
from typing import Optional

from core.interfaces.configurator_interface import IConfiguratorService
from core.interfaces.provisioner_interface import IProvisionerService
from core.interfaces.workflow_interface import IWorkflowOrchestrator
from core.models.errors import ProviderError, ProvisionerError
from core.models.resource import ResourceSpecSet
from core.models.workflow import WorkflowPhase, WorkflowResult


class WorkflowOrchestrator(IWorkflowOrchestrator):
    """Runs provisioning, then remote configuration, strictly in sequence."""

    def __init__(
        self,
        provisioner_service: IProvisionerService,
        configurator_service: IConfiguratorService,
    ):
        self.provisioner_service = provisioner_service
        self.configurator_service = configurator_service
        self.logger = logging.getLogger(__name__)

    def _handle_error(
        self, workflow_result: WorkflowResult, phase: WorkflowPhase, error: ProvisionerError
    ) -> WorkflowResult:
        """Centralized error handling."""
        self.logger.error(f"{phase.value} failed: {error}")
        workflow_result.mark_failed(phase, error)
        return workflow_result

    async def run(
        self,
        specs: ResourceSpecSet,
        skip_configure: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> WorkflowResult:
        workflow_result = WorkflowResult()
        self.logger.info(f"Starting workflow {workflow_result.workflow_id}")

        workflow_result.provision = await self.provisioner_service.provision(
            specs, cancel_event
        )
        provision = workflow_result.provision
        if not provision.succeeded:
            error = provision.first_error or ProviderError(
                "Instance has no public address", subject="instance"
            )
            return self._handle_error(workflow_result, WorkflowPhase.PROVISION, error)

        if skip_configure:
            self.logger.info("Skipping remote configuration")
            workflow_result.mark_finished()
            return workflow_result

        try:
            workflow_result.configuration = await self.configurator_service.configure(
                provision.to_target(), cancel_event
            )
        except ProvisionerError as e:
            return self._handle_error(workflow_result, WorkflowPhase.CONFIGURE, e)

        validation_error = workflow_result.configuration.validation_error
        if validation_error is not None:
            return self._handle_error(
                workflow_result, WorkflowPhase.VALIDATE, validation_error
            )

        workflow_result.mark_finished()
        self.logger.info(
            f"Workflow {workflow_result.workflow_id} completed in {workflow_result.duration}"
        )
        return workflow_result
