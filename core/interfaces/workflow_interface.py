"""Workflow orchestrator interface."""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional

from core.models.resource import ResourceSpecSet
from core.models.workflow import WorkflowResult


class IWorkflowOrchestrator(ABC):
    """Interface for running provision -> configure -> validate."""

    @abstractmethod
    async def run(
        self,
        specs: ResourceSpecSet,
        skip_configure: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> WorkflowResult:
        """Run every phase in order, stopping at the first fatal failure.

        Args:
            specs: Resource descriptors for this run
            skip_configure: Stop after provisioning
            cancel_event: Set to abort in-flight waits

        Returns:
            WorkflowResult with the phase and error that stopped the run
        """
        pass
