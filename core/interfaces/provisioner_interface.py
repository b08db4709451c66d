"""Provisioner service interface."""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional

from core.models.resource import ResourceSpecSet
from core.models.workflow import ProvisionResult


class IProvisionerService(ABC):
    """Interface for creating the cloud resources of one run."""

    @abstractmethod
    async def provision(
        self, specs: ResourceSpecSet, cancel_event: Optional[asyncio.Event] = None
    ) -> ProvisionResult:
        """Create or adopt every resource in dependency order.

        Args:
            specs: The fixed resource descriptors
            cancel_event: Set to abort in-flight waits

        Returns:
            ProvisionResult; failures are recorded in ``errors`` in the order
            they happened, and the public address is only set when the
            instance is running
        """
        pass
