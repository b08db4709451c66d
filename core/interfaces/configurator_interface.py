"""Remote configurator service interface."""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional

from core.models.workflow import ConfigurationOutcome, RemoteTarget


class IConfiguratorService(ABC):
    """Interface for the fixed post-boot configuration of the web host."""

    @abstractmethod
    async def configure(
        self, target: RemoteTarget, cancel_event: Optional[asyncio.Event] = None
    ) -> ConfigurationOutcome:
        """Run every configuration step, then validate the served page.

        Args:
            target: Instance to configure
            cancel_event: Set to abort in-flight waits

        Returns:
            ConfigurationOutcome; a content mismatch is reported through
            ``validation_error`` rather than raised

        Raises:
            ConnectError: If the host never becomes reachable
            ConfigurationStepError: If any step fails
        """
        pass
