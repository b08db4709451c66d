"""Remote management transport interface."""

from abc import ABC, abstractmethod
from typing import Optional

from core.models.workflow import CommandOutput


class IRemoteTransport(ABC):
    """Runs commands on a remote host as an elevated user."""

    @abstractmethod
    async def wait_until_reachable(self, timeout_seconds: float) -> None:
        """Block until the host accepts commands.

        Raises:
            ConnectError: If the host is not reachable within the timeout
        """
        pass

    @abstractmethod
    async def run(
        self, command: str, timeout_seconds: float, comment: Optional[str] = None
    ) -> CommandOutput:
        """Run a shell command and return its exit status and output."""
        pass
