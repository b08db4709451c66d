"""AWS SSM client and the Run Command remote transport."""

import asyncio
import time
from typing import Any, Dict, List, Optional

from core.interfaces.transport_interface import IRemoteTransport
from core.models.errors import ConnectError, NotFoundError, ProvisionTimeout
from core.models.workflow import CommandOutput
from core.utils.polling import sleep_or_cancel
from .base_client import AWSClient

TERMINAL_COMMAND_STATUSES = {
    "Success", "Failed", "Cancelled", "TimedOut", "DeliveryTimedOut",
    "ExecutionTimedOut", "Undeliverable", "Terminated", "InvalidPlatform",
    "AccessDenied",
}


class SSMClient(AWSClient):
    """AWS SSM client wrapper for Systems Manager operations."""

    service_name = "ssm"

    async def get_ping_status(self, instance_id: str) -> Optional[str]:
        """SSM agent ping status, or None while the agent has not registered."""
        response = await self._call(
            "Describe instance information",
            "describe_instance_information",
            subject="transport",
            Filters=[{"Key": "InstanceIds", "Values": [instance_id]}],
        )
        info = response.get("InstanceInformationList", [])
        return info[0].get("PingStatus") if info else None

    async def send_command(
        self,
        instance_id: str,
        commands: List[str],
        timeout_seconds: int = 600,
        comment: Optional[str] = None,
    ) -> str:
        """Run shell commands as root via AWS-RunShellScript; returns the command id."""
        params = {
            "InstanceIds": [instance_id],
            "DocumentName": "AWS-RunShellScript",
            "Parameters": {
                "commands": commands,
                "executionTimeout": [str(timeout_seconds)],
            },
            "TimeoutSeconds": max(30, min(timeout_seconds, 2592000)),
        }
        if comment:
            params["Comment"] = comment[:100]

        response = await self._call("Send command", "send_command", subject="transport", **params)
        return response["Command"]["CommandId"]

    async def get_command_invocation(
        self, command_id: str, instance_id: str
    ) -> Optional[Dict[str, Any]]:
        """Invocation details; None until SSM has registered the invocation."""
        try:
            return await self._call(
                "Get command invocation",
                "get_command_invocation",
                subject="transport",
                CommandId=command_id,
                InstanceId=instance_id,
            )
        except NotFoundError:
            return None


class SSMTransport(IRemoteTransport):
    """Runs commands on one instance through SSM Run Command.

    Commands run as root, so every step has elevation without sudo.
    """

    def __init__(
        self,
        ssm_client: SSMClient,
        instance_id: str,
        poll_interval: float = 5.0,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        self.ssm_client = ssm_client
        self.instance_id = instance_id
        self.poll_interval = poll_interval
        self.cancel_event = cancel_event
        self.logger = ssm_client.logger

    async def wait_until_reachable(self, timeout_seconds: float) -> None:
        """Wait for the SSM agent to report Online."""
        deadline = time.monotonic() + timeout_seconds
        while True:
            status = await self.ssm_client.get_ping_status(self.instance_id)
            if status == "Online":
                self.logger.info(f"SSM agent online on {self.instance_id}")
                return

            if time.monotonic() >= deadline:
                raise ConnectError(
                    f"SSM agent on {self.instance_id} not online after "
                    f"{timeout_seconds}s (last status: {status or 'unregistered'})",
                    subject="transport",
                )

            self.logger.debug(f"SSM agent status for {self.instance_id}: {status}")
            await sleep_or_cancel(self.poll_interval, self.cancel_event, "transport")

    async def run(
        self, command: str, timeout_seconds: float, comment: Optional[str] = None
    ) -> CommandOutput:
        """Run ``command`` and wait for its exit status."""
        command_id = await self.ssm_client.send_command(
            self.instance_id, [command], int(timeout_seconds), comment
        )
        deadline = time.monotonic() + timeout_seconds

        while True:
            await sleep_or_cancel(self.poll_interval, self.cancel_event, "transport")

            invocation = await self.ssm_client.get_command_invocation(
                command_id, self.instance_id
            )
            if invocation and invocation["Status"] in TERMINAL_COMMAND_STATUSES:
                return CommandOutput(
                    exit_status=invocation.get("ResponseCode", -1),
                    stdout=invocation.get("StandardOutputContent", ""),
                    stderr=invocation.get("StandardErrorContent", "")
                    or invocation.get("StatusDetails", ""),
                )

            if time.monotonic() >= deadline:
                raise ProvisionTimeout(
                    f"Command {command_id} did not finish within {timeout_seconds}s",
                    subject="transport",
                )
