"""Remote configuration of the web host.

Each step is a small shell script that inspects the host before acting and
ends by printing ``STEP_RESULT=changed`` or ``STEP_RESULT=unchanged``, so a
re-run against a configured host changes nothing and says so.
"""

import asyncio
import base64
import logging
import re
import shlex
from dataclasses import dataclass
from typing import Callable, List, Optional

from core.interfaces.configurator_interface import IConfiguratorService
from core.interfaces.transport_interface import IRemoteTransport
from core.models.config import WebServerConfig
from core.models.errors import (
    ConfigurationStepError,
    OperationCancelledError,
    ProvisionerError,
    ValidationError,
)
from core.models.workflow import (
    ConfigurationOutcome,
    RemoteTarget,
    StepResult,
    StepStatus,
)

MARKER_PATTERN = re.compile(r"^STEP_RESULT=(changed|unchanged)\s*$", re.MULTILINE)
APT_STAMP = "/var/lib/webhost-provisioner/apt-updated"

TransportFactory = Callable[[RemoteTarget, Optional[asyncio.Event]], IRemoteTransport]


@dataclass(frozen=True)
class ConfigurationStep:
    name: str
    script: str


REFRESH_PACKAGE_INDEX = """set -e
stamp={stamp}
if [ -f "$stamp" ] && [ $(( $(date +%s) - $(stat -c %Y "$stamp") )) -lt {cache_valid} ]; then
  echo STEP_RESULT=unchanged
else
  apt-get update -q
  mkdir -p "$(dirname "$stamp")"
  touch "$stamp"
  echo STEP_RESULT=changed
fi
"""

INSTALL_PACKAGE = """set -e
if dpkg-query -W -f='${{Status}}' {package} 2>/dev/null | grep -q 'install ok installed'; then
  echo STEP_RESULT=unchanged
else
  DEBIAN_FRONTEND=noninteractive apt-get install -y -q {package}
  echo STEP_RESULT=changed
fi
"""

WRITE_STATIC_PAGE = """set -e
page={page}
want=$(printf '%s' {content} | base64 -d | sha256sum | cut -d' ' -f1)
have=$([ -f "$page" ] && sha256sum "$page" | cut -d' ' -f1 || true)
meta=$([ -f "$page" ] && stat -c '%U:%G:%a' "$page" || true)
if [ "$want" = "$have" ] && [ "$meta" = {expected_meta} ]; then
  echo STEP_RESULT=unchanged
else
  mkdir -p {web_root}
  printf '%s' {content} | base64 -d > "$page.tmp"
  chown {owner}:{group} "$page.tmp"
  chmod {mode} "$page.tmp"
  mv "$page.tmp" "$page"
  echo STEP_RESULT=changed
fi
"""

ENSURE_SERVICE = """set -e
if systemctl is-active --quiet {service} && systemctl is-enabled --quiet {service}; then
  echo STEP_RESULT=unchanged
else
  systemctl enable --now {service}
  systemctl is-active --quiet {service}
  echo STEP_RESULT=changed
fi
"""


def build_steps(config: WebServerConfig) -> List[ConfigurationStep]:
    """The fixed, ordered configuration steps."""
    page = f"{config.web_root.rstrip('/')}/{config.page_name}"
    encoded = base64.b64encode(config.page_content.encode("utf-8")).decode("ascii")
    mode = int(config.mode, 8)

    return [
        ConfigurationStep(
            "refresh_package_index",
            REFRESH_PACKAGE_INDEX.format(
                stamp=shlex.quote(APT_STAMP), cache_valid=int(config.cache_valid_seconds)
            ),
        ),
        ConfigurationStep(
            "install_package",
            INSTALL_PACKAGE.format(package=shlex.quote(config.package)),
        ),
        ConfigurationStep(
            "write_static_page",
            WRITE_STATIC_PAGE.format(
                page=shlex.quote(page),
                content=shlex.quote(encoded),
                expected_meta=shlex.quote(f"{config.owner}:{config.group}:{mode:o}"),
                web_root=shlex.quote(config.web_root),
                owner=shlex.quote(config.owner),
                group=shlex.quote(config.group),
                mode=f"{mode:04o}",
            ),
        ),
        ConfigurationStep(
            "ensure_service",
            ENSURE_SERVICE.format(service=shlex.quote(config.service)),
        ),
    ]


def validation_command(timeout_seconds: int) -> str:
    return f"curl -s --max-time {int(timeout_seconds)} http://127.0.0.1/"


class ConfiguratorService(IConfiguratorService):
    """Configures the web server over a remote transport and validates it."""

    def __init__(
        self,
        transport_factory: TransportFactory,
        webserver_config: WebServerConfig,
        connect_timeout_seconds: float = 300,
        command_timeout_seconds: float = 600,
        http_timeout_seconds: int = 10,
    ):
        self.transport_factory = transport_factory
        self.webserver_config = webserver_config
        self.connect_timeout_seconds = connect_timeout_seconds
        self.command_timeout_seconds = command_timeout_seconds
        self.http_timeout_seconds = http_timeout_seconds
        self.steps = build_steps(webserver_config)
        self.logger = logging.getLogger(__name__)

    def _handle_error(self, step: str, cause: str) -> None:
        """Log and raise a fatal step failure."""
        self.logger.error(f"Step {step} failed: {cause}")
        raise ConfigurationStepError(step, cause)

    async def configure(
        self, target: RemoteTarget, cancel_event: Optional[asyncio.Event] = None
    ) -> ConfigurationOutcome:
        self.logger.info(f"Configuring {target.instance_id} ({target.address})")
        transport = self.transport_factory(target, cancel_event)
        await transport.wait_until_reachable(self.connect_timeout_seconds)

        outcome = ConfigurationOutcome()
        for step in self.steps:
            step_result = await self._run_step(transport, step)
            outcome.steps.append(step_result)
            self.logger.info(f"Step {step.name}: {step_result.status.value}")

        outcome.service_started = True
        await self._validate(transport, outcome)
        return outcome

    async def _run_step(
        self, transport: IRemoteTransport, step: ConfigurationStep
    ) -> StepResult:
        try:
            output = await transport.run(
                step.script, self.command_timeout_seconds, comment=step.name
            )
        except OperationCancelledError:
            raise
        except ProvisionerError as e:
            self._handle_error(step.name, str(e))

        if not output.ok:
            detail = (output.stderr or output.stdout).strip()
            self._handle_error(step.name, f"exit status {output.exit_status}: {detail}")

        markers = MARKER_PATTERN.findall(output.stdout)
        if not markers:
            self._handle_error(step.name, "step finished without reporting a result")

        return StepResult(step.name, StepStatus(markers[-1]), output.stdout.strip())

    async def _validate(
        self, transport: IRemoteTransport, outcome: ConfigurationOutcome
    ) -> None:
        """Fetch the page through loopback on the host and compare it."""
        expected = self.webserver_config.page_content
        try:
            output = await transport.run(
                validation_command(self.http_timeout_seconds),
                self.http_timeout_seconds + 60,
                comment="validate",
            )
        except OperationCancelledError:
            raise
        except ProvisionerError as e:
            outcome.validation_error = ValidationError(
                f"Could not fetch the page: {e}", expected=expected, actual=None
            )
            self.logger.error(str(outcome.validation_error))
            return

        body = output.stdout.rstrip("\r\n") if output.ok else None
        outcome.validation_response = body

        if body != expected:
            reason = (
                f"request failed with exit status {output.exit_status}"
                if body is None
                else f"unexpected body {body!r}"
            )
            outcome.validation_error = ValidationError(
                f"GET http://127.0.0.1/ returned {reason}, expected {expected!r}",
                expected=expected,
                actual=body,
            )
            self.logger.error(str(outcome.validation_error))
            return

        self.logger.info("Validation passed: page content matches")
