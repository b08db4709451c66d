"""Output reporting: final summary, failures and exit status."""

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO

from core.models.errors import OperationCancelledError, ProvisionerError
from core.models.workflow import (
    ConfigurationOutcome,
    ProvisionResult,
    WorkflowPhase,
    WorkflowResult,
)

EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 2
EXIT_PROVISION_FAILED = 3
EXIT_CONFIGURE_FAILED = 4
EXIT_VALIDATION_FAILED = 5
EXIT_CANCELLED = 130


class ReportService:
    """Renders the run's outputs or its failures; no retries happen here."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stdout
        self.logger = logging.getLogger(__name__)

    def _write(self, line: str = "") -> None:
        print(line, file=self.stream)

    def exit_status(
        self,
        result: ProvisionResult,
        outcome: Optional[ConfigurationOutcome] = None,
        failure: Optional[ProvisionerError] = None,
    ) -> int:
        """Exit code distinguishing provision, configure and validate failures."""
        first = result.first_error or failure
        if isinstance(first, OperationCancelledError):
            return EXIT_CANCELLED
        if result.errors or not result.succeeded:
            return EXIT_PROVISION_FAILED
        if failure is not None:
            return EXIT_CONFIGURE_FAILED
        if outcome is not None and outcome.validation_error is not None:
            return EXIT_VALIDATION_FAILED
        return EXIT_SUCCESS

    def report(
        self,
        result: ProvisionResult,
        outcome: Optional[ConfigurationOutcome] = None,
        failure: Optional[ProvisionerError] = None,
    ) -> int:
        """Print outputs on success, or the failures and leftover resources."""
        status = self.exit_status(result, outcome, failure)
        errors: List[ProvisionerError] = list(result.errors)
        if failure is not None:
            errors.append(failure)
        if outcome is not None and outcome.validation_error is not None:
            errors.append(outcome.validation_error)

        if status == EXIT_SUCCESS:
            self._write("Provisioning and configuration complete")
            self._write(f"  public_ip   = {result.public_address}")
            self._write(f"  bucket_name = {result.bucket_name}")
            self._write(f"  instance_id = {result.instance_id}")
            if outcome is not None:
                self._write_steps(outcome)
            return status

        first = errors[0] if errors else None
        if first is not None:
            self._write(f"FAILED: {first.kind} in {first.subject or 'run'}: {first.message}")
        else:
            self._write("FAILED: provisioning did not produce a reachable instance")

        if len(errors) > 1:
            self._write("All failures, in order:")
            for index, error in enumerate(errors, start=1):
                self._write(f"  {index}. {error}")

        if outcome is not None:
            self._write_steps(outcome)
            if outcome.validation_error is not None:
                self._write(
                    f"Served body: {outcome.validation_response!r} "
                    f"(expected {outcome.validation_error.expected!r})"
                )

        identified = [r for r in result.resources if r.identifier]
        if identified:
            self._write("Resources that exist and may need manual cleanup:")
            for resource in identified:
                note = " (pre-existing)" if resource.adopted else ""
                self._write(
                    f"  {resource.kind.value:<16} {resource.identifier} "
                    f"[{resource.status.value}]{note}"
                )
        if result.public_address:
            self._write(f"  public_ip   = {result.public_address}")

        self.logger.debug(f"Reported failure with exit status {status}")
        return status

    def report_workflow(self, workflow_result: WorkflowResult) -> int:
        failure = workflow_result.error
        # provision errors and the validation error are reported from their own records
        if failure in workflow_result.provision.errors:
            failure = None
        elif workflow_result.failed_phase == WorkflowPhase.VALIDATE:
            failure = None
        return self.report(workflow_result.provision, workflow_result.configuration, failure)

    def _write_steps(self, outcome: ConfigurationOutcome) -> None:
        for step in outcome.steps:
            self._write(f"  step {step.name:<22} {step.status.value}")

    def write_outputs(
        self,
        path: str,
        result: ProvisionResult,
        outcome: Optional[ConfigurationOutcome] = None,
    ) -> Path:
        """Write outputs and resource identifiers as JSON."""
        document: Dict[str, Any] = {
            "generated_at": datetime.utcnow().isoformat(),
            "outputs": result.outputs(),
            "resources": [r.to_dict() for r in result.resources],
            "errors": [
                {"kind": e.kind, "subject": e.subject, "message": e.message}
                for e in result.errors
            ],
        }
        if outcome is not None:
            document["configuration"] = {
                "service_started": outcome.service_started,
                "validated": outcome.validated,
                "steps": {s.name: s.status.value for s in outcome.steps},
            }

        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as file:
            json.dump(document, file, indent=2)
        self.logger.info(f"Outputs written to {output_path}")
        return output_path
