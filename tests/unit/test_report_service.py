"""Unit tests for ReportService."""

import io
import json

import pytest

from core.models.errors import (
    AuthorizationError,
    ConfigurationStepError,
    OperationCancelledError,
    ProvisionTimeout,
    ValidationError,
)
from core.models.resource import ProvisionedResource, ResourceKind
from core.models.workflow import (
    ConfigurationOutcome,
    ProvisionResult,
    StepResult,
    StepStatus,
    WorkflowPhase,
    WorkflowResult,
)
from core.services.report_service import (
    EXIT_CANCELLED,
    EXIT_CONFIGURE_FAILED,
    EXIT_PROVISION_FAILED,
    EXIT_SUCCESS,
    EXIT_VALIDATION_FAILED,
    ReportService,
)


def provisioned():
    result = ProvisionResult(
        public_address="203.0.113.25",
        bucket_name="tech-challenge3-a1b2c3",
        instance_id="i-0001",
    )
    group = result.track(ProvisionedResource(ResourceKind.SECURITY_GROUP, "tech-challenge3-sg"))
    group.activate("sg-1")
    instance = result.track(ProvisionedResource(ResourceKind.INSTANCE, "tech-challenge3-web"))
    instance.activate("i-0001", adopted=True)
    return result


def configured(validation_error=None, response="<h1>Hello, World!</h1>"):
    outcome = ConfigurationOutcome(service_started=True, validation_response=response)
    outcome.steps.append(StepResult("install_package", StepStatus.CHANGED))
    outcome.steps.append(StepResult("ensure_service", StepStatus.UNCHANGED))
    outcome.validation_error = validation_error
    return outcome


class TestExitStatus:
    """Exit codes for each terminal state."""

    def setup_method(self):
        self.service = ReportService(stream=io.StringIO())

    def test_success(self):
        assert self.service.exit_status(provisioned(), configured()) == EXIT_SUCCESS

    def test_provision_only_success(self):
        assert self.service.exit_status(provisioned()) == EXIT_SUCCESS

    def test_provision_failure(self):
        result = ProvisionResult()
        result.add_error(AuthorizationError("denied", subject="iam_role"))

        assert self.service.exit_status(result) == EXIT_PROVISION_FAILED

    def test_configure_failure(self):
        failure = ConfigurationStepError("install_package", "exit status 100")

        assert self.service.exit_status(provisioned(), None, failure) == EXIT_CONFIGURE_FAILED

    def test_validation_failure(self):
        error = ValidationError("mismatch", expected="a", actual="b")

        assert self.service.exit_status(provisioned(), configured(error)) == EXIT_VALIDATION_FAILED

    def test_cancelled(self):
        result = ProvisionResult()
        result.add_error(OperationCancelledError("Cancelled while waiting", subject="instance"))

        assert self.service.exit_status(result) == EXIT_CANCELLED

    def test_cancelled_during_configuration(self):
        failure = OperationCancelledError("Cancelled while waiting", subject="transport")

        assert self.service.exit_status(provisioned(), None, failure) == EXIT_CANCELLED


class TestReport:
    """Rendered output for success and failure."""

    def setup_method(self):
        self.stream = io.StringIO()
        self.service = ReportService(stream=self.stream)

    def test_success_prints_outputs(self):
        status = self.service.report(provisioned(), configured())
        text = self.stream.getvalue()

        assert status == EXIT_SUCCESS
        assert "public_ip   = 203.0.113.25" in text
        assert "bucket_name = tech-challenge3-a1b2c3" in text
        assert "install_package" in text
        assert "FAILED" not in text

    def test_failure_lists_resources_for_cleanup(self):
        result = provisioned()
        result.public_address = None
        result.add_error(ProvisionTimeout("not running after 300s", subject="instance"))

        status = self.service.report(result)
        text = self.stream.getvalue()

        assert status == EXIT_PROVISION_FAILED
        assert "FAILED: ProvisionTimeout in instance: not running after 300s" in text
        assert "sg-1" in text
        assert "i-0001" in text
        assert "(pre-existing)" in text

    def test_all_failures_listed(self):
        result = ProvisionResult()
        result.add_error(AuthorizationError("denied", subject="iam_role"))
        result.add_error(ProvisionTimeout("slow", subject="instance"))

        self.service.report(result)
        text = self.stream.getvalue()

        assert "1. AuthorizationError [iam_role]: denied" in text
        assert "2. ProvisionTimeout [instance]: slow" in text

    def test_validation_failure_shows_body(self):
        error = ValidationError("mismatch", expected="<h1>Hello, World!</h1>", actual="<h1>x</h1>")

        status = self.service.report(provisioned(), configured(error, response="<h1>x</h1>"))
        text = self.stream.getvalue()

        assert status == EXIT_VALIDATION_FAILED
        assert "Served body: '<h1>x</h1>'" in text
        assert "public_ip   = 203.0.113.25" in text

    def test_workflow_failure_not_duplicated(self):
        workflow = WorkflowResult()
        error = AuthorizationError("denied", subject="iam_role")
        workflow.provision.add_error(error)
        workflow.mark_failed(WorkflowPhase.PROVISION, error)

        status = self.service.report_workflow(workflow)

        assert status == EXIT_PROVISION_FAILED
        assert self.stream.getvalue().count("denied") == 1

    def test_workflow_validation_failure(self):
        error = ValidationError("mismatch", expected="<h1>Hello, World!</h1>", actual="<h1>x</h1>")
        workflow = WorkflowResult(provision=provisioned())
        workflow.configuration = configured(error, response="<h1>x</h1>")
        workflow.mark_failed(WorkflowPhase.VALIDATE, error)

        status = self.service.report_workflow(workflow)
        text = self.stream.getvalue()

        assert status == EXIT_VALIDATION_FAILED
        assert text.count("ValidationError") == 1
        assert "FAILED: ValidationError" in text
        assert "All failures, in order:" not in text

    def test_workflow_configure_failure(self):
        error = ConfigurationStepError("install_package", "exit status 100")
        workflow = WorkflowResult(provision=provisioned())
        workflow.mark_failed(WorkflowPhase.CONFIGURE, error)

        assert self.service.report_workflow(workflow) == EXIT_CONFIGURE_FAILED


class TestWriteOutputs:
    """JSON outputs file."""

    def test_write_outputs(self, tmp_path):
        service = ReportService(stream=io.StringIO())
        path = tmp_path / "out" / "outputs.json"

        service.write_outputs(str(path), provisioned(), configured())
        document = json.loads(path.read_text())

        assert document["outputs"] == {
            "public_ip": "203.0.113.25",
            "bucket_name": "tech-challenge3-a1b2c3",
            "instance_id": "i-0001",
        }
        assert document["configuration"]["validated"] is True
        assert document["configuration"]["steps"]["install_package"] == "changed"
        assert {r["kind"] for r in document["resources"]} == {"security_group", "instance"}


if __name__ == "__main__":
    pytest.main([__file__])
