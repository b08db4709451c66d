"""Unit tests for ConfiguratorService and its step scripts."""

import asyncio

import pytest

from core.models.config import WebServerConfig
from core.models.errors import (
    ConfigurationStepError,
    ConnectError,
    OperationCancelledError,
    ProvisionTimeout,
)
from core.models.workflow import CommandOutput, RemoteTarget, StepStatus
from core.services.configurator_service import (
    MARKER_PATTERN,
    ConfiguratorService,
    build_steps,
    validation_command,
)
from fakes import FakeHost, FakeTransport

STEP_NAMES = [
    "refresh_package_index",
    "install_package",
    "write_static_page",
    "ensure_service",
]
TARGET = RemoteTarget(instance_id="i-0001", address="203.0.113.25")


def make_service(transport, config=None):
    return ConfiguratorService(
        transport_factory=lambda target, event: transport,
        webserver_config=config or WebServerConfig(),
        connect_timeout_seconds=1,
        command_timeout_seconds=1,
        http_timeout_seconds=1,
    )


class TestBuildSteps:
    """Step scripts generated from the web server settings."""

    def test_fixed_order(self):
        assert [step.name for step in build_steps(WebServerConfig())] == STEP_NAMES

    def test_every_step_reports_result(self):
        for step in build_steps(WebServerConfig()):
            assert "echo STEP_RESULT=unchanged" in step.script
            assert "echo STEP_RESULT=changed" in step.script
            assert step.script.startswith("set -e")

    def test_package_and_service_names(self):
        steps = {step.name: step.script for step in build_steps(WebServerConfig())}

        assert "apt-get install -y -q apache2" in steps["install_package"]
        assert "systemctl enable --now apache2" in steps["ensure_service"]
        assert "apt-get update" in steps["refresh_package_index"]

    def test_page_content_is_encoded(self):
        config = WebServerConfig(page_content="<h1>it's $HOME</h1>")
        script = {s.name: s.script for s in build_steps(config)}["write_static_page"]

        # Content travels base64 encoded so quoting cannot break the script
        assert "$HOME" not in script
        assert "/var/www/html/index.html" in script
        assert "chmod 0644" in script
        assert "[ \"$meta\" = root:root:644 ]" in script

    def test_validation_command(self):
        assert validation_command(7) == "curl -s --max-time 7 http://127.0.0.1/"

    def test_marker_must_be_alone_on_line(self):
        assert MARKER_PATTERN.findall("x\nSTEP_RESULT=changed\r\n") == ["changed"]
        assert MARKER_PATTERN.findall("echo STEP_RESULT=changed") == []


class TestConfigure:
    """Configuration runs against a fake host."""

    def setup_method(self):
        self.host = FakeHost()
        self.transport = FakeTransport(self.host)
        self.service = make_service(self.transport)

    def test_first_run_changes_everything(self):
        outcome = asyncio.run(self.service.configure(TARGET))

        assert outcome.service_started
        assert outcome.validated
        assert outcome.validation_response == "<h1>Hello, World!</h1>"
        assert outcome.changed_steps == STEP_NAMES
        assert self.transport.commands == STEP_NAMES + ["validate"]

    def test_rerun_changes_nothing(self):
        asyncio.run(self.service.configure(TARGET))

        outcome = asyncio.run(self.service.configure(TARGET))

        assert outcome.validated
        assert outcome.changed_steps == []
        assert all(step.status == StepStatus.UNCHANGED for step in outcome.steps)

    def test_step_failure_stops_later_steps(self):
        self.host.failing_steps["install_package"] = CommandOutput(
            100, "", "E: Unable to locate package apache2"
        )

        with pytest.raises(ConfigurationStepError) as exc_info:
            asyncio.run(self.service.configure(TARGET))

        assert exc_info.value.step == "install_package"
        assert "Unable to locate package" in exc_info.value.cause
        assert self.transport.commands == ["refresh_package_index", "install_package"]

    def test_missing_marker_is_step_failure(self):
        self.host.failing_steps["ensure_service"] = CommandOutput(0, "done\n", "")

        with pytest.raises(ConfigurationStepError) as exc_info:
            asyncio.run(self.service.configure(TARGET))

        assert exc_info.value.step == "ensure_service"
        assert "validate" not in self.transport.commands

    def test_transport_timeout_is_step_failure(self):
        self.transport.errors["write_static_page"] = ProvisionTimeout(
            "Command did not finish", subject="transport"
        )

        with pytest.raises(ConfigurationStepError) as exc_info:
            asyncio.run(self.service.configure(TARGET))

        assert exc_info.value.step == "write_static_page"

    def test_cancellation_is_not_wrapped(self):
        self.transport.errors["install_package"] = OperationCancelledError(
            "Cancelled", subject="transport"
        )

        with pytest.raises(OperationCancelledError):
            asyncio.run(self.service.configure(TARGET))

    def test_unreachable_host(self):
        transport = FakeTransport(
            self.host, reachable_error=ConnectError("agent offline", subject="transport")
        )

        with pytest.raises(ConnectError):
            asyncio.run(make_service(transport).configure(TARGET))

        assert transport.commands == []


class TestValidation:
    """Loopback fetch of the page after the service is running."""

    def test_trailing_newline_ignored(self):
        host = FakeHost(page_body="<h1>Hello, World!</h1>\r\n")

        outcome = asyncio.run(make_service(FakeTransport(host)).configure(TARGET))

        assert outcome.validated
        assert outcome.validation_error is None

    def test_mismatch_recorded_not_raised(self):
        host = FakeHost(page_body="<h1>It works!</h1>\n")

        outcome = asyncio.run(make_service(FakeTransport(host)).configure(TARGET))

        assert outcome.service_started
        assert not outcome.validated
        assert outcome.validation_response == "<h1>It works!</h1>"
        assert outcome.validation_error.actual == "<h1>It works!</h1>"
        assert outcome.validation_error.expected == "<h1>Hello, World!</h1>"

    def test_request_failure(self):
        host = FakeHost()
        host.failing_steps["validate"] = CommandOutput(7, "", "")

        outcome = asyncio.run(make_service(FakeTransport(host)).configure(TARGET))

        assert outcome.validation_response is None
        assert "exit status 7" in outcome.validation_error.message

    def test_transport_error_during_validation(self):
        host = FakeHost()
        transport = FakeTransport(host)
        transport.errors["validate"] = ProvisionTimeout("slow", subject="transport")

        outcome = asyncio.run(make_service(transport).configure(TARGET))

        assert outcome.service_started
        assert outcome.validation_error is not None
        assert outcome.validation_error.actual is None


if __name__ == "__main__":
    pytest.main([__file__])
