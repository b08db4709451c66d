"""Error taxonomy for provisioning and configuration."""

from typing import Optional


class ProvisionerError(Exception):
    """Base class for all provisioner failures.

    Every error carries a ``kind`` used by the reporter and the ``subject``
    (resource kind or configuration step) that produced it.
    """

    kind = "ProvisionerError"

    def __init__(self, message: str, subject: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.subject = subject

    def __str__(self) -> str:
        if self.subject:
            return f"{self.kind} [{self.subject}]: {self.message}"
        return f"{self.kind}: {self.message}"


class ConfigurationError(ProvisionerError):
    """Invalid or missing tool configuration."""

    kind = "ConfigurationError"


class AuthorizationError(ProvisionerError):
    """Credentials are missing or lack a required permission."""

    kind = "AuthorizationError"


class DependencyError(ProvisionerError):
    """A required predecessor resource is missing or failed."""

    kind = "DependencyError"


class NotFoundError(ProvisionerError):
    """A lookup (image, subnet, resource) matched nothing."""

    kind = "NotFoundError"


class AlreadyExistsError(ProvisionerError):
    """A fixed-name resource already exists and adoption is disabled."""

    kind = "AlreadyExistsError"


class ProvisionTimeout(ProvisionerError):
    """A readiness wait exceeded its bound."""

    kind = "ProvisionTimeout"


class ProviderError(ProvisionerError):
    """Opaque upstream failure; ``transient`` ones are worth retrying."""

    kind = "ProviderError"

    def __init__(
        self,
        message: str,
        subject: Optional[str] = None,
        transient: bool = False,
        code: Optional[str] = None,
    ):
        super().__init__(message, subject)
        self.transient = transient
        self.code = code

    def __str__(self) -> str:
        qualifier = "transient" if self.transient else "permanent"
        base = super().__str__()
        return f"{base} ({qualifier})"


class ConnectError(ProvisionerError):
    """The remote host never became reachable over the management transport."""

    kind = "ConnectError"


class ConfigurationStepError(ProvisionerError):
    """A remote configuration step failed; ``subject`` is the step name."""

    kind = "ConfigurationStepError"

    def __init__(self, step: str, cause: str):
        super().__init__(cause, subject=step)
        self.step = step
        self.cause = cause


class ValidationError(ProvisionerError):
    """The web server answered with unexpected content."""

    kind = "ValidationError"

    def __init__(self, message: str, expected: str, actual: Optional[str]):
        super().__init__(message, subject="validate")
        self.expected = expected
        self.actual = actual


class OperationCancelledError(ProvisionerError):
    """The run was cancelled while waiting; distinct from a timeout."""

    kind = "CancelledError"
