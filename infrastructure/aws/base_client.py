"""Shared call path for the AWS client wrappers."""

from typing import Any, Optional

from botocore.exceptions import BotoCoreError, ClientError

from core.models.errors import NotFoundError, ProvisionerError
from core.utils.logger import get_infrastructure_logger
from core.utils.retry import RetryPolicy, retry_transient
from .errors import translate_error
from .session_manager import AWSSessionManager


class AWSClient:
    """Base wrapper: lazy client, error translation, transient retries."""

    service_name: str = ""

    def __init__(
        self,
        session_manager: AWSSessionManager,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.session_manager = session_manager
        self.region = session_manager.region
        self.retry_policy = retry_policy or RetryPolicy()
        self.logger = get_infrastructure_logger(type(self).__module__)
        self._client = None

    def _ensure_client(self) -> None:
        """Ensure the boto3 client is initialized (lazy initialization)."""
        if self._client is None:
            self._client = self.session_manager.client(self.service_name)

    async def _call(
        self, operation: str, method: str, subject: Optional[str] = None, **params
    ) -> Any:
        """Call ``method`` on the boto3 client, retrying transient failures."""
        self._ensure_client()

        async def attempt():
            try:
                return getattr(self._client, method)(**params)
            except (ClientError, BotoCoreError) as e:
                raise translate_error(operation, e, subject=subject) from e

        try:
            return await retry_transient(operation, attempt, self.retry_policy)
        except NotFoundError as e:
            # Lookups treat this as "absent"; callers decide whether it is fatal
            self.logger.debug(str(e))
            raise
        except ProvisionerError as e:
            self.logger.error(str(e))
            raise
