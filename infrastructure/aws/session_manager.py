"""AWS session manager"""

from typing import Any, Dict, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from core.utils.logger import get_infrastructure_logger
from .errors import translate_error


class AWSSessionManager:
    """Owns the boto3 session and hands out service clients for one region.

    Retries are disabled at the botocore level; transient failures are
    retried by the client wrappers with their own bounded backoff.
    """

    def __init__(
        self,
        region: str = "us-east-2",
        profile: Optional[str] = None,
        session: Optional[boto3.Session] = None,
        connect_timeout: int = 10,
        read_timeout: int = 60,
    ):
        self.region = region
        self.profile = profile
        self.logger = get_infrastructure_logger(__name__)
        self._session = session
        self._clients: Dict[str, Any] = {}
        self._client_config = Config(
            region_name=region,
            retries={"max_attempts": 1, "mode": "standard"},
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
        )

    def get_session(self) -> boto3.Session:
        """Get the boto3 session, creating it from the profile or default chain."""
        if self._session is None:
            if self.profile:
                self.logger.info(f"Using AWS profile {self.profile}")
                self._session = boto3.Session(
                    profile_name=self.profile, region_name=self.region
                )
            else:
                self._session = boto3.Session(region_name=self.region)
        return self._session

    def client(self, service_name: str):
        """Get a cached boto3 client for ``service_name``."""
        if service_name not in self._clients:
            self._clients[service_name] = self.get_session().client(
                service_name, region_name=self.region, config=self._client_config
            )
        return self._clients[service_name]

    def get_caller_identity(self) -> Dict[str, str]:
        """Resolve the caller identity; fails fast on missing or bad credentials."""
        try:
            identity = self.client("sts").get_caller_identity()
        except (ClientError, BotoCoreError) as e:
            error = translate_error("Get caller identity", e, subject="credentials")
            self.logger.error(str(error))
            raise error from e

        self.logger.info(
            f"Authenticated as {identity['Arn']} (account {identity['Account']})"
        )
        return {"account": identity["Account"], "arn": identity["Arn"]}
