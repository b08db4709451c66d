"""AWS IAM client for role, policy and instance profile operations."""

from typing import Any, Dict, List, Optional

from core.models.errors import NotFoundError
from .base_client import AWSClient


def _tags(tags: Dict[str, str]) -> List[Dict[str, str]]:
    return [{"Key": k, "Value": v} for k, v in tags.items()]


class IAMClient(AWSClient):
    """AWS IAM client wrapper."""

    service_name = "iam"

    async def get_role(self, role_name: str) -> Optional[Dict[str, Any]]:
        """Return the role or None when it does not exist."""
        try:
            response = await self._call(
                "Get role", "get_role", subject="iam_role", RoleName=role_name
            )
        except NotFoundError:
            return None
        return response["Role"]

    async def create_role(
        self, role_name: str, trust_policy: str, tags: Dict[str, str]
    ) -> Dict[str, Any]:
        response = await self._call(
            "Create role",
            "create_role",
            subject="iam_role",
            RoleName=role_name,
            AssumeRolePolicyDocument=trust_policy,
            Tags=_tags(tags),
        )
        return response["Role"]

    async def get_role_policy(
        self, role_name: str, policy_name: str
    ) -> Optional[Dict[str, Any]]:
        try:
            return await self._call(
                "Get role policy",
                "get_role_policy",
                subject="iam_policy",
                RoleName=role_name,
                PolicyName=policy_name,
            )
        except NotFoundError:
            return None

    async def put_role_policy(
        self, role_name: str, policy_name: str, policy_document: str
    ) -> None:
        """Create or replace an inline policy."""
        await self._call(
            "Put role policy",
            "put_role_policy",
            subject="iam_policy",
            RoleName=role_name,
            PolicyName=policy_name,
            PolicyDocument=policy_document,
        )

    async def list_attached_policy_arns(self, role_name: str) -> List[str]:
        response = await self._call(
            "List attached role policies",
            "list_attached_role_policies",
            subject="iam_policy",
            RoleName=role_name,
        )
        return [p["PolicyArn"] for p in response["AttachedPolicies"]]

    async def attach_role_policy(self, role_name: str, policy_arn: str) -> None:
        await self._call(
            "Attach role policy",
            "attach_role_policy",
            subject="iam_policy",
            RoleName=role_name,
            PolicyArn=policy_arn,
        )

    async def get_instance_profile(self, profile_name: str) -> Optional[Dict[str, Any]]:
        """Return the instance profile or None when it does not exist."""
        try:
            response = await self._call(
                "Get instance profile",
                "get_instance_profile",
                subject="instance_profile",
                InstanceProfileName=profile_name,
            )
        except NotFoundError:
            return None
        return response["InstanceProfile"]

    async def create_instance_profile(
        self, profile_name: str, tags: Dict[str, str]
    ) -> Dict[str, Any]:
        response = await self._call(
            "Create instance profile",
            "create_instance_profile",
            subject="instance_profile",
            InstanceProfileName=profile_name,
            Tags=_tags(tags),
        )
        return response["InstanceProfile"]

    async def add_role_to_instance_profile(self, profile_name: str, role_name: str) -> None:
        await self._call(
            "Add role to instance profile",
            "add_role_to_instance_profile",
            subject="instance_profile",
            InstanceProfileName=profile_name,
            RoleName=role_name,
        )
