"""AWS EC2 client for network, image and instance operations."""

from typing import List, Dict, Any, Optional

from core.models.errors import AlreadyExistsError, NotFoundError
from .base_client import AWSClient


def _tag_specifications(resource_type: str, tags: Dict[str, str]) -> List[Dict[str, Any]]:
    return [
        {
            "ResourceType": resource_type,
            "Tags": [{"Key": k, "Value": v} for k, v in tags.items()],
        }
    ]


class EC2Client(AWSClient):
    """AWS EC2 client wrapper."""

    service_name = "ec2"

    ACTIVE_INSTANCE_STATES = ["pending", "running"]

    async def describe_images(
        self,
        owners: Optional[List[str]] = None,
        filters: Optional[List[Dict[str, Any]]] = None,
    ) -> List[Dict[str, Any]]:
        """Describe AMI images."""
        params = {}
        if owners:
            params["Owners"] = owners
        if filters:
            params["Filters"] = filters

        response = await self._call("Describe images", "describe_images", subject="image", **params)
        return response["Images"]

    async def find_latest_image(
        self, owner: str, filters: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        """Most recently created image owned by ``owner`` matching ``filters``."""
        images = await self.describe_images(owners=[owner], filters=filters)
        if not images:
            raise NotFoundError(
                f"No image owned by {owner} matches {filters}", subject="image"
            )
        # CreationDate is ISO-8601, so string order is chronological
        return max(images, key=lambda image: image.get("CreationDate", ""))

    async def find_default_subnet(self, availability_zone: str) -> Dict[str, Any]:
        """The default subnet of ``availability_zone``."""
        response = await self._call(
            "Describe subnets",
            "describe_subnets",
            subject="subnet",
            Filters=[
                {"Name": "availability-zone", "Values": [availability_zone]},
                {"Name": "default-for-az", "Values": ["true"]},
            ],
        )
        subnets = response["Subnets"]
        if not subnets:
            raise NotFoundError(
                f"No default subnet in {availability_zone}", subject="subnet"
            )
        return subnets[0]

    async def find_security_group(
        self, group_name: str, vpc_id: str
    ) -> Optional[Dict[str, Any]]:
        """Security group named ``group_name`` in ``vpc_id``, if any."""
        response = await self._call(
            "Describe security groups",
            "describe_security_groups",
            subject="security_group",
            Filters=[
                {"Name": "group-name", "Values": [group_name]},
                {"Name": "vpc-id", "Values": [vpc_id]},
            ],
        )
        groups = response["SecurityGroups"]
        return groups[0] if groups else None

    async def create_security_group(
        self, group_name: str, description: str, vpc_id: str, tags: Dict[str, str]
    ) -> str:
        """Create a security group and return its id."""
        response = await self._call(
            "Create security group",
            "create_security_group",
            subject="security_group",
            GroupName=group_name,
            Description=description,
            VpcId=vpc_id,
            TagSpecifications=_tag_specifications("security-group", tags),
        )
        return response["GroupId"]

    async def authorize_ingress(
        self, group_id: str, ip_permissions: List[Dict[str, Any]]
    ) -> bool:
        """Add ingress rules; False when they were already present."""
        try:
            await self._call(
                "Authorize security group ingress",
                "authorize_security_group_ingress",
                subject="security_group",
                GroupId=group_id,
                IpPermissions=ip_permissions,
            )
        except AlreadyExistsError:
            return False
        return True

    async def describe_instances(
        self,
        instance_ids: Optional[List[str]] = None,
        filters: Optional[List[Dict[str, Any]]] = None,
    ) -> List[Dict[str, Any]]:
        """Describe EC2 instances with optional filtering."""
        params = {}
        if instance_ids:
            params["InstanceIds"] = instance_ids
        if filters:
            params["Filters"] = filters

        response = await self._call(
            "Describe instances", "describe_instances", subject="instance", **params
        )
        instances = []
        for reservation in response["Reservations"]:
            instances.extend(reservation["Instances"])
        return instances

    async def find_active_instances(self, name_tag: str) -> List[Dict[str, Any]]:
        """Pending or running instances carrying ``Name=name_tag``."""
        return await self.describe_instances(
            filters=[
                {"Name": "tag:Name", "Values": [name_tag]},
                {"Name": "instance-state-name", "Values": self.ACTIVE_INSTANCE_STATES},
            ]
        )

    async def run_instance(
        self,
        image_id: str,
        instance_type: str,
        subnet_id: str,
        security_group_ids: List[str],
        instance_profile_name: str,
        tags: Dict[str, str],
        key_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Launch exactly one instance with a public address."""
        params = {
            "ImageId": image_id,
            "InstanceType": instance_type,
            "MinCount": 1,
            "MaxCount": 1,
            "IamInstanceProfile": {"Name": instance_profile_name},
            "NetworkInterfaces": [
                {
                    "DeviceIndex": 0,
                    "SubnetId": subnet_id,
                    "Groups": security_group_ids,
                    "AssociatePublicIpAddress": True,
                }
            ],
            "TagSpecifications": _tag_specifications("instance", tags),
        }
        if key_name:
            params["KeyName"] = key_name

        response = await self._call(
            "Run instances", "run_instances", subject="instance", **params
        )
        return response["Instances"][0]

    async def get_instance(self, instance_id: str) -> Dict[str, Any]:
        instances = await self.describe_instances(instance_ids=[instance_id])
        if not instances:
            raise NotFoundError(f"Instance {instance_id} not found", subject="instance")
        return instances[0]
