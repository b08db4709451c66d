"""In-memory stand-ins for the AWS client wrappers and the remote transport."""

import asyncio
import json
from typing import Any, Dict, List, Optional

from core.models.errors import AlreadyExistsError, NotFoundError
from core.models.workflow import CommandOutput


class FakeCloud:
    """Shared account state plus an ordered log of mutating calls."""

    def __init__(self, region: str = "us-east-2"):
        self.region = region
        self.calls: List[str] = []
        self.failures: Dict[str, Exception] = {}
        self.delays: Dict[str, float] = {}

        self.images = [
            {"ImageId": "ami-old", "Name": "ubuntu-old", "CreationDate": "2024-01-01T00:00:00.000Z"},
            {"ImageId": "ami-new", "Name": "ubuntu-new", "CreationDate": "2024-06-01T00:00:00.000Z"},
        ]
        self.subnets = [
            {"SubnetId": "subnet-1", "VpcId": "vpc-1", "AvailabilityZone": "us-east-2a"}
        ]
        self.security_groups: Dict[str, Dict[str, Any]] = {}
        self.ingress: Dict[str, List[Dict[str, Any]]] = {}
        self.roles: Dict[str, Dict[str, Any]] = {}
        self.role_policies: Dict[tuple, Any] = {}
        self.attached: Dict[str, List[str]] = {}
        self.profiles: Dict[str, Dict[str, Any]] = {}
        self.buckets: Dict[str, Dict[str, Any]] = {}
        self.instances: Dict[str, Dict[str, Any]] = {}

        # describe calls before a launched instance reports running; None = never
        self.ready_after: Optional[int] = 1
        self.public_ip = "203.0.113.25"
        self._polls: Dict[str, int] = {}
        # lookups after creation that still miss a new instance profile; None = never visible
        self.profile_visible_after: Optional[int] = 0
        self._hidden_profiles: Dict[str, Optional[int]] = {}

    async def record(self, name: str) -> None:
        self.calls.append(name)
        if name in self.delays:
            await asyncio.sleep(self.delays[name])
        if name in self.failures:
            raise self.failures[name]

    def count(self, name: str) -> int:
        return self.calls.count(name)


class FakeEC2Client:
    def __init__(self, cloud: FakeCloud):
        self.cloud = cloud
        self.region = cloud.region

    async def find_default_subnet(self, availability_zone: str) -> Dict[str, Any]:
        await self.cloud.record("find_default_subnet")
        for subnet in self.cloud.subnets:
            if subnet["AvailabilityZone"] == availability_zone:
                return subnet
        raise NotFoundError(f"No default subnet in {availability_zone}", subject="subnet")

    async def find_latest_image(self, owner: str, filters) -> Dict[str, Any]:
        await self.cloud.record("find_latest_image")
        if not self.cloud.images:
            raise NotFoundError("No image matches", subject="image")
        return max(self.cloud.images, key=lambda i: i["CreationDate"])

    async def find_security_group(self, group_name: str, vpc_id: str):
        await self.cloud.record("find_security_group")
        return self.cloud.security_groups.get(group_name)

    async def create_security_group(self, group_name, description, vpc_id, tags) -> str:
        await self.cloud.record("create_security_group")
        if group_name in self.cloud.security_groups:
            raise AlreadyExistsError("InvalidGroup.Duplicate", subject="security_group")
        group_id = f"sg-{len(self.cloud.security_groups) + 1}"
        self.cloud.security_groups[group_name] = {"GroupId": group_id, "GroupName": group_name}
        return group_id

    async def authorize_ingress(self, group_id: str, ip_permissions) -> bool:
        await self.cloud.record("authorize_ingress")
        if group_id in self.cloud.ingress:
            return False
        self.cloud.ingress[group_id] = ip_permissions
        return True

    async def find_active_instances(self, name_tag: str) -> List[Dict[str, Any]]:
        await self.cloud.record("find_active_instances")
        return [
            i for i in self.cloud.instances.values()
            if i["Name"] == name_tag and i["State"]["Name"] in ("pending", "running")
        ]

    async def run_instance(self, image_id, instance_type, subnet_id, security_group_ids,
                           instance_profile_name, tags, key_name=None) -> Dict[str, Any]:
        await self.cloud.record("run_instance")
        instance_id = f"i-{len(self.cloud.instances) + 1:04d}"
        self.cloud.instances[instance_id] = {
            "InstanceId": instance_id,
            "Name": tags["Name"],
            "ImageId": image_id,
            "IamInstanceProfile": instance_profile_name,
            "SecurityGroups": security_group_ids,
            "KeyName": key_name,
            "State": {"Name": "pending"},
        }
        return self.cloud.instances[instance_id]

    async def get_instance(self, instance_id: str) -> Dict[str, Any]:
        instance = self.cloud.instances[instance_id]
        polls = self.cloud._polls.get(instance_id, 0) + 1
        self.cloud._polls[instance_id] = polls
        ready_after = self.cloud.ready_after
        if ready_after is not None and polls >= ready_after:
            instance["State"] = {"Name": "running"}
            instance["PublicIpAddress"] = self.cloud.public_ip
        return dict(instance)


class FakeIAMClient:
    def __init__(self, cloud: FakeCloud):
        self.cloud = cloud
        self.region = cloud.region

    async def get_role(self, role_name: str):
        await self.cloud.record("get_role")
        return self.cloud.roles.get(role_name)

    async def create_role(self, role_name, trust_policy, tags):
        await self.cloud.record("create_role")
        role = {"RoleName": role_name, "Arn": f"arn:aws:iam::123456789012:role/{role_name}"}
        self.cloud.roles[role_name] = role
        return role

    async def get_role_policy(self, role_name, policy_name):
        await self.cloud.record("get_role_policy")
        document = self.cloud.role_policies.get((role_name, policy_name))
        return {"PolicyDocument": document} if document is not None else None

    async def put_role_policy(self, role_name, policy_name, policy_document):
        await self.cloud.record("put_role_policy")
        self.cloud.role_policies[(role_name, policy_name)] = json.loads(policy_document)

    async def list_attached_policy_arns(self, role_name):
        await self.cloud.record("list_attached_policy_arns")
        return list(self.cloud.attached.get(role_name, []))

    async def attach_role_policy(self, role_name, policy_arn):
        await self.cloud.record("attach_role_policy")
        self.cloud.attached.setdefault(role_name, []).append(policy_arn)

    async def get_instance_profile(self, profile_name):
        await self.cloud.record("get_instance_profile")
        hidden = self.cloud._hidden_profiles.get(profile_name, 0)
        if hidden is None:
            return None
        if hidden > 0:
            self.cloud._hidden_profiles[profile_name] = hidden - 1
            return None
        profile = self.cloud.profiles.get(profile_name)
        return dict(profile) if profile else None

    async def create_instance_profile(self, profile_name, tags):
        await self.cloud.record("create_instance_profile")
        profile = {
            "InstanceProfileName": profile_name,
            "Arn": f"arn:aws:iam::123456789012:instance-profile/{profile_name}",
            "Roles": [],
        }
        self.cloud.profiles[profile_name] = profile
        self.cloud._hidden_profiles[profile_name] = self.cloud.profile_visible_after
        return dict(profile)

    async def add_role_to_instance_profile(self, profile_name, role_name):
        await self.cloud.record("add_role_to_instance_profile")
        if role_name not in self.cloud.roles:
            raise NotFoundError(f"Role {role_name} not found", subject="instance_profile")
        self.cloud.profiles[profile_name]["Roles"] = [{"RoleName": role_name}]


class FakeS3Client:
    def __init__(self, cloud: FakeCloud):
        self.cloud = cloud
        self.region = cloud.region

    async def list_bucket_names(self, prefix: str = "") -> List[str]:
        await self.cloud.record("list_bucket_names")
        return [name for name in self.cloud.buckets if name.startswith(prefix)]

    async def get_bucket_tags(self, bucket_name):
        return dict(self.cloud.buckets[bucket_name]["tags"])

    async def get_bucket_region(self, bucket_name):
        return self.cloud.buckets[bucket_name]["region"]

    async def create_bucket(self, bucket_name, tags):
        await self.cloud.record("create_bucket")
        self.cloud.buckets[bucket_name] = {
            "tags": dict(tags), "region": self.region, "public_access_blocked": False,
        }

    async def block_public_access(self, bucket_name):
        await self.cloud.record("block_public_access")
        self.cloud.buckets[bucket_name]["public_access_blocked"] = True


class FakeHost:
    """A web host that remembers which configuration steps already ran."""

    def __init__(self, page_body: str = "<h1>Hello, World!</h1>\n"):
        self.configured: set = set()
        self.page_body = page_body
        self.failing_steps: Dict[str, CommandOutput] = {}


class FakeTransport:
    """Answers step scripts by their comment, the way the host would."""

    def __init__(self, host: FakeHost, reachable_error: Optional[Exception] = None):
        self.host = host
        self.reachable_error = reachable_error
        self.commands: List[str] = []
        self.errors: Dict[str, Exception] = {}

    async def wait_until_reachable(self, timeout_seconds: float) -> None:
        if self.reachable_error:
            raise self.reachable_error

    async def run(self, command: str, timeout_seconds: float, comment: Optional[str] = None):
        self.commands.append(comment)
        if comment in self.errors:
            raise self.errors[comment]
        if comment in self.host.failing_steps:
            return self.host.failing_steps[comment]
        if comment == "validate":
            return CommandOutput(0, self.host.page_body, "")

        if comment in self.host.configured:
            return CommandOutput(0, "STEP_RESULT=unchanged\n", "")
        self.host.configured.add(comment)
        return CommandOutput(0, "doing work\nSTEP_RESULT=changed\n", "")
