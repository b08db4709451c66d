"""Resource descriptors and runtime resource records."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class ResourceKind(Enum):
    """Kinds of cloud resources the provisioner manages."""
    SECURITY_GROUP = "security_group"
    IAM_ROLE = "iam_role"
    IAM_POLICY = "iam_policy"
    INSTANCE_PROFILE = "instance_profile"
    BUCKET = "bucket"
    INSTANCE = "instance"


class ResourceStatus(Enum):
    """Lifecycle of a provisioned resource."""
    PENDING = "pending"
    ACTIVE = "active"
    FAILED = "failed"


@dataclass(frozen=True)
class IngressRule:
    """Single TCP ingress rule."""
    port: int
    cidr: str
    description: str = ""

    def to_ip_permission(self) -> Dict[str, Any]:
        return {
            "IpProtocol": "tcp",
            "FromPort": self.port,
            "ToPort": self.port,
            "IpRanges": [{"CidrIp": self.cidr, "Description": self.description}],
        }


@dataclass(frozen=True)
class SecurityGroupSpec:
    name: str
    description: str
    ingress: Tuple[IngressRule, ...]


@dataclass(frozen=True)
class IamRoleSpec:
    role_name: str
    trust_policy: str
    policy_name: str
    policy_document: str
    managed_policy_arns: Tuple[str, ...] = ()


@dataclass(frozen=True)
class InstanceProfileSpec:
    name: str
    role_name: str


@dataclass(frozen=True)
class BucketSpec:
    name_prefix: str
    name: str
    block_public_access: bool = True


@dataclass(frozen=True)
class ImageFilter:
    """Most recent image owned by ``owner`` whose name matches ``name_pattern``."""
    owner: str
    name_pattern: str
    architecture: str = "x86_64"

    def to_filters(self) -> List[Dict[str, Any]]:
        return [
            {"Name": "name", "Values": [self.name_pattern]},
            {"Name": "architecture", "Values": [self.architecture]},
            {"Name": "virtualization-type", "Values": ["hvm"]},
            {"Name": "state", "Values": ["available"]},
        ]


@dataclass(frozen=True)
class InstanceSpec:
    instance_type: str
    image_filter: ImageFilter
    availability_zone: str
    name_tag: str
    key_name: Optional[str] = None


@dataclass(frozen=True)
class ResourceSpecSet:
    """The fixed set of resources one run provisions."""
    project: str
    security_group: SecurityGroupSpec
    role: IamRoleSpec
    instance_profile: InstanceProfileSpec
    bucket: BucketSpec
    instance: InstanceSpec

    @property
    def tags(self) -> Dict[str, str]:
        return {"Project": self.project, "ManagedBy": "webhost-provisioner"}


@dataclass
class ProvisionedResource:
    """Runtime record of a resource this run created or adopted."""

    kind: ResourceKind
    name: str
    identifier: Optional[str] = None
    status: ResourceStatus = ResourceStatus.PENDING
    adopted: bool = False
    created_time: datetime = field(default_factory=datetime.utcnow)
    error_message: Optional[str] = None

    def activate(self, identifier: str, adopted: bool = False) -> None:
        self.identifier = identifier
        self.adopted = adopted
        self.status = ResourceStatus.ACTIVE

    def fail(self, error: str) -> None:
        self.status = ResourceStatus.FAILED
        self.error_message = error

    @property
    def is_active(self) -> bool:
        return self.status == ResourceStatus.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "name": self.name,
            "identifier": self.identifier,
            "status": self.status.value,
            "adopted": self.adopted,
        }
