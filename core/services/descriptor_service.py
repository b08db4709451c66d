"""Builds the fixed resource descriptors from configuration."""

import ipaddress
import json
import re
import secrets
from typing import Optional

from core.models.config import ProvisionConfig
from core.models.resource import (
    BucketSpec,
    IamRoleSpec,
    ImageFilter,
    IngressRule,
    InstanceProfileSpec,
    InstanceSpec,
    ResourceSpecSet,
    SecurityGroupSpec,
)

PORT_DESCRIPTIONS = {22: "SSH", 80: "HTTP", 443: "HTTPS"}


def generate_bucket_suffix() -> str:
    """Six lowercase hex characters."""
    return secrets.token_hex(3)


def bucket_name_pattern(prefix: str) -> re.Pattern:
    return re.compile(rf"^{re.escape(prefix)}-[0-9a-f]{{6}}$")


def ec2_trust_policy() -> str:
    return json.dumps(
        {
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Effect": "Allow",
                    "Principal": {"Service": "ec2.amazonaws.com"},
                    "Action": "sts:AssumeRole",
                }
            ],
        }
    )


def bucket_access_policy(bucket_prefix: str) -> str:
    """Read/write access limited to the project's buckets."""
    return json.dumps(
        {
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Effect": "Allow",
                    "Action": ["s3:ListBucket", "s3:GetBucketLocation"],
                    "Resource": [f"arn:aws:s3:::{bucket_prefix}-*"],
                },
                {
                    "Effect": "Allow",
                    "Action": ["s3:GetObject", "s3:PutObject", "s3:DeleteObject"],
                    "Resource": [f"arn:aws:s3:::{bucket_prefix}-*/*"],
                },
            ],
        }
    )


def build_resource_specs(
    config: ProvisionConfig, bucket_suffix: Optional[str] = None
) -> ResourceSpecSet:
    """Create the immutable descriptors for one run."""
    suffix = bucket_suffix or generate_bucket_suffix()
    if not re.fullmatch(r"[0-9a-f]{6}", suffix):
        raise ValueError(f"Bucket suffix must be 6 lowercase hex characters: {suffix}")

    network = config.network
    cidr = str(ipaddress.ip_network(network.allowed_cidr, strict=False))
    ingress = tuple(
        IngressRule(
            port=int(port),
            cidr=cidr,
            description=PORT_DESCRIPTIONS.get(int(port), f"tcp/{port}"),
        )
        for port in network.ingress_ports
    )

    return ResourceSpecSet(
        project=config.project,
        security_group=SecurityGroupSpec(
            name=network.security_group_name,
            description=f"{config.project}: web and management access",
            ingress=ingress,
        ),
        role=IamRoleSpec(
            role_name=config.iam.role_name,
            trust_policy=ec2_trust_policy(),
            policy_name=config.iam.policy_name,
            policy_document=bucket_access_policy(config.bucket.name_prefix),
            managed_policy_arns=tuple(config.iam.managed_policy_arns),
        ),
        instance_profile=InstanceProfileSpec(
            name=config.iam.instance_profile_name,
            role_name=config.iam.role_name,
        ),
        bucket=BucketSpec(
            name_prefix=config.bucket.name_prefix,
            name=f"{config.bucket.name_prefix}-{suffix}",
            block_public_access=config.bucket.block_public_access,
        ),
        instance=InstanceSpec(
            instance_type=config.instance.instance_type,
            image_filter=ImageFilter(
                owner=config.instance.ami_owner,
                name_pattern=config.instance.ami_name_pattern,
                architecture=config.instance.ami_architecture,
            ),
            availability_zone=network.availability_zone,
            name_tag=config.instance.name_tag,
            key_name=config.instance.key_name,
        ),
    )
