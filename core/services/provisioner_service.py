import asyncio
import json
import logging
import time
from typing import Any, Dict, List, Optional

from core.interfaces.provisioner_interface import IProvisionerService
from core.models.config import ExistingResourcePolicy
from core.models.errors import (
    AlreadyExistsError,
    DependencyError,
    NotFoundError,
    OperationCancelledError,
    ProviderError,
    ProvisionerError,
    ProvisionTimeout,
)
from core.models.resource import (
    BucketSpec,
    IamRoleSpec,
    InstanceProfileSpec,
    InstanceSpec,
    ProvisionedResource,
    ResourceKind,
    ResourceSpecSet,
    SecurityGroupSpec,
)
from core.models.workflow import ProvisionResult
from core.services.descriptor_service import bucket_name_pattern
from core.utils.polling import check_cancelled, sleep_or_cancel
from infrastructure.aws.ec2_client import EC2Client
from infrastructure.aws.iam_client import IAMClient
from infrastructure.aws.s3_client import S3Client

FAILED_INSTANCE_STATES = {"shutting-down", "terminated", "stopping", "stopped"}


class ProvisionerService(IProvisionerService):
    """Creates or adopts the web host's resources in dependency order.

    Lookups (subnet, image) run first so nothing billable is created when the
    instance could never launch. The security group, identity and bucket
    branches then run concurrently; the instance is launched only after all
    of them succeeded.
    """

    def __init__(
        self,
        ec2_client: EC2Client,
        iam_client: IAMClient,
        s3_client: S3Client,
        existing_policy: ExistingResourcePolicy = ExistingResourcePolicy.ADOPT,
        ready_timeout_seconds: float = 300,
        poll_interval_seconds: float = 5.0,
        profile_ready_timeout_seconds: float = 60,
    ):
        self.ec2_client = ec2_client
        self.iam_client = iam_client
        self.s3_client = s3_client
        self.existing_policy = existing_policy
        self.ready_timeout_seconds = ready_timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.profile_ready_timeout_seconds = profile_ready_timeout_seconds
        self.logger = logging.getLogger(__name__)

    def _handle_error(
        self,
        result: ProvisionResult,
        error: ProvisionerError,
        resource: Optional[ProvisionedResource] = None,
    ) -> None:
        """Record a failure on the result (and resource) and log it."""
        if resource is not None:
            resource.fail(str(error))
        result.add_error(error)
        self.logger.error(str(error))

    def _on_existing(
        self, resource: ProvisionedResource, identifier: str, description: str
    ) -> None:
        """Adopt an existing resource or refuse, per the configured policy."""
        if self.existing_policy == ExistingResourcePolicy.FAIL:
            raise AlreadyExistsError(
                f"{description} already exists ({identifier})",
                subject=resource.kind.value,
            )
        self.logger.info(f"Adopting existing {description} ({identifier})")
        resource.activate(identifier, adopted=True)

    async def provision(
        self, specs: ResourceSpecSet, cancel_event: Optional[asyncio.Event] = None
    ) -> ProvisionResult:
        result = ProvisionResult()
        self.logger.info(f"Provisioning {specs.project} in {self.ec2_client.region}")

        if self._cancelled(cancel_event, result):
            return result
        lookups = await self._gather(
            result,
            self._resolve_subnet(specs.instance, result),
            self._resolve_image(specs.instance, result),
        )
        if result.errors:
            return result
        subnet, image = lookups

        if self._cancelled(cancel_event, result):
            return result
        branches = await self._gather(
            result,
            self._ensure_security_group(specs.security_group, subnet["VpcId"], specs.tags, result),
            self._ensure_identity(
                specs.role, specs.instance_profile, specs.tags, result, cancel_event
            ),
            self._ensure_bucket(specs.bucket, specs.project, specs.tags, result),
        )
        if result.errors:
            self.logger.error("Skipping instance launch: an earlier resource failed")
            return result
        security_group_id, profile_name, bucket_name = branches
        result.bucket_name = bucket_name

        if self._cancelled(cancel_event, result):
            return result
        await self._ensure_instance(
            specs.instance,
            image["ImageId"],
            subnet["SubnetId"],
            security_group_id,
            profile_name,
            specs.tags,
            result,
            cancel_event,
        )
        return result

    def _cancelled(
        self, cancel_event: Optional[asyncio.Event], result: ProvisionResult
    ) -> bool:
        try:
            check_cancelled(cancel_event, "provision")
        except OperationCancelledError as e:
            self._handle_error(result, e)
            return True
        return False

    async def _gather(self, result: ProvisionResult, *coroutines) -> List[Any]:
        """Run independent branches; failures are already on ``result``."""
        outcomes = await asyncio.gather(*coroutines, return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, BaseException) and not isinstance(
                outcome, ProvisionerError
            ):
                raise outcome
        return outcomes

    async def _resolve_subnet(
        self, spec: InstanceSpec, result: ProvisionResult
    ) -> Dict[str, Any]:
        try:
            subnet = await self.ec2_client.find_default_subnet(spec.availability_zone)
        except ProvisionerError as e:
            self._handle_error(result, e)
            raise
        self.logger.info(
            f"Using default subnet {subnet['SubnetId']} in {spec.availability_zone}"
        )
        return subnet

    async def _resolve_image(
        self, spec: InstanceSpec, result: ProvisionResult
    ) -> Dict[str, Any]:
        try:
            image = await self.ec2_client.find_latest_image(
                spec.image_filter.owner, spec.image_filter.to_filters()
            )
        except ProvisionerError as e:
            self._handle_error(result, e)
            raise
        self.logger.info(f"Resolved image {image['ImageId']} ({image.get('Name', '')})")
        return image

    async def _ensure_security_group(
        self,
        spec: SecurityGroupSpec,
        vpc_id: str,
        tags: Dict[str, str],
        result: ProvisionResult,
    ) -> str:
        resource = result.track(
            ProvisionedResource(ResourceKind.SECURITY_GROUP, spec.name)
        )
        try:
            existing = await self.ec2_client.find_security_group(spec.name, vpc_id)
            if existing:
                self._on_existing(resource, existing["GroupId"], f"security group {spec.name}")
                group_id = existing["GroupId"]
            else:
                group_id = await self.ec2_client.create_security_group(
                    spec.name, spec.description, vpc_id, tags
                )
                resource.identifier = group_id
                self.logger.info(f"Created security group {spec.name} ({group_id})")

            permissions = [rule.to_ip_permission() for rule in spec.ingress]
            if await self.ec2_client.authorize_ingress(group_id, permissions):
                self.logger.info(
                    f"Authorized ingress on {group_id} for ports "
                    f"{[rule.port for rule in spec.ingress]}"
                )
            resource.activate(group_id, adopted=resource.adopted)
            return group_id

        except ProvisionerError as e:
            self._handle_error(result, e, resource)
            raise

    async def _ensure_identity(
        self,
        role_spec: IamRoleSpec,
        profile_spec: InstanceProfileSpec,
        tags: Dict[str, str],
        result: ProvisionResult,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> str:
        """Role, then its policies, then the instance profile carrying it."""
        role = result.track(ProvisionedResource(ResourceKind.IAM_ROLE, role_spec.role_name))
        try:
            await self._ensure_role(role_spec, role, tags)
        except ProvisionerError as e:
            self._handle_error(result, e, role)
            self._handle_error(
                result,
                DependencyError(
                    f"Instance profile {profile_spec.name} not created: "
                    f"role {role_spec.role_name} is unavailable",
                    subject=ResourceKind.INSTANCE_PROFILE.value,
                ),
            )
            raise

        policy = result.track(
            ProvisionedResource(
                ResourceKind.IAM_POLICY, f"{role_spec.role_name}/{role_spec.policy_name}"
            )
        )
        try:
            await self._ensure_role_policies(role_spec, policy)
        except ProvisionerError as e:
            self._handle_error(result, e, policy)
            raise

        profile = result.track(
            ProvisionedResource(ResourceKind.INSTANCE_PROFILE, profile_spec.name)
        )
        try:
            await self._ensure_instance_profile(profile_spec, profile, tags, cancel_event)
        except ProvisionerError as e:
            self._handle_error(result, e, profile)
            raise
        return profile_spec.name

    async def _ensure_role(
        self, spec: IamRoleSpec, resource: ProvisionedResource, tags: Dict[str, str]
    ) -> None:
        existing = await self.iam_client.get_role(spec.role_name)
        if existing:
            self._on_existing(resource, existing["Arn"], f"IAM role {spec.role_name}")
            return

        role = await self.iam_client.create_role(spec.role_name, spec.trust_policy, tags)
        resource.activate(role["Arn"])
        self.logger.info(f"Created IAM role {spec.role_name}")

    async def _ensure_role_policies(
        self, spec: IamRoleSpec, resource: ProvisionedResource
    ) -> None:
        current = await self.iam_client.get_role_policy(spec.role_name, spec.policy_name)
        current_document = current.get("PolicyDocument") if current else None
        if isinstance(current_document, str):
            current_document = json.loads(current_document)

        if current_document != json.loads(spec.policy_document):
            await self.iam_client.put_role_policy(
                spec.role_name, spec.policy_name, spec.policy_document
            )
            self.logger.info(f"Put inline policy {spec.policy_name} on {spec.role_name}")

        attached = set(await self.iam_client.list_attached_policy_arns(spec.role_name))
        for arn in spec.managed_policy_arns:
            if arn not in attached:
                await self.iam_client.attach_role_policy(spec.role_name, arn)
                self.logger.info(f"Attached {arn} to {spec.role_name}")

        resource.activate(spec.policy_name, adopted=current is not None)

    async def _ensure_instance_profile(
        self,
        spec: InstanceProfileSpec,
        resource: ProvisionedResource,
        tags: Dict[str, str],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        profile = await self.iam_client.get_instance_profile(spec.name)
        created = profile is None
        if profile:
            self._on_existing(resource, profile["Arn"], f"instance profile {spec.name}")
        else:
            profile = await self.iam_client.create_instance_profile(spec.name, tags)
            resource.identifier = profile["Arn"]
            self.logger.info(f"Created instance profile {spec.name}")

        roles = [r["RoleName"] for r in profile.get("Roles", [])]
        if roles and spec.role_name not in roles:
            raise AlreadyExistsError(
                f"Instance profile {spec.name} already carries role {roles[0]}",
                subject=ResourceKind.INSTANCE_PROFILE.value,
            )
        if not roles:
            try:
                await self.iam_client.add_role_to_instance_profile(spec.name, spec.role_name)
            except NotFoundError as e:
                raise DependencyError(
                    f"Cannot attach missing role {spec.role_name} to {spec.name}: {e.message}",
                    subject=ResourceKind.INSTANCE_PROFILE.value,
                ) from e

        if created:
            await self._wait_for_instance_profile(spec.name, cancel_event)
        resource.activate(profile["Arn"], adopted=not created)

    async def _wait_for_instance_profile(
        self, name: str, cancel_event: Optional[asyncio.Event]
    ) -> None:
        """Poll until a new instance profile is visible, so launches can reference it."""
        deadline = time.monotonic() + self.profile_ready_timeout_seconds
        while await self.iam_client.get_instance_profile(name) is None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ProvisionTimeout(
                    f"Instance profile {name} not visible after "
                    f"{self.profile_ready_timeout_seconds}s",
                    subject=ResourceKind.INSTANCE_PROFILE.value,
                )
            self.logger.debug(f"Instance profile {name} not visible yet; waiting")
            await sleep_or_cancel(
                min(self.poll_interval_seconds, remaining), cancel_event,
                ResourceKind.INSTANCE_PROFILE.value,
            )

    async def _ensure_bucket(
        self, spec: BucketSpec, project: str, tags: Dict[str, str], result: ProvisionResult
    ) -> str:
        resource = result.track(ProvisionedResource(ResourceKind.BUCKET, spec.name))
        try:
            existing = await self._find_project_bucket(spec, project)
            if existing:
                resource.name = existing
                self._on_existing(resource, existing, f"bucket {existing}")
                return existing

            await self.s3_client.create_bucket(spec.name, tags)
            resource.identifier = spec.name
            if spec.block_public_access:
                await self.s3_client.block_public_access(spec.name)
            resource.activate(spec.name)
            self.logger.info(f"Created bucket {spec.name}")
            return spec.name

        except ProvisionerError as e:
            self._handle_error(result, e, resource)
            raise

    async def _find_project_bucket(self, spec: BucketSpec, project: str) -> Optional[str]:
        """A bucket named ``<prefix>-<hex6>`` tagged for this project in this region."""
        pattern = bucket_name_pattern(spec.name_prefix)
        for name in await self.s3_client.list_bucket_names(f"{spec.name_prefix}-"):
            if not pattern.match(name):
                continue
            tags = await self.s3_client.get_bucket_tags(name)
            if tags.get("Project") != project:
                continue
            if await self.s3_client.get_bucket_region(name) == self.s3_client.region:
                return name
        return None

    async def _ensure_instance(
        self,
        spec: InstanceSpec,
        image_id: str,
        subnet_id: str,
        security_group_id: str,
        profile_name: str,
        tags: Dict[str, str],
        result: ProvisionResult,
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        resource = result.track(ProvisionedResource(ResourceKind.INSTANCE, spec.name_tag))
        try:
            missing = [
                kind.value
                for kind in (ResourceKind.SECURITY_GROUP, ResourceKind.INSTANCE_PROFILE)
                if not (result.get_resource(kind) and result.get_resource(kind).is_active)
            ]
            if missing:
                raise DependencyError(
                    f"Cannot launch instance without {', '.join(missing)}",
                    subject=ResourceKind.INSTANCE.value,
                )

            existing = await self.ec2_client.find_active_instances(spec.name_tag)
            if len(existing) > 1:
                ids = ", ".join(i["InstanceId"] for i in existing)
                raise AlreadyExistsError(
                    f"{len(existing)} active instances tagged {spec.name_tag} ({ids}); "
                    f"cannot choose one to adopt",
                    subject=ResourceKind.INSTANCE.value,
                )
            if existing:
                instance_id = existing[0]["InstanceId"]
                self._on_existing(resource, instance_id, f"instance {spec.name_tag}")
            else:
                instance = await self.ec2_client.run_instance(
                    image_id=image_id,
                    instance_type=spec.instance_type,
                    subnet_id=subnet_id,
                    security_group_ids=[security_group_id],
                    instance_profile_name=profile_name,
                    tags={**tags, "Name": spec.name_tag},
                    key_name=spec.key_name,
                )
                instance_id = instance["InstanceId"]
                resource.identifier = instance_id
                self.logger.info(f"Launched instance {instance_id} ({spec.instance_type})")

            result.instance_id = instance_id
            public_address = await self._wait_until_ready(instance_id, cancel_event)
            resource.activate(instance_id, adopted=resource.adopted)
            result.public_address = public_address
            self.logger.info(f"Instance {instance_id} running at {public_address}")

        except ProvisionerError as e:
            self._handle_error(result, e, resource)

    async def _wait_until_ready(
        self, instance_id: str, cancel_event: Optional[asyncio.Event]
    ) -> str:
        """Poll until running with a public address, within the ready timeout."""
        deadline = time.monotonic() + self.ready_timeout_seconds
        state = "unknown"

        while True:
            try:
                instance = await self.ec2_client.get_instance(instance_id)
            except NotFoundError:
                # Freshly launched instances can be briefly invisible
                instance = None

            if instance:
                state = instance["State"]["Name"]
                address = instance.get("PublicIpAddress")
                if state == "running" and address:
                    return address
                if state in FAILED_INSTANCE_STATES:
                    raise ProviderError(
                        f"Instance {instance_id} entered {state} state while starting",
                        subject=ResourceKind.INSTANCE.value,
                    )

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ProvisionTimeout(
                    f"Instance {instance_id} not running with a public address after "
                    f"{self.ready_timeout_seconds}s (last state: {state})",
                    subject=ResourceKind.INSTANCE.value,
                )

            self.logger.debug(f"Instance {instance_id} is {state}; waiting")
            await sleep_or_cancel(
                min(self.poll_interval_seconds, remaining), cancel_event,
                ResourceKind.INSTANCE.value,
            )
