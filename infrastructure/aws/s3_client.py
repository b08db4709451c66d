"""AWS S3 client for bucket operations."""

from typing import Dict, List, Optional

from core.models.errors import NotFoundError
from .base_client import AWSClient


class S3Client(AWSClient):
    """AWS S3 client wrapper."""

    service_name = "s3"

    async def list_bucket_names(self, prefix: str = "") -> List[str]:
        response = await self._call("List buckets", "list_buckets", subject="bucket")
        return [
            b["Name"] for b in response.get("Buckets", []) if b["Name"].startswith(prefix)
        ]

    async def get_bucket_tags(self, bucket_name: str) -> Dict[str, str]:
        """Bucket tags; empty when the bucket has none."""
        try:
            response = await self._call(
                "Get bucket tagging", "get_bucket_tagging", subject="bucket",
                Bucket=bucket_name,
            )
        except NotFoundError:
            return {}
        return {t["Key"]: t["Value"] for t in response.get("TagSet", [])}

    async def get_bucket_region(self, bucket_name: str) -> Optional[str]:
        response = await self._call(
            "Get bucket location", "get_bucket_location", subject="bucket",
            Bucket=bucket_name,
        )
        # us-east-1 buckets report no constraint
        return response.get("LocationConstraint") or "us-east-1"

    async def create_bucket(self, bucket_name: str, tags: Dict[str, str]) -> None:
        params = {"Bucket": bucket_name}
        if self.region != "us-east-1":
            params["CreateBucketConfiguration"] = {"LocationConstraint": self.region}

        await self._call("Create bucket", "create_bucket", subject="bucket", **params)
        await self._call(
            "Put bucket tagging",
            "put_bucket_tagging",
            subject="bucket",
            Bucket=bucket_name,
            Tagging={"TagSet": [{"Key": k, "Value": v} for k, v in tags.items()]},
        )

    async def block_public_access(self, bucket_name: str) -> None:
        await self._call(
            "Put public access block",
            "put_public_access_block",
            subject="bucket",
            Bucket=bucket_name,
            PublicAccessBlockConfiguration={
                "BlockPublicAcls": True,
                "IgnorePublicAcls": True,
                "BlockPublicPolicy": True,
                "RestrictPublicBuckets": True,
            },
        )
