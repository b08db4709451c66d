"""AWS infrastructure implementations."""

from .session_manager import AWSSessionManager
from .ec2_client import EC2Client
from .iam_client import IAMClient
from .s3_client import S3Client
from .ssm_client import SSMClient, SSMTransport

__all__ = [
    'AWSSessionManager',
    'EC2Client',
    'IAMClient',
    'S3Client',
    'SSMClient',
    'SSMTransport',
]
