import ipaddress
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class LogLevel(Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class ExistingResourcePolicy(Enum):
    """What to do when a fixed-name resource already exists."""
    ADOPT = "adopt"
    FAIL = "fail"


@dataclass
class AWSConfig:
    """AWS configuration."""
    region: str = "us-east-2"
    profile: Optional[str] = None
    max_retries: int = 3
    retry_base_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 16.0


@dataclass
class NetworkConfig:
    """Network placement and firewall settings."""
    availability_zone: str = "us-east-2a"
    allowed_cidr: str = ""
    security_group_name: str = "tech-challenge3-sg"
    ingress_ports: List[int] = field(default_factory=lambda: [22, 80])


@dataclass
class InstanceConfig:
    """Compute instance sizing and image lookup."""
    instance_type: str = "t2.micro"
    name_tag: str = "tech-challenge3-web"
    key_name: Optional[str] = None
    ami_owner: str = "099720109477"  # Canonical
    ami_name_pattern: str = "ubuntu/images/hvm-ssd/ubuntu-jammy-22.04-amd64-server-*"
    ami_architecture: str = "x86_64"


@dataclass
class IAMConfig:
    """Identity resources attached to the instance."""
    role_name: str = "tech-challenge3-ec2-role"
    policy_name: str = "tech-challenge3-s3-access"
    instance_profile_name: str = "tech-challenge3-instance-profile"
    managed_policy_arns: List[str] = field(
        default_factory=lambda: ["arn:aws:iam::aws:policy/AmazonSSMManagedInstanceCore"]
    )


@dataclass
class BucketConfig:
    """Storage bucket naming."""
    name_prefix: str = "tech-challenge3"
    block_public_access: bool = True


@dataclass
class WebServerConfig:
    """Remote web server configuration."""
    package: str = "apache2"
    service: str = "apache2"
    web_root: str = "/var/www/html"
    page_name: str = "index.html"
    page_content: str = "<h1>Hello, World!</h1>"
    owner: str = "root"
    group: str = "root"
    mode: str = "0644"
    cache_valid_seconds: int = 3600


@dataclass
class TimeoutConfig:
    """Bounded waits, in seconds."""
    instance_ready_timeout_seconds: int = 300
    poll_interval_seconds: float = 5.0
    connect_timeout_seconds: int = 300
    command_timeout_seconds: int = 600
    http_timeout_seconds: int = 10


@dataclass
class ProvisionConfig:
    """Complete provisioner configuration."""

    project: str = "tech-challenge3"

    aws: AWSConfig = field(default_factory=AWSConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    instance: InstanceConfig = field(default_factory=InstanceConfig)
    iam: IAMConfig = field(default_factory=IAMConfig)
    bucket: BucketConfig = field(default_factory=BucketConfig)
    webserver: WebServerConfig = field(default_factory=WebServerConfig)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)

    existing_resources: ExistingResourcePolicy = ExistingResourcePolicy.ADOPT
    log_level: LogLevel = LogLevel.INFO

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors."""
        errors = []

        if not self.aws.region:
            errors.append("AWS region is required")

        if not self.network.availability_zone.startswith(self.aws.region):
            errors.append(
                f"Availability zone {self.network.availability_zone} "
                f"is not in region {self.aws.region}"
            )

        if not self.network.allowed_cidr:
            errors.append(
                "network.allowed_cidr is required (the source range allowed to reach SSH/HTTP)"
            )
        else:
            try:
                network = ipaddress.ip_network(self.network.allowed_cidr, strict=False)
            except (TypeError, ValueError):
                errors.append(f"Invalid CIDR: {self.network.allowed_cidr}")
            else:
                if not isinstance(network, ipaddress.IPv4Network):
                    errors.append(
                        f"network.allowed_cidr must be an IPv4 range: {self.network.allowed_cidr}"
                    )

        for port in self.network.ingress_ports:
            if not 0 < int(port) < 65536:
                errors.append(f"Invalid ingress port: {port}")

        if self.aws.max_retries < 1:
            errors.append("aws.max_retries must be at least 1")

        if self.timeouts.instance_ready_timeout_seconds <= 0:
            errors.append("Instance ready timeout must be positive")

        if self.timeouts.connect_timeout_seconds <= 0:
            errors.append("Connect timeout must be positive")

        if self.timeouts.poll_interval_seconds <= 0:
            errors.append("Poll interval must be positive")

        if not isinstance(self.webserver.mode, str):
            # an unquoted YAML 0644 arrives as the integer 420
            errors.append(
                f"webserver.mode must be a quoted octal string such as \"0644\", "
                f"got {self.webserver.mode!r}"
            )
        else:
            try:
                int(self.webserver.mode, 8)
            except ValueError:
                errors.append(f"Invalid file mode: {self.webserver.mode}")

        return errors
