#!/usr/bin/env python3
"""
Web Host Provisioner - Main Entry Point

Provisions a security group, IAM role/instance profile, S3 bucket and EC2
instance, configures a web server on the instance and validates the page.
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from core.models.errors import ProvisionerError
from core.models.workflow import RemoteTarget
from core.orchestration.workflow_orchestrator import WorkflowOrchestrator
from core.services.config_service import ConfigService
from core.services.configurator_service import ConfiguratorService
from core.services.descriptor_service import build_resource_specs
from core.services.provisioner_service import ProvisionerService
from core.services.report_service import (
    EXIT_CANCELLED,
    EXIT_CONFIG_ERROR,
    ReportService,
)
from core.utils.logger import setup_logging
from core.utils.retry import RetryPolicy
from infrastructure.aws.ec2_client import EC2Client
from infrastructure.aws.iam_client import IAMClient
from infrastructure.aws.s3_client import S3Client
from infrastructure.aws.session_manager import AWSSessionManager
from infrastructure.aws.ssm_client import SSMClient, SSMTransport

logger = logging.getLogger("provisioner")


def install_cancel_handlers(cancel_event: asyncio.Event) -> None:
    """SIGINT/SIGTERM set the cancellation event instead of killing the loop."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, cancel_event.set)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform (e.g. Windows); Ctrl+C still raises
            pass


async def run(args: argparse.Namespace) -> int:
    """Load configuration, wire services and run the workflow."""
    config_service = ConfigService()
    try:
        config_service.load_config(args.config)
        config = config_service.apply_overrides(
            {
                "aws.region": args.region,
                "aws.profile": args.profile,
                "network.availability_zone": args.availability_zone,
                "network.allowed_cidr": args.allowed_cidr,
                "instance.key_name": args.key_name,
                "timeouts.instance_ready_timeout_seconds": args.instance_ready_timeout,
                "timeouts.connect_timeout_seconds": args.connect_timeout,
                "timeouts.command_timeout_seconds": args.command_timeout,
                "existing_resources": args.existing,
                "log_level": "DEBUG" if args.verbose else None,
            }
        )
    except ProvisionerError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    setup_logging(config.log_level.value, args.log_file)

    errors = config_service.validate_config()
    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")
        return EXIT_CONFIG_ERROR

    cancel_event = asyncio.Event()
    install_cancel_handlers(cancel_event)

    session_manager = AWSSessionManager(region=config.aws.region, profile=config.aws.profile)
    report_service = ReportService()
    try:
        session_manager.get_caller_identity()
    except ProvisionerError as e:
        print(f"FAILED: {e}")
        return EXIT_CONFIG_ERROR

    retry_policy = RetryPolicy(
        max_attempts=config.aws.max_retries,
        base_delay=config.aws.retry_base_delay_seconds,
        max_delay=config.aws.retry_max_delay_seconds,
    )
    timeouts = config.timeouts

    provisioner_service = ProvisionerService(
        ec2_client=EC2Client(session_manager, retry_policy),
        iam_client=IAMClient(session_manager, retry_policy),
        s3_client=S3Client(session_manager, retry_policy),
        existing_policy=config.existing_resources,
        ready_timeout_seconds=timeouts.instance_ready_timeout_seconds,
        poll_interval_seconds=timeouts.poll_interval_seconds,
    )

    ssm_client = SSMClient(session_manager, retry_policy)

    def transport_factory(
        target: RemoteTarget, event: Optional[asyncio.Event]
    ) -> SSMTransport:
        return SSMTransport(
            ssm_client, target.instance_id, timeouts.poll_interval_seconds, event
        )

    configurator_service = ConfiguratorService(
        transport_factory=transport_factory,
        webserver_config=config.webserver,
        connect_timeout_seconds=timeouts.connect_timeout_seconds,
        command_timeout_seconds=timeouts.command_timeout_seconds,
        http_timeout_seconds=timeouts.http_timeout_seconds,
    )

    orchestrator = WorkflowOrchestrator(provisioner_service, configurator_service)
    specs = build_resource_specs(config)

    workflow_result = await orchestrator.run(
        specs, skip_configure=args.skip_configure, cancel_event=cancel_event
    )

    if args.outputs_file:
        report_service.write_outputs(
            args.outputs_file, workflow_result.provision, workflow_result.configuration
        )
    return report_service.report_workflow(workflow_result)


def parse_arguments(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Provision and configure a single web host on AWS',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Exit codes:
  0    success
  2    invalid configuration or credentials
  3    provisioning failed
  4    remote configuration failed
  5    page validation failed
  130  cancelled

Examples:
  # Provision in us-east-2, allowing SSH/HTTP only from one address
  python main.py --region us-east-2 --allowed-cidr 203.0.113.10/32

  # Attach an existing key pair and refuse to reuse existing resources
  python main.py --allowed-cidr 203.0.113.0/24 --key-name my-key --existing fail
        """
    )

    parser.add_argument('--config', help='Path to configuration file (default: config.yml)')
    parser.add_argument('--region', help='AWS region, e.g. us-east-2')
    parser.add_argument('--availability-zone', help='Availability zone for the default subnet')
    parser.add_argument('--profile', help='AWS credentials profile name')
    parser.add_argument(
        '--allowed-cidr',
        help='Source range allowed to reach SSH and HTTP (required unless set in config)'
    )
    parser.add_argument('--key-name', help='EC2 key pair to attach to the instance')

    parser.add_argument('--instance-ready-timeout', type=int, metavar='SECONDS')
    parser.add_argument('--connect-timeout', type=int, metavar='SECONDS')
    parser.add_argument('--command-timeout', type=int, metavar='SECONDS')
    parser.add_argument(
        '--existing',
        choices=['adopt', 'fail'],
        help='Reuse fixed-name resources that already exist, or stop (default: adopt)'
    )

    parser.add_argument(
        '--skip-configure',
        action='store_true',
        help='Provision only; do not configure the web server'
    )
    parser.add_argument('--outputs-file', help='Write outputs as JSON to this path')
    parser.add_argument('--log-file', help='Also log to logs/<LOG_FILE>')
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )

    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_arguments(argv)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        return EXIT_CANCELLED


if __name__ == '__main__':
    sys.exit(main())
