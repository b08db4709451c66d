"""Centralized logging configuration for the provisioner."""

import logging
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DIR = "logs"


def _resolve_level(level: str) -> int:
    value = getattr(logging, str(level).upper(), None)
    return value if isinstance(value, int) else logging.INFO


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Setup console and optional file logging for the whole process.

    Examples:
        # Console only
        setup_logging("DEBUG")

        # Console + logs/provision.log
        setup_logging("INFO", "provision.log")
    """
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(LOG_DIR).mkdir(exist_ok=True)
        handlers.append(logging.FileHandler(f"{LOG_DIR}/{log_file}"))

    logging.basicConfig(
        level=_resolve_level(level), format=LOG_FORMAT, handlers=handlers, force=True
    )
    # botocore is noisy at DEBUG
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def get_infrastructure_logger(module_name: str) -> logging.Logger:
    """Get logger for infrastructure modules."""
    return logging.getLogger(f"infrastructure.{module_name}")
