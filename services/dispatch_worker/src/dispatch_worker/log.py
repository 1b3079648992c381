"""Logging setup for dispatch_worker (delegates to shared)."""

from notify_shared.log import JsonFormatter, setup_logging as _setup

__all__ = ["JsonFormatter", "setup_logging"]


def setup_logging(level: str = "INFO") -> None:
    _setup(
        level,
        suppress=["celery", "kombu", "botocore", "boto3", "urllib3", "httpx"],
        service="dispatch_worker",
    )
