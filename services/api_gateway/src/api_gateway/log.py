"""Logging setup for api_gateway (delegates to shared)."""

from notify_shared.log import JsonFormatter, setup_logging as _setup

__all__ = ["JsonFormatter", "setup_logging"]


def setup_logging(level: str = "INFO") -> None:
    _setup(
        level,
        suppress=["werkzeug", "celery", "kombu", "botocore", "urllib3", "httpx"],
        service="api_gateway",
    )
