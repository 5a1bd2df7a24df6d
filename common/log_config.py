# common/log_config.py
import logging
import os
import sys

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def configure_logging(service_name: str) -> None:
    """
    Configure root logging once for a service process.

    Every record carries the service name so that logs from several
    services can be interleaved in one stream.
    """
    level = getattr(logging, LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        stream=sys.stdout,
        format=f"%(asctime)s - {service_name} - %(name)s - %(levelname)s - %(message)s",
    )
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
