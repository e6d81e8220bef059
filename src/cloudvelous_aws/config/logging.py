"""Logging setup for applications using Cloudvelous AWS."""

import logging
from typing import Final

LOG_FORMAT: Final[str] = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str | int = "INFO") -> None:
    """Configure root logging with the standard Cloudvelous format.

    Args:
        level: Log level name or number. Defaults to "INFO".
    """
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # botocore is chatty at DEBUG and logs request signatures
    logging.getLogger("botocore").setLevel(max(logging.INFO, _as_int(level)))


def _as_int(level: str | int) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO
