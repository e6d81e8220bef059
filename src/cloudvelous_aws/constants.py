"""Constants used throughout Cloudvelous AWS.

This module contains constants that do not depend on runtime configuration
or environment variables. For environment-based configuration, see the
config module.
"""

from datetime import timedelta
from typing import Final

# =============================================================================
# AWS Defaults
# =============================================================================

DEFAULT_AWS_REGION: Final[str] = "us-east-1"
"""Region used when neither the options nor the environment name one."""

DEFAULT_REQUEST_TIMEOUT_SECONDS: Final[int] = 30
"""Per-request timeout applied to every service client."""

# =============================================================================
# Exception Classification
# =============================================================================

RETRYABLE_STATUS_CODES: Final[frozenset[int]] = frozenset(
    {
        408,  # Request Timeout
        429,  # Too Many Requests
        500,  # Internal Server Error
        502,  # Bad Gateway
        503,  # Service Unavailable
        504,  # Gateway Timeout
    }
)
"""HTTP status codes for which a service error is worth retrying.

Every other status code carried by a service error is treated as final.
"""

THROTTLING_ERROR_CODES: Final[tuple[str, ...]] = (
    "Throttling",
    "ThrottlingException",
    "RequestLimitExceeded",
    "RequestThrottled",
    "TooManyRequestsException",
)

PERMISSION_ERROR_CODES: Final[tuple[str, ...]] = (
    "AccessDenied",
    "AccessDeniedException",
    "UnauthorizedOperation",
)

NOT_FOUND_ERROR_CODES: Final[tuple[str, ...]] = (
    "AWS.SimpleQueueService.NonExistentQueue",
    "QueueDoesNotExist",
    "ResourceNotFoundException",
)

VALIDATION_ERROR_CODES: Final[tuple[str, ...]] = (
    "ValidationError",
    "ValidationException",
    "InvalidParameterValue",
    "InvalidParameterException",
    "InvalidRequestException",
    "MissingParameter",
)

# =============================================================================
# SQS
# =============================================================================

SQS_HEALTH_CHECK_QUEUE: Final[str] = "test-health-check-queue"
"""Queue name probed by the SQS health check. It does not need to exist."""

SQS_NONEXISTENT_QUEUE_CODES: Final[tuple[str, ...]] = (
    "AWS.SimpleQueueService.NonExistentQueue",
    "QueueDoesNotExist",
)
"""Error codes SQS returns for an unknown queue name (query and JSON protocols)."""

SQS_MAX_DELAY_SECONDS: Final[int] = 900
SQS_MAX_VISIBILITY_TIMEOUT_SECONDS: Final[int] = 43200
SQS_MAX_WAIT_TIME_SECONDS: Final[int] = 20
SQS_MAX_RECEIVE_MESSAGES: Final[int] = 10

# =============================================================================
# Secrets Manager
# =============================================================================

SECRETS_MIN_RECOVERY_WINDOW_DAYS: Final[int] = 7
SECRETS_MAX_RECOVERY_WINDOW_DAYS: Final[int] = 30
SECRETS_MAX_LIST_RESULTS: Final[int] = 100

# =============================================================================
# RDS IAM Authentication
# =============================================================================

IAM_TOKEN_LIFETIME: Final[timedelta] = timedelta(minutes=15)
"""Validity window AWS grants an RDS IAM authentication token."""

IAM_TOKEN_VALIDITY: Final[timedelta] = timedelta(minutes=14)
"""Expiry recorded on a connection descriptor.

One minute shorter than IAM_TOKEN_LIFETIME so callers re-resolve before the
database starts rejecting the token.
"""

DEFAULT_SQL_SERVER_PORT: Final[int] = 1433
