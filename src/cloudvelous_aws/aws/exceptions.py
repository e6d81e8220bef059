"""Custom exceptions for AWS operations.

This module defines the exception hierarchy raised by the service managers.
Every AWS failure surfaces as an ``AWSError`` subclass that keeps the service,
operation, AWS error code and HTTP status, so callers and the exception
classifier can tell transport failures, timeouts and service errors apart.
"""

from typing import Any


class AWSError(Exception):
    """Base exception for all AWS-related errors.

    Attributes:
        message: Human-readable error message.
        service: AWS service name (e.g., 'sqs', 'secretsmanager').
        operation: Operation name (e.g., 'get_secret_value').
        error_code: AWS error code if available (e.g., 'ResourceNotFoundException').
        details: Additional error context such as ``http_status`` and ``request_id``.
    """

    def __init__(
        self,
        message: str,
        service: str | None = None,
        operation: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize AWS error with context.

        Args:
            message: Human-readable error message.
            service: AWS service name. Defaults to None.
            operation: Operation name. Defaults to None.
            error_code: AWS error code if available. Defaults to None.
            details: Additional error context. Defaults to None.
        """
        super().__init__(message)
        self.message = message
        self.service = service
        self.operation = operation
        self.error_code = error_code
        self.details = details or {}

    @property
    def http_status(self) -> int | None:
        """HTTP status code AWS answered with, when the error came from a response."""
        status = self.details.get("http_status")
        return status if isinstance(status, int) else None

    def __str__(self) -> str:
        """Return formatted error string with context."""
        parts = [self.message]
        if self.service:
            parts.append(f"Service: {self.service}")
        if self.operation:
            parts.append(f"Operation: {self.operation}")
        if self.error_code:
            parts.append(f"Code: {self.error_code}")
        return " | ".join(parts)


class SQSError(AWSError):
    """Exception raised for SQS service errors."""


class SecretsManagerError(AWSError):
    """Exception raised for Secrets Manager service errors."""


class RDSError(AWSError):
    """Exception raised for RDS service errors."""


class ThrottlingError(AWSError):
    """Exception raised when AWS API rate limits are exceeded."""


class ValidationError(AWSError):
    """Exception raised for input validation errors.

    Raised when parameters fail validation, either locally before the call
    or by AWS rejecting the request.
    """


class ResourceNotFoundError(AWSError):
    """Exception raised when an AWS resource is not found.

    Raised for unknown queues, secrets and DB instances, including the case
    where a describe call succeeds but returns no matching resource.
    """


class InvalidStateError(AWSError):
    """Exception raised when a resource exists but cannot be used as requested.

    Raised, for example, when a secret has neither a string nor a binary
    payload, when a secret payload cannot be deserialized, or when a DB
    instance has no endpoint yet.
    """


class PermissionError(AWSError):
    """Exception raised for AWS permission/authorization errors."""


class NetworkError(AWSError):
    """Exception raised when the request never got an answer from AWS.

    Covers DNS failures, refused or reset connections and other transport
    errors reported by botocore.
    """


class TimeoutError(AWSError):
    """Exception raised when an AWS operation times out."""
