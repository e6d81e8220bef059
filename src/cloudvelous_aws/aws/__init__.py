"""AWS service integrations for Cloudvelous AWS.

This package provides:
- Boto3 client construction from per-service strategies and credential providers
- A call wrapper with circuit breaking, retries and error conversion
- Exception classification into retry verdicts
- SQS, Secrets Manager and RDS managers

Example:
    >>> from cloudvelous_aws.aws import RDSManager, SecretsManager, SQSManager
    >>>
    >>> secrets = SecretsManager()
    >>> api_key = await secrets.get_secret_value("prod/api-key")
    >>>
    >>> sqs = SQSManager()
    >>> queue_url = await sqs.get_queue_url("orders")
    >>> await sqs.send_message(queue_url, {"order_id": 42})
"""

from cloudvelous_aws.aws.classifier import (
    ExceptionHandler,
    ExceptionVerdict,
    classify,
    get_user_friendly_message,
    is_retryable,
)
from cloudvelous_aws.aws.client import (
    RDS_STRATEGY,
    SECRETS_MANAGER_STRATEGY,
    SQS_STRATEGY,
    AWSClientWrapper,
    Boto3ClientStrategy,
    ClientStrategy,
    create_aws_client,
    create_configured_client,
    execute_with_retry,
)
from cloudvelous_aws.aws.credentials import (
    AmbientCredentialProvider,
    AwsCredentials,
    CredentialProvider,
    StaticCredentialProvider,
)
from cloudvelous_aws.aws.exceptions import (
    AWSError,
    InvalidStateError,
    NetworkError,
    PermissionError,
    RDSError,
    ResourceNotFoundError,
    SecretsManagerError,
    SQSError,
    ThrottlingError,
    TimeoutError,
    ValidationError,
)
from cloudvelous_aws.aws.rds import DBInstance, RDSManager
from cloudvelous_aws.aws.rds_connection import (
    RdsConnectionInfo,
    build_connection_info,
    render_connection_string,
)
from cloudvelous_aws.aws.secrets_manager import SecretsManager
from cloudvelous_aws.aws.sqs import SQSManager, SQSMessage

__all__ = [
    "RDS_STRATEGY",
    "SECRETS_MANAGER_STRATEGY",
    "SQS_STRATEGY",
    "AWSClientWrapper",
    "AWSError",
    "AmbientCredentialProvider",
    "AwsCredentials",
    "Boto3ClientStrategy",
    "ClientStrategy",
    "CredentialProvider",
    "DBInstance",
    "ExceptionHandler",
    "ExceptionVerdict",
    "InvalidStateError",
    "NetworkError",
    "PermissionError",
    "RDSError",
    "RDSManager",
    "RdsConnectionInfo",
    "ResourceNotFoundError",
    "SQSError",
    "SQSManager",
    "SQSMessage",
    "SecretsManager",
    "SecretsManagerError",
    "StaticCredentialProvider",
    "ThrottlingError",
    "TimeoutError",
    "ValidationError",
    "build_connection_info",
    "classify",
    "create_aws_client",
    "create_configured_client",
    "execute_with_retry",
    "get_user_friendly_message",
    "is_retryable",
    "render_connection_string",
]
