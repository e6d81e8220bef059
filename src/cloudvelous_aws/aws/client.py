"""AWS client construction and the call wrapper shared by all service managers.

Clients are built by composing a per-service ``ClientStrategy`` (which turns
options into a botocore ``Config`` and then into a client) with an injected
``CredentialProvider``. ``AWSClientWrapper`` then runs every operation on the
default executor, converts botocore failures into the ``AWSError`` hierarchy,
and applies the configured circuit breaker and retry policy.
"""

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Final, Protocol, TypeVar

import boto3
from botocore.client import BaseClient
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    HTTPClientError,
    NoCredentialsError,
    ParamValidationError,
    ReadTimeoutError,
)
from botocore.exceptions import ConnectionError as BotocoreConnectionError

from cloudvelous_aws.aws.classifier import ExceptionHandler, is_retryable
from cloudvelous_aws.aws.credentials import (
    AwsCredentials,
    CredentialProvider,
    credential_provider_from_options,
)
from cloudvelous_aws.aws.exceptions import (
    AWSError,
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
from cloudvelous_aws.config.settings import AwsClientOptions, RetryPolicy, SqsOptions
from cloudvelous_aws.constants import (
    NOT_FOUND_ERROR_CODES,
    PERMISSION_ERROR_CODES,
    THROTTLING_ERROR_CODES,
    VALIDATION_ERROR_CODES,
)
from cloudvelous_aws.utils.circuit_breaker import CircuitBreaker

logger: Final = logging.getLogger(__name__)

T = TypeVar("T")

_SERVICE_ERRORS: Final[dict[str, type[AWSError]]] = {
    "sqs": SQSError,
    "secretsmanager": SecretsManagerError,
    "rds": RDSError,
}


class ClientStrategy(Protocol):
    """How one AWS service turns options into a configured boto3 client."""

    service_name: str

    def build_client_config(self, options: AwsClientOptions) -> Config:
        """Build the botocore transport configuration for this service."""
        ...

    def instantiate_client(
        self, config: Config, region: str, credentials: AwsCredentials | None
    ) -> BaseClient:
        """Create the boto3 client from a transport configuration."""
        ...


class Boto3ClientStrategy:
    """Default strategy: timeouts from the options, botocore retries disabled.

    Retries are disabled at the botocore level because ``AWSClientWrapper``
    retries according to the options' RetryPolicy.
    """

    def __init__(self, service_name: str) -> None:
        self.service_name = service_name

    def build_client_config(self, options: AwsClientOptions) -> Config:
        return Config(
            region_name=options.region,
            connect_timeout=options.request_timeout_seconds,
            read_timeout=options.request_timeout_seconds,
            retries={"mode": "standard", "total_max_attempts": 1},
        )

    def instantiate_client(
        self, config: Config, region: str, credentials: AwsCredentials | None
    ) -> BaseClient:
        kwargs = credentials.as_client_kwargs() if credentials else {}
        return boto3.client(  # type: ignore[call-overload, no-any-return]
            self.service_name, region_name=region, config=config, **kwargs
        )


class SqsClientStrategy(Boto3ClientStrategy):
    """SQS strategy keeping the read timeout above the long-poll wait time."""

    # Extra seconds beyond the long-poll wait before the read is abandoned.
    LONG_POLL_MARGIN_SECONDS: Final[int] = 10

    def __init__(self) -> None:
        super().__init__("sqs")

    def build_client_config(self, options: AwsClientOptions) -> Config:
        config = super().build_client_config(options)
        if isinstance(options, SqsOptions):
            minimum = (
                options.default_receive_message_wait_time_seconds + self.LONG_POLL_MARGIN_SECONDS
            )
            if options.request_timeout_seconds < minimum:
                config = config.merge(Config(read_timeout=minimum))
        return config


SQS_STRATEGY: Final = SqsClientStrategy()
SECRETS_MANAGER_STRATEGY: Final = Boto3ClientStrategy("secretsmanager")
RDS_STRATEGY: Final = Boto3ClientStrategy("rds")


def create_configured_client(
    strategy: ClientStrategy,
    options: AwsClientOptions,
    credential_provider: CredentialProvider | None = None,
) -> BaseClient:
    """Build a boto3 client from a service strategy and options.

    Args:
        strategy: Service-specific construction strategy.
        options: Client options (region, timeouts, credentials).
        credential_provider: Credential source. Defaults to one derived from
            the options.

    Returns:
        Configured boto3 client.
    """
    config = strategy.build_client_config(options)
    provider = credential_provider or credential_provider_from_options(options)
    client = strategy.instantiate_client(config, options.region, provider.resolve())
    logger.info(f"Initialized AWS {strategy.service_name} client for region {options.region}")
    return client


class AWSClientWrapper:
    """Wrapper for boto3 clients with circuit breaking, retries and error conversion.

    The wrapper converts boto3's synchronous calls to async operations and
    turns every botocore failure into an ``AWSError`` subclass.

    Example:
        >>> wrapper = create_aws_client(SECRETS_MANAGER_STRATEGY, SecretsManagerOptions())
        >>> result = await wrapper.call("list_secrets", MaxResults=1)
    """

    def __init__(
        self,
        service_name: str,
        client: BaseClient,
        retry_policy: RetryPolicy | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        exception_handler: ExceptionHandler | None = None,
    ) -> None:
        """Initialize AWS client wrapper.

        Args:
            service_name: AWS service name (e.g., 'sqs', 'rds').
            client: The boto3 client to wrap.
            retry_policy: Retry policy. Defaults to a single attempt.
            circuit_breaker: Optional circuit breaker guarding every attempt.
            exception_handler: Handler logging failures. Defaults to a new one.
        """
        self.service_name = service_name
        self.retry_policy = retry_policy or RetryPolicy(max_attempts=1)
        self.circuit_breaker = circuit_breaker
        self.exception_handler = exception_handler or ExceptionHandler()
        self._client = client

    async def call(self, operation: str, **kwargs: Any) -> Any:
        """Execute an AWS operation with circuit breaking, retries and error handling.

        Args:
            operation: boto3 method name (e.g., 'send_message', 'get_secret_value').
            **kwargs: Operation-specific parameters.

        Returns:
            The response from the AWS operation.

        Raises:
            ValidationError: For invalid parameters or input validation errors.
            ResourceNotFoundError: When requested resource doesn't exist.
            PermissionError: For IAM permission/authorization errors.
            ThrottlingError: When AWS rate limits are exceeded.
            NetworkError: When AWS could not be reached.
            TimeoutError: When the operation exceeded the request timeout.
            CircuitBreakerOpenError: When the circuit breaker rejects the call.
            AWSError: Service-specific subclass for other AWS errors.
        """
        operation_name = f"{self.service_name}:{operation}"
        logger.debug(f"Calling {operation_name} with params: {list(kwargs.keys())}")

        async def attempt() -> Any:
            if self.circuit_breaker is None:
                return await self._invoke(operation, kwargs)
            async with self.circuit_breaker.guard(operation_name):
                return await self._invoke(operation, kwargs)

        return await execute_with_retry(
            attempt,
            self.retry_policy,
            operation_name=operation_name,
            exception_handler=self.exception_handler,
        )

    async def _invoke(self, operation: str, kwargs: dict[str, Any]) -> Any:
        operation_name = f"{self.service_name}:{operation}"
        try:
            # boto3 is synchronous; run it off the event loop
            loop = asyncio.get_running_loop()
            client_method = getattr(self._client, operation)
            result = await loop.run_in_executor(None, functools.partial(client_method, **kwargs))

            logger.debug(f"Successfully completed {operation_name}")
            return result

        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            error_message = e.response.get("Error", {}).get("Message", str(e))

            logger.warning(f"{operation_name} failed with {error_code}: {error_message}")

            raise self._convert_client_error(e, operation, error_code, error_message) from e

        except (ReadTimeoutError, ConnectTimeoutError) as e:
            logger.error(f"{operation_name} timed out: {e}")
            raise TimeoutError(
                f"Operation {operation} timed out",
                service=self.service_name,
                operation=operation,
            ) from e

        except (BotocoreConnectionError, HTTPClientError) as e:
            logger.error(f"{operation_name} failed with network error: {e}")
            raise NetworkError(
                str(e),
                service=self.service_name,
                operation=operation,
            ) from e

        except ParamValidationError as e:
            raise ValidationError(
                str(e),
                service=self.service_name,
                operation=operation,
            ) from e

        except NoCredentialsError as e:
            raise PermissionError(
                str(e),
                service=self.service_name,
                operation=operation,
            ) from e

        except BotoCoreError as e:
            logger.error(f"{operation_name} failed with BotoCoreError: {e}")
            raise self._get_service_error_class()(
                f"AWS operation failed: {e}",
                service=self.service_name,
                operation=operation,
            ) from e

        except Exception as e:
            logger.error(f"{operation_name} failed with unexpected error: {e}")
            raise self._get_service_error_class()(
                f"Unexpected error during {operation}: {e}",
                service=self.service_name,
                operation=operation,
            ) from e

    def _convert_client_error(
        self, error: ClientError, operation: str, error_code: str, error_message: str
    ) -> AWSError:
        """Convert boto3 ClientError to appropriate custom exception.

        Args:
            error: The original ClientError from boto3.
            operation: The AWS operation name.
            error_code: AWS error code from the response.
            error_message: AWS error message from the response.

        Returns:
            Custom exception instance matching the error type.
        """
        details = {
            "error_code": error_code,
            "http_status": error.response.get("ResponseMetadata", {}).get("HTTPStatusCode"),
            "request_id": error.response.get("ResponseMetadata", {}).get("RequestId"),
        }

        error_class: type[AWSError]
        if error_code in THROTTLING_ERROR_CODES:
            error_class = ThrottlingError
        elif error_code in PERMISSION_ERROR_CODES:
            error_class = PermissionError
        # Not-found must come before the generic Invalid* check
        elif error_code in NOT_FOUND_ERROR_CODES or "NotFound" in error_code:
            error_class = ResourceNotFoundError
        elif error_code in VALIDATION_ERROR_CODES or error_code.startswith("Invalid"):
            error_class = ValidationError
        else:
            error_class = self._get_service_error_class()

        return error_class(
            error_message,
            service=self.service_name,
            operation=operation,
            error_code=error_code,
            details=details,
        )

    def _get_service_error_class(self) -> type[AWSError]:
        """Get the service-specific error class, AWSError for unknown services."""
        return _SERVICE_ERRORS.get(self.service_name, AWSError)

    def get_client(self) -> BaseClient:
        """Get the underlying boto3 client for operations that are not API calls.

        Warning:
            Direct use of the boto3 client bypasses retries, circuit breaking
            and error conversion.
        """
        return self._client


def create_aws_client(
    strategy: ClientStrategy,
    options: AwsClientOptions,
    credential_provider: CredentialProvider | None = None,
) -> AWSClientWrapper:
    """Factory function to create a fully configured AWS client wrapper.

    The wrapper gets the options' retry policy and, when enabled, a circuit
    breaker that only counts retryable failures.

    Args:
        strategy: Service-specific construction strategy.
        options: Client options.
        credential_provider: Credential source. Defaults to one derived from
            the options.

    Returns:
        Configured AWSClientWrapper instance.

    Example:
        >>> sqs_client = create_aws_client(SQS_STRATEGY, SqsOptions(region="eu-west-1"))
        >>> result = await sqs_client.call("get_queue_url", QueueName="orders")
    """
    client = create_configured_client(strategy, options, credential_provider)
    breaker = None
    if options.circuit_breaker.enabled:
        breaker = CircuitBreaker(
            options.circuit_breaker,
            name=strategy.service_name,
            should_trip=is_retryable,
        )
    return AWSClientWrapper(
        strategy.service_name,
        client,
        retry_policy=options.retry_policy,
        circuit_breaker=breaker,
    )


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    operation_name: str = "aws_operation",
    exception_handler: ExceptionHandler | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """Execute an async operation, retrying failures the classifier marks retryable.

    Every failure goes through the exception handler, which logs it as a
    warning (retryable) or an error (final). Cancellation is never caught.

    Args:
        operation: Async callable that performs the AWS operation.
        policy: Retry policy. Defaults to RetryPolicy().
        operation_name: Name used as logging context.
        exception_handler: Handler classifying and logging failures.
        sleep: Awaitable sleep used between attempts. Defaults to asyncio.sleep.

    Returns:
        The result from the successful operation.

    Raises:
        The last exception encountered if the failure is not retryable or all
        attempts are exhausted.

    Example:
        >>> async def list_secrets():
        ...     return await wrapper.call("list_secrets", MaxResults=1)
        >>> result = await execute_with_retry(list_secrets, RetryPolicy(max_attempts=5))
    """
    policy = policy or RetryPolicy()
    handler = exception_handler or ExceptionHandler()

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await operation()

        except Exception as e:
            verdict = handler.handle(
                e, context=f"{operation_name} (attempt {attempt}/{policy.max_attempts})"
            )
            if not verdict.retryable:
                raise
            if attempt >= policy.max_attempts:
                logger.error(f"All {policy.max_attempts} attempts of {operation_name} failed")
                raise

            delay = policy.compute_delay(attempt)
            logger.warning(f"Retrying {operation_name} in {delay:.2f}s: {verdict.user_message}")
            await sleep(delay)

    # Unreachable: the loop either returns or raises
    raise RuntimeError("Unexpected state in retry logic")
