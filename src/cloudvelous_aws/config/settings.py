"""Client options and application settings.

This module provides the Pydantic option records consumed by every service
manager (region, credentials, timeouts, retry policy, circuit breaker and the
service-specific fields) plus a pydantic-settings ``Settings`` class that loads
all of them from ``CLOUDVELOUS_*`` environment variables.
"""

import random
from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cloudvelous_aws.constants import (
    DEFAULT_AWS_REGION,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_SQL_SERVER_PORT,
    SQS_MAX_RECEIVE_MESSAGES,
    SQS_MAX_VISIBILITY_TIMEOUT_SECONDS,
    SQS_MAX_WAIT_TIME_SECONDS,
)

# Exponent cap keeps base_delay * 2**n finite for absurd attempt numbers.
_MAX_BACKOFF_EXPONENT = 62


class RetryPolicy(BaseModel):
    """Bounded retry policy with optional exponential backoff and jitter.

    Attributes:
        max_attempts: Total number of attempts, including the first one.
        base_delay: Delay in seconds before the first retry.
        max_delay: Upper bound in seconds for any single backoff delay.
        use_exponential_backoff: Double the delay on every attempt when True.
        jitter_factor: Fraction of the delay randomly added or removed.

    Example:
        >>> policy = RetryPolicy(base_delay=0.5, jitter_factor=0.0)
        >>> [policy.compute_delay(n) for n in (1, 2, 3)]
        [0.5, 1.0, 2.0]
    """

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1, le=20, description="Total attempts")
    base_delay: float = Field(default=1.0, ge=0.0, description="Base delay in seconds")
    max_delay: float = Field(default=10.0, ge=0.0, description="Maximum delay in seconds")
    use_exponential_backoff: bool = Field(default=True, description="Double delay per attempt")
    jitter_factor: float = Field(default=0.1, ge=0.0, le=1.0, description="Random spread")

    @model_validator(mode="after")
    def validate_delays(self) -> "RetryPolicy":
        """Ensure the delay ceiling is not below the base delay.

        Returns:
            The validated policy.

        Raises:
            ValueError: If max_delay is smaller than base_delay.
        """
        if self.max_delay < self.base_delay:
            raise ValueError(
                f"max_delay ({self.max_delay}) must be >= base_delay ({self.base_delay})"
            )
        return self

    def compute_delay(self, attempt: int, rng: random.Random | None = None) -> float:
        """Compute the delay to wait after the given failed attempt.

        Args:
            attempt: 1-based number of the attempt that just failed.
            rng: Random source for jitter. Defaults to the module-level generator.

        Returns:
            Delay in seconds, never negative.

        Raises:
            ValueError: If attempt is smaller than 1.
        """
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")

        if self.use_exponential_backoff:
            exponent = min(attempt - 1, _MAX_BACKOFF_EXPONENT)
            delay = min(self.max_delay, self.base_delay * (2**exponent))
        else:
            delay = self.base_delay

        if self.jitter_factor > 0:
            spread = (rng or random).uniform(-self.jitter_factor, self.jitter_factor)
            delay *= 1 + spread

        return max(0.0, delay)


class CircuitBreakerPolicy(BaseModel):
    """Thresholds for the closed/open/half-open circuit breaker.

    Attributes:
        enabled: Whether service calls pass through the breaker at all.
        failure_threshold: Retryable failures within the sampling window that open the circuit.
        open_duration: Seconds the circuit stays open before allowing a trial call.
        sampling_window: Seconds over which failures are counted.
    """

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=True, description="Route calls through the breaker")
    failure_threshold: int = Field(default=5, ge=1, description="Failures that open the circuit")
    open_duration: float = Field(default=30.0, gt=0.0, description="Seconds to stay open")
    sampling_window: float = Field(default=10.0, gt=0.0, description="Failure window in seconds")


class AwsClientOptions(BaseModel):
    """Options shared by every service client.

    Explicit credentials are optional; when they are absent the boto3 default
    credential chain (environment, shared config, instance role) is used.
    """

    region: str = Field(default=DEFAULT_AWS_REGION, min_length=1, description="AWS region")
    access_key_id: str | None = Field(default=None, description="Explicit access key ID")
    secret_access_key: str | None = Field(
        default=None, repr=False, description="Explicit secret access key"
    )
    session_token: str | None = Field(default=None, repr=False, description="Session token")
    request_timeout_seconds: int = Field(
        default=DEFAULT_REQUEST_TIMEOUT_SECONDS,
        ge=1,
        le=900,
        description="Connect and read timeout for each request",
    )
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    circuit_breaker: CircuitBreakerPolicy = Field(default_factory=CircuitBreakerPolicy)

    @model_validator(mode="after")
    def validate_credentials(self) -> "AwsClientOptions":
        """Require the access key ID and secret access key to be set together.

        Returns:
            The validated options.

        Raises:
            ValueError: If only one half of the key pair is configured.
        """
        if bool(self.access_key_id) != bool(self.secret_access_key):
            raise ValueError("access_key_id and secret_access_key must be provided together")
        if self.session_token and not self.access_key_id:
            raise ValueError("session_token requires access_key_id and secret_access_key")
        return self


class SqsOptions(AwsClientOptions):
    """Options for the SQS manager."""

    default_visibility_timeout_seconds: int = Field(
        default=30, ge=0, le=SQS_MAX_VISIBILITY_TIMEOUT_SECONDS
    )
    default_message_retention_period_seconds: int = Field(
        default=1209600, ge=60, le=1209600, description="14 days by default"
    )
    default_receive_message_wait_time_seconds: int = Field(
        default=SQS_MAX_WAIT_TIME_SECONDS, ge=0, le=SQS_MAX_WAIT_TIME_SECONDS
    )
    max_receive_messages: int = Field(default=SQS_MAX_RECEIVE_MESSAGES, ge=1, le=10)


class SecretsManagerOptions(AwsClientOptions):
    """Options for the Secrets Manager manager."""

    default_cache_duration_minutes: int = Field(default=60, ge=0)
    max_cache_size: int = Field(default=1000, ge=1)
    enable_caching: bool = True


class RdsOptions(AwsClientOptions):
    """Options for the RDS manager and SQL Server connection strings."""

    default_port: int = Field(default=DEFAULT_SQL_SERVER_PORT, ge=1, le=65535)
    default_connection_timeout_seconds: int = Field(default=30, ge=0)
    default_command_timeout_seconds: int = Field(default=30, ge=0)
    use_ssl: bool = True
    validate_server_certificate: bool = True
    ssl_ca_file: str | None = None


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Nested option fields use ``__`` as delimiter, for example
    ``CLOUDVELOUS_SQS__MAX_RECEIVE_MESSAGES=5`` or
    ``CLOUDVELOUS_RDS__RETRY_POLICY__MAX_ATTEMPTS=2``. ``CLOUDVELOUS_AWS_REGION``
    fills in the region of every service whose own region was not set.

    Example:
        >>> settings = Settings(aws_region="eu-west-1")
        >>> settings.sqs.region
        'eu-west-1'
    """

    model_config = SettingsConfigDict(
        env_prefix="CLOUDVELOUS_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    aws_region: str = Field(default=DEFAULT_AWS_REGION, description="Default AWS region")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Application log level",
    )

    sqs: SqsOptions = Field(default_factory=SqsOptions)
    secrets_manager: SecretsManagerOptions = Field(default_factory=SecretsManagerOptions)
    rds: RdsOptions = Field(default_factory=RdsOptions)

    @model_validator(mode="after")
    def apply_default_region(self) -> "Settings":
        """Propagate aws_region to service options without an explicit region.

        Returns:
            The validated Settings instance.
        """
        for options in (self.sqs, self.secrets_manager, self.rds):
            if "region" not in options.model_fields_set:
                options.region = self.aws_region
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Validated Settings instance.
    """
    return Settings()
