"""Tests for the configuration module."""

import logging
import random
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from cloudvelous_aws.config import (
    AwsClientOptions,
    CircuitBreakerPolicy,
    RdsOptions,
    RetryPolicy,
    SecretsManagerOptions,
    Settings,
    SqsOptions,
    configure_logging,
    get_settings,
)


class TestRetryPolicy:
    """Tests for RetryPolicy validation and delay computation."""

    def test_defaults(self) -> None:
        """Test default retry policy values."""
        policy = RetryPolicy()

        assert policy.max_attempts == 3
        assert policy.base_delay == 1.0
        assert policy.max_delay == 10.0
        assert policy.use_exponential_backoff is True
        assert policy.jitter_factor == 0.1

    def test_policy_is_immutable(self) -> None:
        """Test that a policy cannot be modified after creation."""
        policy = RetryPolicy()

        with pytest.raises(ValidationError):
            policy.max_attempts = 5  # type: ignore[misc]

    @pytest.mark.parametrize("attempts", [0, -1, 21])
    def test_max_attempts_out_of_range(self, attempts: int) -> None:
        """Test that max_attempts must be between 1 and 20."""
        with pytest.raises(ValidationError):
            RetryPolicy(max_attempts=attempts)

    @pytest.mark.parametrize("jitter", [-0.1, 1.5])
    def test_jitter_factor_out_of_range(self, jitter: float) -> None:
        """Test that jitter_factor must be within [0, 1]."""
        with pytest.raises(ValidationError):
            RetryPolicy(jitter_factor=jitter)

    def test_max_delay_below_base_delay_rejected(self) -> None:
        """Test that max_delay may not be smaller than base_delay."""
        with pytest.raises(ValidationError, match="max_delay"):
            RetryPolicy(base_delay=5.0, max_delay=1.0)

    def test_exponential_delays_without_jitter(self) -> None:
        """Test that delays double per attempt and are capped at max_delay."""
        policy = RetryPolicy(base_delay=1.0, max_delay=10.0, jitter_factor=0.0)

        assert [policy.compute_delay(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 8.0, 10.0]

    def test_constant_delay_without_backoff(self) -> None:
        """Test that disabling backoff keeps the base delay."""
        policy = RetryPolicy(base_delay=2.0, use_exponential_backoff=False, jitter_factor=0.0)

        assert policy.compute_delay(1) == 2.0
        assert policy.compute_delay(7) == 2.0

    def test_jitter_stays_within_factor(self) -> None:
        """Test that jittered delays stay within +/- jitter_factor of the base."""
        policy = RetryPolicy(base_delay=1.0, max_delay=10.0, jitter_factor=0.1)
        rng = random.Random(42)

        for attempt in range(1, 6):
            nominal = min(10.0, 2 ** (attempt - 1))
            delay = policy.compute_delay(attempt, rng=rng)
            assert nominal * 0.9 <= delay <= nominal * 1.1

    def test_jitter_applies_to_constant_delay(self) -> None:
        """Test that jitter is applied even when backoff is disabled."""
        policy = RetryPolicy(base_delay=1.0, use_exponential_backoff=False, jitter_factor=0.5)
        rng = random.Random(7)

        delays = {policy.compute_delay(1, rng=rng) for _ in range(10)}

        assert len(delays) > 1
        assert all(0.5 <= d <= 1.5 for d in delays)

    def test_huge_attempt_number_is_capped(self) -> None:
        """Test that very large attempt numbers do not overflow."""
        policy = RetryPolicy(jitter_factor=0.0)

        assert policy.compute_delay(10_000) == policy.max_delay

    def test_attempt_must_be_positive(self) -> None:
        """Test that attempt numbers start at 1."""
        with pytest.raises(ValueError, match="attempt"):
            RetryPolicy().compute_delay(0)


class TestCircuitBreakerPolicy:
    """Tests for CircuitBreakerPolicy."""

    def test_defaults(self) -> None:
        """Test default circuit breaker values."""
        policy = CircuitBreakerPolicy()

        assert policy.enabled is True
        assert policy.failure_threshold == 5
        assert policy.open_duration == 30.0
        assert policy.sampling_window == 10.0

    def test_threshold_must_be_positive(self) -> None:
        """Test that failure_threshold must be at least 1."""
        with pytest.raises(ValidationError):
            CircuitBreakerPolicy(failure_threshold=0)


class TestAwsClientOptions:
    """Tests for shared client options."""

    def test_defaults(self) -> None:
        """Test default client options."""
        options = AwsClientOptions()

        assert options.region == "us-east-1"
        assert options.access_key_id is None
        assert options.request_timeout_seconds == 30
        assert options.retry_policy == RetryPolicy()
        assert options.circuit_breaker == CircuitBreakerPolicy()

    def test_key_pair_must_be_complete(self) -> None:
        """Test that an access key without a secret is rejected."""
        with pytest.raises(ValidationError, match="together"):
            AwsClientOptions(access_key_id="AKIAEXAMPLE")

    def test_session_token_requires_keys(self) -> None:
        """Test that a session token alone is rejected."""
        with pytest.raises(ValidationError, match="session_token"):
            AwsClientOptions(session_token="token")

    def test_secret_not_in_repr(self) -> None:
        """Test that the secret access key is hidden from repr."""
        options = AwsClientOptions(access_key_id="AKIAEXAMPLE", secret_access_key="s3cr3t")

        assert "s3cr3t" not in repr(options)

    def test_request_timeout_bounds(self) -> None:
        """Test that the request timeout must be positive."""
        with pytest.raises(ValidationError):
            AwsClientOptions(request_timeout_seconds=0)


class TestServiceOptions:
    """Tests for service-specific option defaults."""

    def test_sqs_defaults(self) -> None:
        """Test SQS option defaults."""
        options = SqsOptions()

        assert options.default_visibility_timeout_seconds == 30
        assert options.default_message_retention_period_seconds == 1209600
        assert options.default_receive_message_wait_time_seconds == 20
        assert options.max_receive_messages == 10

    def test_sqs_max_receive_messages_bounds(self) -> None:
        """Test that SQS cannot be asked for more than 10 messages."""
        with pytest.raises(ValidationError):
            SqsOptions(max_receive_messages=11)

    def test_secrets_manager_defaults(self) -> None:
        """Test Secrets Manager option defaults."""
        options = SecretsManagerOptions()

        assert options.default_cache_duration_minutes == 60
        assert options.max_cache_size == 1000
        assert options.enable_caching is True

    def test_rds_defaults(self) -> None:
        """Test RDS option defaults."""
        options = RdsOptions()

        assert options.default_port == 1433
        assert options.default_connection_timeout_seconds == 30
        assert options.default_command_timeout_seconds == 30
        assert options.use_ssl is True
        assert options.validate_server_certificate is True
        assert options.ssl_ca_file is None

    @pytest.mark.parametrize("port", [0, 70000])
    def test_rds_port_bounds(self, port: int) -> None:
        """Test that the default port must be a valid TCP port."""
        with pytest.raises(ValidationError):
            RdsOptions(default_port=port)


class TestSettings:
    """Tests for environment-driven Settings."""

    def test_defaults(self) -> None:
        """Test Settings defaults."""
        with patch.dict("os.environ", {}, clear=True):
            settings = Settings(_env_file=None)  # type: ignore[call-arg]

        assert settings.aws_region == "us-east-1"
        assert settings.log_level == "INFO"
        assert settings.sqs.region == "us-east-1"

    def test_aws_region_propagates_to_services(self) -> None:
        """Test that aws_region fills in service regions."""
        settings = Settings(aws_region="eu-west-1", _env_file=None)  # type: ignore[call-arg]

        assert settings.sqs.region == "eu-west-1"
        assert settings.secrets_manager.region == "eu-west-1"
        assert settings.rds.region == "eu-west-1"

    def test_explicit_service_region_wins(self) -> None:
        """Test that a service region set explicitly is kept."""
        settings = Settings(
            aws_region="eu-west-1",
            rds=RdsOptions(region="ap-southeast-2"),
            _env_file=None,  # type: ignore[call-arg]
        )

        assert settings.rds.region == "ap-southeast-2"
        assert settings.sqs.region == "eu-west-1"

    def test_loads_from_environment(self) -> None:
        """Test loading prefixed and nested environment variables."""
        env = {
            "CLOUDVELOUS_AWS_REGION": "us-west-2",
            "CLOUDVELOUS_LOG_LEVEL": "DEBUG",
            "CLOUDVELOUS_SQS__MAX_RECEIVE_MESSAGES": "5",
            "CLOUDVELOUS_SECRETS_MANAGER__ENABLE_CACHING": "false",
        }
        with patch.dict("os.environ", env, clear=True):
            settings = Settings(_env_file=None)  # type: ignore[call-arg]

        assert settings.aws_region == "us-west-2"
        assert settings.log_level == "DEBUG"
        assert settings.sqs.max_receive_messages == 5
        assert settings.sqs.region == "us-west-2"
        assert settings.secrets_manager.enable_caching is False

    def test_invalid_log_level_rejected(self) -> None:
        """Test that unknown log levels are rejected."""
        with pytest.raises(ValidationError):
            Settings(log_level="VERBOSE", _env_file=None)  # type: ignore[arg-type, call-arg]

    def test_get_settings_is_cached(self) -> None:
        """Test that get_settings returns the same instance."""
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()


class TestConfigureLogging:
    """Tests for logging setup."""

    def test_botocore_kept_at_info_or_above(self) -> None:
        """Test that DEBUG logging does not turn on botocore debug output."""
        configure_logging("DEBUG")

        assert logging.getLogger("botocore").level == logging.INFO

    def test_botocore_follows_higher_levels(self) -> None:
        """Test that botocore follows levels above INFO."""
        configure_logging("WARNING")

        assert logging.getLogger("botocore").level == logging.WARNING
