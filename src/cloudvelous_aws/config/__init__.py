"""Configuration management for Cloudvelous AWS.

This module exports the option records, the Settings class and logging setup.
"""

from cloudvelous_aws.config.logging import configure_logging
from cloudvelous_aws.config.settings import (
    AwsClientOptions,
    CircuitBreakerPolicy,
    RdsOptions,
    RetryPolicy,
    SecretsManagerOptions,
    Settings,
    SqsOptions,
    get_settings,
)

__all__ = [
    "AwsClientOptions",
    "CircuitBreakerPolicy",
    "RdsOptions",
    "RetryPolicy",
    "SecretsManagerOptions",
    "Settings",
    "SqsOptions",
    "configure_logging",
    "get_settings",
]
