"""Utility modules for Cloudvelous AWS.

This package provides common utilities for:
- Circuit breaking for AWS API calls
- TTL caching of secret values
- SQL Server connection string building and parsing
"""

from cloudvelous_aws.utils.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOpenError,
    CircuitState,
)
from cloudvelous_aws.utils.connection_string import (
    InvalidKeywordError,
    SqlConnectionStringBuilder,
    canonical_keyword,
)
from cloudvelous_aws.utils.secret_cache import CachedSecret, SecretCache

__all__ = [
    "CachedSecret",
    "CircuitBreaker",
    "CircuitBreakerOpenError",
    "CircuitState",
    "InvalidKeywordError",
    "SecretCache",
    "SqlConnectionStringBuilder",
    "canonical_keyword",
]
