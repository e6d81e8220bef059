"""Cloudvelous AWS - thin async wrappers around SQS, Secrets Manager and RDS.

This package provides boto3-backed service managers that share one core:
client options (region, timeouts, retry policy, circuit breaker), exception
classification into retry verdicts, and strategy-based client construction.
"""

from cloudvelous_aws.version import __version__

__author__ = "Cloudvelous Contributors"
__license__ = "MIT"

__all__ = ["__author__", "__license__", "__version__"]
