"""Pytest configuration and shared fixtures."""

from collections.abc import Callable
from unittest.mock import AsyncMock, Mock

import pytest
from botocore.exceptions import ClientError

from cloudvelous_aws.aws.client import AWSClientWrapper


@pytest.fixture
def sample_region() -> str:
    """Provide a sample AWS region for testing.

    Returns:
        AWS region name.
    """
    return "us-east-1"


@pytest.fixture
def make_client_error() -> Callable[..., ClientError]:
    """Provide a factory for botocore ClientError instances.

    Returns:
        Callable building a ClientError from code, message, status and operation.
    """

    def factory(
        code: str,
        message: str = "error",
        status: int = 400,
        operation: str = "Operation",
    ) -> ClientError:
        return ClientError(
            error_response={
                "Error": {"Code": code, "Message": message},
                "ResponseMetadata": {"HTTPStatusCode": status, "RequestId": "req-123"},
            },
            operation_name=operation,
        )

    return factory


@pytest.fixture
def mock_client() -> Mock:
    """Provide a mocked AWSClientWrapper whose call() is an AsyncMock."""
    client = Mock(spec=AWSClientWrapper)
    client.call = AsyncMock()
    return client
