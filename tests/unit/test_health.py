"""Tests for service health checks and the health endpoint."""

from unittest.mock import AsyncMock, Mock, patch

import pytest
from fastapi.testclient import TestClient

from cloudvelous_aws.aws.exceptions import NetworkError, PermissionError, ResourceNotFoundError
from cloudvelous_aws.aws.rds import RDSManager
from cloudvelous_aws.aws.secrets_manager import SecretsManager
from cloudvelous_aws.aws.sqs import SQSManager
from cloudvelous_aws.config.settings import Settings
from cloudvelous_aws.health import (
    HealthRegistry,
    check_rds_health,
    check_secrets_manager_health,
    check_sqs_health,
    create_app,
    registry_from_settings,
)
from cloudvelous_aws.version import __version__


def _manager(spec: type, method: str, **behaviour: object) -> Mock:
    manager = Mock(spec=spec)
    setattr(manager, method, AsyncMock(**behaviour))
    return manager


class TestServiceChecks:
    """Tests for the individual service checks."""

    @pytest.mark.asyncio
    async def test_sqs_healthy(self) -> None:
        """Test that resolving the sentinel queue means healthy."""
        manager = _manager(SQSManager, "get_queue_url", return_value="https://queue")

        assert await check_sqs_health(manager) is True
        manager.get_queue_url.assert_awaited_once_with("test-health-check-queue")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "code", ["AWS.SimpleQueueService.NonExistentQueue", "QueueDoesNotExist"]
    )
    async def test_sqs_missing_queue_is_healthy(self, code: str) -> None:
        """Test that an unknown-queue answer still means SQS is up."""
        manager = _manager(
            SQSManager,
            "get_queue_url",
            side_effect=ResourceNotFoundError("no queue", service="sqs", error_code=code),
        )

        assert await check_sqs_health(manager) is True

    @pytest.mark.asyncio
    async def test_sqs_other_failure_is_unhealthy(self) -> None:
        """Test that other failures mean unhealthy."""
        manager = _manager(
            SQSManager,
            "get_queue_url",
            side_effect=PermissionError("denied", error_code="AccessDenied"),
        )

        assert await check_sqs_health(manager) is False

    @pytest.mark.asyncio
    async def test_secrets_manager_checks(self) -> None:
        """Test the Secrets Manager check for both outcomes."""
        healthy = _manager(SecretsManager, "list_secrets", return_value=[])
        unhealthy = _manager(SecretsManager, "list_secrets", side_effect=NetworkError("down"))

        assert await check_secrets_manager_health(healthy) is True
        healthy.list_secrets.assert_awaited_once_with(1)
        assert await check_secrets_manager_health(unhealthy) is False

    @pytest.mark.asyncio
    async def test_rds_checks(self) -> None:
        """Test the RDS check for both outcomes."""
        healthy = _manager(RDSManager, "list_db_instances", return_value=[])
        unhealthy = _manager(RDSManager, "list_db_instances", side_effect=RuntimeError("x"))

        assert await check_rds_health(healthy) is True
        assert await check_rds_health(unhealthy) is False


class TestHealthRegistry:
    """Tests for HealthRegistry."""

    @pytest.mark.asyncio
    async def test_run_all(self) -> None:
        """Test running every registered check."""
        registry = HealthRegistry()
        registry.register("sqs", AsyncMock(return_value=True))
        registry.register("rds", AsyncMock(return_value=False))

        assert await registry.run_all() == {"sqs": True, "rds": False}
        assert registry.names == ["sqs", "rds"]

    @pytest.mark.asyncio
    async def test_raising_check_is_unhealthy(self) -> None:
        """Test that a check raising despite its contract counts as unhealthy."""
        registry = HealthRegistry()
        registry.register("broken", AsyncMock(side_effect=RuntimeError("bug")))

        assert await registry.run_all() == {"broken": False}

    @pytest.mark.asyncio
    async def test_empty_registry(self) -> None:
        """Test that an empty registry reports nothing."""
        assert await HealthRegistry().run_all() == {}

    def test_registry_from_settings(self) -> None:
        """Test building the default registry from settings."""
        with patch("boto3.client"):
            registry = registry_from_settings(Settings(_env_file=None))  # type: ignore[call-arg]

        assert registry.names == ["sqs", "secrets_manager", "rds"]


class TestHealthEndpoint:
    """Tests for the /health endpoint."""

    def test_all_healthy(self) -> None:
        """Test a 200 response when every check passes."""
        registry = HealthRegistry()
        registry.register("sqs", AsyncMock(return_value=True))

        response = TestClient(create_app(registry)).get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["version"] == __version__
        assert body["checks"] == {"sqs": True}

    def test_unhealthy_returns_503(self) -> None:
        """Test a 503 response when a check fails."""
        registry = HealthRegistry()
        registry.register("sqs", AsyncMock(return_value=True))
        registry.register("rds", AsyncMock(return_value=False))

        response = TestClient(create_app(registry)).get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"
        assert response.json()["checks"] == {"sqs": True, "rds": False}
