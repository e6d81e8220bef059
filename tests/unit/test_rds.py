"""Tests for the RDS manager."""

import logging
from datetime import UTC, datetime, timedelta
from unittest.mock import Mock

import pytest

from cloudvelous_aws.aws.exceptions import InvalidStateError, ResourceNotFoundError
from cloudvelous_aws.aws.rds import DBInstance, RDSManager
from cloudvelous_aws.aws.rds_connection import RdsConnectionInfo
from cloudvelous_aws.config.settings import RdsOptions

HOST = "test-db.cluster-xyz.us-east-1.rds.amazonaws.com"


def _instance_response(
    identifier: str = "test-db", address: str | None = HOST, port: int | None = 1433
) -> dict[str, object]:
    instance: dict[str, object] = {
        "DBInstanceIdentifier": identifier,
        "Engine": "sqlserver-se",
        "DBInstanceStatus": "available",
        "DBInstanceClass": "db.m5.large",
        "IAMDatabaseAuthenticationEnabled": True,
        "TagList": [{"Key": "env", "Value": "test"}],
    }
    if address is not None:
        endpoint: dict[str, object] = {"Address": address}
        if port is not None:
            endpoint["Port"] = port
        instance["Endpoint"] = endpoint
    return instance


@pytest.fixture
def token_generator() -> Mock:
    """Provide a fake IAM token generator."""
    return Mock(return_value="iam-token")


@pytest.fixture
def opener() -> Mock:
    """Provide a fake connection opener."""
    return Mock()


@pytest.fixture
def manager(mock_client: Mock, token_generator: Mock, opener: Mock) -> RDSManager:
    """Provide an RDSManager with mocked dependencies."""
    return RDSManager(
        RdsOptions(region="us-east-1"),
        client=mock_client,
        token_generator=token_generator,
        connection_opener=opener,
    )


def _connection_info() -> RdsConnectionInfo:
    return RdsConnectionInfo(
        host=HOST,
        port=1433,
        database="orders",
        username="app_user",
        auth_token="iam-token",
        token_expires_at=datetime.now(UTC) + timedelta(minutes=14),
    )


class TestDBInstance:
    """Tests for the DBInstance model."""

    def test_from_response(self) -> None:
        """Test parsing a DescribeDBInstances entry."""
        instance = DBInstance.from_response(_instance_response())

        assert instance.identifier == "test-db"
        assert instance.engine == "sqlserver-se"
        assert instance.status == "available"
        assert instance.endpoint_address == HOST
        assert instance.endpoint_port == 1433
        assert instance.iam_database_authentication_enabled is True
        assert instance.tags == {"env": "test"}

    def test_from_response_without_endpoint(self) -> None:
        """Test parsing an instance that has no endpoint yet."""
        instance = DBInstance.from_response(_instance_response(address=None))

        assert instance.endpoint_address is None
        assert instance.endpoint_port is None


class TestInstanceLookup:
    """Tests for get_db_instance and list_db_instances."""

    @pytest.mark.asyncio
    async def test_get_db_instance(self, manager: RDSManager, mock_client: Mock) -> None:
        """Test describing one instance."""
        mock_client.call.return_value = {"DBInstances": [_instance_response()]}

        instance = await manager.get_db_instance("test-db")

        assert instance.identifier == "test-db"
        mock_client.call.assert_awaited_once_with(
            "describe_db_instances", DBInstanceIdentifier="test-db"
        )

    @pytest.mark.asyncio
    async def test_get_db_instance_empty_result(
        self, manager: RDSManager, mock_client: Mock
    ) -> None:
        """Test that an empty answer is reported as not found."""
        mock_client.call.return_value = {"DBInstances": []}

        with pytest.raises(ResourceNotFoundError, match="missing-db"):
            await manager.get_db_instance("missing-db")

    @pytest.mark.asyncio
    async def test_list_db_instances_follows_marker(
        self, manager: RDSManager, mock_client: Mock
    ) -> None:
        """Test that pagination markers are followed."""
        mock_client.call.side_effect = [
            {"DBInstances": [_instance_response("a")], "Marker": "next"},
            {"DBInstances": [_instance_response("b")]},
        ]

        instances = await manager.list_db_instances()

        assert [i.identifier for i in instances] == ["a", "b"]
        assert mock_client.call.await_args_list[1].kwargs == {"Marker": "next"}


class TestConnectionInfo:
    """Tests for token generation and connection info."""

    @pytest.mark.asyncio
    async def test_generate_auth_token(
        self, manager: RDSManager, token_generator: Mock
    ) -> None:
        """Test generating a token with the configured region."""
        token = await manager.generate_auth_token(HOST, 1433, "app_user")

        assert token == "iam-token"
        token_generator.assert_called_once_with("us-east-1", HOST, 1433, "app_user")

    @pytest.mark.asyncio
    async def test_get_connection_info(
        self, manager: RDSManager, mock_client: Mock, token_generator: Mock
    ) -> None:
        """Test resolving connection info for an instance."""
        mock_client.call.return_value = {"DBInstances": [_instance_response()]}

        info = await manager.get_connection_info("test-db", "orders", "app_user")

        assert info.host == HOST
        assert info.port == 1433
        assert info.database == "orders"
        assert info.auth_token == "iam-token"
        assert not info.is_expired()
        token_generator.assert_called_once_with("us-east-1", HOST, 1433, "app_user")

    @pytest.mark.asyncio
    async def test_get_connection_info_default_port(
        self, mock_client: Mock, token_generator: Mock
    ) -> None:
        """Test that the default port is used when the endpoint has none."""
        manager = RDSManager(
            RdsOptions(default_port=1500), client=mock_client, token_generator=token_generator
        )
        mock_client.call.return_value = {"DBInstances": [_instance_response(port=None)]}

        info = await manager.get_connection_info("test-db", "orders", "app_user")

        assert info.port == 1500

    @pytest.mark.asyncio
    async def test_get_connection_info_without_endpoint(
        self, manager: RDSManager, mock_client: Mock, token_generator: Mock
    ) -> None:
        """Test that an instance without an endpoint is an invalid state."""
        mock_client.call.return_value = {"DBInstances": [_instance_response(address=None)]}

        with pytest.raises(InvalidStateError):
            await manager.get_connection_info("test-db", "orders", "app_user")

        token_generator.assert_not_called()


class TestConnections:
    """Tests for connection strings and connections."""

    def test_build_connection_string(self, manager: RDSManager) -> None:
        """Test building a connection string through the manager."""
        result = manager.build_connection_string(_connection_info(), {"Application Name": "x"})

        assert f"Data Source={HOST},1433" in result
        assert "Password=iam-token" in result
        assert result.endswith("Application Name=x")

    @pytest.mark.asyncio
    async def test_create_connection(self, manager: RDSManager, opener: Mock) -> None:
        """Test that the opener receives the rendered connection string."""
        connection = await manager.create_connection(_connection_info())

        assert connection is opener.return_value
        (connection_string,), _ = opener.call_args
        assert "Initial Catalog=orders" in connection_string

    @pytest.mark.asyncio
    async def test_test_connection_success(self, manager: RDSManager, opener: Mock) -> None:
        """Test a successful connection test closes the connection."""
        assert await manager.test_connection(_connection_info()) is True

        opener.return_value.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_test_connection_failure(
        self, manager: RDSManager, opener: Mock, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that a failed connection is logged and reported as False."""
        opener.side_effect = OSError("login failed")

        with caplog.at_level(logging.ERROR, logger="cloudvelous_aws.aws.rds"):
            assert await manager.test_connection(_connection_info()) is False

        assert any(r.levelno == logging.ERROR for r in caplog.records)

    @pytest.mark.asyncio
    async def test_test_connection_expired_token(
        self, manager: RDSManager, opener: Mock
    ) -> None:
        """Test that expired connection info is not used."""
        info = _connection_info()
        expired = info.model_construct(
            **{**info.model_dump(), "token_expires_at": datetime.now(UTC) - timedelta(minutes=1)}
        )

        assert await manager.test_connection(expired) is False
        opener.assert_not_called()
