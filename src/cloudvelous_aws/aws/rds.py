"""RDS instance lookup and IAM-authenticated SQL Server connections.

This module provides a high-level manager for Amazon RDS. It looks up DB
instances, generates IAM auth tokens, and turns both into SQL Server
connection strings and connections. AWS API calls use the AWSClientWrapper
for circuit breaking, retries and error conversion.
"""

import asyncio
import functools
import logging
from collections.abc import Mapping
from typing import Any, Final

from pydantic import BaseModel, Field

from cloudvelous_aws.aws.client import RDS_STRATEGY, AWSClientWrapper, create_aws_client
from cloudvelous_aws.aws.credentials import CredentialProvider
from cloudvelous_aws.aws.exceptions import InvalidStateError, ResourceNotFoundError
from cloudvelous_aws.aws.rds_connection import (
    ConnectionOpener,
    DatabaseConnection,
    RdsConnectionInfo,
    TokenGenerator,
    boto3_token_generator,
    build_connection_info,
    open_sql_server_connection,
    render_connection_string,
)
from cloudvelous_aws.config.settings import RdsOptions

logger: Final = logging.getLogger(__name__)


class DBInstance(BaseModel):
    """Model representing an RDS DB instance.

    Attributes:
        identifier: DB instance identifier.
        engine: Database engine (e.g., 'sqlserver-se', 'postgres').
        status: Instance status (e.g., 'available', 'creating').
        instance_class: Instance class (e.g., 'db.m5.large').
        endpoint_address: Endpoint host name, None while the instance is being created.
        endpoint_port: Endpoint port, None while the instance is being created.
        iam_database_authentication_enabled: Whether IAM auth tokens are accepted.
        tags: Instance tags.
    """

    identifier: str
    engine: str | None = None
    status: str | None = None
    instance_class: str | None = None
    endpoint_address: str | None = None
    endpoint_port: int | None = None
    iam_database_authentication_enabled: bool = False
    tags: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_response(cls, instance: Mapping[str, Any]) -> "DBInstance":
        """Build a model from one entry of a DescribeDBInstances response."""
        endpoint = instance.get("Endpoint") or {}
        return cls(
            identifier=instance["DBInstanceIdentifier"],
            engine=instance.get("Engine"),
            status=instance.get("DBInstanceStatus"),
            instance_class=instance.get("DBInstanceClass"),
            endpoint_address=endpoint.get("Address"),
            endpoint_port=endpoint.get("Port"),
            iam_database_authentication_enabled=instance.get(
                "IAMDatabaseAuthenticationEnabled", False
            ),
            tags={tag["Key"]: tag["Value"] for tag in instance.get("TagList", [])},
        )


class RDSManager:
    """Manager for RDS operations and IAM-authenticated connections.

    Example:
        >>> manager = RDSManager(RdsOptions(region="us-east-1"))
        >>> info = await manager.get_connection_info("orders-db", "orders", "app_user")
        >>> if await manager.test_connection(info):
        ...     connection = await manager.create_connection(info)
    """

    def __init__(
        self,
        options: RdsOptions | None = None,
        client: AWSClientWrapper | None = None,
        credential_provider: CredentialProvider | None = None,
        token_generator: TokenGenerator | None = None,
        connection_opener: ConnectionOpener | None = None,
    ) -> None:
        """Initialize RDS manager.

        Args:
            options: RDS options. Defaults to RdsOptions().
            client: Optional pre-configured AWSClientWrapper. If None, creates a new one.
            credential_provider: Credential source used when creating the client.
            token_generator: IAM auth token generator. Defaults to the boto3
                client's ``generate_db_auth_token``.
            connection_opener: Opens a connection from a connection string.
                Defaults to pymssql.
        """
        self.options = options or RdsOptions()
        self.client = client or create_aws_client(RDS_STRATEGY, self.options, credential_provider)
        self.token_generator = token_generator or boto3_token_generator(self.client.get_client())
        self.connection_opener = connection_opener or open_sql_server_connection
        logger.info(f"Initialized RDSManager for region {self.options.region}")

    async def get_db_instance(self, db_instance_identifier: str) -> DBInstance:
        """Describe one DB instance.

        Raises:
            ResourceNotFoundError: If no instance has this identifier.
            RDSError: If the AWS API call fails.
        """
        logger.debug(f"Getting RDS instance: {db_instance_identifier}")

        response = await self.client.call(
            "describe_db_instances", DBInstanceIdentifier=db_instance_identifier
        )
        instances = response.get("DBInstances", [])
        if not instances:
            raise ResourceNotFoundError(
                f"RDS instance '{db_instance_identifier}' not found",
                service="rds",
                operation="describe_db_instances",
            )
        return DBInstance.from_response(instances[0])

    async def list_db_instances(self) -> list[DBInstance]:
        """List all DB instances in the region, following pagination markers."""
        logger.debug("Listing RDS instances")

        instances: list[DBInstance] = []
        kwargs: dict[str, Any] = {}
        while True:
            response = await self.client.call("describe_db_instances", **kwargs)
            instances.extend(
                DBInstance.from_response(instance) for instance in response.get("DBInstances", [])
            )
            marker = response.get("Marker")
            if not marker:
                break
            kwargs["Marker"] = marker

        logger.debug(f"Found {len(instances)} RDS instance(s)")
        return instances

    async def generate_auth_token(self, host: str, port: int, username: str) -> str:
        """Generate an IAM auth token for a database user.

        Args:
            host: Endpoint address.
            port: Endpoint port.
            username: Database user.

        Returns:
            Token valid for 15 minutes, used as the connection password.
        """
        logger.debug(
            f"Generating IAM auth token for RDS instance: {host}:{port} for user: {username}"
        )
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, self.token_generator, self.options.region, host, port, username
        )

    async def get_connection_info(
        self, db_instance_identifier: str, database: str, username: str
    ) -> RdsConnectionInfo:
        """Resolve an instance's endpoint and generate a fresh auth token for it.

        Args:
            db_instance_identifier: DB instance identifier.
            database: Database name.
            username: Database user.

        Returns:
            Connection info; call again once ``is_expired()`` turns True.

        Raises:
            ResourceNotFoundError: If the instance does not exist.
            InvalidStateError: If the instance has no endpoint yet.
        """
        instance = await self.get_db_instance(db_instance_identifier)
        if not instance.endpoint_address:
            raise InvalidStateError(
                f"RDS instance '{db_instance_identifier}' has no endpoint "
                f"(status: {instance.status})",
                service="rds",
                operation="get_connection_info",
            )

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            functools.partial(
                build_connection_info,
                instance.endpoint_address,
                instance.endpoint_port,
                database,
                username,
                self.token_generator,
                region=self.options.region,
                default_port=self.options.default_port,
            ),
        )

    def build_connection_string(
        self,
        connection_info: RdsConnectionInfo,
        additional_options: Mapping[str, Any] | None = None,
    ) -> str:
        """Render the SQL Server connection string for the given connection info."""
        return render_connection_string(connection_info, self.options, additional_options)

    async def create_connection(
        self,
        connection_info: RdsConnectionInfo,
        additional_options: Mapping[str, Any] | None = None,
    ) -> DatabaseConnection:
        """Open a connection with the configured opener.

        The caller owns the returned connection and must close it.
        """
        connection_string = self.build_connection_string(connection_info, additional_options)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.connection_opener, connection_string)

    async def test_connection(self, connection_info: RdsConnectionInfo) -> bool:
        """Check that a connection can be opened.

        Returns:
            True if the connection opened; False on any failure, which is logged.
        """
        if connection_info.is_expired():
            logger.warning(
                f"Auth token for {connection_info.host}:{connection_info.port} has expired"
            )
            return False

        try:
            connection = await self.create_connection(connection_info)
        except Exception as e:
            logger.error(
                f"Failed to connect to RDS instance: "
                f"{connection_info.host}:{connection_info.port}: {e}",
                exc_info=True,
            )
            return False

        try:
            connection.close()
        except Exception as e:
            logger.debug(f"Ignoring error while closing test connection: {e}")
        return True
