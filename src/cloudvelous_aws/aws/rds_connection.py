"""IAM-authenticated RDS connection details and SQL Server connection strings.

An IAM auth token stands in for the database password. Tokens are valid for
15 minutes; ``RdsConnectionInfo.token_expires_at`` is set one minute earlier
so callers re-resolve before AWS starts rejecting the token. Connection info
is never cached.
"""

import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any, Final, Protocol

from botocore.client import BaseClient
from pydantic import BaseModel, Field, field_validator

from cloudvelous_aws.config.settings import RdsOptions
from cloudvelous_aws.constants import DEFAULT_SQL_SERVER_PORT, IAM_TOKEN_VALIDITY
from cloudvelous_aws.utils.connection_string import (
    InvalidKeywordError,
    SqlConnectionStringBuilder,
)

logger: Final = logging.getLogger(__name__)

# (region, host, port, username) -> IAM auth token
TokenGenerator = Callable[[str, str, int, str], str]


class DatabaseConnection(Protocol):
    """Minimal DB-API connection surface used by this package."""

    def close(self) -> None: ...


# connection string -> open DB-API connection
ConnectionOpener = Callable[[str], DatabaseConnection]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RdsConnectionInfo(BaseModel):
    """Everything needed to open an IAM-authenticated connection.

    Attributes:
        host: Endpoint address of the DB instance.
        port: Endpoint port.
        database: Database (initial catalog) name.
        username: Database user mapped to an IAM identity.
        auth_token: IAM auth token used as the password.
        token_expires_at: When the token should no longer be used.
    """

    host: str = Field(..., min_length=1)
    port: int = Field(..., gt=0, le=65535)
    database: str = Field(..., min_length=1)
    username: str = Field(..., min_length=1)
    auth_token: str = Field(..., min_length=1, repr=False)
    token_expires_at: datetime

    @field_validator("token_expires_at")
    @classmethod
    def validate_token_expires_at(cls, v: datetime) -> datetime:
        """Require a timezone-aware expiry that lies in the future."""
        if v.tzinfo is None:
            raise ValueError("token_expires_at must be timezone-aware")
        if v <= _utcnow():
            raise ValueError("token_expires_at must be in the future")
        return v

    def is_expired(self, now: datetime | None = None) -> bool:
        """Return True once the auth token should be regenerated."""
        return (now or _utcnow()) >= self.token_expires_at


def build_connection_info(
    host: str,
    port: int | None,
    database: str,
    username: str,
    token_generator: TokenGenerator,
    *,
    region: str,
    default_port: int = DEFAULT_SQL_SERVER_PORT,
    clock: Callable[[], datetime] = _utcnow,
) -> RdsConnectionInfo:
    """Assemble connection info with a freshly generated IAM auth token.

    The expiry is measured from before the token is generated, so a slow
    generator shortens the usable window instead of extending it.

    Args:
        host: Endpoint address.
        port: Endpoint port, or None to use ``default_port``.
        database: Database name.
        username: Database user.
        token_generator: Called once as ``(region, host, port, username)``.
        region: AWS region the instance lives in.
        default_port: Port used when the endpoint reports none.
        clock: Source of timezone-aware "now".

    Returns:
        Connection info whose token expires 14 minutes after generation started.

    Raises:
        Whatever the token generator raises; it is not retried.
    """
    effective_port = port if port is not None else default_port
    started_at = clock()
    token = token_generator(region, host, effective_port, username)

    return RdsConnectionInfo(
        host=host,
        port=effective_port,
        database=database,
        username=username,
        auth_token=token,
        token_expires_at=started_at + IAM_TOKEN_VALIDITY,
    )


def render_connection_string(
    info: RdsConnectionInfo,
    options: RdsOptions,
    extra_options: Mapping[str, Any] | None = None,
) -> str:
    """Render a SQL Server connection string for the given connection info.

    Extra options are applied after the fixed keys and may override them.
    Keywords the SQL Server grammar does not know are skipped with a warning.

    Args:
        info: Connection info carrying the auth token.
        options: RDS options supplying SSL, CA file and timeout settings.
        extra_options: Additional keyword/value pairs.

    Returns:
        The connection string.
    """
    builder = SqlConnectionStringBuilder()
    builder["Data Source"] = f"{info.host},{info.port}"
    builder["Initial Catalog"] = info.database
    builder["User ID"] = info.username
    builder["Password"] = info.auth_token
    builder["Encrypt"] = options.use_ssl
    builder["TrustServerCertificate"] = not options.validate_server_certificate
    builder["Integrated Security"] = False
    builder["Pooling"] = True
    builder["Connect Timeout"] = options.default_connection_timeout_seconds
    builder["Command Timeout"] = options.default_command_timeout_seconds
    if options.ssl_ca_file:
        builder["Server Certificate"] = options.ssl_ca_file

    for keyword, value in (extra_options or {}).items():
        try:
            builder.add(keyword, value)
        except InvalidKeywordError:
            logger.warning(f"Skipping invalid connection string keyword: {keyword}")

    return builder.to_string()


def boto3_token_generator(client: BaseClient) -> TokenGenerator:
    """Adapt an RDS boto3 client's ``generate_db_auth_token`` to a TokenGenerator.

    Token generation is a local presigning operation; it makes no network call.
    """

    def generate(region: str, host: str, port: int, username: str) -> str:
        token: str = client.generate_db_auth_token(
            DBHostname=host, Port=port, DBUsername=username, Region=region
        )
        return token

    return generate


def _is_enabled(value: str) -> bool:
    return value.strip().lower() in {"true", "yes", "mandatory", "strict"}


def open_sql_server_connection(connection_string: str) -> DatabaseConnection:
    """Open a SQL Server connection with pymssql.

    pymssql is an optional dependency (``pip install cloudvelous-aws[sqlserver]``).

    Keywords mapped onto ``pymssql.connect``:

    - ``Data Source``, ``User ID``, ``Password``, ``Initial Catalog``
    - ``Connect Timeout`` -> ``login_timeout``
    - ``Command Timeout`` -> ``timeout``
    - ``Application Name`` -> ``appname``
    - ``Encrypt`` -> ``encryption`` ("require" or "off")

    FreeTDS takes its trust anchor from the ``ca file`` entry of freetds.conf,
    so a ``Server Certificate`` path is only checked for and reported.

    Raises:
        ImportError: If pymssql is not installed.
    """
    import pymssql  # noqa: PLC0415

    parsed = SqlConnectionStringBuilder.parse(connection_string)
    server, _, port = parsed["Data Source"].rpartition(",")
    encrypt = _is_enabled(parsed.get("Encrypt", "True"))

    if encrypt and not _is_enabled(parsed.get("TrustServerCertificate", "False")):
        ca_file = parsed.get("Server Certificate")
        if ca_file:
            logger.info(
                f"Server certificate validation requested with CA file {ca_file}; "
                "it must also be set as 'ca file' in freetds.conf"
            )

    connection: DatabaseConnection = pymssql.connect(
        server=server or parsed["Data Source"],
        port=int(port) if server else DEFAULT_SQL_SERVER_PORT,
        user=parsed["User ID"],
        password=parsed["Password"],
        database=parsed["Initial Catalog"],
        login_timeout=int(parsed.get("Connect Timeout", "0")),
        timeout=int(parsed.get("Command Timeout", "0")),
        appname=parsed.get("Application Name"),
        encryption="require" if encrypt else "off",
    )
    return connection
