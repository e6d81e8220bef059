"""Health checks for the AWS services used by Cloudvelous AWS.

Each check makes one lightweight call and reports a bool; checks never raise.
``HealthRegistry`` runs a named set of checks concurrently, and ``router``
exposes them over HTTP for applications that mount it in FastAPI.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Final

from fastapi import APIRouter, FastAPI, Request, Response, status
from pydantic import BaseModel, Field

from cloudvelous_aws.aws.exceptions import ResourceNotFoundError
from cloudvelous_aws.aws.rds import RDSManager
from cloudvelous_aws.aws.secrets_manager import SecretsManager
from cloudvelous_aws.aws.sqs import SQSManager
from cloudvelous_aws.config.settings import Settings
from cloudvelous_aws.constants import SQS_HEALTH_CHECK_QUEUE, SQS_NONEXISTENT_QUEUE_CODES
from cloudvelous_aws.version import __version__

logger: Final = logging.getLogger(__name__)

HealthCheck = Callable[[], Awaitable[bool]]

router = APIRouter()


async def check_sqs_health(manager: SQSManager) -> bool:
    """Probe SQS by resolving a sentinel queue name.

    An unknown-queue answer still proves SQS is reachable and authorizing us.
    """
    try:
        await manager.get_queue_url(SQS_HEALTH_CHECK_QUEUE)
        return True
    except ResourceNotFoundError as e:
        if e.error_code in SQS_NONEXISTENT_QUEUE_CODES:
            return True
        logger.error(f"Health check failed for SQS: {e}")
        return False
    except Exception as e:
        logger.error(f"Health check failed for SQS: {e}")
        return False


async def check_secrets_manager_health(manager: SecretsManager) -> bool:
    """Probe Secrets Manager by listing a single secret."""
    try:
        await manager.list_secrets(1)
        return True
    except Exception as e:
        logger.error(f"Health check failed for Secrets Manager: {e}")
        return False


async def check_rds_health(manager: RDSManager) -> bool:
    """Probe RDS by listing DB instances."""
    try:
        await manager.list_db_instances()
        return True
    except Exception as e:
        logger.error(f"Health check failed for RDS: {e}")
        return False


class HealthRegistry:
    """Named health checks run together.

    Example:
        >>> registry = HealthRegistry()
        >>> registry.register("sqs", lambda: check_sqs_health(sqs_manager))
        >>> results = await registry.run_all()
        >>> results
        {'sqs': True}
    """

    def __init__(self) -> None:
        self._checks: dict[str, HealthCheck] = {}

    def register(self, name: str, check: HealthCheck) -> None:
        """Register a check, replacing any check with the same name."""
        self._checks[name] = check

    @property
    def names(self) -> list[str]:
        """Names of the registered checks, in registration order."""
        return list(self._checks)

    async def run_all(self) -> dict[str, bool]:
        """Run every check concurrently.

        A check that raises despite its contract is reported as unhealthy.
        """
        names = list(self._checks)
        results = await asyncio.gather(
            *(self._checks[name]() for name in names), return_exceptions=True
        )

        report: dict[str, bool] = {}
        for name, result in zip(names, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(f"Health check '{name}' raised: {result}")
                report[name] = False
            else:
                report[name] = bool(result)
        return report


def registry_from_settings(settings: Settings) -> HealthRegistry:
    """Build a registry checking SQS, Secrets Manager and RDS with the given settings."""
    sqs = SQSManager(settings.sqs)
    secrets = SecretsManager(settings.secrets_manager)
    rds = RDSManager(settings.rds)

    registry = HealthRegistry()
    registry.register("sqs", lambda: check_sqs_health(sqs))
    registry.register("secrets_manager", lambda: check_secrets_manager_health(secrets))
    registry.register("rds", lambda: check_rds_health(rds))
    return registry


class HealthStatus(BaseModel):
    """Health check response model.

    Attributes:
        status: Overall health status (healthy, unhealthy).
        version: Package version.
        timestamp: Current timestamp.
        checks: Result of each registered check.
    """

    status: str = Field(..., description="Overall health status")
    version: str = Field(..., description="Package version")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(tz=UTC), description="Current timestamp"
    )
    checks: dict[str, bool] = Field(default_factory=dict, description="Individual check results")


@router.get("/health", response_model=HealthStatus)
async def health_check(request: Request, response: Response) -> HealthStatus:
    """Report the result of every check in ``app.state.health_registry``.

    Responds 503 when any check fails.

    Example:
        >>> response = client.get("/health")
        >>> assert response.json()["status"] == "healthy"
    """
    registry: HealthRegistry | None = getattr(request.app.state, "health_registry", None)
    checks = await registry.run_all() if registry is not None else {}

    healthy = all(checks.values())
    if not healthy:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return HealthStatus(
        status="healthy" if healthy else "unhealthy",
        version=__version__,
        checks=checks,
    )


def create_app(registry: HealthRegistry) -> FastAPI:
    """Create a FastAPI application serving the health router for a registry."""
    app = FastAPI(title="Cloudvelous AWS", version=__version__)
    app.state.health_registry = registry
    app.include_router(router)
    return app
