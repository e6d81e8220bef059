"""Secrets Manager operations with an in-memory value cache.

Reads go through a ``SecretCache`` when caching is enabled, so repeated reads
of the same secret within the cache duration cost a single AWS round trip.
Writes (create, update, delete) invalidate the cached value of the secret.
"""

import json
import logging
from datetime import timedelta
from typing import Any, Final, TypeVar, overload

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from cloudvelous_aws.aws.client import (
    SECRETS_MANAGER_STRATEGY,
    AWSClientWrapper,
    create_aws_client,
)
from cloudvelous_aws.aws.credentials import CredentialProvider
from cloudvelous_aws.aws.exceptions import InvalidStateError, ValidationError
from cloudvelous_aws.config.settings import SecretsManagerOptions
from cloudvelous_aws.constants import (
    SECRETS_MAX_LIST_RESULTS,
    SECRETS_MAX_RECOVERY_WINDOW_DAYS,
    SECRETS_MIN_RECOVERY_WINDOW_DAYS,
)
from cloudvelous_aws.utils.secret_cache import CachedSecret, SecretCache

logger: Final = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _serialize_secret(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, BaseModel):
        return value.model_dump_json(by_alias=True)
    return json.dumps(value)


class SecretsManager:
    """Manager for Secrets Manager operations.

    Example:
        >>> manager = SecretsManager(SecretsManagerOptions(region="us-east-1"))
        >>> password = await manager.get_secret_value("prod/db-password")
        >>> config = await manager.get_secret_json("prod/app-config")
    """

    def __init__(
        self,
        options: SecretsManagerOptions | None = None,
        client: AWSClientWrapper | None = None,
        cache: SecretCache | None = None,
        credential_provider: CredentialProvider | None = None,
    ) -> None:
        """Initialize Secrets Manager manager.

        Args:
            options: Secrets Manager options. Defaults to SecretsManagerOptions().
            client: Optional pre-configured AWSClientWrapper. If None, creates a new one.
            cache: Optional secret cache. Defaults to one sized by the options.
            credential_provider: Credential source used when creating the client.
        """
        self.options = options or SecretsManagerOptions()
        self.client = client or create_aws_client(
            SECRETS_MANAGER_STRATEGY, self.options, credential_provider
        )
        # SecretCache defines __len__, so an empty cache is falsy
        if cache is None:
            cache = SecretCache(
                default_ttl=self.cache_duration, max_size=self.options.max_cache_size
            )
        self.cache = cache
        logger.info(f"Initialized SecretsManager for region {self.options.region}")

    @property
    def cache_duration(self) -> timedelta:
        """How long fetched values stay in the cache."""
        return timedelta(minutes=self.options.default_cache_duration_minutes)

    async def get_secret_value(
        self,
        secret_name: str,
        version_id: str | None = None,
        use_cache: bool | None = None,
    ) -> str:
        """Get a secret's value as a string.

        Binary secrets are decoded as UTF-8.

        Args:
            secret_name: Secret name or ARN.
            version_id: Optional version ID. Defaults to the current version.
            use_cache: Whether to read and populate the cache. Defaults to the
                options' ``enable_caching``.

        Returns:
            The secret value.

        Raises:
            InvalidStateError: If the secret has neither a string nor a binary value.
            ResourceNotFoundError: If the secret does not exist.
            SecretsManagerError: If the AWS API call fails.
        """
        caching = self.options.enable_caching if use_cache is None else use_cache

        if caching:
            cached = self.cache.get(secret_name, version_id)
            if cached is not None:
                logger.debug(f"Secret cache hit for '{secret_name}'")
                return cached

        logger.debug(f"Fetching secret '{secret_name}' from Secrets Manager")

        kwargs: dict[str, Any] = {"SecretId": secret_name}
        if version_id:
            kwargs["VersionId"] = version_id

        response = await self.client.call("get_secret_value", **kwargs)

        if response.get("SecretString") is not None:
            value = str(response["SecretString"])
        elif response.get("SecretBinary") is not None:
            value = bytes(response["SecretBinary"]).decode("utf-8")
        else:
            raise InvalidStateError(
                f"Secret '{secret_name}' has neither a string nor a binary value",
                service="secretsmanager",
                operation="get_secret_value",
            )

        if caching:
            self.cache.put(secret_name, version_id, value, ttl=self.cache_duration)

        return value

    @overload
    async def get_secret_json(
        self,
        secret_name: str,
        version_id: str | None = None,
        use_cache: bool | None = None,
        model: None = None,
    ) -> Any: ...

    @overload
    async def get_secret_json(
        self,
        secret_name: str,
        version_id: str | None = None,
        use_cache: bool | None = None,
        *,
        model: type[ModelT],
    ) -> ModelT: ...

    async def get_secret_json(
        self,
        secret_name: str,
        version_id: str | None = None,
        use_cache: bool | None = None,
        model: type[BaseModel] | None = None,
    ) -> Any:
        """Get a secret and decode its value as JSON.

        Args:
            secret_name: Secret name or ARN.
            version_id: Optional version ID.
            use_cache: Cache override, see get_secret_value().
            model: Optional pydantic model to validate the decoded value into.

        Returns:
            The decoded JSON value, or a model instance when a model is given.

        Raises:
            InvalidStateError: If the value is not valid JSON, is JSON null, or
                does not validate against the model.
        """
        raw = await self.get_secret_value(secret_name, version_id, use_cache)

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise InvalidStateError(
                f"Secret '{secret_name}' is not valid JSON: {e.msg}",
                service="secretsmanager",
                operation="get_secret_json",
            ) from e

        if data is None:
            raise InvalidStateError(
                f"Secret '{secret_name}' deserialized to null",
                service="secretsmanager",
                operation="get_secret_json",
            )

        if model is None:
            return data

        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            raise InvalidStateError(
                f"Secret '{secret_name}' does not match {model.__name__}",
                service="secretsmanager",
                operation="get_secret_json",
                details={"errors": e.errors(include_url=False)},
            ) from e

    def get_cached_secret(
        self, secret_name: str, version_id: str | None = None
    ) -> CachedSecret | None:
        """Return the cached entry for a secret without calling AWS."""
        return self.cache.get_entry(secret_name, version_id)

    async def create_secret(
        self, secret_name: str, value: Any, description: str | None = None
    ) -> str:
        """Create a secret.

        Args:
            secret_name: Name of the new secret.
            value: Secret value; non-string values are stored as JSON.
            description: Optional description.

        Returns:
            ARN of the created secret.
        """
        logger.debug(f"Creating secret '{secret_name}'")

        kwargs: dict[str, Any] = {
            "Name": secret_name,
            "SecretString": _serialize_secret(value),
        }
        if description:
            kwargs["Description"] = description

        response = await self.client.call("create_secret", **kwargs)
        self.cache.invalidate(secret_name)
        logger.info(f"Created secret '{secret_name}'")
        return str(response["ARN"])

    async def update_secret(self, secret_name: str, value: Any) -> str | None:
        """Store a new value for an existing secret.

        Returns:
            Version ID of the new value.
        """
        logger.debug(f"Updating secret '{secret_name}'")

        response = await self.client.call(
            "put_secret_value",
            SecretId=secret_name,
            SecretString=_serialize_secret(value),
        )
        self.cache.invalidate(secret_name)
        logger.info(f"Updated secret '{secret_name}'")
        return response.get("VersionId")

    async def delete_secret(
        self,
        secret_name: str,
        force_delete_without_recovery: bool = False,
        recovery_window_in_days: int = SECRETS_MAX_RECOVERY_WINDOW_DAYS,
    ) -> None:
        """Schedule a secret for deletion.

        Args:
            secret_name: Secret name or ARN.
            force_delete_without_recovery: Delete immediately, with no recovery window.
            recovery_window_in_days: Days (7-30) before deletion becomes final.
                Ignored when force-deleting.

        Raises:
            ValidationError: If recovery_window_in_days is out of range.
        """
        if not force_delete_without_recovery and not (
            SECRETS_MIN_RECOVERY_WINDOW_DAYS
            <= recovery_window_in_days
            <= SECRETS_MAX_RECOVERY_WINDOW_DAYS
        ):
            raise ValidationError(
                f"recovery_window_in_days must be between {SECRETS_MIN_RECOVERY_WINDOW_DAYS} "
                f"and {SECRETS_MAX_RECOVERY_WINDOW_DAYS}",
                service="secretsmanager",
                operation="delete_secret",
            )

        logger.debug(f"Deleting secret '{secret_name}'")

        kwargs: dict[str, Any] = {"SecretId": secret_name}
        # AWS rejects a recovery window combined with forced deletion
        if force_delete_without_recovery:
            kwargs["ForceDeleteWithoutRecovery"] = True
        else:
            kwargs["RecoveryWindowInDays"] = recovery_window_in_days

        await self.client.call("delete_secret", **kwargs)
        self.cache.invalidate(secret_name)
        logger.info(f"Deleted secret '{secret_name}'")

    async def list_secrets(
        self, max_results: int = SECRETS_MAX_LIST_RESULTS, next_token: str | None = None
    ) -> list[dict[str, Any]]:
        """List secret metadata (never values).

        Args:
            max_results: Page size (1-100). Defaults to 100.
            next_token: Pagination token from a previous page.

        Returns:
            The "SecretList" entries of one page.

        Raises:
            ValidationError: If max_results is out of range.
        """
        if not 1 <= max_results <= SECRETS_MAX_LIST_RESULTS:
            raise ValidationError(
                f"max_results must be between 1 and {SECRETS_MAX_LIST_RESULTS}",
                service="secretsmanager",
                operation="list_secrets",
            )

        kwargs: dict[str, Any] = {"MaxResults": max_results}
        if next_token:
            kwargs["NextToken"] = next_token

        response = await self.client.call("list_secrets", **kwargs)
        secrets: list[dict[str, Any]] = response.get("SecretList", [])
        logger.debug(f"Listed {len(secrets)} secret(s)")
        return secrets

    async def describe_secret(self, secret_name: str) -> dict[str, Any]:
        """Return a secret's metadata."""
        response: dict[str, Any] = await self.client.call("describe_secret", SecretId=secret_name)
        return response

    def invalidate_cache(self, secret_name: str) -> bool:
        """Drop the cached current value of a secret.

        Returns:
            True if a cached value was removed.
        """
        return self.cache.invalidate(secret_name)

    def clear_cache(self) -> int:
        """Drop every cached secret value.

        Returns:
            Number of entries removed.
        """
        return self.cache.clear()
