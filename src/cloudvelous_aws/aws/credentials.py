"""Credential providers for AWS clients.

Client construction never reads credentials from the process environment by
itself. It asks an injected ``CredentialProvider``: a static provider hands
out explicit keys, the ambient provider returns None so boto3 falls back to
its default chain (environment, shared config files, instance or task role).
"""

from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field

from cloudvelous_aws.config.settings import AwsClientOptions


class AwsCredentials(BaseModel):
    """Explicit AWS credentials."""

    model_config = ConfigDict(frozen=True)

    access_key_id: str = Field(..., min_length=1)
    secret_access_key: str = Field(..., min_length=1, repr=False)
    session_token: str | None = Field(default=None, repr=False)

    def as_client_kwargs(self) -> dict[str, Any]:
        """Return the credentials as boto3.client() keyword arguments."""
        kwargs: dict[str, Any] = {
            "aws_access_key_id": self.access_key_id,
            "aws_secret_access_key": self.secret_access_key,
        }
        if self.session_token:
            kwargs["aws_session_token"] = self.session_token
        return kwargs


class CredentialProvider(Protocol):
    """Anything able to resolve credentials for a new client."""

    def resolve(self) -> AwsCredentials | None:
        """Return explicit credentials, or None to use boto3's default chain."""
        ...


class StaticCredentialProvider:
    """Provider that always returns the same explicit credentials."""

    def __init__(self, credentials: AwsCredentials) -> None:
        self._credentials = credentials

    def resolve(self) -> AwsCredentials | None:
        return self._credentials


class AmbientCredentialProvider:
    """Provider deferring to boto3's default credential chain."""

    def resolve(self) -> AwsCredentials | None:
        return None


def credential_provider_from_options(options: AwsClientOptions) -> CredentialProvider:
    """Pick the provider matching the credentials configured in the options.

    Args:
        options: Client options, possibly carrying an explicit key pair.

    Returns:
        StaticCredentialProvider when keys are configured, otherwise
        AmbientCredentialProvider.
    """
    if options.access_key_id and options.secret_access_key:
        return StaticCredentialProvider(
            AwsCredentials(
                access_key_id=options.access_key_id,
                secret_access_key=options.secret_access_key,
                session_token=options.session_token,
            )
        )
    return AmbientCredentialProvider()
