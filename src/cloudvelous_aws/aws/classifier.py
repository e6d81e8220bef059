"""Exception classification into retry verdicts.

This module maps any failure raised while talking to AWS onto an
``ExceptionVerdict``: whether the call is worth retrying and a message that
can be shown to a user. Classification is total; it never raises.

Decision rules:
- Cancellations and timeouts are always retryable.
- Transport failures (connection refused, reset, DNS) are always retryable.
- Service errors are retryable only for HTTP 408, 429, 500, 502, 503 and 504.
- Anything else is not retryable.
"""

import asyncio
import builtins
import logging
from typing import Final

from botocore.exceptions import ClientError, ConnectTimeoutError, HTTPClientError, ReadTimeoutError
from botocore.exceptions import ConnectionError as BotocoreConnectionError
from pydantic import BaseModel, ConfigDict

from cloudvelous_aws.aws.exceptions import AWSError, NetworkError
from cloudvelous_aws.aws.exceptions import TimeoutError as AWSTimeoutError
from cloudvelous_aws.constants import RETRYABLE_STATUS_CODES

logger: Final = logging.getLogger(__name__)

# Timeout types are checked before transport types: botocore's timeout errors
# subclass its connection and HTTP client errors.
_TIMEOUT_TYPES: Final = (
    builtins.TimeoutError,
    ReadTimeoutError,
    ConnectTimeoutError,
    AWSTimeoutError,
)

_NETWORK_TYPES: Final = (
    builtins.ConnectionError,
    BotocoreConnectionError,
    HTTPClientError,
    NetworkError,
)


class ExceptionVerdict(BaseModel):
    """Outcome of classifying one failure.

    Attributes:
        retryable: Whether repeating the same call may succeed.
        user_message: Human-readable description of the failure.
        handled: Whether the failure went through the exception handler.
        context: Free-form description of where the failure happened.
    """

    model_config = ConfigDict(frozen=True)

    retryable: bool
    user_message: str
    handled: bool = False
    context: str | None = None


def is_retryable_status(status_code: int | None) -> bool:
    """Check whether a service error with this HTTP status should be retried.

    Args:
        status_code: HTTP status code of the AWS response, if any.

    Returns:
        True for 408, 429, 500, 502, 503 and 504; False otherwise.
    """
    return status_code in RETRYABLE_STATUS_CODES


def classify(error: BaseException) -> ExceptionVerdict:
    """Classify a failure into a retry verdict.

    Args:
        error: Any exception raised by an AWS call or its surroundings.

    Returns:
        The verdict for this failure. Never raises.

    Example:
        >>> classify(builtins.TimeoutError()).user_message
        'Request timed out'
    """
    try:
        return _classify(error)
    except Exception:
        logger.debug(f"Falling back to generic verdict for {type(error).__name__}", exc_info=True)
        return ExceptionVerdict(
            retryable=False,
            user_message=f"Unexpected error: {type(error).__name__}",
        )


def is_retryable(error: BaseException) -> bool:
    """Return True if the failure should be retried."""
    return classify(error).retryable


def get_user_friendly_message(error: BaseException) -> str:
    """Return the user-facing message for a failure."""
    return classify(error).user_message


def _classify(error: BaseException) -> ExceptionVerdict:
    if isinstance(error, asyncio.CancelledError):
        return ExceptionVerdict(retryable=True, user_message="Request was cancelled or timed out")

    if isinstance(error, _TIMEOUT_TYPES):
        return ExceptionVerdict(retryable=True, user_message="Request timed out")

    if isinstance(error, _NETWORK_TYPES):
        return ExceptionVerdict(
            retryable=True, user_message=f"Network Error: {_message_of(error)}"
        )

    service_error = _service_error_fields(error)
    if service_error is not None:
        message, code, status = service_error
        return ExceptionVerdict(
            retryable=is_retryable_status(status),
            user_message=f"AWS Service Error: {message} (Error Code: {code})",
        )

    return ExceptionVerdict(retryable=False, user_message=f"Unexpected error: {_message_of(error)}")


def _service_error_fields(error: BaseException) -> tuple[str, str, int | None] | None:
    """Extract (message, code, http status) if the error came from an AWS response."""
    if isinstance(error, ClientError):
        body = error.response.get("Error", {})
        status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        return body.get("Message", str(error)), body.get("Code", "Unknown"), status

    if isinstance(error, AWSError) and (error.error_code or error.http_status is not None):
        return error.message, error.error_code or "Unknown", error.http_status

    return None


def _message_of(error: BaseException) -> str:
    if isinstance(error, AWSError):
        return error.message
    return str(error)


class ExceptionHandler:
    """Classify failures and log them at a severity matching the verdict.

    Retryable failures are logged as warnings and final ones as errors, both
    with the supplied context and the exception traceback.

    Example:
        >>> handler = ExceptionHandler()
        >>> verdict = handler.handle(ConnectionResetError("reset"), context="sqs:send_message")
        >>> verdict.retryable
        True
    """

    def __init__(self, log: logging.Logger | None = None) -> None:
        """Initialize the handler.

        Args:
            log: Logger receiving the events. Defaults to this module's logger.
        """
        self._logger = log or logger

    def handle(self, error: BaseException, context: str | None = None) -> ExceptionVerdict:
        """Classify a failure, log it and return the verdict.

        Args:
            error: The failure to handle.
            context: Where the failure happened, echoed into the verdict and the log.

        Returns:
            Verdict with ``handled`` set and ``context`` filled in.
        """
        verdict = classify(error).model_copy(update={"handled": True, "context": context})

        if verdict.retryable:
            self._logger.warning(
                f"Retryable AWS exception occurred. Context: {context}", exc_info=error
            )
        else:
            self._logger.error(
                f"Non-retryable AWS exception occurred. Context: {context}", exc_info=error
            )

        return verdict
