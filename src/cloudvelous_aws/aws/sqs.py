"""SQS queue and message operations.

This module provides a high-level manager for Amazon SQS. Message bodies are
serialized to JSON text on send and parsed back on receive. All operations use
the AWSClientWrapper for circuit breaking, retries and error conversion.
"""

import json
import logging
import uuid
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any, Final

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from cloudvelous_aws.aws.client import SQS_STRATEGY, AWSClientWrapper, create_aws_client
from cloudvelous_aws.aws.credentials import CredentialProvider
from cloudvelous_aws.aws.exceptions import ValidationError
from cloudvelous_aws.config.settings import SqsOptions
from cloudvelous_aws.constants import (
    SQS_MAX_DELAY_SECONDS,
    SQS_MAX_RECEIVE_MESSAGES,
    SQS_MAX_VISIBILITY_TIMEOUT_SECONDS,
    SQS_MAX_WAIT_TIME_SECONDS,
)

logger: Final = logging.getLogger(__name__)


def serialize_message_body(body: Any) -> str:
    """Serialize a message body to compact JSON text.

    Pydantic models are dumped by alias; anything else goes through json.dumps.
    """
    if isinstance(body, BaseModel):
        return body.model_dump_json(by_alias=True)
    return json.dumps(body, separators=(",", ":"), default=str)


def _parse_epoch_millis(value: str | None) -> datetime | None:
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=UTC)
    except (TypeError, ValueError, OverflowError):
        return None


class SQSMessage(BaseModel):
    """A message received from a queue.

    Attributes:
        message_id: SQS message ID.
        receipt_handle: Handle needed to delete the message or change its visibility.
        body: Parsed body: a model instance when a model was requested, the
            decoded JSON value otherwise, or the raw text if it is not JSON.
            None if the body does not validate against the requested model.
        raw_body: Body exactly as received.
        attributes: System attributes (ApproximateReceiveCount, SentTimestamp, ...).
        message_attributes: String values of user message attributes.
        approximate_receive_count: How many times the message has been received.
        approximate_first_receive_timestamp: When the message was first received.
        sent_timestamp: When the message was sent.
    """

    message_id: str
    receipt_handle: str
    body: Any = None
    raw_body: str = ""
    attributes: dict[str, str] = Field(default_factory=dict)
    message_attributes: dict[str, str] = Field(default_factory=dict)
    approximate_receive_count: int = 0
    approximate_first_receive_timestamp: datetime | None = None
    sent_timestamp: datetime | None = None

    @classmethod
    def from_response(
        cls, message: Mapping[str, Any], model: type[BaseModel] | None = None
    ) -> "SQSMessage":
        """Build a message from one entry of a ReceiveMessage response.

        Args:
            message: Entry of the response's "Messages" list.
            model: Optional pydantic model to validate the JSON body against.

        Returns:
            Parsed SQSMessage.
        """
        raw_body = message.get("Body") or ""
        attributes = dict(message.get("Attributes") or {})

        body: Any = None
        if raw_body:
            if model is not None:
                try:
                    body = model.model_validate_json(raw_body)
                except PydanticValidationError as e:
                    logger.warning(
                        f"Message {message.get('MessageId')} does not match "
                        f"{model.__name__}: {e.error_count()} error(s)"
                    )
            else:
                try:
                    body = json.loads(raw_body)
                except json.JSONDecodeError:
                    body = raw_body

        receive_count = attributes.get("ApproximateReceiveCount", "0")

        return cls(
            message_id=message.get("MessageId", ""),
            receipt_handle=message.get("ReceiptHandle", ""),
            body=body,
            raw_body=raw_body,
            attributes=attributes,
            message_attributes={
                name: value["StringValue"]
                for name, value in (message.get("MessageAttributes") or {}).items()
                if "StringValue" in value
            },
            approximate_receive_count=int(receive_count) if receive_count.isdigit() else 0,
            approximate_first_receive_timestamp=_parse_epoch_millis(
                attributes.get("ApproximateFirstReceiveTimestamp")
            ),
            sent_timestamp=_parse_epoch_millis(attributes.get("SentTimestamp")),
        )


class SQSManager:
    """Manager for SQS operations.

    Example:
        >>> manager = SQSManager(SqsOptions(region="us-east-1"))
        >>> queue_url = await manager.get_queue_url("orders")
        >>> await manager.send_message(queue_url, {"order_id": 42})
        >>> messages = await manager.receive_messages(queue_url)
    """

    def __init__(
        self,
        options: SqsOptions | None = None,
        client: AWSClientWrapper | None = None,
        credential_provider: CredentialProvider | None = None,
    ) -> None:
        """Initialize SQS manager.

        Args:
            options: SQS options. Defaults to SqsOptions().
            client: Optional pre-configured AWSClientWrapper. If None, creates a new one.
            credential_provider: Credential source used when creating the client.
        """
        self.options = options or SqsOptions()
        self.client = client or create_aws_client(SQS_STRATEGY, self.options, credential_provider)
        logger.info(f"Initialized SQSManager for region {self.options.region}")

    async def send_message(
        self,
        queue_url: str,
        body: Any,
        message_attributes: Mapping[str, str] | None = None,
        delay_seconds: int = 0,
    ) -> str:
        """Send one message.

        Args:
            queue_url: URL of the target queue.
            body: Message body, serialized to JSON text.
            message_attributes: Optional string message attributes.
            delay_seconds: Delivery delay (0-900). Defaults to 0.

        Returns:
            ID of the sent message.

        Raises:
            ValidationError: If delay_seconds is out of range.
            SQSError: If the AWS API call fails.
        """
        if not 0 <= delay_seconds <= SQS_MAX_DELAY_SECONDS:
            raise ValidationError(
                f"delay_seconds must be between 0 and {SQS_MAX_DELAY_SECONDS}",
                service="sqs",
                operation="send_message",
            )

        logger.debug(f"Sending message to SQS queue: {queue_url}")

        kwargs: dict[str, Any] = {
            "QueueUrl": queue_url,
            "MessageBody": serialize_message_body(body),
            "DelaySeconds": delay_seconds,
        }
        if message_attributes:
            kwargs["MessageAttributes"] = {
                name: {"StringValue": value, "DataType": "String"}
                for name, value in message_attributes.items()
            }

        response = await self.client.call("send_message", **kwargs)
        return str(response["MessageId"])

    async def send_message_batch(
        self, queue_url: str, bodies: Iterable[Any]
    ) -> list[dict[str, Any]]:
        """Send several messages in one request.

        Args:
            queue_url: URL of the target queue.
            bodies: Message bodies, each serialized to JSON text.

        Returns:
            Entries SQS reported as failed; empty when all were sent.

        Raises:
            ValidationError: If no bodies are given.
            SQSError: If the AWS API call fails.
        """
        entries = [
            {"Id": str(uuid.uuid4()), "MessageBody": serialize_message_body(body)}
            for body in bodies
        ]
        if not entries:
            raise ValidationError(
                "bodies cannot be empty", service="sqs", operation="send_message_batch"
            )

        logger.debug(f"Sending {len(entries)} messages to SQS queue: {queue_url}")

        response = await self.client.call("send_message_batch", QueueUrl=queue_url, Entries=entries)
        failed: list[dict[str, Any]] = response.get("Failed", [])
        if failed:
            logger.warning(f"{len(failed)} of {len(entries)} messages failed to send")
        return failed

    async def receive_messages(
        self,
        queue_url: str,
        max_messages: int | None = None,
        wait_time_seconds: int | None = None,
        visibility_timeout: int | None = None,
        model: type[BaseModel] | None = None,
    ) -> list[SQSMessage]:
        """Receive messages, long-polling by default.

        Args:
            queue_url: URL of the queue.
            max_messages: Maximum messages to return (1-10). Defaults to the options.
            wait_time_seconds: Long-poll wait (0-20). Defaults to the options.
            visibility_timeout: Visibility timeout for received messages. Defaults
                to the options.
            model: Optional pydantic model to parse bodies into.

        Returns:
            Received messages, possibly empty.

        Raises:
            ValidationError: If a parameter is out of range.
            SQSError: If the AWS API call fails.
        """
        if max_messages is None:
            max_messages = self.options.max_receive_messages
        if wait_time_seconds is None:
            wait_time_seconds = self.options.default_receive_message_wait_time_seconds
        if visibility_timeout is None:
            visibility_timeout = self.options.default_visibility_timeout_seconds

        if not 1 <= max_messages <= SQS_MAX_RECEIVE_MESSAGES:
            raise ValidationError(
                f"max_messages must be between 1 and {SQS_MAX_RECEIVE_MESSAGES}",
                service="sqs",
                operation="receive_message",
            )
        if not 0 <= wait_time_seconds <= SQS_MAX_WAIT_TIME_SECONDS:
            raise ValidationError(
                f"wait_time_seconds must be between 0 and {SQS_MAX_WAIT_TIME_SECONDS}",
                service="sqs",
                operation="receive_message",
            )

        logger.debug(f"Receiving messages from SQS queue: {queue_url}")

        response = await self.client.call(
            "receive_message",
            QueueUrl=queue_url,
            MaxNumberOfMessages=max_messages,
            WaitTimeSeconds=wait_time_seconds,
            VisibilityTimeout=visibility_timeout,
            MessageAttributeNames=["All"],
            MessageSystemAttributeNames=["All"],
        )

        messages = [
            SQSMessage.from_response(message, model) for message in response.get("Messages", [])
        ]
        logger.debug(f"Received {len(messages)} message(s) from {queue_url}")
        return messages

    async def delete_message(self, queue_url: str, receipt_handle: str) -> None:
        """Delete one message by receipt handle."""
        logger.debug(f"Deleting message from SQS queue: {queue_url}")
        await self.client.call("delete_message", QueueUrl=queue_url, ReceiptHandle=receipt_handle)

    async def delete_message_batch(
        self, queue_url: str, receipt_handles: Iterable[str]
    ) -> list[dict[str, Any]]:
        """Delete several messages in one request.

        Returns:
            Entries SQS reported as failed; empty when all were deleted.

        Raises:
            ValidationError: If no receipt handles are given.
        """
        entries = [
            {"Id": str(uuid.uuid4()), "ReceiptHandle": handle} for handle in receipt_handles
        ]
        if not entries:
            raise ValidationError(
                "receipt_handles cannot be empty",
                service="sqs",
                operation="delete_message_batch",
            )

        logger.debug(f"Deleting {len(entries)} messages from SQS queue: {queue_url}")

        response = await self.client.call(
            "delete_message_batch", QueueUrl=queue_url, Entries=entries
        )
        failed: list[dict[str, Any]] = response.get("Failed", [])
        return failed

    async def change_message_visibility(
        self, queue_url: str, receipt_handle: str, visibility_timeout: int
    ) -> None:
        """Change the visibility timeout of a received message.

        Raises:
            ValidationError: If visibility_timeout is outside 0-43200 seconds.
        """
        if not 0 <= visibility_timeout <= SQS_MAX_VISIBILITY_TIMEOUT_SECONDS:
            raise ValidationError(
                f"visibility_timeout must be between 0 and {SQS_MAX_VISIBILITY_TIMEOUT_SECONDS}",
                service="sqs",
                operation="change_message_visibility",
            )

        logger.debug(
            f"Changing message visibility for SQS queue: {queue_url} "
            f"to {visibility_timeout} seconds"
        )
        await self.client.call(
            "change_message_visibility",
            QueueUrl=queue_url,
            ReceiptHandle=receipt_handle,
            VisibilityTimeout=visibility_timeout,
        )

    async def get_queue_url(self, queue_name: str) -> str:
        """Resolve a queue name to its URL.

        Raises:
            ResourceNotFoundError: If the queue does not exist.
        """
        logger.debug(f"Getting SQS queue URL for queue: {queue_name}")
        response = await self.client.call("get_queue_url", QueueName=queue_name)
        return str(response["QueueUrl"])

    async def create_queue(
        self, queue_name: str, attributes: Mapping[str, str] | None = None
    ) -> str:
        """Create a queue.

        Args:
            queue_name: Name of the queue.
            attributes: Queue attributes. Defaults to the options' visibility
                timeout and message retention period.

        Returns:
            URL of the created queue.
        """
        logger.debug(f"Creating SQS queue: {queue_name}")

        if attributes is None:
            attributes = {
                "VisibilityTimeout": str(self.options.default_visibility_timeout_seconds),
                "MessageRetentionPeriod": str(
                    self.options.default_message_retention_period_seconds
                ),
            }

        response = await self.client.call(
            "create_queue", QueueName=queue_name, Attributes=dict(attributes)
        )
        logger.info(f"Created SQS queue {queue_name}")
        return str(response["QueueUrl"])

    async def delete_queue(self, queue_url: str) -> None:
        """Delete a queue."""
        logger.debug(f"Deleting SQS queue: {queue_url}")
        await self.client.call("delete_queue", QueueUrl=queue_url)
        logger.info(f"Deleted SQS queue {queue_url}")
