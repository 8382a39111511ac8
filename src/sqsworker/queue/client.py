"""Queue client capability and its Amazon SQS implementation."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from sqsworker.main.exceptions import ConfigurationError, QueueTransportError
from sqsworker.main.logging import get_logger
from sqsworker.main.models import Message

if TYPE_CHECKING:
    from sqsworker.main.config import Settings

logger = get_logger(__name__)


class QueueClient(Protocol):
    def receive(self) -> Message | None: ...

    def delete(self, message: Message) -> bool: ...

    def change_visibility(self, message: Message, seconds: int) -> bool: ...


def get_sqs_client(settings: Settings):
    """Create a boto3 SQS client; credentials come from the default chain.

    Raises:
        ConfigurationError: No region could be resolved or the endpoint is invalid.
    """
    config = Config(
        connect_timeout=10,
        read_timeout=settings.receive_wait_seconds + 10,
        retries={"max_attempts": 3, "mode": "standard"},
    )
    try:
        return boto3.client(
            "sqs",
            region_name=settings.region,
            endpoint_url=settings.endpoint_url,
            config=config,
        )
    except BotoCoreError as exc:
        raise ConfigurationError(f"could not create SQS client: {exc}") from exc


class SqsQueueClient:
    """Receives, deletes and re-times messages on one SQS queue.

    Transport failures are logged and reported as ``None``/``False``; they
    never propagate to the poll loop.

    Args:
        sqs: boto3 SQS client.
        queue_url: Queue url.
        visibility_timeout: Visibility timeout requested on receive, or None
            for the queue default.
        wait_seconds: Long-poll wait on receive.
    """

    def __init__(
        self,
        sqs,
        queue_url: str,
        visibility_timeout: int | None = None,
        wait_seconds: int = 0,
    ) -> None:
        self._sqs = sqs
        self.queue_url = queue_url
        self._visibility_timeout = visibility_timeout
        self._wait_seconds = wait_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "SqsQueueClient":
        return cls(
            get_sqs_client(settings),
            settings.queue_url,
            visibility_timeout=settings.visibility_timeout,
            wait_seconds=settings.receive_wait_seconds,
        )

    def _call(self, operation: str, **params: Any) -> dict:
        try:
            return getattr(self._sqs, operation)(QueueUrl=self.queue_url, **params)
        except (BotoCoreError, ClientError) as exc:
            raise QueueTransportError(operation, str(exc)) from exc

    def receive(self) -> Message | None:
        params: dict[str, Any] = {
            "MaxNumberOfMessages": 1,
            "WaitTimeSeconds": self._wait_seconds,
            "AttributeNames": ["All"],
            "MessageAttributeNames": ["All"],
        }
        if self._visibility_timeout is not None:
            params["VisibilityTimeout"] = self._visibility_timeout

        try:
            response = self._call("receive_message", **params)
        except QueueTransportError as exc:
            logger.error(
                "Failed to receive message",
                extra={"queue": self.queue_url, "error": str(exc)},
            )
            return None

        messages = response.get("Messages") or []
        if not messages:
            return None

        try:
            return Message.from_sqs(messages[0])
        except (KeyError, ValueError) as exc:
            logger.error(
                "Discarding malformed receive response",
                extra={"queue": self.queue_url, "error": str(exc)},
            )
            return None

    def delete(self, message: Message) -> bool:
        try:
            self._call("delete_message", ReceiptHandle=message.receipt_handle)
        except QueueTransportError as exc:
            logger.error(
                "Failed to delete message",
                extra={"message_id": message.message_id, "error": str(exc)},
            )
            return False
        return True

    def change_visibility(self, message: Message, seconds: int) -> bool:
        try:
            response = self._call(
                "change_message_visibility",
                ReceiptHandle=message.receipt_handle,
                VisibilityTimeout=int(seconds),
            )
        except QueueTransportError as exc:
            logger.error(
                "Failed to change message visibility",
                extra={
                    "message_id": message.message_id,
                    "visibility_timeout": seconds,
                    "error": str(exc),
                },
            )
            return False

        logger.debug(
            f"response: {response}",
            extra={"message_id": message.message_id},
        )
        return True
