from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from urllib.parse import parse_qsl, urlencode

from pydantic import BaseModel, ConfigDict, Field

from sqsworker.main.logging import get_logger

logger = get_logger(__name__)


class Message(BaseModel):
    """One delivery of a queue message.

    ``receipt_handle`` is opaque and only meaningful to the queue client that
    produced it; it is required to delete the message or change its
    visibility.
    """

    model_config = ConfigDict(frozen=True)

    message_id: str
    body: str
    receipt_handle: str
    md5_of_body: Optional[str] = None
    attributes: dict[str, str] = Field(default_factory=dict)
    message_attributes: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_sqs(cls, raw: dict[str, Any]) -> "Message":
        """Build a message from one entry of a ReceiveMessage response."""
        return cls(
            message_id=raw["MessageId"],
            body=raw.get("Body", ""),
            receipt_handle=raw["ReceiptHandle"],
            md5_of_body=raw.get("MD5OfBody"),
            attributes=raw.get("Attributes") or {},
            message_attributes=raw.get("MessageAttributes") or {},
        )

    def parse_body(self) -> dict[str, Any] | None:
        """Decode the body as a JSON object or a URL query string.

        Returns:
            dict of parameters, or None when the body cannot be decoded.
        """
        body = self.body.strip()
        if body.startswith("{"):
            try:
                params = json.loads(body)
            except json.JSONDecodeError as exc:
                logger.error(
                    f"error parsing message: {exc}",
                    extra={"message_id": self.message_id},
                )
                return None
            return params if isinstance(params, dict) else None

        try:
            return dict(parse_qsl(body, keep_blank_values=True, strict_parsing=True))
        except ValueError as exc:
            logger.error(
                f"error parsing message: {exc}",
                extra={"message_id": self.message_id},
            )
            return None


def create_message_body(**params: Any) -> str:
    """Encode parameters as a query-string body that ``parse_body`` reads back.

    Raises:
        ValueError: No ``event`` parameter was given.
    """
    if params.get("event") is None:
        raise ValueError("invalid message: no event key")

    return urlencode(params)


@dataclass(frozen=True)
class WorkerHandle:
    pid: int
    message_id: str
    started_at: float
    process: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class PollState:
    """Backoff state. Invariant: poll_interval <= current_sleep <= max_sleep_period."""

    current_sleep: float
    poll_interval: float
    max_sleep_period: float


class LifecycleState(str, Enum):
    RUNNING = "running"
    RELOADING = "reloading"
    STOPPING = "stopping"
    STOPPED = "stopped"


class LifecycleEvent(str, Enum):
    RELOAD = "reload"
    STOP = "stop"
    CHILD_EXITED = "child_exited"


class DispatchOutcome(str, Enum):
    DISPATCHED = "dispatched"
    DUPLICATE = "duplicate"
    DEFERRED = "deferred"
    SPAWN_FAILED = "spawn_failed"
