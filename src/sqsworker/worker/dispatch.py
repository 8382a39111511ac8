from __future__ import annotations

from typing import TYPE_CHECKING

from sqsworker.main.logging import get_logger
from sqsworker.main.models import DispatchOutcome, Message
from sqsworker.worker.admission import may_dispatch

if TYPE_CHECKING:
    from sqsworker.main.config import Settings
    from sqsworker.queue.client import QueueClient
    from sqsworker.worker.idempotency import IdempotencyGuard
    from sqsworker.worker.supervisor import WorkerSupervisor

logger = get_logger(__name__)


class DispatchPipeline:
    """Claim, gate and spawn for each received message.

    Args:
        queue_client: Client used to defer messages when the pool is full.
        guard: Idempotency guard.
        supervisor: Worker pool supervisor.
    """

    def __init__(
        self,
        queue_client: QueueClient,
        guard: IdempotencyGuard,
        supervisor: WorkerSupervisor,
    ) -> None:
        self.queue_client = queue_client
        self.guard = guard
        self.supervisor = supervisor

    def handle(self, message: Message, settings: Settings) -> DispatchOutcome:
        retry_timeout = settings.retry_visibility_timeout

        if not self.guard.claim(message.message_id, message.body, retry_timeout):
            logger.info(
                "Skipping message already claimed by another worker",
                extra={"message_id": message.message_id},
            )
            return DispatchOutcome.DUPLICATE

        in_flight = self.supervisor.in_flight
        if not may_dispatch(in_flight, settings.max_children):
            # Claim stays; it expires with the deferral window
            self.queue_client.change_visibility(message, retry_timeout)
            logger.info(
                "Worker pool full, deferring message",
                extra={
                    "message_id": message.message_id,
                    "in_flight": in_flight,
                    "visibility_timeout": retry_timeout,
                },
            )
            return DispatchOutcome.DEFERRED

        try:
            self.supervisor.spawn(message, settings)
        except OSError as exc:
            logger.error(
                "Failed to spawn worker, leaving message for redelivery",
                extra={"message_id": message.message_id, "error": str(exc)},
            )
            return DispatchOutcome.SPAWN_FAILED

        return DispatchOutcome.DISPATCHED
