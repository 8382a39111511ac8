"""Worker process entrypoint.

Each dispatched message runs in its own process. The process rebuilds its
queue client, idempotency guard and handler from the settings snapshot it
was spawned with, runs the handler once and exits.
"""

from __future__ import annotations

import os
import signal
import sys
from typing import TYPE_CHECKING

from sqsworker.main.logging import configure_logging, get_logger
from sqsworker.main.message_context import message_context
from sqsworker.main.models import Message
from sqsworker.worker.handlers import HandlerCallable, load_handler
from sqsworker.worker.idempotency import IdempotencyGuard, create_idempotency_guard

if TYPE_CHECKING:
    from sqsworker.main.config import Settings
    from sqsworker.queue.client import QueueClient

logger = get_logger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


def process_message(
    message: Message,
    handler: HandlerCallable,
    queue_client: QueueClient,
    guard: IdempotencyGuard,
) -> bool:
    """Run the handler on one message and settle it.

    The message is deleted only when the handler returns a truthy value. The
    idempotency claim is released exactly once whatever the outcome.

    Args:
        message: Message to process.
        handler: Loaded handler callable.
        queue_client: Client used to delete the message on success.
        guard: Guard holding the claim for this message.

    Returns:
        True if the handler succeeded and the message was deleted.
    """
    try:
        try:
            result = handler(message)
        except Exception:
            logger.exception(
                "Handler raised, leaving message for redelivery",
                extra={"message_id": message.message_id},
            )
            return False

        if not result:
            logger.warning(
                "Handler failed, leaving message for redelivery",
                extra={"message_id": message.message_id},
            )
            return False

        if not queue_client.delete(message):
            return False

        logger.info(
            "Message processed and deleted",
            extra={"message_id": message.message_id},
        )
        return True
    finally:
        guard.release(message.message_id)


def run_worker(message: Message, settings: Settings) -> None:
    """Process target: handle one message and exit with 0 on success, 1 otherwise."""
    from sqsworker.queue.client import SqsQueueClient

    # Terminal interrupts and reloads are for the parent only
    signal.signal(signal.SIGINT, signal.SIG_IGN)
    signal.signal(signal.SIGHUP, signal.SIG_IGN)
    # Forked workers inherit the parent's event handlers
    for signum in (signal.SIGTERM, signal.SIGQUIT, signal.SIGCHLD):
        signal.signal(signum, signal.SIG_DFL)

    configure_logging(settings.log_level, settings.log_path)
    with message_context(message.message_id, worker_pid=os.getpid()):
        guard = create_idempotency_guard(settings)
        try:
            handler = load_handler(settings.worker, settings)
            queue_client = SqsQueueClient.from_settings(settings)
        except Exception:
            logger.exception("Worker could not start", extra={"message_id": message.message_id})
            guard.release(message.message_id)
            sys.exit(EXIT_FAILURE)

        succeeded = process_message(message, handler, queue_client, guard)

    sys.exit(EXIT_SUCCESS if succeeded else EXIT_FAILURE)
