"""Top-level poll loop.

Receives one message per iteration, backs off while the queue is empty and
hands every message to the dispatch pipeline until a stop is requested.
"""

from __future__ import annotations

import os
from collections import Counter
from typing import Callable, Optional

from sqsworker import __version__
from sqsworker.main.config import Settings, load_settings, set_settings
from sqsworker.main.exceptions import ConfigurationError
from sqsworker.main.logging import configure_logging, get_logger
from sqsworker.main.message_context import message_context
from sqsworker.main.models import DispatchOutcome, LifecycleState
from sqsworker.queue.client import QueueClient, SqsQueueClient
from sqsworker.worker import backoff
from sqsworker.worker.dispatch import DispatchPipeline
from sqsworker.worker.handlers import load_handler
from sqsworker.worker.idempotency import IdempotencyGuard, create_idempotency_guard
from sqsworker.worker.lifecycle import LifecycleController
from sqsworker.worker.supervisor import WorkerSupervisor

logger = get_logger(__name__)

QUEUE_FIELDS = ("queue_url", "endpoint_url", "region", "visibility_timeout", "receive_wait_seconds")
REDIS_FIELDS = (
    "redis_server",
    "redis_port",
    "redis_db",
    "redis_password",
    "redis_ssl",
    "redis_ssl_cert_reqs",
    "redis_socket_timeout",
    "idempotency_key_prefix",
)


def _changed(old: Settings, new: Settings, fields: tuple[str, ...]) -> bool:
    return any(getattr(old, name) != getattr(new, name) for name in fields)


class PollLoop:
    """Poll, dispatch and supervise until stopped.

    Args:
        settings: Initial settings snapshot.
        settings_loader: Builds a fresh snapshot on reload. Defaults to
            re-reading the current config file.
        queue_client_factory: Builds the queue client for a snapshot.
        guard_factory: Builds the idempotency guard for a snapshot.
        supervisor: Worker pool supervisor.
    """

    def __init__(
        self,
        settings: Settings,
        settings_loader: Optional[Callable[[], Settings]] = None,
        queue_client_factory: Callable[[Settings], QueueClient] = SqsQueueClient.from_settings,
        guard_factory: Callable[[Settings], IdempotencyGuard] = create_idempotency_guard,
        supervisor: Optional[WorkerSupervisor] = None,
    ) -> None:
        self.settings = settings
        self._settings_loader = settings_loader or (lambda: load_settings(self.settings.config_file))
        self._queue_client_factory = queue_client_factory
        self._guard_factory = guard_factory

        self.supervisor = supervisor or WorkerSupervisor()
        self.pipeline = DispatchPipeline(
            queue_client_factory(settings),
            guard_factory(settings),
            self.supervisor,
        )
        self.lifecycle = LifecycleController(
            on_reload=self.reload,
            on_child_exit=self.supervisor.reap,
        )
        self.poll_state = backoff.initial_state(settings)
        self.stats: Counter = Counter()

    @property
    def queue_client(self) -> QueueClient:
        return self.pipeline.queue_client

    def reload(self) -> None:
        """Swap in a fresh settings snapshot; keep the old one if it is invalid."""
        queue_client, guard = self.pipeline.queue_client, self.pipeline.guard
        try:
            new_settings = self._settings_loader()
            if new_settings.worker != self.settings.worker:
                load_handler(new_settings.worker, new_settings)
            if _changed(self.settings, new_settings, QUEUE_FIELDS):
                queue_client = self._queue_client_factory(new_settings)
            if _changed(self.settings, new_settings, REDIS_FIELDS):
                guard = self._guard_factory(new_settings)
        except ConfigurationError as exc:
            logger.error(
                "Reload failed, keeping previous configuration",
                extra={"error": exc.message},
            )
            return

        self.pipeline.queue_client = queue_client
        self.pipeline.guard = guard
        self.settings = new_settings
        set_settings(new_settings)
        configure_logging(new_settings.log_level, new_settings.log_path)
        self.poll_state = backoff.rebase(self.poll_state, new_settings)

        logger.info(
            "Configuration reloaded",
            extra={
                "max_children": new_settings.max_children,
                "poll_interval": new_settings.poll_interval,
                "max_sleep_period": new_settings.max_sleep_period,
            },
        )

    def run_once(self) -> Optional[DispatchOutcome]:
        """Run one poll iteration.

        Returns:
            The dispatch outcome, or None when the queue was empty.
        """
        message = self.queue_client.receive()

        if message is None:
            self.lifecycle.wait(self.poll_state.current_sleep)
            self.poll_state = backoff.on_empty_poll(self.poll_state)
            return None

        self.stats["received"] += 1
        self.poll_state = backoff.on_message_received(self.poll_state)

        with message_context(message.message_id):
            outcome = self.pipeline.handle(message, self.settings)

        self.stats[outcome.value] += 1
        return outcome

    def _log_banner(self) -> None:
        settings = self.settings
        logger.info(
            f"sqs-worker {__version__} starting",
            extra={
                "pid": os.getpid(),
                "queue": settings.queue_name,
                "queue_url": settings.queue_url,
                "handler": settings.worker,
                "max_children": settings.max_children,
                "poll_interval": settings.poll_interval,
                "max_sleep_period": settings.max_sleep_period,
                "idempotency": "enabled" if settings.idempotency_enabled else "disabled",
            },
        )

    def _log_summary(self) -> None:
        logger.info(
            "sqs-worker stopped",
            extra={
                "received": self.stats["received"],
                "dispatched": self.stats[DispatchOutcome.DISPATCHED.value],
                "deferred": self.stats[DispatchOutcome.DEFERRED.value],
                "duplicates": self.stats[DispatchOutcome.DUPLICATE.value],
                "spawn_failures": self.stats[DispatchOutcome.SPAWN_FAILED.value],
                "in_flight": self.supervisor.in_flight,
            },
        )

    def run(self, install_signals: bool = True) -> Counter:
        """Loop until a stop is requested.

        In-flight workers are neither awaited nor killed on exit.

        Returns:
            Counters of received messages and dispatch outcomes.
        """
        if install_signals:
            self.lifecycle.install()

        self._log_banner()

        try:
            while True:
                self.lifecycle.drain()
                if self.lifecycle.state != LifecycleState.RUNNING:
                    break

                try:
                    self.run_once()
                except Exception:
                    logger.exception("Unexpected error in poll loop")
                    self.lifecycle.wait(self.poll_state.poll_interval)
        finally:
            self.lifecycle.finish()
            self.supervisor.detach()
            self._log_summary()

        return self.stats
