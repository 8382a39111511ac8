"""Worker pool supervisor.

Tracks worker processes from spawn to reap. Only the control loop touches
the handle set; reaping is triggered by SIGCHLD through the lifecycle event
channel, never from the signal handler itself.
"""

from __future__ import annotations

import multiprocessing
import multiprocessing.process
import time
from typing import TYPE_CHECKING, Any, Callable, Optional

from sqsworker.main.logging import get_logger
from sqsworker.main.models import Message, WorkerHandle
from sqsworker.worker.runner import EXIT_SUCCESS, run_worker

if TYPE_CHECKING:
    from sqsworker.main.config import Settings

logger = get_logger(__name__)

ProcessFactory = Callable[[Message, "Settings"], Any]


def default_process_factory(message: Message, settings: Settings):
    """Create an unstarted worker process using the configured start method."""
    context = multiprocessing.get_context(settings.worker_start_method)
    return context.Process(
        target=run_worker,
        args=(message, settings),
        name=f"sqs-worker-{message.message_id}",
    )


class WorkerSupervisor:
    """Owns the set of in-flight worker processes.

    Args:
        process_factory: Builds an unstarted process object exposing
            ``start()``, ``pid``, ``is_alive()``, ``join(timeout)`` and
            ``exitcode``. Defaults to ``multiprocessing`` processes.
        clock: Wall clock used for handle start times.
    """

    def __init__(
        self,
        process_factory: Optional[ProcessFactory] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._process_factory = process_factory or default_process_factory
        self._clock = clock
        self.handles: dict[int, WorkerHandle] = {}

    @property
    def in_flight(self) -> int:
        return len(self.handles)

    def spawn(self, message: Message, settings: Settings) -> WorkerHandle:
        """Start a worker process for a message.

        Raises:
            OSError: The process could not be created.
        """
        process = self._process_factory(message, settings)
        process.start()

        handle = WorkerHandle(
            pid=process.pid,
            message_id=message.message_id,
            started_at=self._clock(),
            process=process,
        )
        self.handles[handle.pid] = handle

        logger.info(
            "Spawned worker",
            extra={
                "message_id": message.message_id,
                "worker_pid": handle.pid,
                "in_flight": self.in_flight,
            },
        )
        return handle

    def reap(self) -> set[WorkerHandle]:
        """Collect every finished worker without blocking.

        Returns:
            Handles removed from the in-flight set.
        """
        reaped: set[WorkerHandle] = set()

        for pid, handle in list(self.handles.items()):
            process = handle.process
            if process.is_alive():
                continue

            process.join(0)
            del self.handles[pid]
            reaped.add(handle)

            extra = {
                "message_id": handle.message_id,
                "worker_pid": pid,
                "exit_code": process.exitcode,
                "duration": round(self._clock() - handle.started_at, 3),
            }
            if process.exitcode == EXIT_SUCCESS:
                logger.info("Worker finished", extra=extra)
            else:
                logger.warning("Worker exited with failure", extra=extra)

        return reaped

    def detach(self) -> None:
        """Let the daemon exit without waiting for in-flight workers.

        multiprocessing joins every child it started at interpreter exit;
        detached workers keep running and settle their messages on their own.
        """
        for handle in self.handles.values():
            multiprocessing.process._children.discard(handle.process)

        if self.handles:
            logger.info(
                "Leaving in-flight workers running",
                extra={"worker_pids": sorted(self.handles)},
            )
