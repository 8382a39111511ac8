"""Poll-dispatch-supervise worker.

- PollLoop: top-level loop receiving one message per iteration
- DispatchPipeline: claim, admission and spawn per message
- WorkerSupervisor: worker processes from spawn to reap
- LifecycleController: signal events applied by the control loop
- IdempotencyGuard: duplicate suppression through an idempotency store
"""

from sqsworker.worker.dispatch import DispatchPipeline
from sqsworker.worker.idempotency import IdempotencyGuard
from sqsworker.worker.lifecycle import LifecycleController
from sqsworker.worker.poller import PollLoop
from sqsworker.worker.supervisor import WorkerSupervisor

__all__ = [
    "DispatchPipeline",
    "IdempotencyGuard",
    "LifecycleController",
    "PollLoop",
    "WorkerSupervisor",
]
