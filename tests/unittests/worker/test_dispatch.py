"""Unit tests for the DispatchPipeline: claim, admission and spawn."""

from unittest.mock import MagicMock

from sqsworker.main.models import DispatchOutcome
from sqsworker.worker.dispatch import DispatchPipeline
from sqsworker.worker.idempotency import IdempotencyGuard, InMemoryIdempotencyStore
from sqsworker.worker.supervisor import WorkerSupervisor


class TestDispatched:
    def test_spawns_worker_with_settings_snapshot(
        self, test_settings, fake_queue, process_factory, make_message
    ):
        """Should spawn a worker and record its handle."""
        supervisor = WorkerSupervisor(process_factory=process_factory)
        pipeline = DispatchPipeline(fake_queue, IdempotencyGuard(), supervisor)
        message = make_message("m1", "foo")

        outcome = pipeline.handle(message, test_settings)

        assert outcome is DispatchOutcome.DISPATCHED
        assert supervisor.in_flight == 1
        process = process_factory.processes[0]
        assert process.started is True
        assert process.message is message
        assert process.settings is test_settings
        assert fake_queue.visibility_changes == []
        assert fake_queue.deleted == []

    def test_claims_with_retry_visibility_timeout_as_ttl(
        self, test_settings, fake_queue, process_factory, make_message
    ):
        guard = MagicMock()
        guard.claim.return_value = True
        pipeline = DispatchPipeline(fake_queue, guard, WorkerSupervisor(process_factory))

        pipeline.handle(make_message("m1", "foo"), test_settings)

        guard.claim.assert_called_once_with("m1", "foo", 30)


class TestDuplicate:
    def test_already_claimed_message_is_skipped(
        self, test_settings, fake_queue, process_factory, make_message
    ):
        """Should neither spawn, delete nor change visibility."""
        store = InMemoryIdempotencyStore()
        store.set_if_absent("m3", "body", ttl=30)
        supervisor = WorkerSupervisor(process_factory=process_factory)
        pipeline = DispatchPipeline(fake_queue, IdempotencyGuard(store), supervisor)

        outcome = pipeline.handle(make_message("m3"), test_settings)

        assert outcome is DispatchOutcome.DUPLICATE
        assert process_factory.processes == []
        assert fake_queue.deleted == []
        assert fake_queue.visibility_changes == []


class TestDeferred:
    def test_full_pool_defers_with_retry_timeout(
        self, test_settings, fake_queue, process_factory, make_message
    ):
        """Should change visibility exactly once and not spawn."""
        settings = test_settings.model_copy(update={"max_children": 1})
        supervisor = WorkerSupervisor(process_factory=process_factory)
        pipeline = DispatchPipeline(fake_queue, IdempotencyGuard(), supervisor)
        pipeline.handle(make_message("m1"), settings)

        outcome = pipeline.handle(make_message("m2"), settings)

        assert outcome is DispatchOutcome.DEFERRED
        assert fake_queue.visibility_changes == [("rh-m2", 30)]
        assert supervisor.in_flight == 1
        assert len(process_factory.processes) == 1

    def test_deferral_keeps_claim(self, test_settings, fake_queue, process_factory, make_message):
        """Should not release the claim, so a redelivery inside the window is a duplicate."""
        settings = test_settings.model_copy(update={"max_children": 1})
        guard = IdempotencyGuard(InMemoryIdempotencyStore())
        pipeline = DispatchPipeline(fake_queue, guard, WorkerSupervisor(process_factory))
        pipeline.handle(make_message("m1"), settings)
        pipeline.handle(make_message("m2"), settings)

        outcome = pipeline.handle(make_message("m2"), settings)

        assert outcome is DispatchOutcome.DUPLICATE


class TestSpawnFailed:
    def test_spawn_error_is_not_fatal(self, test_settings, fake_queue, make_message):
        """Should log and leave the message to expire naturally."""
        factory = MagicMock()
        factory.return_value.start.side_effect = OSError("Resource temporarily unavailable")
        supervisor = WorkerSupervisor(process_factory=factory)
        pipeline = DispatchPipeline(fake_queue, IdempotencyGuard(), supervisor)

        outcome = pipeline.handle(make_message("m1"), test_settings)

        assert outcome is DispatchOutcome.SPAWN_FAILED
        assert supervisor.in_flight == 0
        assert fake_queue.visibility_changes == []
        assert fake_queue.deleted == []
