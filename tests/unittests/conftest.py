import pytest

from sqsworker.main.config import Settings, reset_settings
from sqsworker.main.models import Message


class FakeQueueClient:
    """In-memory queue client recording every call."""

    def __init__(self, messages=None):
        self.pending = list(messages or [])
        self.receive_calls = 0
        self.deleted: list[str] = []
        self.visibility_changes: list[tuple[str, int]] = []

    def receive(self):
        self.receive_calls += 1
        if not self.pending:
            return None
        return self.pending.pop(0)

    def delete(self, message):
        self.deleted.append(message.receipt_handle)
        return True

    def change_visibility(self, message, seconds):
        self.visibility_changes.append((message.receipt_handle, seconds))
        return True


class FakeProcess:
    """Stands in for multiprocessing.Process."""

    _next_pid = 1000

    def __init__(self, message, settings, exitcode=0):
        FakeProcess._next_pid += 1
        self.pid = FakeProcess._next_pid
        self.message = message
        self.settings = settings
        self.started = False
        self.alive = False
        self.exitcode = None
        self._final_exitcode = exitcode
        self.join_calls = []

    def start(self):
        self.started = True
        self.alive = True

    def finish(self, exitcode=None):
        self.alive = False
        self.exitcode = self._final_exitcode if exitcode is None else exitcode

    def is_alive(self):
        return self.alive

    def join(self, timeout=None):
        self.join_calls.append(timeout)


class FakeProcessFactory:
    def __init__(self):
        self.processes: list[FakeProcess] = []

    def __call__(self, message, settings):
        process = FakeProcess(message, settings)
        self.processes.append(process)
        return process


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Settings with explicit values, independent of .env and environment."""
    return Settings(
        queue_url="https://sqs.eu-north-1.amazonaws.com/123456789012/jobs",
        region="eu-north-1",
        max_children=5,
        poll_interval=2,
        max_sleep_period=30,
        visibility_timeout=60,
        retry_visibility_timeout=30,
        receive_wait_seconds=0,
        redis_server=None,
    )


@pytest.fixture(autouse=True)
def _reset_settings():
    yield
    reset_settings()


@pytest.fixture
def make_message():
    def _make(message_id="m1", body="foo", receipt_handle=None):
        return Message(
            message_id=message_id,
            body=body,
            receipt_handle=receipt_handle or f"rh-{message_id}",
        )

    return _make


@pytest.fixture
def fake_queue():
    return FakeQueueClient()


@pytest.fixture
def process_factory():
    return FakeProcessFactory()
