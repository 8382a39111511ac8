"""Logging context for the message being handled.

The control loop binds ``message_id`` while dispatching; a worker process
binds ``message_id`` and ``worker_pid`` for its whole life.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator, Mapping

_message_context: ContextVar[Mapping[str, Any]] = ContextVar("message_context", default={})


def get_message_context() -> dict[str, Any]:
    return dict(_message_context.get())


@contextmanager
def message_context(message_id: str, **values: Any) -> Iterator[dict[str, Any]]:
    """Bind a message for the duration of the block, then restore the previous context."""
    token = _message_context.set({**_message_context.get(), "message_id": message_id, **values})
    try:
        yield get_message_context()
    finally:
        _message_context.reset(token)
