"""Message handler capability.

A handler is configured as ``package.module:attribute`` (or the dotted form
``package.module.attribute``). Classes are instantiated with the settings
snapshot; any other callable is used as-is.
"""

from __future__ import annotations

import importlib
import inspect
from typing import TYPE_CHECKING, Callable, Protocol, Union

from sqsworker.main.exceptions import HandlerLoadError
from sqsworker.main.logging import get_logger
from sqsworker.main.models import Message

if TYPE_CHECKING:
    from sqsworker.main.config import Settings

logger = get_logger(__name__)


class Handler(Protocol):
    def handle(self, message: Message) -> bool: ...


HandlerCallable = Callable[[Message], bool]


class BaseHandler:
    """Base class for message handlers.

    Subclasses override ``handle`` and return True when the message was
    processed and may be deleted from the queue.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def handle(self, message: Message) -> bool:
        raise NotImplementedError

    def __call__(self, message: Message) -> bool:
        return self.handle(message)


class LoggingHandler(BaseHandler):
    """Default handler: logs the message and reports success."""

    def handle(self, message: Message) -> bool:
        logger.info(
            "Handling message",
            extra={
                "message_id": message.message_id,
                "body": message.body,
                "params": message.parse_body(),
            },
        )
        return True


def _split_path(path: str) -> tuple[str, str]:
    if ":" in path:
        module_name, _, attribute = path.partition(":")
    else:
        module_name, _, attribute = path.rpartition(".")

    if not module_name or not attribute:
        raise HandlerLoadError(path, "expected 'package.module:attribute'")

    return module_name, attribute


def load_handler(path: str, settings: Settings) -> HandlerCallable:
    """Import and prepare the configured handler.

    Args:
        path: Handler path, e.g. "myapp.jobs:ResizeImage".
        settings: Snapshot passed to handler classes.

    Returns:
        A callable taking a Message and returning a bool.

    Raises:
        HandlerLoadError: Module or attribute missing, or not callable.
    """
    module_name, attribute = _split_path(path)

    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise HandlerLoadError(path, str(exc)) from exc

    target = getattr(module, attribute, None)
    if target is None:
        raise HandlerLoadError(path, f"module '{module_name}' has no attribute '{attribute}'")

    if inspect.isclass(target):
        try:
            target = target(settings)
        except Exception as exc:
            raise HandlerLoadError(path, f"could not instantiate handler: {exc}") from exc

    handler: Union[Handler, HandlerCallable] = target
    if callable(handler):
        return handler
    if callable(getattr(handler, "handle", None)):
        return handler.handle

    raise HandlerLoadError(path, "handler is not callable")
