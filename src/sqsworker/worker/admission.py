"""Worker pool admission control."""

from sqsworker.main.logging import get_logger

logger = get_logger(__name__)


def may_dispatch(in_flight_count: int, max_children: int) -> bool:
    """Decide whether a new worker may be spawned.

    Args:
        in_flight_count: Workers currently tracked by the supervisor,
            including exited workers not yet reaped.
        max_children: Configured maximum concurrent workers.

    Returns:
        False when the pool is at or over capacity.
    """
    allowed = in_flight_count < max_children

    if not allowed:
        logger.debug(
            "Admission denied (at capacity)",
            extra={"in_flight": in_flight_count, "max_children": max_children},
        )

    return allowed

